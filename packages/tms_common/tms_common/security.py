import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

# Tokens HS256 firmados con JWT_SECRET_KEY
SECRET_KEY = os.getenv("JWT_SECRET_KEY")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_DAYS = int(os.getenv("ACCESS_TOKEN_EXPIRE_DAYS", "7"))

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/users/login")

# --- CONTRASEÑAS Y TOKENS ---

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, hashed_password: str) -> bool:
    return pwd_context.verify(password, hashed_password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """`data` lleva `sub` (email), `role` y `user_id`."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=ACCESS_TOKEN_EXPIRE_DAYS))
    claims = {**data, "exp": expire}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)

# --- ROLES Y PERMISOS ---

class Roles:
    ADMIN = "Admin"
    USER = "User"

class Permissions:
    PROJECT_READ = "project:read"
    PROJECT_MANAGE = "project:manage"
    TASK_READ = "task:read"
    TASK_MANAGE = "task:manage"

    CLIENT_READ = "client:read"
    CLIENT_MANAGE = "client:manage"
    DEPARTMENT_READ = "department:read"
    DEPARTMENT_MANAGE = "department:manage"

    # Agenda y colaboración
    MEETING_MANAGE = "meeting:manage"
    EVENT_MANAGE = "event:manage"
    COMMENT_CREATE = "comment:create"
    REPORT_MANAGE = "report:manage"
    CONTACT_MANAGE = "contact:manage"

    USER_READ = "user:read"
    USER_MANAGE = "user:manage"
    DASHBOARD_VIEW = "dashboard:view"

# Admin lo puede todo; User trabaja sobre proyectos pero no los administra
ROLE_PERMISSIONS = {
    Roles.ADMIN: ["*"],
    Roles.USER: [
        Permissions.PROJECT_READ,
        Permissions.TASK_READ,
        Permissions.TASK_MANAGE,
        Permissions.CLIENT_READ,
        Permissions.DEPARTMENT_READ,
        Permissions.MEETING_MANAGE,
        Permissions.EVENT_MANAGE,
        Permissions.COMMENT_CREATE,
        Permissions.REPORT_MANAGE,
        Permissions.CONTACT_MANAGE,
        Permissions.USER_READ,
    ],
}

# --- DEPENDENCIAS FASTAPI ---

class UserPayload:
    """Identidad extraída del token (no consulta la base de datos)."""

    def __init__(self, sub: str, role: str, user_id: int):
        self.sub = sub
        self.role = role
        self.user_id = user_id
        self.permissions = ROLE_PERMISSIONS.get(role, [])

    @property
    def is_admin(self) -> bool:
        return self.role == Roles.ADMIN

    def has_permission(self, permission: str) -> bool:
        return "*" in self.permissions or permission in self.permissions

def get_current_user(token: str = Depends(oauth2_scheme)) -> UserPayload:
    try:
        claims = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        claims = {}

    if not claims.get("sub") or claims.get("user_id") is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return UserPayload(sub=claims["sub"], role=claims.get("role"), user_id=claims["user_id"])

class RequirePermission:
    """`Depends(RequirePermission(Permissions.X))` devuelve el usuario o responde 403."""

    def __init__(self, permission: str):
        self.permission = permission

    def __call__(self, user: UserPayload = Depends(get_current_user)) -> UserPayload:
        if not user.has_permission(self.permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required permission: {self.permission}"
            )
        return user
