import logging
from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import delete
from typing import List, Optional, Tuple

from tms_common import security
from app import crud, models, schemas

logger = logging.getLogger(__name__)

class AuthService:

    @staticmethod
    async def register(db: AsyncSession, data: schemas.UserRegister) -> models.User:
        """El primer usuario del sistema queda como Admin."""
        if await crud.get_user_by_email(db, data.email):
            raise HTTPException(status_code=400, detail="User already exists")
        if data.department_id is not None and not await crud.get_department_by_id(db, data.department_id):
            raise HTTPException(status_code=400, detail=f"Department not found: {data.department_id}")

        is_first_user = await crud.count_users(db) == 0
        role = models.UserRole.ADMIN if is_first_user else models.UserRole.USER

        user = await crud.create_user(db, {
            "first_name": data.first_name,
            "last_name": data.last_name,
            "email": data.email,
            "hashed_password": security.get_password_hash(data.password),
            "role": role.value,
            "department_id": data.department_id,
            "is_verified": is_first_user,
        })
        logger.info(f"👤 Usuario registrado: {user.email} ({user.role})")
        return user

    @staticmethod
    async def authenticate_user(db: AsyncSession, email: str, password: str) -> dict:
        user = await crud.get_user_by_email(db, email)
        if not user or not security.verify_password(password, user.hashed_password):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password",
                headers={"WWW-Authenticate": "Bearer"},
            )

        access_token = security.create_access_token(
            data={
                "sub": user.email,
                "role": user.role,
                "user_id": user.id
            }
        )
        return {"access_token": access_token, "token_type": "bearer", "user": user}

    @staticmethod
    async def create_user(db: AsyncSession, data: schemas.UserCreate) -> models.User:
        if await crud.get_user_by_email(db, data.email):
            raise HTTPException(status_code=400, detail="User already exists")
        if not await crud.get_department_by_id(db, data.department_id):
            raise HTTPException(status_code=400, detail=f"Department not found: {data.department_id}")

        user = await crud.create_user(db, {
            "first_name": data.first_name,
            "last_name": data.last_name,
            "email": data.email,
            "hashed_password": security.get_password_hash(data.password),
            "role": data.role.value,
            "department_id": data.department_id,
            "is_verified": True,
        })
        logger.info(f"👤 Usuario creado por administrador: {user.email}")
        return user

    @staticmethod
    async def update_user(
        db: AsyncSession,
        user_id: int,
        data: schemas.UserUpdate
    ) -> Tuple[models.User, Optional[models.Department], List[str]]:
        """
        Actualiza un usuario.

        Devuelve (usuario, nuevo_departamento, correos_del_departamento) para
        notificar a los compañeros cuando el usuario cambia de departamento.
        """
        user = await crud.get_user_by_id(db, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}

        if "email" in changes and changes["email"] != user.email:
            if await crud.get_user_by_email(db, changes["email"]):
                raise HTTPException(status_code=400, detail="Email already in use")

        new_department = None
        previous_department_id = user.department_id
        if "department_id" in changes:
            new_department = await crud.get_department_by_id(db, changes["department_id"])
            if not new_department:
                raise HTTPException(status_code=400, detail=f"Department not found: {changes['department_id']}")

        if "password" in changes:
            changes["hashed_password"] = security.get_password_hash(changes.pop("password"))
        if "role" in changes:
            changes["role"] = changes["role"].value

        await crud.update_fields(db, user, changes)
        logger.info(f"👤 Usuario actualizado: #{user.id}")

        colleagues: List[str] = []
        if new_department is not None and new_department.id != previous_department_id:
            colleagues = [
                u.email for u in await crud.get_users_in_departments(db, [new_department.id])
                if u.id != user.id
            ]
        else:
            new_department = None

        return await crud.get_user_by_id(db, user.id), new_department, colleagues

    @staticmethod
    async def bulk_delete_users(db: AsyncSession, ids: List[int], current_user_id: int) -> int:
        if not ids:
            raise HTTPException(status_code=400, detail="Please provide an array of user IDs to delete.")
        if current_user_id in ids:
            raise HTTPException(status_code=400, detail="You cannot delete your own account.")

        result = await db.execute(delete(models.User).where(models.User.id.in_(ids)))
        await db.commit()

        deleted_count = result.rowcount
        if deleted_count == 0:
            raise HTTPException(status_code=404, detail="No users found for the provided IDs.")
        logger.info(f"🗑️ {deleted_count} usuario(s) eliminados")
        return deleted_count
