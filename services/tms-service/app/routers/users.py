from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from .. import crud, models, schemas
from app.database import get_db
from app.notifications import Notifier, get_notifier
from app.services import emails
from app.services.auth import AuthService
from tms_common.security import RequirePermission, Permissions, UserPayload, get_current_user

router = APIRouter(prefix="/users", tags=["Users"])

# --- AUTENTICACIÓN ---

@router.post("/register", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
async def register(user: schemas.UserRegister, db: AsyncSession = Depends(get_db)):
    """
    **Registro Público**

    El primer usuario registrado queda como `Admin`; el resto como `User`.
    """
    return await AuthService.register(db, user)

@router.post("/login", response_model=schemas.Token)
async def login(credentials: schemas.LoginRequest, db: AsyncSession = Depends(get_db)):
    """**Iniciar Sesión** (devuelve JWT y perfil)."""
    return await AuthService.authenticate_user(db, credentials.email, credentials.password)

@router.get("/me", response_model=schemas.UserResponse)
async def read_me(
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(get_current_user)
):
    db_user = await crud.get_user_by_id(db, user.user_id)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    return db_user

# --- GESTIÓN (ADMIN) ---

@router.post("/", response_model=schemas.UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user: schemas.UserCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    current: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE))
):
    """**Crear Usuario** (envía correo de bienvenida)."""
    db_user = await AuthService.create_user(db, user)
    background_tasks.add_task(notifier.send, emails.welcome_email(db_user.email, db_user.first_name))
    return db_user

@router.get("/", response_model=schemas.PaginatedResponse[schemas.UserResponse])
async def read_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    current: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE))
):
    """**Listar Usuarios** (búsqueda por nombre o email)."""
    return await crud.get_users(db, page=page, limit=limit, search=search)

@router.get("/verify/{email}", response_model=schemas.UserResponse)
async def verify_user(
    email: str,
    db: AsyncSession = Depends(get_db),
    current: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE))
):
    db_user = await crud.get_user_by_email(db, email)
    if not db_user:
        raise HTTPException(status_code=404, detail="User not found")
    return db_user

@router.post("/fetch", response_model=List[schemas.UserResponse])
async def fetch_users(
    request: schemas.BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
    current: UserPayload = Depends(RequirePermission(Permissions.USER_READ))
):
    """**Usuarios por IDs** (los inexistentes se omiten)."""
    if not request.ids:
        return []
    users = await crud.get_many_by_ids(db, models.User, request.ids)
    return [await crud.get_user_by_id(db, u.id) for u in users]

@router.put("/{user_id}", response_model=schemas.UserResponse)
async def update_user(
    user_id: int,
    user: schemas.UserUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    current: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE))
):
    """
    **Actualizar Usuario**

    Si cambia de departamento, se avisa a los compañeros del nuevo departamento.
    """
    db_user, new_department, colleagues = await AuthService.update_user(db, user_id, user)

    recipients = emails.unique_emails(colleagues)
    if new_department is not None and recipients:
        background_tasks.add_task(
            notifier.send,
            emails.department_change_email(
                recipients, db_user.full_name, db_user.email, db_user.role, new_department.name
            )
        )
    return db_user

@router.delete("/", response_model=schemas.BulkDeleteResponse)
async def bulk_delete_users(
    delete_data: schemas.BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
    current: UserPayload = Depends(RequirePermission(Permissions.USER_MANAGE))
):
    """**Eliminar Usuarios en Lote** (no incluye la propia cuenta)."""
    deleted = await AuthService.bulk_delete_users(db, delete_data.ids, current.user_id)
    return {"message": f"Successfully deleted {deleted} user(s).", "deleted": deleted}
