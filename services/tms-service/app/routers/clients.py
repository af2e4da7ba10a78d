import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from .. import crud, schemas
from app.database import get_db
from tms_common.security import RequirePermission, Permissions, UserPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["Clients"])

async def _get_or_404(db: AsyncSession, client_id: int):
    client = await crud.get_client_by_id(db, client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client

@router.get("/", response_model=schemas.PaginatedResponse[schemas.ClientResponse])
async def read_clients(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_READ))
):
    """
    **Listar Clientes**

    Devuelve una lista paginada de clientes. Permite filtrar por nombre o email.
    """
    return await crud.get_clients(db, page=page, limit=limit, search=search)

@router.get("/{client_id}", response_model=schemas.ClientResponse)
async def read_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_READ))
):
    return await _get_or_404(db, client_id)

@router.post("/", response_model=schemas.ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    client: schemas.ClientCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_MANAGE))
):
    """
    **Crear Cliente**

    **Validaciones:**
    - Email único (`Client already exists`).
    - Nombre único sin distinguir mayúsculas.
    """
    if await crud.get_client_by_email(db, client.email):
        raise HTTPException(status_code=400, detail="Client already exists")
    if await crud.get_client_by_name(db, client.name):
        raise HTTPException(status_code=400, detail="Client with this name already exists")

    db_client = await crud.create_client(db, client)
    logger.info(f"🤝 Cliente creado: {db_client.name}")
    return db_client

@router.put("/{client_id}", response_model=schemas.ClientResponse)
async def update_client(
    client_id: int,
    client: schemas.ClientUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_MANAGE))
):
    db_client = await _get_or_404(db, client_id)
    changes = client.model_dump(exclude_unset=True)

    if changes.get("email") and changes["email"] != db_client.email:
        existing = await crud.get_client_by_email(db, changes["email"])
        if existing and existing.id != db_client.id:
            raise HTTPException(status_code=400, detail="Client already exists")
    if changes.get("name"):
        existing = await crud.get_client_by_name(db, changes["name"])
        if existing and existing.id != db_client.id:
            raise HTTPException(status_code=400, detail="Client with this name already exists")

    # phone_number_two es el único campo que puede vaciarse
    changes = {k: v for k, v in changes.items() if v is not None or k == "phone_number_two"}
    return await crud.update_fields(db, db_client, changes)

@router.delete("/{client_id}", response_model=schemas.MessageResponse)
async def delete_client(
    client_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CLIENT_MANAGE))
):
    """**Eliminar Cliente** (no permitido mientras tenga proyectos)."""
    db_client = await _get_or_404(db, client_id)
    if await crud.client_has_projects(db, client_id):
        raise HTTPException(status_code=400, detail="Cannot delete a client that still has projects")

    await db.delete(db_client)
    await db.commit()
    logger.info(f"🗑️ Cliente eliminado: #{client_id}")
    return {"message": "Client deleted successfully"}
