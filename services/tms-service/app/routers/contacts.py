import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from .. import crud, models, schemas
from app.database import get_db
from tms_common.security import RequirePermission, Permissions, UserPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/contacts", tags=["Contacts"])

async def _get_or_404(db: AsyncSession, contact_id: int):
    contact = await crud.get_contact_by_id(db, contact_id)
    if not contact:
        raise HTTPException(status_code=404, detail="Contact not found")
    return contact

async def _check_department(db: AsyncSession, department_id: Optional[int]):
    if department_id is not None and not await crud.get_department_by_id(db, department_id):
        raise HTTPException(status_code=400, detail=f"Department not found: {department_id}")

@router.get("/", response_model=schemas.PaginatedResponse[schemas.ContactResponse])
async def read_contacts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    contact_type: Optional[str] = None,
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CONTACT_MANAGE))
):
    """**Directorio de Contactos** (internos y externos)."""
    return await crud.get_contacts(db, page=page, limit=limit, contact_type=contact_type, search=search)

@router.post("/", response_model=schemas.ContactResponse, status_code=status.HTTP_201_CREATED)
async def create_contact(
    contact: schemas.ContactCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CONTACT_MANAGE))
):
    """
    **Crear Contacto**

    - `internal`: nombre, email, dirección, teléfono y departamento.
    - `external`: empresa, persona de contacto, email, teléfono y dirección.
    """
    if contact.contact_type == models.ContactType.INTERNAL:
        await _check_department(db, contact.department_id)

    db_contact = await crud.create_contact(db, contact.model_dump())
    logger.info(f"📇 Contacto creado: #{db_contact.id} ({db_contact.contact_type})")
    return db_contact

@router.delete("/bulk-delete", response_model=schemas.BulkDeleteResponse)
async def bulk_delete_contacts(
    delete_data: schemas.BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CONTACT_MANAGE))
):
    """**Eliminar Contactos en Lote**"""
    if not delete_data.ids:
        raise HTTPException(status_code=400, detail="Please provide an array of contact IDs to delete.")

    deleted = await crud.delete_contacts(db, delete_data.ids)
    if deleted == 0:
        raise HTTPException(status_code=404, detail="No contacts found for the provided IDs.")
    logger.info(f"🗑️ {deleted} contacto(s) eliminados")
    return {"message": f"Successfully deleted {deleted} contact(s).", "deleted": deleted}

@router.get("/{contact_id}", response_model=schemas.ContactResponse)
async def read_contact(
    contact_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CONTACT_MANAGE))
):
    return await _get_or_404(db, contact_id)

@router.put("/{contact_id}", response_model=schemas.ContactResponse)
async def update_contact(
    contact_id: int,
    contact: schemas.ContactUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CONTACT_MANAGE))
):
    """**Actualizar Contacto** (se valida el contacto resultante completo)."""
    db_contact = await _get_or_404(db, contact_id)
    changes = crud.plain_values(contact.model_dump(exclude_unset=True))
    if changes.get("contact_type") is None:
        changes.pop("contact_type", None)

    merged = {field: getattr(db_contact, field) for field in schemas.INTERNAL_FIELDS + schemas.EXTERNAL_FIELDS}
    merged.update(changes)
    contact_type = models.ContactType(changes.get("contact_type", db_contact.contact_type))

    missing = schemas.missing_contact_fields(contact_type, merged)
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"Missing required fields for {contact_type.value} contact: {', '.join(missing)}"
        )
    if contact_type == models.ContactType.INTERNAL:
        await _check_department(db, merged.get("department_id"))

    await crud.update_fields(db, db_contact, changes)
    logger.info(f"📇 Contacto actualizado: #{contact_id}")
    return db_contact

@router.delete("/{contact_id}", response_model=schemas.MessageResponse)
async def delete_contact(
    contact_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.CONTACT_MANAGE))
):
    db_contact = await _get_or_404(db, contact_id)
    await db.delete(db_contact)
    await db.commit()
    logger.info(f"🗑️ Contacto eliminado: #{contact_id}")
    return {"message": "Contact deleted successfully"}
