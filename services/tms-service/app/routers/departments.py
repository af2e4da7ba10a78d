import logging
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from .. import crud, schemas
from app.database import get_db
from tms_common.security import RequirePermission, Permissions, UserPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/departments", tags=["Departments"])

async def _get_or_404(db: AsyncSession, department_id: int):
    department = await crud.get_department_by_id(db, department_id)
    if not department:
        raise HTTPException(status_code=404, detail="Department not found")
    return department

@router.get("/", response_model=schemas.PaginatedResponse[schemas.DepartmentResponse])
async def read_departments(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.DEPARTMENT_READ))
):
    """**Listar Departamentos**"""
    return await crud.get_departments(db, page=page, limit=limit, search=search)

@router.get("/{department_id}", response_model=schemas.DepartmentResponse)
async def read_department(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.DEPARTMENT_READ))
):
    return await _get_or_404(db, department_id)

@router.post("/", response_model=schemas.DepartmentResponse, status_code=status.HTTP_201_CREATED)
async def create_department(
    department: schemas.DepartmentCreate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.DEPARTMENT_MANAGE))
):
    """
    **Crear Departamento**

    El nombre se guarda en minúsculas y no distingue mayúsculas al validar duplicados.
    """
    if await crud.get_department_by_name(db, department.name):
        raise HTTPException(status_code=400, detail="Department with this name already exists")

    db_department = await crud.create_department(db, department)
    logger.info(f"🏢 Departamento creado: {db_department.name}")
    return db_department

@router.put("/{department_id}", response_model=schemas.DepartmentResponse)
async def update_department(
    department_id: int,
    department: schemas.DepartmentUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.DEPARTMENT_MANAGE))
):
    db_department = await _get_or_404(db, department_id)
    changes = department.model_dump(exclude_unset=True)

    if changes.get("name") and changes["name"] != db_department.name:
        existing = await crud.get_department_by_name(db, changes["name"])
        if existing and existing.id != db_department.id:
            raise HTTPException(status_code=400, detail="Department with this name already exists")

    return await crud.update_fields(db, db_department, {k: v for k, v in changes.items() if v is not None})

@router.delete("/{department_id}", response_model=schemas.MessageResponse)
async def delete_department(
    department_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.DEPARTMENT_MANAGE))
):
    """**Eliminar Departamento** (bloqueado si lo usan usuarios o proyectos)."""
    db_department = await _get_or_404(db, department_id)
    if await crud.department_in_use(db, department_id):
        raise HTTPException(status_code=400, detail="Department is in use by users or projects")

    await db.delete(db_department)
    await db.commit()
    logger.info(f"🗑️ Departamento eliminado: #{department_id}")
    return {"message": "Department deleted successfully"}
