import logging
from datetime import datetime, timezone
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from .. import crud, models, schemas
from app.database import get_db
from app.notifications import Notifier, get_notifier
from app.services import emails
from tms_common.security import RequirePermission, Permissions, UserPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports"])

SCOPE_MODELS = {
    models.ReportScope.PROJECT: models.Project,
    models.ReportScope.CLIENT: models.Client,
    models.ReportScope.DEPARTMENT: models.Department,
    models.ReportScope.TASK: models.Task,
    models.ReportScope.USER: models.User,
}

async def _get_or_404(db: AsyncSession, report_id: int):
    report = await crud.get_report_by_id(db, report_id)
    if not report:
        raise HTTPException(status_code=404, detail="Report not found")
    return report

@router.get("/", response_model=schemas.PaginatedResponse[schemas.ReportResponse])
async def read_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    scope: Optional[str] = None,
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.REPORT_MANAGE))
):
    """**Listar Reportes** (filtros por alcance y estado)."""
    return await crud.get_reports(db, page=page, limit=limit, scope=scope, status=status)

@router.get("/{report_id}", response_model=schemas.ReportResponse)
async def read_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.REPORT_MANAGE))
):
    return await _get_or_404(db, report_id)

@router.post("/", response_model=schemas.ReportResponse, status_code=status.HTTP_201_CREATED)
async def create_report(
    report: schemas.ReportCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.REPORT_MANAGE))
):
    """
    **Crear Reporte**

    La entidad referenciada por el alcance debe existir. Si hay destinatarios,
    el reporte se envía por correo y se marca `sent_at`.
    """
    field = schemas.SCOPE_FIELDS[report.scope]
    target = await db.get(SCOPE_MODELS[report.scope], getattr(report, field))
    if not target:
        raise HTTPException(status_code=404, detail=f"{report.scope.value.capitalize()} not found")

    data = report.model_dump()
    recipients = emails.unique_emails(report.email_recipients)
    if recipients:
        data["sent_at"] = datetime.now(timezone.utc)

    db_report = await crud.create_report(db, data, user.user_id)
    logger.info(f"📝 Reporte creado: {db_report.title} ({db_report.scope})")

    if recipients:
        background_tasks.add_task(
            notifier.send,
            emails.report_email(recipients, db_report.title, db_report.scope, db_report.content)
        )
    return db_report

@router.put("/{report_id}", response_model=schemas.ReportResponse)
async def update_report(
    report_id: int,
    report: schemas.ReportUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.REPORT_MANAGE))
):
    """**Actualizar Reporte** (`reviewed` y `approved` quedan fechados)."""
    db_report = await _get_or_404(db, report_id)
    changes = crud.plain_values(
        {k: v for k, v in report.model_dump(exclude_unset=True).items() if v is not None}
    )

    now = datetime.now(timezone.utc)
    new_status = changes.get("status")
    if new_status == models.ReportStatus.REVIEWED.value and db_report.reviewed_at is None:
        changes["reviewed_at"] = now
    if new_status == models.ReportStatus.APPROVED.value:
        changes["approved_at"] = now
        if db_report.reviewed_at is None:
            changes["reviewed_at"] = now

    await crud.update_fields(db, db_report, changes)
    logger.info(f"📝 Reporte actualizado: #{report_id}")
    return await crud.get_report_by_id(db, report_id)

@router.delete("/{report_id}", response_model=schemas.MessageResponse)
async def delete_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.REPORT_MANAGE))
):
    db_report = await _get_or_404(db, report_id)
    await db.delete(db_report)
    await db.commit()
    logger.info(f"🗑️ Reporte eliminado: #{report_id}")
    return {"message": "Report deleted successfully"}
