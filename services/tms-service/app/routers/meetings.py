import logging
import datetime as dt
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from .. import crud, models, schemas
from app.database import get_db
from app.notifications import Notifier, get_notifier
from app.services import emails
from tms_common.security import RequirePermission, Permissions, UserPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/meetings", tags=["Meetings"])

async def _get_or_404(db: AsyncSession, meeting_id: int) -> models.Meeting:
    meeting = await crud.get_meeting_by_id(db, meeting_id)
    if not meeting:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return meeting

async def _resolve_invitees(db: AsyncSession, department_ids: List[int], invited_user_ids: Optional[List[int]]):
    """Invitados explícitos o, si no se indican, todos los usuarios de los departamentos."""
    if invited_user_ids is not None:
        return await crud.require_all(db, models.User, invited_user_ids, "user")
    return await crud.get_users_in_departments(db, department_ids)

def _invitation(meeting: models.Meeting) -> Optional[schemas.EmailMessage]:
    recipients = emails.unique_emails(u.email for u in meeting.invited_users)
    if not recipients:
        return None
    return emails.meeting_invitation_email(
        recipients, meeting.title, meeting.agenda, meeting.date, meeting.start_time, meeting.end_time
    )

@router.get("/", response_model=schemas.PaginatedResponse[schemas.MeetingResponse])
async def read_meetings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    date: Optional[dt.date] = None,
    department: Optional[int] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_READ))
):
    """**Listar Reuniones** (por fecha y hora de inicio)."""
    return await crud.get_meetings(db, page=page, limit=limit, day=date, department_id=department)

@router.get("/{meeting_id}", response_model=schemas.MeetingResponse)
async def read_meeting(
    meeting_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_READ))
):
    return await _get_or_404(db, meeting_id)

@router.post("/", response_model=schemas.MeetingResponse, status_code=status.HTTP_201_CREATED)
async def create_meeting(
    meeting: schemas.MeetingCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.MEETING_MANAGE))
):
    """
    **Programar Reunión**

    Sin `invited_user_ids` se invita a todos los usuarios de los departamentos elegidos.
    Los invitados reciben el correo en segundo plano.
    """
    if meeting.project_id is not None and not await crud.get_project_by_id(db, meeting.project_id):
        raise HTTPException(status_code=404, detail="Project not found")
    departments = await crud.require_all(db, models.Department, meeting.department_ids, "department")
    invitees = await _resolve_invitees(db, meeting.department_ids, meeting.invited_user_ids)

    db_meeting = await crud.create_meeting(
        db,
        meeting.model_dump(exclude={"department_ids", "invited_user_ids"}),
        departments,
        invitees,
        user.user_id
    )
    logger.info(f"📅 Reunión programada: {db_meeting.title} ({db_meeting.date})")

    message = _invitation(db_meeting)
    if message:
        background_tasks.add_task(notifier.send, message)
    return db_meeting

@router.put("/{meeting_id}", response_model=schemas.MeetingResponse)
async def update_meeting(
    meeting_id: int,
    meeting: schemas.MeetingUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.MEETING_MANAGE))
):
    """**Actualizar Reunión** (se reenvía la invitación si cambia la agenda)."""
    db_meeting = await _get_or_404(db, meeting_id)
    changes = meeting.model_dump(exclude_unset=True)

    # 1. Validaciones sobre el estado resultante
    day = changes.get("date") or db_meeting.date
    start = changes.get("start_time") or db_meeting.start_time
    end = changes.get("end_time") or db_meeting.end_time
    if "date" in changes and day < dt.date.today():
        raise HTTPException(status_code=400, detail="Meeting date cannot be in the past")
    if end <= start:
        raise HTTPException(status_code=400, detail="End time must be after start time")
    if changes.get("project_id") is not None and not await crud.get_project_by_id(db, changes["project_id"]):
        raise HTTPException(status_code=404, detail="Project not found")

    departments = None
    department_ids = changes.pop("department_ids", None)
    if department_ids is not None:
        departments = await crud.require_all(db, models.Department, department_ids, "department")
    invitees = None
    invited_user_ids = changes.pop("invited_user_ids", None)
    if invited_user_ids is not None:
        invitees = await crud.require_all(db, models.User, invited_user_ids, "user")

    # 2. Aplicar
    rescheduled = any(k in changes for k in ("date", "start_time", "end_time", "agenda"))
    if departments is not None:
        db_meeting.departments = departments
    if invitees is not None:
        db_meeting.invited_users = invitees

    changes = {k: v for k, v in changes.items() if v is not None or k == "project_id"}
    await crud.update_fields(db, db_meeting, crud.plain_values(changes))
    logger.info(f"📅 Reunión actualizada: #{meeting_id}")

    db_meeting = await crud.get_meeting_by_id(db, meeting_id)
    if rescheduled or invitees is not None:
        message = _invitation(db_meeting)
        if message:
            background_tasks.add_task(notifier.send, message)
    return db_meeting

@router.delete("/{meeting_id}", response_model=schemas.MessageResponse)
async def delete_meeting(
    meeting_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.MEETING_MANAGE))
):
    db_meeting = await _get_or_404(db, meeting_id)
    await db.delete(db_meeting)
    await db.commit()
    logger.info(f"🗑️ Reunión eliminada: #{meeting_id}")
    return {"message": "Meeting deleted successfully"}
