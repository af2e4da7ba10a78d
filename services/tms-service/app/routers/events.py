import logging
import datetime as dt
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from .. import crud, schemas
from app.database import get_db
from app.notifications import Notifier, get_notifier
from app.services import emails
from tms_common.security import RequirePermission, Permissions, UserPayload

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["Events"])

async def _get_or_404(db: AsyncSession, event_id: int):
    event = await crud.get_event_by_id(db, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event

@router.get("/", response_model=schemas.PaginatedResponse[schemas.EventResponse])
async def read_events(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    date: Optional[dt.date] = None,
    type: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_READ))
):
    """**Calendario de Eventos** (ordenado por fecha y hora de inicio)."""
    return await crud.get_events(db, page=page, limit=limit, day=date, event_type=type)

@router.get("/{event_id}", response_model=schemas.EventResponse)
async def read_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_READ))
):
    return await _get_or_404(db, event_id)

@router.post("/", response_model=schemas.EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event: schemas.EventCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.EVENT_MANAGE))
):
    """
    **Crear Evento**

    Con `notify_admins` solo se avisa a los administradores; si no, a todos los usuarios.
    """
    db_event = await crud.create_event(db, event.model_dump(exclude={"notify_admins"}), user.user_id)
    logger.info(f"📅 Evento creado: {db_event.title} ({db_event.date})")

    if event.notify_admins:
        audience = await crud.get_admin_emails(db)
    else:
        audience = await crud.get_all_user_emails(db)
    recipients = emails.unique_emails(audience)
    if recipients:
        background_tasks.add_task(
            notifier.send,
            emails.event_created_email(
                recipients, db_event.title, db_event.type, db_event.date, db_event.start_time, db_event.end_time
            )
        )
    return db_event

@router.put("/{event_id}", response_model=schemas.EventResponse)
async def update_event(
    event_id: int,
    event: schemas.EventUpdate,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.EVENT_MANAGE))
):
    db_event = await _get_or_404(db, event_id)
    changes = {k: v for k, v in event.model_dump(exclude_unset=True).items() if v is not None}

    start = changes.get("start_time", db_event.start_time)
    end = changes.get("end_time", db_event.end_time)
    if end <= start:
        raise HTTPException(status_code=400, detail="End time must be after start time")

    await crud.update_fields(db, db_event, crud.plain_values(changes))
    logger.info(f"📅 Evento actualizado: #{event_id}")
    return db_event

@router.delete("/{event_id}", response_model=schemas.MessageResponse)
async def delete_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.EVENT_MANAGE))
):
    db_event = await _get_or_404(db, event_id)
    await db.delete(db_event)
    await db.commit()
    logger.info(f"🗑️ Evento eliminado: #{event_id}")
    return {"message": "Event deleted successfully"}
