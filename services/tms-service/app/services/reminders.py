"""
Recordatorios diarios (08:00 por defecto).

- Proyectos que vencen mañana y no están completados -> miembros.
- Tareas que vencen mañana y no están completadas -> asignados.
- Proyectos y tareas que vencieron ayer -> alerta de atraso.
- Eventos de mañana -> todos los usuarios.
"""
import logging
from datetime import date, timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy import func

from app import crud, models
from app.notifications import Notifier
from app.services import emails

logger = logging.getLogger(__name__)

def _not_completed(status_col):
    return func.lower(func.coalesce(status_col, models.Status.PENDING.value)) != models.Status.COMPLETED.value

async def _projects_due_on(db: AsyncSession, day: date):
    query = (
        select(models.Project)
        .options(selectinload(models.Project.members))
        .filter(models.Project.due_date == day, _not_completed(models.Project.status))
    )
    return (await db.execute(query)).scalars().all()

async def _tasks_due_on(db: AsyncSession, day: date):
    query = (
        select(models.Task)
        .options(selectinload(models.Task.assignees))
        .filter(models.Task.due_date == day, _not_completed(models.Task.status))
    )
    return (await db.execute(query)).scalars().all()

async def send_daily_reminders(db: AsyncSession, notifier: Notifier, today: Optional[date] = None) -> int:
    """Envía los recordatorios del día. Devuelve cuántos mensajes se despacharon."""
    today = today or date.today()
    tomorrow = today + timedelta(days=1)
    yesterday = today - timedelta(days=1)
    sent = 0

    async def dispatch(message) -> None:
        nonlocal sent
        if message.to:
            await notifier.send(message)
            sent += 1

    # 1. Proyectos
    for project in await _projects_due_on(db, tomorrow):
        recipients = emails.unique_emails(m.email for m in project.members)
        await dispatch(emails.project_due_reminder_email(recipients, project.name, project.due_date))

    for project in await _projects_due_on(db, yesterday):
        recipients = emails.unique_emails(m.email for m in project.members)
        await dispatch(emails.project_overdue_email(recipients, project.name, project.due_date))

    # 2. Tareas
    for task in await _tasks_due_on(db, tomorrow):
        recipients = emails.unique_emails(u.email for u in task.assignees)
        await dispatch(emails.task_reminder_email(recipients, task.title, hours_remaining=24))

    for task in await _tasks_due_on(db, yesterday):
        recipients = emails.unique_emails(u.email for u in task.assignees)
        await dispatch(emails.task_overdue_email(recipients, task.title, task.due_date))

    # 3. Eventos
    events = (await db.execute(
        select(models.Event).filter(models.Event.date == tomorrow).order_by(models.Event.start_time)
    )).scalars().all()
    if events:
        everyone = emails.unique_emails(await crud.get_all_user_emails(db))
        for event in events:
            await dispatch(emails.event_reminder_email(everyone, event.title, event.date, event.start_time))

    logger.info(f"⏰ [SCHEDULER] Recordatorios enviados: {sent}")
    return sent
