from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from .. import crud, schemas
from app.database import get_db
from app.notifications import Notifier, get_notifier
from app.services import emails
from app.services.comments import CommentService
from app.services.tasks import TaskService, serialize_task, assignee_emails
from tms_common.security import RequirePermission, Permissions, UserPayload

router = APIRouter(prefix="/tasks", tags=["Tasks"])

@router.get("/", response_model=schemas.PaginatedResponse[schemas.TaskResponse])
async def read_tasks(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[List[str]] = Query(None),
    project: Optional[int] = None,
    department: Optional[int] = None,
    assignee: Optional[int] = None,
    date: Optional[str] = Query(None, pattern="^(today|week|month)$"),
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TASK_READ))
):
    """
    **Listar Tareas**

    `status=all` no filtra. El vencimiento (`today`, `week`, `month`) se cuenta desde hoy.
    """
    return await TaskService.list_tasks(
        db, page, limit,
        statuses=status,
        project_id=project,
        department_id=department,
        assignee_id=assignee,
        period=date
    )

@router.post("/", response_model=schemas.TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    task: schemas.TaskCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.TASK_MANAGE))
):
    """
    **Crear Tarea**

    La fecha límite no puede superar la del proyecto y los asignados deben
    pertenecer a los departamentos elegidos.
    """
    db_task = await TaskService.create_task(db, task, user.user_id)

    recipients = assignee_emails(db_task)
    if recipients:
        background_tasks.add_task(
            notifier.send, emails.assignment_email(recipients, db_task.title, db_task.due_date)
        )
    return serialize_task(db_task)

@router.delete("/", response_model=schemas.BulkDeleteResponse)
async def bulk_delete_tasks(
    delete_data: schemas.BulkDeleteRequest,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TASK_MANAGE))
):
    """**Eliminar Tareas en Lote**"""
    deleted = await TaskService.bulk_delete_tasks(db, delete_data.ids)
    return {"message": f"Successfully deleted {deleted} task(s).", "deleted": deleted}

@router.get("/{task_id}", response_model=schemas.TaskResponse)
async def read_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TASK_READ))
):
    """**Detalle de Tarea**"""
    return serialize_task(await TaskService.get_task(db, task_id))

@router.put("/{task_id}", response_model=schemas.TaskResponse)
async def update_task(
    task_id: int,
    task: schemas.TaskUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.TASK_MANAGE))
):
    """**Actualizar Tarea** (avisa a los nuevos asignados)."""
    previous = {u.id for u in (await TaskService.get_task(db, task_id)).assignees}
    db_task = await TaskService.update_task(db, task_id, task, user.user_id)

    new_assignees = [u.email for u in db_task.assignees if u.id not in previous]
    if new_assignees:
        background_tasks.add_task(
            notifier.send,
            emails.assignment_email(emails.unique_emails(new_assignees), db_task.title, db_task.due_date)
        )
    return serialize_task(db_task)

@router.patch("/{task_id}/complete", response_model=schemas.TaskResponse)
async def complete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TASK_MANAGE))
):
    """**Marcar Tarea como Completada** (400 si ya lo estaba)."""
    return serialize_task(await TaskService.complete_task(db, task_id, user.user_id))

@router.delete("/{task_id}", response_model=schemas.MessageResponse)
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TASK_MANAGE))
):
    """**Eliminar Tarea**"""
    await TaskService.delete_task(db, task_id)
    return {"message": "Task deleted successfully"}

@router.get("/{task_id}/activities", response_model=List[schemas.TaskActivityResponse])
async def read_task_activities(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TASK_READ))
):
    """**Historial de la Tarea** (más reciente primero)."""
    await TaskService.get_task(db, task_id)
    return await crud.get_task_activities(db, task_id)

# --- COMENTARIOS ---

@router.get("/{task_id}/comments", response_model=List[schemas.CommentResponse])
async def read_task_comments(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.TASK_READ))
):
    await TaskService.get_task(db, task_id)
    return await CommentService.list_comments(db, task_id=task_id)

@router.post("/{task_id}/comments", response_model=schemas.CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_task_comment(
    task_id: int,
    comment: schemas.CommentCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.COMMENT_CREATE))
):
    """**Comentar Tarea** (notifica a asignados y administradores)."""
    task = await TaskService.get_task(db, task_id)
    db_comment, message = await CommentService.create_comment(
        db, comment, user.user_id,
        task_id=task.id,
        audience=[u.email for u in task.assignees],
        target=f'task "{task.title}"'
    )
    if message:
        background_tasks.add_task(notifier.send, message)
    return db_comment
