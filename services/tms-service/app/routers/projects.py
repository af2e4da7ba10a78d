from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from .. import schemas
from app.database import get_db
from app.notifications import Notifier, get_notifier
from app.services import emails
from app.services.comments import CommentService
from app.services.projects import ProjectService, serialize_project, member_emails
from tms_common.security import RequirePermission, Permissions, UserPayload

router = APIRouter(prefix="/projects", tags=["Projects"])

@router.get("/", response_model=schemas.PaginatedResponse[schemas.ProjectResponse])
async def read_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[List[str]] = Query(None),
    department: Optional[int] = None,
    client: Optional[int] = None,
    date: Optional[str] = Query(None, pattern="^(today|week|month)$"),
    search: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_READ))
):
    """
    **Listar Proyectos**

    Filtros: estado efectivo (repetible), departamento, cliente y vencimiento
    (`today`, `week`, `month`). Cada proyecto incluye conteo de tareas y progreso.
    """
    return await ProjectService.list_projects(
        db, page, limit,
        statuses=status,
        department_id=department,
        client_id=client,
        period=date,
        search=search
    )

@router.post("/", response_model=schemas.ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    project: schemas.ProjectCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_MANAGE))
):
    """**Crear Nuevo Proyecto** (notifica a los miembros)."""
    db_project = await ProjectService.create_project(db, project)

    recipients = member_emails(db_project)
    if recipients:
        background_tasks.add_task(
            notifier.send,
            emails.project_assignment_email(recipients, db_project.name, db_project.due_date)
        )
    return serialize_project(db_project)

@router.delete("/", response_model=schemas.BulkDeleteResponse)
async def bulk_delete_projects(
    delete_data: schemas.BulkDeleteRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_MANAGE))
):
    """
    **Eliminar Proyectos en Lote**

    Borra los proyectos existentes de la lista (con sus tareas y comentarios).
    404 si ninguno existe.
    """
    notices = []
    projects = await ProjectService.bulk_delete_projects(db, delete_data.ids)
    for project in projects:
        recipients = member_emails(project)
        if recipients:
            notices.append(emails.project_deleted_email(recipients, project.name))

    for message in notices:
        background_tasks.add_task(notifier.send, message)

    return {
        "message": f"Successfully deleted {len(projects)} project(s).",
        "deleted": len(projects)
    }

@router.get("/{project_id}", response_model=schemas.ProjectResponse)
async def read_project(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_READ))
):
    """**Detalle de Proyecto** (estado efectivo y progreso)."""
    return serialize_project(await ProjectService.get_project(db, project_id))

@router.put("/{project_id}", response_model=schemas.ProjectResponse)
async def update_project(
    project_id: int,
    project: schemas.ProjectUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_MANAGE))
):
    """
    **Actualizar Proyecto**

    No se puede marcar como `completed` mientras tenga tareas abiertas.
    Al completarse se avisa a los miembros.
    """
    db_project, just_completed = await ProjectService.update_project(db, project_id, project)

    if just_completed:
        recipients = member_emails(db_project)
        if recipients:
            background_tasks.add_task(
                notifier.send, emails.project_completed_email(recipients, db_project.name)
            )
    return serialize_project(db_project)

@router.delete("/{project_id}", response_model=schemas.MessageResponse)
async def delete_project(
    project_id: int,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_MANAGE))
):
    """**Eliminar Proyecto**"""
    project = await ProjectService.get_project(db, project_id)
    recipients = member_emails(project)
    name = project.name

    await ProjectService.delete_project(db, project_id)

    if recipients:
        background_tasks.add_task(notifier.send, emails.project_deleted_email(recipients, name))
    return {"message": "Project deleted successfully"}

# --- COMENTARIOS ---

@router.get("/{project_id}/comments", response_model=List[schemas.CommentResponse])
async def read_project_comments(
    project_id: int,
    db: AsyncSession = Depends(get_db),
    user: UserPayload = Depends(RequirePermission(Permissions.PROJECT_READ))
):
    """**Comentarios del Proyecto** (hilos de primer nivel con respuestas)."""
    await ProjectService.get_project(db, project_id)
    return await CommentService.list_comments(db, project_id=project_id)

@router.post("/{project_id}/comments", response_model=schemas.CommentResponse, status_code=status.HTTP_201_CREATED)
async def add_project_comment(
    project_id: int,
    comment: schemas.CommentCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    user: UserPayload = Depends(RequirePermission(Permissions.COMMENT_CREATE))
):
    """**Comentar Proyecto** (notifica a miembros y administradores)."""
    project = await ProjectService.get_project(db, project_id)
    db_comment, message = await CommentService.create_comment(
        db, comment, user.user_id,
        project_id=project.id,
        audience=[m.email for m in project.members],
        target=f'project "{project.name}"'
    )
    if message:
        background_tasks.add_task(notifier.send, message)
    return db_comment
