import logging
from datetime import date
from typing import Optional, List, Dict, Any, Tuple
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func

from app import crud, models, schemas
from app.services import emails
from app.services.progress import progress_text, task_counts
from app.services.status import project_status, project_status_expression

logger = logging.getLogger(__name__)

OPEN_TASKS_MESSAGE = "Cannot mark project as completed. There are still open tasks."
TASKS_PAST_DUE_MESSAGE = "Project due date cannot be earlier than the due date of its tasks"

def serialize_project(project: models.Project, today: Optional[date] = None) -> Dict[str, Any]:
    """Vista del proyecto con estado efectivo y progreso calculados al vuelo."""
    total, completed = task_counts(project.tasks)
    return {
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "client": project.client,
        "departments": project.departments,
        "members": project.members,
        "start_date": project.start_date,
        "due_date": project.due_date,
        "project_budget": project.project_budget or 0.0,
        "status": project_status(project, today),
        "priority": project.priority,
        "created_at": project.created_at,
        "total_tasks": total,
        "completed_tasks": completed,
        "progress": progress_text(total, completed),
    }

def member_emails(project: models.Project) -> List[str]:
    return emails.unique_emails(member.email for member in project.members)

class ProjectService:

    @staticmethod
    async def list_projects(
        db: AsyncSession,
        page: int = 1,
        limit: int = 10,
        statuses: Optional[List[str]] = None,
        department_id: Optional[int] = None,
        client_id: Optional[int] = None,
        period: Optional[str] = None,
        search: Optional[str] = None,
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        today = today or date.today()
        conditions = []

        statuses = [s.lower() for s in (statuses or []) if s and s.lower() != "all"]
        if statuses:
            conditions.append(project_status_expression(today).in_(statuses))
        if department_id:
            conditions.append(models.Project.departments.any(models.Department.id == department_id))
        if client_id:
            conditions.append(models.Project.client_id == client_id)
        window = crud.date_window(period, today)
        if window:
            conditions.append(models.Project.due_date >= window[0])
            conditions.append(models.Project.due_date < window[1])
        if search:
            conditions.append(models.Project.name.ilike(f"%{search}%"))

        count_query = select(func.count(models.Project.id)).filter(*conditions)
        query = (
            crud.project_query()
            .filter(*conditions)
            .order_by(models.Project.created_at.desc(), models.Project.id.desc())
        )
        result = await crud.paginate(db, query, count_query, page, limit)
        result["data"] = [serialize_project(p, today) for p in result["data"]]
        return result

    @staticmethod
    async def get_project(db: AsyncSession, project_id: int) -> models.Project:
        project = await crud.get_project_by_id(db, project_id)
        if not project:
            raise HTTPException(status_code=404, detail="Project not found")
        return project

    @staticmethod
    async def create_project(db: AsyncSession, data: schemas.ProjectCreate) -> models.Project:
        # 1. Validar referencias
        if not await crud.get_client_by_id(db, data.client_id):
            raise HTTPException(status_code=400, detail=f"Client not found: {data.client_id}")
        departments = await crud.require_all(db, models.Department, data.department_ids, "department")
        members = await crud.require_all(db, models.User, data.member_ids, "member")

        # 2. Guardar (el estado enviado queda como valor de respaldo)
        db_project = models.Project(
            **data.model_dump(exclude={"department_ids", "member_ids", "status", "priority"}),
            status=data.status.value,
            priority=data.priority.value,
            departments=departments,
            members=members,
        )
        db.add(db_project)
        await db.commit()
        logger.info(f"📁 Proyecto creado: {db_project.name} (#{db_project.id})")

        return await crud.get_project_by_id(db, db_project.id)

    @staticmethod
    async def update_project(
        db: AsyncSession,
        project_id: int,
        data: schemas.ProjectUpdate
    ) -> Tuple[models.Project, bool]:
        """Devuelve (proyecto, recién_completado)."""
        project = await ProjectService.get_project(db, project_id)
        changes = {
            k: v for k, v in data.model_dump(exclude_unset=True).items()
            if v is not None or k == "description"
        }

        # 1. Validaciones (antes de tocar el objeto)
        start_date = changes.get("start_date", project.start_date)
        due_date = changes.get("due_date", project.due_date)
        if due_date <= start_date:
            raise HTTPException(status_code=400, detail="Due date must be after start date")

        if "due_date" in changes and changes["due_date"] != project.due_date:
            latest_task_due = await crud.latest_task_due_date(db, project.id)
            if latest_task_due and latest_task_due > due_date:
                raise HTTPException(status_code=400, detail=TASKS_PAST_DUE_MESSAGE)

        if "client_id" in changes and not await crud.get_client_by_id(db, changes["client_id"]):
            raise HTTPException(status_code=400, detail=f"Client not found: {changes['client_id']}")

        new_status = changes.get("status")
        if new_status == models.Status.COMPLETED and await crud.count_open_tasks(db, project.id) > 0:
            raise HTTPException(status_code=400, detail=OPEN_TASKS_MESSAGE)

        departments = None
        if "department_ids" in changes:
            departments = await crud.require_all(db, models.Department, changes.pop("department_ids"), "department")
        members = None
        if "member_ids" in changes:
            members = await crud.require_all(db, models.User, changes.pop("member_ids"), "member")

        # 2. Aplicar cambios
        was_completed = (project.status or "").lower() == models.Status.COMPLETED.value
        if new_status is not None:
            changes["status"] = new_status.value
        if "priority" in changes:
            changes["priority"] = changes["priority"].value
        if departments is not None:
            project.departments = departments
        if members is not None:
            project.members = members

        await crud.update_fields(db, project, changes)
        logger.info(f"📁 Proyecto actualizado: #{project.id}")

        project = await crud.get_project_by_id(db, project.id)
        just_completed = not was_completed and (project.status or "").lower() == models.Status.COMPLETED.value
        return project, just_completed

    @staticmethod
    async def delete_project(db: AsyncSession, project_id: int) -> models.Project:
        project = await ProjectService.get_project(db, project_id)
        await db.delete(project)
        await db.commit()
        logger.info(f"🗑️ Proyecto eliminado: #{project_id}")
        return project

    @staticmethod
    async def bulk_delete_projects(db: AsyncSession, ids: List[int]) -> List[models.Project]:
        if not ids:
            raise HTTPException(status_code=400, detail="Please provide an array of project IDs to delete.")

        projects = await crud.get_projects_by_ids(db, ids)
        if not projects:
            raise HTTPException(status_code=404, detail="No projects found for the provided IDs.")

        for project in projects:
            await db.delete(project)
        await db.commit()
        logger.info(f"🗑️ {len(projects)} proyecto(s) eliminados en lote")
        return projects
