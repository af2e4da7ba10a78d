import logging
from datetime import date
from typing import Optional, List, Dict, Any, Tuple
from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func

from app import crud, models, schemas
from app.services import emails
from app.services.status import task_status, task_status_expression

logger = logging.getLogger(__name__)

DUE_DATE_MESSAGE = "Task due date cannot exceed the project's due date"

# Acciones del historial
TASK_CREATED = "Task Created"
TASK_UPDATED = "Task Updated"
STATUS_CHANGED = "Status Changed"
TASK_COMPLETED = "Task Completed"
TASK_STARTED = "Task Started"
TASK_PENDING = "Task Pending"

def serialize_task(task: models.Task, today: Optional[date] = None) -> Dict[str, Any]:
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description,
        "status": task_status(task, today),
        "priority": task.priority,
        "start_date": task.start_date,
        "due_date": task.due_date,
        "created_at": task.created_at,
        "project": task.project,
        "departments": task.departments,
        "assignees": task.assignees,
    }

def assignee_emails(task: models.Task) -> List[str]:
    return emails.unique_emails(user.email for user in task.assignees)

def _status_action(new_status: str) -> str:
    return {
        models.Status.COMPLETED.value: TASK_COMPLETED,
        models.Status.IN_PROGRESS.value: TASK_STARTED,
        models.Status.PENDING.value: TASK_PENDING,
    }.get(new_status, STATUS_CHANGED)

async def _validate_assignment(
    db: AsyncSession,
    department_ids: List[int],
    assignee_ids: List[int]
) -> Tuple[List[models.Department], List[models.User]]:
    """Departamentos existentes y asignados que pertenezcan a alguno de ellos."""
    departments = await crud.get_many_by_ids(db, models.Department, department_ids)
    if len(departments) != len(set(department_ids)):
        raise HTTPException(status_code=400, detail="One or more departments are invalid")

    users = await crud.get_many_by_ids(db, models.User, assignee_ids)
    if len(users) != len(set(assignee_ids)):
        raise HTTPException(status_code=400, detail="One or more assigned users are invalid")

    allowed = {d.id for d in departments}
    if any(user.department_id not in allowed for user in users):
        raise HTTPException(
            status_code=400,
            detail="Cannot assign task to users outside chosen departments"
        )
    return departments, users

class TaskService:

    @staticmethod
    async def list_tasks(
        db: AsyncSession,
        page: int = 1,
        limit: int = 10,
        statuses: Optional[List[str]] = None,
        project_id: Optional[int] = None,
        department_id: Optional[int] = None,
        assignee_id: Optional[int] = None,
        period: Optional[str] = None,
        today: Optional[date] = None
    ) -> Dict[str, Any]:
        today = today or date.today()
        conditions = []

        statuses = [s.lower() for s in (statuses or []) if s and s.lower() != "all"]
        if statuses:
            conditions.append(task_status_expression(today).in_(statuses))
        if project_id:
            conditions.append(models.Task.project_id == project_id)
        if department_id:
            conditions.append(models.Task.departments.any(models.Department.id == department_id))
        if assignee_id:
            conditions.append(models.Task.assignees.any(models.User.id == assignee_id))
        window = crud.date_window(period, today)
        if window:
            conditions.append(models.Task.due_date >= window[0])
            conditions.append(models.Task.due_date < window[1])

        count_query = select(func.count(models.Task.id)).filter(*conditions)
        query = (
            crud.task_query()
            .filter(*conditions)
            .order_by(models.Task.due_date.asc(), models.Task.id.asc())
        )
        result = await crud.paginate(db, query, count_query, page, limit)
        result["data"] = [serialize_task(t, today) for t in result["data"]]
        return result

    @staticmethod
    async def get_task(db: AsyncSession, task_id: int) -> models.Task:
        task = await crud.get_task_by_id(db, task_id)
        if not task:
            raise HTTPException(status_code=404, detail="Task not found")
        return task

    @staticmethod
    async def create_task(db: AsyncSession, data: schemas.TaskCreate, user_id: int) -> models.Task:
        # 1. Proyecto y fecha límite
        project = await crud.get_project_by_id(db, data.project_id)
        if not project:
            raise HTTPException(status_code=404, detail="Project not found")
        if data.due_date > project.due_date:
            raise HTTPException(status_code=400, detail=DUE_DATE_MESSAGE)

        # 2. Departamentos y asignados
        departments, users = await _validate_assignment(db, data.department_ids, data.assigned_to)

        # 3. Fecha de inicio automática para tareas activas (nunca posterior al vencimiento)
        start_date = data.start_date
        today = date.today()
        if (
            start_date is None
            and data.status in (models.Status.PENDING, models.Status.IN_PROGRESS)
            and today <= data.due_date
        ):
            start_date = today

        db_task = models.Task(
            title=data.title,
            description=data.description,
            status=data.status.value,
            priority=data.priority.value,
            start_date=start_date,
            due_date=data.due_date,
            project_id=project.id,
            departments=departments,
            assignees=users,
        )
        db.add(db_task)
        await db.flush()
        crud.add_task_activity(db, db_task.id, TASK_CREATED, user_id, f"Task '{db_task.title}' created")
        await db.commit()
        logger.info(f"✅ Tarea creada: {db_task.title} (#{db_task.id}) en proyecto #{project.id}")

        return await crud.get_task_by_id(db, db_task.id)

    @staticmethod
    async def update_task(db: AsyncSession, task_id: int, data: schemas.TaskUpdate, user_id: int) -> models.Task:
        task = await TaskService.get_task(db, task_id)
        changes = {
            k: v for k, v in data.model_dump(exclude_unset=True).items()
            if v is not None or k == "description"
        }

        # 1. Validaciones
        if "due_date" in changes:
            project = await crud.get_project_by_id(db, task.project_id)
            if changes["due_date"] > project.due_date:
                raise HTTPException(status_code=400, detail=DUE_DATE_MESSAGE)

        start_date = changes.get("start_date", task.start_date)
        due_date = changes.get("due_date", task.due_date)
        if start_date and start_date > due_date:
            raise HTTPException(status_code=400, detail=schemas.START_AFTER_DUE_MESSAGE)

        department_ids = changes.pop("department_ids", None)
        assignee_ids = changes.pop("assigned_to", None)
        departments = users = None
        if department_ids is not None or assignee_ids is not None:
            departments, users = await _validate_assignment(
                db,
                department_ids if department_ids is not None else [d.id for d in task.departments],
                assignee_ids if assignee_ids is not None else [u.id for u in task.assignees],
            )

        # 2. Aplicar cambios
        old_status = (task.status or "").lower()
        if "status" in changes:
            changes["status"] = changes["status"].value
        if "priority" in changes:
            changes["priority"] = changes["priority"].value
        if departments is not None:
            task.departments = departments
            task.assignees = users

        new_status = changes.get("status", old_status)
        if new_status != old_status:
            crud.add_task_activity(
                db, task.id, _status_action(new_status), user_id,
                f"Status changed from '{old_status}' to '{new_status}'"
            )
        else:
            crud.add_task_activity(db, task.id, TASK_UPDATED, user_id, ", ".join(sorted(data.model_fields_set)))

        await crud.update_fields(db, task, changes)
        logger.info(f"✏️ Tarea actualizada: #{task.id}")
        return await crud.get_task_by_id(db, task.id)

    @staticmethod
    async def complete_task(db: AsyncSession, task_id: int, user_id: int) -> models.Task:
        task = await TaskService.get_task(db, task_id)
        if (task.status or "").lower() == models.Status.COMPLETED.value:
            raise HTTPException(status_code=400, detail="Task is already completed")

        crud.add_task_activity(db, task.id, TASK_COMPLETED, user_id, f"Task '{task.title}' marked as completed")
        await crud.update_fields(db, task, {"status": models.Status.COMPLETED.value})
        logger.info(f"✅ Tarea completada: #{task.id}")
        return await crud.get_task_by_id(db, task.id)

    @staticmethod
    async def delete_task(db: AsyncSession, task_id: int) -> None:
        task = await TaskService.get_task(db, task_id)
        await db.delete(task)
        await db.commit()
        logger.info(f"🗑️ Tarea eliminada: #{task_id}")

    @staticmethod
    async def bulk_delete_tasks(db: AsyncSession, ids: List[int]) -> int:
        if not ids:
            raise HTTPException(status_code=400, detail="Please provide an array of task IDs to delete.")

        tasks = await crud.get_tasks_by_ids(db, ids)
        if not tasks:
            raise HTTPException(status_code=404, detail="No tasks found for the provided IDs.")

        for task in tasks:
            await db.delete(task)
        await db.commit()
        logger.info(f"🗑️ {len(tasks)} tarea(s) eliminadas en lote")
        return len(tasks)
