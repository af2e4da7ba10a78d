import calendar
import enum
from datetime import date, timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm import selectinload
from sqlalchemy import func, or_, delete
from fastapi import HTTPException
from typing import Optional, Dict, Any, List, Sequence, Tuple
from . import models, schemas

# --- UTILIDADES ---

async def paginate(db: AsyncSession, query, count_query, page: int, limit: int) -> Dict[str, Any]:
    """Ejecuta conteo + página y devuelve la estructura {data, meta}."""
    page = max(page, 1)
    offset = (page - 1) * limit

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(query.offset(offset).limit(limit))

    return {
        "data": result.scalars().unique().all(),
        "meta": {
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": (total + limit - 1) // limit if limit > 0 else 0
        }
    }

def _add_month(day: date) -> date:
    year = day.year + (1 if day.month == 12 else 0)
    month = 1 if day.month == 12 else day.month + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))

def date_window(period: Optional[str], today: Optional[date] = None) -> Optional[Tuple[date, date]]:
    """Rango [inicio, fin) para los filtros `today`, `week` y `month`."""
    today = today or date.today()
    if period == "today":
        return today, today + timedelta(days=1)
    if period == "week":
        return today, today + timedelta(weeks=1)
    if period == "month":
        return today, _add_month(today)
    return None

async def get_many_by_ids(db: AsyncSession, model, ids: Sequence[int]) -> List[Any]:
    if not ids:
        return []
    result = await db.execute(select(model).filter(model.id.in_(set(ids))))
    return list(result.scalars().all())

async def require_all(db: AsyncSession, model, ids: Sequence[int], label: str) -> List[Any]:
    """Carga todas las entidades pedidas o falla con 400 indicando las inválidas."""
    found = await get_many_by_ids(db, model, ids)
    missing = set(ids) - {obj.id for obj in found}
    if missing:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid {label} IDs: {', '.join(str(i) for i in sorted(missing))}"
        )
    return found

# --- DEPARTAMENTOS ---

async def get_department_by_id(db: AsyncSession, department_id: int):
    return await db.get(models.Department, department_id)

async def get_department_by_name(db: AsyncSession, name: str):
    query = select(models.Department).filter(func.lower(models.Department.name) == name.lower())
    return (await db.execute(query)).scalars().first()

async def get_departments(db: AsyncSession, page: int = 1, limit: int = 50, search: Optional[str] = None):
    conditions = []
    if search:
        conditions.append(models.Department.name.ilike(f"%{search}%"))

    count_query = select(func.count(models.Department.id)).filter(*conditions)
    query = select(models.Department).filter(*conditions).order_by(models.Department.name)
    return await paginate(db, query, count_query, page, limit)

async def department_in_use(db: AsyncSession, department_id: int) -> bool:
    users = await db.execute(
        select(func.count(models.User.id)).filter(models.User.department_id == department_id)
    )
    projects = await db.execute(
        select(func.count()).select_from(models.project_departments)
        .filter(models.project_departments.c.department_id == department_id)
    )
    return (users.scalar() or 0) > 0 or (projects.scalar() or 0) > 0

async def create_department(db: AsyncSession, department: schemas.DepartmentCreate):
    db_department = models.Department(**department.model_dump())
    db.add(db_department)
    await db.commit()
    await db.refresh(db_department)
    return db_department

# --- USUARIOS ---

def _user_query():
    return select(models.User).options(selectinload(models.User.department)).execution_options(populate_existing=True)

async def get_user_by_id(db: AsyncSession, user_id: int):
    result = await db.execute(_user_query().filter(models.User.id == user_id))
    return result.scalars().first()

async def get_user_by_email(db: AsyncSession, email: str):
    result = await db.execute(_user_query().filter(models.User.email == email.lower()))
    return result.scalars().first()

async def count_users(db: AsyncSession) -> int:
    return (await db.execute(select(func.count(models.User.id)))).scalar() or 0

async def get_users(db: AsyncSession, page: int = 1, limit: int = 10, search: Optional[str] = None):
    conditions = []
    if search:
        term = f"%{search}%"
        conditions.append(or_(
            models.User.first_name.ilike(term),
            models.User.last_name.ilike(term),
            models.User.email.ilike(term)
        ))

    count_query = select(func.count(models.User.id)).filter(*conditions)
    query = _user_query().filter(*conditions).order_by(models.User.created_at.desc(), models.User.id.desc())
    return await paginate(db, query, count_query, page, limit)

async def get_users_in_departments(db: AsyncSession, department_ids: Sequence[int]) -> List[models.User]:
    if not department_ids:
        return []
    result = await db.execute(select(models.User).filter(models.User.department_id.in_(set(department_ids))))
    return list(result.scalars().all())

async def get_admin_emails(db: AsyncSession) -> List[str]:
    result = await db.execute(
        select(models.User.email).filter(models.User.role == models.UserRole.ADMIN.value)
    )
    return list(result.scalars().all())

async def get_all_user_emails(db: AsyncSession) -> List[str]:
    return list((await db.execute(select(models.User.email))).scalars().all())

async def create_user(db: AsyncSession, user_data: dict):
    db_user = models.User(**user_data)
    db.add(db_user)
    await db.commit()
    return await get_user_by_id(db, db_user.id)

# --- CLIENTES ---

async def get_client_by_id(db: AsyncSession, client_id: int):
    return await db.get(models.Client, client_id)

async def get_client_by_email(db: AsyncSession, email: str):
    result = await db.execute(select(models.Client).filter(models.Client.email == email.lower()))
    return result.scalars().first()

async def get_client_by_name(db: AsyncSession, name: str):
    result = await db.execute(select(models.Client).filter(func.lower(models.Client.name) == name.lower()))
    return result.scalars().first()

async def get_clients(db: AsyncSession, page: int = 1, limit: int = 10, search: Optional[str] = None):
    conditions = []
    if search:
        term = f"%{search}%"
        conditions.append(or_(models.Client.name.ilike(term), models.Client.email.ilike(term)))

    count_query = select(func.count(models.Client.id)).filter(*conditions)
    query = select(models.Client).filter(*conditions).order_by(models.Client.name)
    return await paginate(db, query, count_query, page, limit)

async def client_has_projects(db: AsyncSession, client_id: int) -> bool:
    result = await db.execute(select(func.count(models.Project.id)).filter(models.Project.client_id == client_id))
    return (result.scalar() or 0) > 0

async def create_client(db: AsyncSession, client: schemas.ClientCreate):
    db_client = models.Client(**client.model_dump())
    db.add(db_client)
    await db.commit()
    await db.refresh(db_client)
    return db_client

# --- PROYECTOS ---

def project_query():
    """SELECT de proyectos con todas las relaciones que se serializan."""
    return select(models.Project).options(
        selectinload(models.Project.client),
        selectinload(models.Project.departments),
        selectinload(models.Project.members),
        selectinload(models.Project.tasks),
    ).execution_options(populate_existing=True)

async def get_project_by_id(db: AsyncSession, project_id: int):
    result = await db.execute(project_query().filter(models.Project.id == project_id))
    return result.scalars().first()

async def get_projects_by_ids(db: AsyncSession, ids: Sequence[int]) -> List[models.Project]:
    if not ids:
        return []
    result = await db.execute(project_query().filter(models.Project.id.in_(set(ids))))
    return list(result.scalars().all())

async def count_open_tasks(db: AsyncSession, project_id: int) -> int:
    query = select(func.count(models.Task.id)).filter(
        models.Task.project_id == project_id,
        func.lower(models.Task.status) != models.Status.COMPLETED.value
    )
    return (await db.execute(query)).scalar() or 0

async def latest_task_due_date(db: AsyncSession, project_id: int):
    query = select(func.max(models.Task.due_date)).filter(models.Task.project_id == project_id)
    return (await db.execute(query)).scalar()

# --- TAREAS ---

def task_query():
    """SELECT de tareas con proyecto, departamentos y asignados."""
    return select(models.Task).options(
        selectinload(models.Task.project),
        selectinload(models.Task.departments),
        selectinload(models.Task.assignees),
    ).execution_options(populate_existing=True)

async def get_task_by_id(db: AsyncSession, task_id: int):
    result = await db.execute(task_query().filter(models.Task.id == task_id))
    return result.scalars().first()

async def get_tasks_by_ids(db: AsyncSession, ids: Sequence[int]) -> List[models.Task]:
    if not ids:
        return []
    result = await db.execute(task_query().filter(models.Task.id.in_(set(ids))))
    return list(result.scalars().all())

async def get_task_activities(db: AsyncSession, task_id: int) -> List[models.TaskActivity]:
    query = (
        select(models.TaskActivity)
        .options(selectinload(models.TaskActivity.performed_by))
        .filter(models.TaskActivity.task_id == task_id)
        .order_by(models.TaskActivity.id.desc())
    )
    return list((await db.execute(query)).scalars().all())

def add_task_activity(db: AsyncSession, task_id: int, action: str, user_id: Optional[int], details: str = None):
    db.add(models.TaskActivity(task_id=task_id, action=action, performed_by_id=user_id, details=details))

# --- REUNIONES ---

def meeting_query():
    return select(models.Meeting).options(
        selectinload(models.Meeting.departments),
        selectinload(models.Meeting.invited_users),
    ).execution_options(populate_existing=True)

async def get_meeting_by_id(db: AsyncSession, meeting_id: int):
    result = await db.execute(meeting_query().filter(models.Meeting.id == meeting_id))
    return result.scalars().first()

async def get_meetings(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    day: Optional[date] = None,
    department_id: Optional[int] = None
):
    conditions = []
    if day:
        conditions.append(models.Meeting.date == day)
    if department_id:
        conditions.append(models.Meeting.departments.any(models.Department.id == department_id))

    count_query = select(func.count(models.Meeting.id)).filter(*conditions)
    query = meeting_query().filter(*conditions).order_by(models.Meeting.date, models.Meeting.start_time)
    return await paginate(db, query, count_query, page, limit)

async def create_meeting(db: AsyncSession, meeting_data: dict, departments, invitees, created_by_id: int):
    db_meeting = models.Meeting(
        **plain_values(meeting_data),
        departments=departments,
        invited_users=invitees,
        created_by_id=created_by_id,
    )
    db.add(db_meeting)
    await db.commit()
    return await get_meeting_by_id(db, db_meeting.id)

# --- EVENTOS ---

async def get_event_by_id(db: AsyncSession, event_id: int):
    return await db.get(models.Event, event_id)

async def get_events(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    day: Optional[date] = None,
    event_type: Optional[str] = None
):
    conditions = []
    if day:
        conditions.append(models.Event.date == day)
    if event_type:
        conditions.append(func.lower(models.Event.type) == event_type.lower())

    count_query = select(func.count(models.Event.id)).filter(*conditions)
    query = select(models.Event).filter(*conditions).order_by(models.Event.date, models.Event.start_time)
    return await paginate(db, query, count_query, page, limit)

async def create_event(db: AsyncSession, event_data: dict, created_by_id: int):
    db_event = models.Event(**plain_values(event_data), created_by_id=created_by_id)
    db.add(db_event)
    await db.commit()
    await db.refresh(db_event)
    return db_event

# --- REPORTES ---

def report_query():
    return select(models.Report).options(
        selectinload(models.Report.created_by)
    ).execution_options(populate_existing=True)

async def get_report_by_id(db: AsyncSession, report_id: int):
    result = await db.execute(report_query().filter(models.Report.id == report_id))
    return result.scalars().first()

async def get_reports(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    scope: Optional[str] = None,
    status: Optional[str] = None
):
    conditions = []
    if scope:
        conditions.append(models.Report.scope == scope.lower())
    if status:
        conditions.append(models.Report.status == status.lower())

    count_query = select(func.count(models.Report.id)).filter(*conditions)
    query = report_query().filter(*conditions).order_by(models.Report.created_at.desc(), models.Report.id.desc())
    return await paginate(db, query, count_query, page, limit)

async def create_report(db: AsyncSession, report_data: dict, created_by_id: int):
    db_report = models.Report(**plain_values(report_data), created_by_id=created_by_id)
    db.add(db_report)
    await db.commit()
    return await get_report_by_id(db, db_report.id)

# --- CONTACTOS ---

async def get_contact_by_id(db: AsyncSession, contact_id: int):
    return await db.get(models.Contact, contact_id)

async def get_contacts(
    db: AsyncSession,
    page: int = 1,
    limit: int = 10,
    contact_type: Optional[str] = None,
    search: Optional[str] = None
):
    conditions = []
    if contact_type:
        conditions.append(models.Contact.contact_type == contact_type.lower())
    if search:
        term = f"%{search}%"
        conditions.append(or_(
            models.Contact.full_name.ilike(term),
            models.Contact.email.ilike(term),
            models.Contact.company.ilike(term),
            models.Contact.contact_person.ilike(term),
            models.Contact.external_email.ilike(term)
        ))

    count_query = select(func.count(models.Contact.id)).filter(*conditions)
    query = select(models.Contact).filter(*conditions).order_by(models.Contact.created_at.desc(), models.Contact.id.desc())
    return await paginate(db, query, count_query, page, limit)

async def create_contact(db: AsyncSession, contact_data: dict):
    db_contact = models.Contact(**plain_values(contact_data))
    db.add(db_contact)
    await db.commit()
    await db.refresh(db_contact)
    return db_contact

async def delete_contacts(db: AsyncSession, ids: Sequence[int]) -> int:
    result = await db.execute(delete(models.Contact).where(models.Contact.id.in_(list(ids))))
    await db.commit()
    return result.rowcount

# --- GENÉRICOS ---

def plain_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """Enums a su valor de texto (las columnas guardan strings)."""
    return {k: (v.value if isinstance(v, enum.Enum) else v) for k, v in data.items()}

async def update_fields(db: AsyncSession, obj, data: Dict[str, Any]):
    """Aplica un update parcial (model_dump(exclude_unset=True)) y confirma."""
    for key, value in data.items():
        setattr(obj, key, value)
    await db.commit()
    return obj
