"""
Agregados del dashboard.

Todas las agrupaciones por estado usan el estado efectivo (ver
`app.services.status`), de modo que los números coinciden con lo que
muestran los listados de proyectos y tareas.
"""
from datetime import date
from typing import Optional, List, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import func, case, and_

from app import crud, models
from app.services.status import project_status_expression, task_status_expression
from app.services.tasks import serialize_task

RECENT_TASKS_LIMIT = 10

class DashboardFilters:
    def __init__(
        self,
        task_status: Optional[str] = None,
        task_start_date: Optional[date] = None,
        task_end_date: Optional[date] = None,
        user_id: Optional[int] = None
    ):
        # "all" equivale a no filtrar
        self.task_status = task_status.lower() if task_status and task_status.lower() != "all" else None
        self.task_start_date = task_start_date
        self.task_end_date = task_end_date
        self.user_id = user_id

class DashboardAggregator:
    def __init__(self, db: AsyncSession, today: Optional[date] = None):
        self.db = db
        self.today = today or date.today()

    def _task_conditions(self, filters: DashboardFilters) -> List[Any]:
        conditions = []
        if filters.task_status:
            conditions.append(task_status_expression(self.today) == filters.task_status)
        if filters.task_start_date:
            conditions.append(models.Task.due_date >= filters.task_start_date)
        if filters.task_end_date:
            conditions.append(models.Task.due_date <= filters.task_end_date)
        return conditions

    async def _count(self, column, *conditions) -> int:
        return (await self.db.execute(select(func.count(column)).filter(*conditions))).scalar() or 0

    async def counts(self, filters: DashboardFilters) -> Dict[str, int]:
        return {
            "clients": await self._count(models.Client.id),
            "projects": await self._count(models.Project.id),
            "tasks": await self._count(models.Task.id, *self._task_conditions(filters)),
            "reports": await self._count(models.Report.id),
        }

    async def _status_histogram(self, status_expr, id_column, conditions) -> List[Dict[str, Any]]:
        # Agrupar sobre una subconsulta: el CASE lleva parámetros y no puede repetirse en GROUP BY
        subquery = select(status_expr.label("status"), id_column.label("id")).filter(*conditions).subquery()
        query = (
            select(subquery.c.status, func.count(subquery.c.id))
            .group_by(subquery.c.status)
            .order_by(subquery.c.status)
        )
        rows = (await self.db.execute(query)).all()
        return [{"status": row[0], "count": row[1]} for row in rows]

    async def project_summary(self) -> List[Dict[str, Any]]:
        return await self._status_histogram(project_status_expression(self.today), models.Project.id, [])

    async def task_summary(self, filters: DashboardFilters) -> List[Dict[str, Any]]:
        return await self._status_histogram(
            task_status_expression(self.today), models.Task.id, self._task_conditions(filters)
        )

    async def user_summary(self, filters: DashboardFilters) -> List[Dict[str, Any]]:
        status_expr = task_status_expression(self.today)

        def tally(value: str):
            # Usuarios sin tareas llegan con columnas NULL por el outer join
            assigned = and_(models.Task.id.isnot(None), status_expr == value)
            return func.coalesce(func.sum(case((assigned, 1), else_=0)), 0)

        query = (
            select(
                models.User.id,
                models.User.first_name,
                models.User.last_name,
                models.User.email,
                tally(models.Status.COMPLETED.value),
                tally(models.Status.PENDING.value),
                tally(models.Status.OVERDUE.value),
            )
            .select_from(models.User)
            .outerjoin(models.task_assignees, models.task_assignees.c.user_id == models.User.id)
            .outerjoin(models.Task, models.Task.id == models.task_assignees.c.task_id)
            .group_by(models.User.id, models.User.first_name, models.User.last_name, models.User.email)
            .order_by(models.User.id)
        )
        if filters.user_id:
            query = query.filter(models.User.id == filters.user_id)

        rows = (await self.db.execute(query)).all()
        return [
            {
                "user_id": row[0],
                "name": f"{row[1]} {row[2]}",
                "email": row[3],
                "completed": int(row[4]),
                "pending": int(row[5]),
                "overdue": int(row[6]),
            }
            for row in rows
        ]

    async def client_summary(self) -> Dict[str, Any]:
        """Proyectos por cliente: en curso, verificados (completados) y clientes sin proyectos."""
        status_expr = project_status_expression(self.today)

        query = (
            select(
                models.Client.id,
                models.Client.name,
                func.count(models.Project.id),
                func.coalesce(func.sum(case((status_expr == models.Status.IN_PROGRESS.value, 1), else_=0)), 0),
                func.coalesce(func.sum(case((status_expr == models.Status.COMPLETED.value, 1), else_=0)), 0),
            )
            .select_from(models.Client)
            .outerjoin(models.Project, models.Project.client_id == models.Client.id)
            .group_by(models.Client.id, models.Client.name)
            .order_by(models.Client.name)
        )
        rows = (await self.db.execute(query)).all()

        clients = [
            {
                "client_id": row[0],
                "name": row[1],
                "total_projects": int(row[2]),
                "ongoing_projects": int(row[3]),
                "verified_projects": int(row[4]),
                "not_in_project": int(row[2]) == 0,
            }
            for row in rows
        ]
        totals = {
            "ongoing_clients": sum(1 for c in clients if c["ongoing_projects"] > 0),
            "verified_clients": sum(1 for c in clients if c["verified_projects"] > 0),
            "not_in_project_clients": sum(1 for c in clients if c["not_in_project"]),
        }
        return {"clients": clients, "totals": totals}

    async def budget_summary(self) -> Dict[str, float]:
        status_expr = project_status_expression(self.today)
        query = select(
            func.coalesce(func.sum(models.Project.project_budget), 0),
            func.coalesce(
                func.sum(case((status_expr == models.Status.COMPLETED.value, models.Project.project_budget), else_=0)),
                0
            ),
        )
        total, completed = (await self.db.execute(query)).one()
        total = float(total or 0)
        completed = float(completed or 0)
        return {
            "total_budget": total,
            "completed_budget": completed,
            "remaining_budget": total - completed,
        }

    async def recent_tasks(self, filters: DashboardFilters) -> List[Dict[str, Any]]:
        query = (
            crud.task_query()
            .filter(*self._task_conditions(filters))
            .order_by(models.Task.created_at.desc(), models.Task.id.desc())
            .limit(RECENT_TASKS_LIMIT)
        )
        tasks = (await self.db.execute(query)).scalars().all()
        return [serialize_task(t, self.today) for t in tasks]

    async def summary(self, filters: Optional[DashboardFilters] = None) -> Dict[str, Any]:
        """Snapshot completo. Cualquier error se propaga: no hay resultados parciales."""
        filters = filters or DashboardFilters()
        clients = await self.client_summary()
        return {
            "counts": await self.counts(filters),
            "project_summary": await self.project_summary(),
            "task_summary": await self.task_summary(filters),
            "user_summary": await self.user_summary(filters),
            "client_summary": clients["clients"],
            "client_totals": clients["totals"],
            "budget_summary": await self.budget_summary(),
            "recent_tasks": await self.recent_tasks(filters),
        }
