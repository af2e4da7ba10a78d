"""
Resolución del estado efectivo de proyectos y tareas.

El estado guardado en la base de datos es solo un valor por defecto: lo que se
muestra, filtra y agrupa es siempre el resultado de estas reglas evaluadas
contra la fecha actual del servidor.

1. `completed` es terminal.
2. Sin fecha de vencimiento no hay restricción: se devuelve lo guardado.
3. Vencido (due_date < hoy) -> `overdue`.
4. Solo proyectos: hoy dentro de [start_date, due_date] -> `in progress`.
5. En cualquier otro caso, el estado guardado.

`status_expression` es la misma regla traducida a SQL para poder filtrar y
paginar en la consulta sin cargar todas las filas.
"""
from datetime import date
from typing import Optional
from sqlalchemy import case, func, and_

from app.models import Status, Project, Task

def resolve_status(
    stored: Optional[str],
    due_date: Optional[date],
    start_date: Optional[date] = None,
    today: Optional[date] = None
) -> str:
    stored = (stored or Status.PENDING.value).lower()
    today = today or date.today()

    if stored == Status.COMPLETED.value:
        return Status.COMPLETED.value
    if due_date is None:
        return stored
    if due_date < today:
        return Status.OVERDUE.value
    if start_date is not None and start_date <= today <= due_date:
        return Status.IN_PROGRESS.value
    return stored

def status_expression(status_col, due_col, start_col=None, today: Optional[date] = None):
    """Equivalente SQL de `resolve_status` para usar en WHERE / GROUP BY."""
    today = today or date.today()
    stored = func.lower(func.coalesce(status_col, Status.PENDING.value))

    whens = [
        (stored == Status.COMPLETED.value, Status.COMPLETED.value),
        (due_col < today, Status.OVERDUE.value),
    ]
    if start_col is not None:
        whens.append((and_(start_col <= today, due_col >= today), Status.IN_PROGRESS.value))

    return case(*whens, else_=stored)

def project_status(project, today: Optional[date] = None) -> str:
    return resolve_status(project.status, project.due_date, project.start_date, today)

def task_status(task, today: Optional[date] = None) -> str:
    return resolve_status(task.status, task.due_date, today=today)

def project_status_expression(today: Optional[date] = None):
    return status_expression(Project.status, Project.due_date, Project.start_date, today)

def task_status_expression(today: Optional[date] = None):
    return status_expression(Task.status, Task.due_date, today=today)
