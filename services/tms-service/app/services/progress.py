from typing import Iterable, Tuple

from app.models import Status

NO_TASKS_TEXT = "No tasks assigned"

def progress_text(total_tasks: int, completed_tasks: int) -> str:
    """Resumen legible de las tareas abiertas de un proyecto."""
    if total_tasks <= 0:
        return NO_TASKS_TEXT

    open_tasks = max(total_tasks - completed_tasks, 0)
    return f"{open_tasks} open task{'' if open_tasks == 1 else 's'}"

def task_counts(tasks: Iterable) -> Tuple[int, int]:
    """(total, completadas) usando el estado guardado de cada tarea."""
    total = 0
    completed = 0
    for task in tasks:
        total += 1
        if (task.status or "").lower() == Status.COMPLETED.value:
            completed += 1
    return total, completed
