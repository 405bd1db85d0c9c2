"""
Task catalog.

``AVAILABLE_TASKS`` maps a registry name to the ``TaskDefinition`` the CLI
schedules. Add new tasks here to make them available to ``taskspine dev``
and ``taskspine start <name>``.
"""

from __future__ import annotations

from taskspine.core.errors import TaskNotFoundError
from taskspine.core.scheduling.models import TaskDefinition

from .hello import hello_task

AVAILABLE_TASKS: dict[str, TaskDefinition] = {
    "hello": TaskDefinition(
        name="Hello Task",
        description="Logs 'Hi' every minute for testing",
        schedule_expression="* * * * *",
        task_function=hello_task,
    ),
}


def get_available_task_names() -> list[str]:
    return list(AVAILABLE_TASKS)


def get_task(task_name: str) -> TaskDefinition | None:
    return AVAILABLE_TASKS.get(task_name)


def require_task(task_name: str) -> TaskDefinition:
    """Like ``get_task`` but raises ``TaskNotFoundError``."""
    definition = get_task(task_name)
    if definition is None:
        raise TaskNotFoundError(task_name)
    return definition


def get_all_tasks() -> list[TaskDefinition]:
    return list(AVAILABLE_TASKS.values())


__all__ = [
    "AVAILABLE_TASKS",
    "get_available_task_names",
    "get_task",
    "require_task",
    "get_all_tasks",
    "hello_task",
]
