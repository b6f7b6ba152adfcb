"""Ready/blocked partitioning of pending tasks."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from taskloop.tasks.models import Task


def ready(tasks: Sequence[Task], *, assume_completed: Iterable[str] = ()) -> list[Task]:
    """Pending tasks with no prerequisite or with a completed one, in list order.

    `assume_completed` names tasks to treat as completed without touching
    their stored status.
    """

    completed = _completed_ids(tasks, assume_completed)
    return [
        task
        for task in tasks
        if task.id not in completed and (task.after is None or task.after in completed)
    ]


def blocked(tasks: Sequence[Task], *, assume_completed: Iterable[str] = ()) -> list[Task]:
    """Pending tasks whose prerequisite is pending or does not exist."""

    completed = _completed_ids(tasks, assume_completed)
    return [
        task
        for task in tasks
        if task.id not in completed and task.after is not None and task.after not in completed
    ]


def pending(tasks: Sequence[Task], *, assume_completed: Iterable[str] = ()) -> list[Task]:
    completed = _completed_ids(tasks, assume_completed)
    return [task for task in tasks if task.id not in completed]


def _completed_ids(tasks: Sequence[Task], assume_completed: Iterable[str]) -> set[str]:
    completed = {task.id for task in tasks if task.is_completed}
    completed.update(assume_completed)
    return completed
