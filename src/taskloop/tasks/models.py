"""Domain models for the per-branch task list."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, NamedTuple

TASK_ID_PREFIX = "task-"
_TASK_ID_PATTERN = re.compile(r"^task-(\d+)$")


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    COMPLETED = "completed"


class TaskStoreError(RuntimeError):
    """Base error for task store outcomes surfaced to the CLI."""


class TaskNotFoundError(TaskStoreError):
    """No task with the requested id exists on this branch."""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"task '{task_id}' not found")
        self.task_id = task_id


class TaskConflictError(TaskStoreError):
    """Task cannot be deleted while other tasks depend on it."""

    def __init__(self, task_id: str, dependents: list[str]) -> None:
        super().__init__(
            f"task '{task_id}' is a prerequisite of {', '.join(dependents)}",
        )
        self.task_id = task_id
        self.dependents = dependents


class MissingTaskContentError(TaskStoreError, ValueError):
    """Task content was empty after trimming."""


class AgentModeBlockedError(TaskStoreError):
    """Command is refused while running inside an orchestrated agent."""

    def __init__(self, command: str, hint: str) -> None:
        super().__init__(f"{command} command blocked in agent mode")
        self.command = command
        self.hint = hint


def utc_timestamp() -> int:
    """Current UTC time as whole unix seconds."""

    return int(datetime.now(tz=UTC).timestamp())


def task_id_number(task_id: str) -> int | None:
    """Return the numeric suffix of a generated id, if it has one."""

    match = _TASK_ID_PATTERN.match(task_id)
    if match is None:
        return None
    return int(match.group(1))


@dataclass(slots=True)
class Task:
    """One unit of agent-assigned work."""

    id: str
    content: str
    status: TaskStatus = TaskStatus.PENDING
    created: int = 0
    completed: int | None = None
    after: str | None = None

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    def to_payload(self) -> dict[str, Any]:
        """Structured form shared by the `--json` outputs and the stored record."""

        return {
            "id": self.id,
            "content": self.content,
            "status": self.status.value,
            "created": self.created,
            "completed": self.completed,
            "after": self.after,
        }


@dataclass(slots=True)
class TaskList:
    """Ordered tasks for one branch plus the id counter."""

    tasks: list[Task] = field(default_factory=list)
    next_id: int = 1

    def generate_id(self) -> str:
        """Allocate the next sequential id."""

        task_id = f"{TASK_ID_PREFIX}{self.next_id:03d}"
        self.next_id += 1
        return task_id

    def find(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def index_of(self, task_id: str) -> int | None:
        for index, task in enumerate(self.tasks):
            if task.id == task_id:
                return index
        return None

    def dependents_of(self, task_id: str) -> list[str]:
        """Ids of tasks whose prerequisite is `task_id`."""

        return [task.id for task in self.tasks if task.after == task_id]


class MarkDoneResult(NamedTuple):
    task: Task
    already_done: bool
