"""Per-branch task list stored in the repository's object database."""

from taskloop.tasks.models import (
    AgentModeBlockedError,
    MarkDoneResult,
    MissingTaskContentError,
    Task,
    TaskConflictError,
    TaskList,
    TaskNotFoundError,
    TaskStatus,
    TaskStoreError,
)
from taskloop.tasks.objectstore import (
    BranchNameTooLongError,
    GitObjectStore,
    ObjectStore,
    ObjectStoreError,
)
from taskloop.tasks.repository import TaskRepository

__all__ = [
    "AgentModeBlockedError",
    "BranchNameTooLongError",
    "GitObjectStore",
    "MarkDoneResult",
    "MissingTaskContentError",
    "ObjectStore",
    "ObjectStoreError",
    "Task",
    "TaskConflictError",
    "TaskList",
    "TaskNotFoundError",
    "TaskRepository",
    "TaskStatus",
    "TaskStoreError",
]
