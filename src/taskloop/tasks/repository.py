"""Task repository over the per-branch object-store ref."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from taskloop.tasks.codec import decode_task_list, encode_task_list
from taskloop.tasks.models import (
    MarkDoneResult,
    MissingTaskContentError,
    Task,
    TaskConflictError,
    TaskList,
    TaskNotFoundError,
    TaskStatus,
    utc_timestamp,
)
from taskloop.tasks.objectstore import ObjectStore

logger = logging.getLogger(__name__)


class TaskRepository:
    """CRUD operations on the task list of the current branch.

    Every call loads the list fresh and every mutation persists immediately as
    one new blob plus a ref update. Nothing is cached between calls, so edits
    made by another process in the meantime are always picked up.
    """

    def __init__(self, store: ObjectStore) -> None:
        self._store = store

    def load(self) -> TaskList:
        data = self._store.read_ref(self._store.task_ref())
        if not data:
            return TaskList()
        return decode_task_list(data)

    def save(self, task_list: TaskList) -> None:
        ref_name = self._store.task_ref()
        blob_id = self._store.write_blob(encode_task_list(task_list))
        self._store.update_ref(ref_name, blob_id)
        logger.debug("Saved %d tasks to %s", len(task_list.tasks), ref_name)

    def add(self, content: str, *, after: str | None = None) -> Task:
        """Create a pending task; `after` is stored even if it does not resolve."""

        normalized = _require_content(content)
        task_list = self.load()
        task = _new_task(task_list, normalized, after=after)
        self.save(task_list)
        logger.info("Added %s", task.id)
        return task

    def import_many(self, contents: Iterable[str]) -> list[Task]:
        """Create several pending tasks in a single save."""

        task_list = self.load()
        created = [
            _new_task(task_list, _require_content(content), after=None) for content in contents
        ]
        if created:
            self.save(task_list)
            logger.info("Imported %d tasks", len(created))
        return created

    def list_tasks(self) -> list[Task]:
        return self.load().tasks

    def get(self, task_id: str) -> Task | None:
        return self.load().find(task_id)

    def require(self, task_id: str) -> Task:
        task = self.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def edit(self, task_id: str, content: str) -> Task:
        """Replace the content of a task."""

        normalized = _require_content(content)
        task_list = self.load()
        task = _find_or_raise(task_list, task_id)
        task.content = normalized
        self.save(task_list)
        return task

    def append(self, task_id: str, extra: str) -> Task:
        """Add a new line to the content of a task."""

        normalized = _require_content(extra)
        task_list = self.load()
        task = _find_or_raise(task_list, task_id)
        task.content = f"{task.content}\n{normalized}"
        self.save(task_list)
        return task

    def delete(self, task_id: str) -> Task:
        task_list = self.load()
        index = task_list.index_of(task_id)
        if index is None:
            raise TaskNotFoundError(task_id)
        dependents = task_list.dependents_of(task_id)
        if dependents:
            raise TaskConflictError(task_id, dependents)
        task = task_list.tasks.pop(index)
        self.save(task_list)
        logger.info("Deleted %s", task_id)
        return task

    def mark_done(self, task_id: str) -> MarkDoneResult:
        """Complete a task; a repeated call reports `already_done` and writes nothing."""

        task_list = self.load()
        task = _find_or_raise(task_list, task_id)
        if task.is_completed:
            return MarkDoneResult(task=task, already_done=True)
        task.status = TaskStatus.COMPLETED
        task.completed = utc_timestamp()
        self.save(task_list)
        logger.info("Completed %s", task_id)
        return MarkDoneResult(task=task, already_done=False)


def _require_content(content: str) -> str:
    normalized = content.strip()
    if not normalized:
        raise MissingTaskContentError("task content is required")
    return normalized


def _new_task(task_list: TaskList, content: str, *, after: str | None) -> Task:
    normalized_after = after.strip() if after else None
    task = Task(
        id=task_list.generate_id(),
        content=content,
        created=utc_timestamp(),
        after=normalized_after or None,
    )
    task_list.tasks.append(task)
    return task


def _find_or_raise(task_list: TaskList, task_id: str) -> Task:
    task = task_list.find(task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    return task
