"""Controllers for task store CLI commands."""

from __future__ import annotations

import json
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from taskloop.config import Settings
from taskloop.tasks.dependencies import ready
from taskloop.tasks.markdown import parse_plan_markdown, render_pr_markdown
from taskloop.tasks.models import (
    AgentModeBlockedError,
    Task,
    TaskStoreError,
    utc_timestamp,
)
from taskloop.tasks.objectstore import GitObjectStore, ObjectStore
from taskloop.tasks.repository import TaskRepository

_COMPLETED_MARK = "✓"
_APPEND_HINT = "use 'tasks append <id> <content>' to add notes to a task instead"
_DELETE_HINT = "ask the user to delete this task themselves, then confirm with you when done"


@dataclass(slots=True)
class TaskAddCommand:
    """CLI input for task creation."""

    content: str
    after: str | None = None
    as_json: bool = False


@dataclass(slots=True)
class TaskListCommand:
    """CLI input for listing all or only ready tasks."""

    as_json: bool = False


@dataclass(slots=True)
class TaskIdCommand:
    """CLI input for commands addressing one task: show, delete, done."""

    task_id: str
    as_json: bool = False


@dataclass(slots=True)
class TaskContentCommand:
    """CLI input for edit and append."""

    task_id: str
    content: str
    as_json: bool = False


@dataclass(slots=True)
class TaskImportCommand:
    """CLI input for importing a Markdown plan."""

    path: Path
    dry_run: bool = False
    as_json: bool = False


class TasksCliController:
    """Coordinates task store CLI operations."""

    def __init__(
        self,
        *,
        store_factory: Callable[[Settings], ObjectStore] | None = None,
        clock: Callable[[], int] = utc_timestamp,
    ) -> None:
        self._store_factory = store_factory or _git_store
        self._clock = clock

    def add(self, command: TaskAddCommand) -> list[str]:
        repository = self._repository()
        task = repository.add(command.content, after=command.after)
        if command.as_json:
            return [_dumps(task.to_payload())]

        lines = [f"created: {task.id}", *_indented(task.content)]
        if task.after is not None and repository.get(task.after) is None:
            lines.append(
                f"warning: {task.after} does not exist; {task.id} stays blocked until it does",
            )
        return lines

    def list_tasks(self, command: TaskListCommand) -> list[str]:
        tasks = self._repository().list_tasks()
        if command.as_json:
            return [_dumps({"tasks": [task.to_payload() for task in tasks]})]
        if not tasks:
            return ["no tasks found"]

        completed = sum(1 for task in tasks if task.is_completed)
        lines = [
            f"tasks: {len(tasks)} total ({len(tasks) - completed} pending, {completed} completed)",
            "",
        ]
        for task in tasks:
            mark = _COMPLETED_MARK if task.is_completed else " "
            lines.append(f"[{mark}] {task.id}")
            lines.extend(_indented(task.content))
        return lines

    def ready(self, command: TaskListCommand) -> list[str]:
        tasks = self._repository().list_tasks()
        ready_tasks = ready(tasks)
        if command.as_json:
            return [_dumps({"tasks": [task.to_payload() for task in ready_tasks]})]
        if not tasks:
            return ["no tasks found"]
        if not ready_tasks:
            return ["no ready tasks"]

        lines = [f"ready: {len(ready_tasks)} {_plural('task', len(ready_tasks))}", ""]
        for task in ready_tasks:
            lines.append(f"[ ] {task.id}")
            lines.extend(_indented(task.content))
        return lines

    def show(self, command: TaskIdCommand) -> list[str]:
        task = self._repository().require(command.task_id)
        if command.as_json:
            return [_dumps(task.to_payload())]

        now = self._clock()
        lines = [
            f"task: {task.id}",
            f"content: {task.content}",
            f"status: {task.status.value}",
            f"created: {format_relative_time(task.created, now=now)}",
        ]
        if task.completed is not None:
            lines.append(f"completed: {format_relative_time(task.completed, now=now)}")
        if task.after is not None:
            lines.append(f"after: {task.after}")
        return lines

    def edit(self, command: TaskContentCommand) -> list[str]:
        settings = self._settings()
        if settings.agent_mode:
            raise AgentModeBlockedError("edit", _APPEND_HINT)
        task = self._repository(settings).edit(command.task_id, command.content)
        return _mutation_lines("updated", task, as_json=command.as_json)

    def append(self, command: TaskContentCommand) -> list[str]:
        task = self._repository().append(command.task_id, command.content)
        return _mutation_lines("appended", task, as_json=command.as_json)

    def delete(self, command: TaskIdCommand) -> list[str]:
        settings = self._settings()
        if settings.agent_mode:
            raise AgentModeBlockedError("delete", _DELETE_HINT)
        task = self._repository(settings).delete(command.task_id)
        if command.as_json:
            return [_dumps({"deleted": task.id})]
        return [f"deleted: {task.id}", *_indented(task.content)]

    def done(self, command: TaskIdCommand) -> list[str]:
        result = self._repository().mark_done(command.task_id)
        if command.as_json:
            return [_dumps({**result.task.to_payload(), "already_done": result.already_done})]
        if result.already_done:
            return [f"task '{result.task.id}' already completed"]
        return [f"completed: {result.task.id}", *_indented(result.task.content)]

    def pr(self) -> list[str]:
        """Render the task list as a pull request checklist."""

        return render_pr_markdown(self._repository().list_tasks())

    def import_plan(self, command: TaskImportCommand) -> list[str]:
        try:
            text = command.path.read_text(encoding="utf-8")
        except OSError as error:
            raise TaskStoreError(f"cannot read file '{command.path}': {error}") from error

        items = parse_plan_markdown(text)
        if not items:
            raise TaskStoreError(
                f"no tasks found in '{command.path}'\n"
                "hint: tasks should be formatted as numbered or bulleted list items",
            )

        if command.dry_run:
            if command.as_json:
                return [_dumps({"preview": items})]
            return [
                f"preview: {len(items)} {_plural('task', len(items))} found in '{command.path}'",
                "",
                *(f"{index}: {content}" for index, content in enumerate(items, start=1)),
                "",
                "run without --dry-run to create these tasks",
            ]

        created = self._repository().import_many(items)
        if command.as_json:
            return [_dumps({"imported": len(created), "ids": [task.id for task in created]})]
        return [
            f"imported: {len(created)} {_plural('task', len(created))} from '{command.path}'",
            "",
            *(f"  {task.id}: {task.content}" for task in created),
        ]

    def _settings(self) -> Settings:
        return Settings.from_env()

    def _repository(self, settings: Settings | None = None) -> TaskRepository:
        return TaskRepository(self._store_factory(settings or self._settings()))


def format_relative_time(timestamp: int, *, now: int) -> str:
    """Render a unix timestamp as "N units ago"."""

    elapsed = max(0, now - timestamp)
    for unit, seconds in (("day", 86400), ("hour", 3600), ("minute", 60)):
        if elapsed >= seconds:
            count = elapsed // seconds
            return f"{count} {_plural(unit, count)} ago"
    return f"{elapsed} {_plural('second', elapsed)} ago"


def _git_store(settings: Settings) -> ObjectStore:
    return GitObjectStore(settings.repo_path)


def _mutation_lines(verb: str, task: Task, *, as_json: bool) -> list[str]:
    if as_json:
        return [_dumps(task.to_payload())]
    return [f"{verb}: {task.id}", *_indented(task.content)]


def _indented(content: str) -> Sequence[str]:
    return [f"  {line}" for line in content.splitlines()] or ["  "]


def _plural(word: str, count: int) -> str:
    return word if count == 1 else f"{word}s"


def _dumps(payload: dict[str, Any]) -> str:
    return json.dumps(payload, ensure_ascii=False)
