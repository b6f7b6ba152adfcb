"""Serialization of a task list to and from the stored blob.

The blob is JSON Lines: a header object carrying the format name, version and
id counter, then one object per task. Loading is deliberately forgiving,
because the backing store has no transactions and this is the only place bad
data can be contained:

- a line that is not valid JSON, or a record without a usable ``id`` or
  ``content``, is skipped and logged;
- an unknown ``status`` falls back to ``pending``, an unparsable ``created``
  falls back to ``0``;
- duplicate ids keep the first occurrence;
- the id counter never falls behind the highest id present.

The older line-delimited layout (``next_id:N`` and
``task:id|content|status|created|completed[|after]``) is still read, so
existing refs migrate on their next save.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any

from taskloop.tasks.models import Task, TaskList, TaskStatus, task_id_number

logger = logging.getLogger(__name__)

FORMAT_NAME = "taskloop/tasks"
FORMAT_VERSION = 1

_LEGACY_COUNTER_PREFIX = "next_id:"
_LEGACY_TASK_PREFIX = "task:"


def encode_task_list(task_list: TaskList) -> bytes:
    """Serialize the whole list as one blob."""

    lines = [
        json.dumps(
            {"format": FORMAT_NAME, "version": FORMAT_VERSION, "next_id": task_list.next_id},
            ensure_ascii=False,
            sort_keys=True,
        ),
    ]
    lines.extend(
        json.dumps(task.to_payload(), ensure_ascii=False, sort_keys=True)
        for task in task_list.tasks
    )
    return ("\n".join(lines) + "\n").encode("utf-8")


def decode_task_list(data: bytes) -> TaskList:
    """Deserialize a blob, skipping records that cannot be recovered."""

    task_list = TaskList()
    seen: set[str] = set()
    text = data.decode("utf-8", errors="replace")

    for line_no, raw_line in enumerate(text.split("\n"), start=1):
        line = raw_line.strip()
        if not line:
            continue

        if line.startswith(_LEGACY_COUNTER_PREFIX):
            task_list.next_id = _parse_counter(line[len(_LEGACY_COUNTER_PREFIX) :])
            continue

        if line.startswith(_LEGACY_TASK_PREFIX):
            task = _task_from_legacy_line(line[len(_LEGACY_TASK_PREFIX) :])
        elif line.startswith("{"):
            try:
                raw = json.loads(line)
            except ValueError:
                logger.warning("Skipping unparsable task record at line %d", line_no)
                continue
            if not isinstance(raw, dict):
                logger.warning("Skipping non-object task record at line %d", line_no)
                continue
            if "format" in raw:
                _apply_header(task_list, raw)
                continue
            task = _task_from_record(raw)
        else:
            task = None

        if task is None:
            logger.warning("Skipping malformed task record at line %d", line_no)
            continue
        if task.id in seen:
            logger.warning("Skipping duplicate task id %s at line %d", task.id, line_no)
            continue
        seen.add(task.id)
        task_list.tasks.append(task)

    highest = max(
        (number for task in task_list.tasks if (number := task_id_number(task.id)) is not None),
        default=0,
    )
    task_list.next_id = max(task_list.next_id, highest + 1)
    return task_list


def _apply_header(task_list: TaskList, raw: dict[str, Any]) -> None:
    if raw.get("format") != FORMAT_NAME:
        logger.warning("Unknown task list format %r, reading records anyway", raw.get("format"))
    version = raw.get("version")
    if isinstance(version, int) and version > FORMAT_VERSION:
        logger.warning(
            "Task list format version %d is newer than supported %d",
            version,
            FORMAT_VERSION,
        )
    task_list.next_id = _parse_counter(raw.get("next_id"))


def _task_from_record(raw: dict[str, Any]) -> Task | None:
    task_id = raw.get("id")
    content = raw.get("content")
    if not isinstance(task_id, str) or not task_id.strip():
        return None
    if not isinstance(content, str):
        return None
    after = raw.get("after")
    return _normalized_task(
        task_id=task_id.strip(),
        content=content,
        status=raw.get("status"),
        created=raw.get("created"),
        completed=raw.get("completed"),
        after=after if isinstance(after, str) else None,
    )


def _task_from_legacy_line(payload: str) -> Task | None:
    parts = payload.split("|")
    if len(parts) < 2 or not parts[0].strip():
        return None

    def _part(index: int) -> str | None:
        return parts[index] if len(parts) > index else None

    return _normalized_task(
        task_id=parts[0].strip(),
        content=parts[1].replace("\\n", "\n"),
        status=_part(2),
        created=_part(3),
        completed=_part(4),
        after=_part(5),
    )


def _normalized_task(  # noqa: PLR0913
    *,
    task_id: str,
    content: str,
    status: object,
    created: object,
    completed: object,
    after: str | None,
) -> Task:
    parsed_status = _parse_status(status)
    created_at = _parse_timestamp(created)
    created_at = 0 if created_at is None else created_at
    completed_at = _parse_timestamp(completed)
    if parsed_status == TaskStatus.COMPLETED and completed_at is None:
        completed_at = 0
    if parsed_status == TaskStatus.PENDING:
        completed_at = None
    normalized_after = after.strip() if after else None
    return Task(
        id=task_id,
        content=content,
        status=parsed_status,
        created=created_at,
        completed=completed_at,
        after=normalized_after or None,
    )


def _parse_status(value: object) -> TaskStatus:
    if isinstance(value, str):
        try:
            return TaskStatus(value.strip().lower())
        except ValueError:
            return TaskStatus.PENDING
    return TaskStatus.PENDING


def _parse_timestamp(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _parse_counter(value: object) -> int:
    parsed = _parse_timestamp(value)
    if parsed is None or parsed < 1:
        return 1
    return parsed
