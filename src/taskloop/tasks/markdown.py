"""Markdown plan import and pull-request checklist export."""

from __future__ import annotations

import re
from collections.abc import Sequence

from taskloop.tasks.models import Task

_NUMBERED_ITEM = re.compile(r"^\d+[.)]\s+(?P<content>.*)$")
_CHECKBOX_ITEM = re.compile(r"^-\s\[[ xX]\]\s+(?P<content>.*)$")
_BULLET_ITEM = re.compile(r"^-\s+(?P<content>.*)$")


def parse_plan_markdown(text: str) -> list[str]:
    """Extract task contents from numbered, checkbox and bullet list items.

    Headings, prose and empty items are ignored.
    """

    items: list[str] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        for pattern in (_NUMBERED_ITEM, _CHECKBOX_ITEM, _BULLET_ITEM):
            match = pattern.match(line)
            if match is None:
                continue
            content = match.group("content").strip()
            if content:
                items.append(content)
            break
    return items


def render_pr_markdown(tasks: Sequence[Task]) -> list[str]:
    lines = ["## Tasks", ""]
    if not tasks:
        lines.append("No tasks found.")
        return lines

    completed = [task for task in tasks if task.is_completed]
    pending = [task for task in tasks if not task.is_completed]
    if completed:
        lines.extend(["### Completed", ""])
        lines.extend(f"- [x] {_single_line(task.content)}" for task in completed)
        lines.append("")
    if pending:
        lines.extend(["### Pending", ""])
        lines.extend(f"- [ ] {_single_line(task.content)}" for task in pending)
        lines.append("")
    return lines


def _single_line(content: str) -> str:
    return " ".join(part.strip() for part in content.splitlines() if part.strip())
