"""Local deterministic agent for loop integration tests.

Run as ``python -m taskloop.agent.backend.echo_agent <prompt>`` through
``TASKLOOP_AGENT_CMD``. Behavior is controlled by environment variables:

- ``TASKLOOP_ECHO_EXIT_CODE``: exit code to return (default 0).
- ``TASKLOOP_ECHO_MARK_DONE``: mark the task done on success (default 1).
- ``TASKLOOP_ECHO_FAIL_TIMES`` with ``TASKLOOP_ECHO_COUNTER_FILE``: fail the
  first N invocations, counting across processes in the counter file.
"""

from __future__ import annotations

import argparse
import os
import re
import sys
from pathlib import Path

from taskloop.config import TASK_ID_ENV
from taskloop.tasks.objectstore import GitObjectStore
from taskloop.tasks.repository import TaskRepository


_TASK_ID_PATTERN = re.compile(r"You are working on: (\S+)")


def main(argv: list[str] | None = None) -> int:
    """Echo the task and optionally mark it done in the current repository."""

    parser = argparse.ArgumentParser()
    parser.add_argument("prompt", nargs="?", default="")
    args, _unknown = parser.parse_known_args(argv)

    task_id = os.getenv(TASK_ID_ENV) or _task_id_from_prompt(args.prompt)
    print(f"echo agent: {task_id or '<no task>'}")

    exit_code = int(os.getenv("TASKLOOP_ECHO_EXIT_CODE", "0"))
    if exit_code == 0 and _should_fail():
        exit_code = 1
    if exit_code != 0:
        print(f"echo agent failing with exit code {exit_code}", file=sys.stderr)
        return exit_code

    if task_id and os.getenv("TASKLOOP_ECHO_MARK_DONE", "1") == "1":
        TaskRepository(GitObjectStore(Path.cwd())).mark_done(task_id)
    return 0


def _task_id_from_prompt(prompt: str) -> str | None:
    match = _TASK_ID_PATTERN.search(prompt)
    return match.group(1) if match else None


def _should_fail() -> bool:
    fail_times = int(os.getenv("TASKLOOP_ECHO_FAIL_TIMES", "0"))
    counter_path = os.getenv("TASKLOOP_ECHO_COUNTER_FILE")
    if fail_times <= 0 or not counter_path:
        return False

    path = Path(counter_path)
    attempts = int(path.read_text(encoding="utf-8") or "0") if path.exists() else 0
    path.write_text(str(attempts + 1), encoding="utf-8")
    return attempts < fail_times


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
