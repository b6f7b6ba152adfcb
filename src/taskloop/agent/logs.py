"""Per-task log files under the loop's logs directory."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)

ACTIVITY_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@contextmanager
def activity_log(path: Path) -> Iterator[None]:
    """Append INFO and above from the `taskloop` loggers to `path` while active."""

    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setFormatter(logging.Formatter(ACTIVITY_LOG_FORMAT))
    package_logger = logging.getLogger("taskloop")
    previous_level = package_logger.level
    if previous_level == logging.NOTSET or previous_level > logging.INFO:
        package_logger.setLevel(logging.INFO)
    package_logger.addHandler(handler)
    try:
        yield
    finally:
        package_logger.removeHandler(handler)
        package_logger.setLevel(previous_level)
        handler.close()


class TaskLogManager:
    """Resolves and writes one log file per task id, creating it lazily."""

    def __init__(self, logs_dir: Path) -> None:
        self.logs_dir = logs_dir

    def path_for(self, task_id: str) -> Path:
        return self.logs_dir / f"{task_id}.log"

    def prepare(self, task_id: str) -> Path:
        """Create the logs directory and return the task's log path."""

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        return self.path_for(task_id)

    def write_failure(
        self,
        task_id: str,
        *,
        exit_code: int | None,
        stdout: str,
        stderr: str,
    ) -> Path:
        """Append captured output of a failed buffered run under a timestamped header."""

        path = self.prepare(task_id)
        timestamp = datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
        status = "terminated" if exit_code is None else f"exit code {exit_code}"
        with path.open("a", encoding="utf-8") as handle:
            handle.write(f"=== {timestamp} {task_id} failed ({status}) ===\n")
            handle.write("--- stdout ---\n")
            handle.write(stdout if stdout.endswith("\n") or not stdout else f"{stdout}\n")
            handle.write("--- stderr ---\n")
            handle.write(stderr if stderr.endswith("\n") or not stderr else f"{stderr}\n")
        logger.debug("Wrote failure output for %s to %s", task_id, path)
        return path
