"""Runtime configuration for the task store and the agent loop."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_AGENT = "claude"
DEFAULT_TASKS_COMMAND = "taskloop tasks"
AGENT_MODE_ENV = "TASKLOOP_AGENT_MODE"
TASK_ID_ENV = "TASKLOOP_TASK_ID"


@dataclass(slots=True)
class AgentSettings:
    """Executor selection and child-process supervision settings."""

    agent: str | None = None
    agent_command: str | None = None
    tasks_command: str = DEFAULT_TASKS_COMMAND
    poll_interval_seconds: float = 0.1
    task_timeout_seconds: float = 0.0

    @property
    def agent_name(self) -> str:
        """Configured backend name, falling back to the default backend."""

        return self.agent or DEFAULT_AGENT


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    repo_path: Path = Path()
    workdir: Path = Path(".taskloop")
    agent: AgentSettings = field(default_factory=AgentSettings)
    agent_mode: bool = False

    @property
    def logs_dir(self) -> Path:
        """Directory holding one log file per task id."""

        return self.workdir / "logs"

    @property
    def loop_log_path(self) -> Path:
        """Append-only log of loop activity."""

        return self.workdir / "agent.log"

    @classmethod
    def from_env(cls, repo_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults for local use."""

        settings = cls(
            repo_path=repo_path or Path.cwd(),
            workdir=Path(os.getenv("TASKLOOP_WORKDIR", ".taskloop")),
            agent=AgentSettings(
                agent=_env_optional("TASKLOOP_AGENT"),
                agent_command=_env_optional("TASKLOOP_AGENT_CMD"),
                tasks_command=os.getenv("TASKLOOP_TASKS_COMMAND", DEFAULT_TASKS_COMMAND).strip()
                or DEFAULT_TASKS_COMMAND,
                poll_interval_seconds=_env_float("TASKLOOP_POLL_INTERVAL_SECONDS", "0.1"),
                task_timeout_seconds=_env_float("TASKLOOP_TASK_TIMEOUT_SECONDS", "0"),
            ),
            agent_mode=_env_bool(AGENT_MODE_ENV, default=False),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise configuration error for out-of-range values."""

        if self.agent.poll_interval_seconds <= 0:
            raise ValueError("TASKLOOP_POLL_INTERVAL_SECONDS must be > 0.")
        if self.agent.task_timeout_seconds < 0:
            raise ValueError("TASKLOOP_TASK_TIMEOUT_SECONDS must be >= 0.")


def _env_optional(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default).strip()
    try:
        return float(raw)
    except ValueError as error:
        raise ValueError(f"Invalid numeric value for {name}: {raw!r}") from error


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"", "0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
