"""Backend interface for spawning agent processes."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class AgentRunRequest:
    """Inputs required to start one agent process."""

    args: list[str]
    cwd: Path
    env: dict[str, str] = field(default_factory=dict)
    interactive: bool = False
    streamed: bool = False
    log_path: Path | None = None


@dataclass(slots=True)
class AgentOutput:
    """Captured output of a buffered run; empty for streamed and interactive runs."""

    stdout: str = ""
    stderr: str = ""


class AgentProcess(Protocol):
    """Handle to one running agent process."""

    def poll(self) -> int | None:
        """Return the exit code if the process has exited, else None."""

    def wait(self) -> int:
        """Block until the process exits and return its exit code."""

    def terminate(self) -> None:
        """Stop the process, escalating to kill if it does not exit."""

    def collect_output(self) -> AgentOutput:
        """Return captured output and release capture resources."""


class AgentBackend(Protocol):
    """Protocol implemented by agent process launchers."""

    def spawn(self, request: AgentRunRequest) -> AgentProcess:
        """Start the agent process without waiting for it."""
