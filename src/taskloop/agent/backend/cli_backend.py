"""Subprocess-based backend runner for CLI agents."""

from __future__ import annotations

import logging
import os
import subprocess
import tempfile
from typing import IO

from taskloop.agent.backend.base import AgentOutput, AgentRunRequest
from taskloop.config import AGENT_MODE_ENV

logger = logging.getLogger(__name__)


class BackendRunError(RuntimeError):
    """Backend execution error with retryability hint."""

    def __init__(self, message: str, *, transient: bool) -> None:
        super().__init__(message)
        self.transient = transient


class CliAgentProcess:
    """Running agent subprocess plus the files its output goes to."""

    def __init__(
        self,
        process: subprocess.Popen[bytes],
        *,
        stdout_handle: IO[bytes] | None = None,
        stderr_handle: IO[bytes] | None = None,
        capture: bool = False,
    ) -> None:
        self.process = process
        self._stdout_handle = stdout_handle
        self._stderr_handle = stderr_handle
        self._capture = capture

    def poll(self) -> int | None:
        return self.process.poll()

    def wait(self) -> int:
        return self.process.wait()

    def terminate(self) -> None:
        _terminate_process(self.process)

    def collect_output(self) -> AgentOutput:
        output = AgentOutput()
        if self._capture:
            output = AgentOutput(
                stdout=_read_handle(self._stdout_handle),
                stderr=_read_handle(self._stderr_handle),
            )
        self._close_handles()
        return output

    def _close_handles(self) -> None:
        for handle in (self._stdout_handle, self._stderr_handle):
            if handle is not None and not handle.closed:
                handle.close()
        self._stdout_handle = None
        self._stderr_handle = None


class CliAgentBackend:
    """Start agent CLI processes with inherited, streamed or buffered output."""

    def spawn(self, request: AgentRunRequest) -> CliAgentProcess:
        if not request.args:
            raise BackendRunError("agent command is empty", transient=False)

        env = os.environ.copy()
        env[AGENT_MODE_ENV] = "1"
        env.update(request.env)

        stdout_handle, stderr_handle = _output_handles(request)
        try:
            process = subprocess.Popen(  # noqa: S603
                request.args,
                cwd=request.cwd,
                env=env,
                stdin=None if request.interactive else subprocess.DEVNULL,
                stdout=stdout_handle,
                stderr=stderr_handle,
            )
        except FileNotFoundError as error:
            _close_quietly(stdout_handle, stderr_handle)
            raise BackendRunError(
                f"agent command not found: {request.args[0]}",
                transient=False,
            ) from error
        except OSError as error:
            _close_quietly(stdout_handle, stderr_handle)
            raise BackendRunError(f"agent failed to start: {error}", transient=True) from error

        logger.debug("Spawned %s (pid=%d)", request.args[0], process.pid)
        return CliAgentProcess(
            process,
            stdout_handle=stdout_handle,
            stderr_handle=stderr_handle if stderr_handle is not subprocess.STDOUT else None,
            capture=not request.interactive and not request.streamed,
        )


def _output_handles(request: AgentRunRequest) -> tuple[IO[bytes] | None, IO[bytes] | int | None]:
    if request.interactive:
        return None, None
    if request.streamed:
        if request.log_path is None:
            raise BackendRunError("streamed output requires a log path", transient=False)
        request.log_path.parent.mkdir(parents=True, exist_ok=True)
        return request.log_path.open("ab"), subprocess.STDOUT
    return tempfile.TemporaryFile(), tempfile.TemporaryFile()  # noqa: SIM115


def _read_handle(handle: IO[bytes] | None) -> str:
    if handle is None or handle.closed:
        return ""
    handle.seek(0)
    return handle.read().decode("utf-8", errors="replace")


def _close_quietly(*handles: IO[bytes] | int | None) -> None:
    for handle in handles:
        if handle is None or isinstance(handle, int):
            continue
        handle.close()


def _terminate_process(process: subprocess.Popen[bytes]) -> None:
    if process.poll() is not None:
        return
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=2)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        process.wait(timeout=2)
