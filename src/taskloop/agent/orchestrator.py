"""RALPH loop: select ready tasks, run the agent on them, score the outcome."""

from __future__ import annotations

import logging
import signal
import time
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from taskloop.agent.backend.base import AgentBackend, AgentProcess, AgentRunRequest
from taskloop.agent.backend.cli_backend import BackendRunError
from taskloop.agent.executors import ExecutorSpec
from taskloop.agent.logs import TaskLogManager, activity_log
from taskloop.agent.prompts import render_task_prompt
from taskloop.config import TASK_ID_ENV, Settings
from taskloop.tasks.dependencies import pending, ready
from taskloop.tasks.models import Task
from taskloop.tasks.repository import TaskRepository

logger = logging.getLogger(__name__)

FAILURE_THRESHOLD = 3


class OutputFormat(str, Enum):
    """How agent output is handled."""

    TEXT = "text"
    STREAM_JSON = "stream-json"


class StopReason(str, Enum):
    """Why the loop ended."""

    ALL_COMPLETE = "all_complete"
    FAILURE_THRESHOLD = "failure_threshold"
    BLOCKED = "blocked"
    ONCE = "once"
    MAX_TASKS = "max_tasks"
    INTERRUPTED = "interrupted"


@dataclass(slots=True)
class LoopOptions:
    """Per-run options from the `agent run` command line."""

    model: str | None = None
    once: bool = False
    dry_run: bool = False
    delay_seconds: float = 2
    max_tasks: int | None = None
    parallel: int | None = None
    output_format: OutputFormat = OutputFormat.TEXT

    @property
    def slots(self) -> int:
        return max(1, self.parallel or 1)

    @property
    def streamed(self) -> bool:
        return self.output_format == OutputFormat.STREAM_JSON


class FailureTracker:
    """Consecutive failure counts per task id for one loop run.

    Entries appear on a task's first failure and a success resets the count.
    Nothing is persisted: every run starts from zero.
    """

    def __init__(self, threshold: int = FAILURE_THRESHOLD) -> None:
        self.threshold = threshold
        self._counts: dict[str, int] = {}

    def count(self, task_id: str) -> int:
        return self._counts.get(task_id, 0)

    def record_failure(self, task_id: str) -> int:
        count = self._counts.get(task_id, 0) + 1
        self._counts[task_id] = count
        return count

    def reset(self, task_id: str) -> None:
        if task_id in self._counts:
            self._counts[task_id] = 0

    def is_exhausted(self, task_id: str) -> bool:
        return self.count(task_id) >= self.threshold


@dataclass(slots=True)
class RunningTask:
    """A dispatched task whose agent process has not been reaped yet."""

    task_id: str
    content: str
    process: AgentProcess
    log_path: Path
    started: float


@dataclass(slots=True)
class LoopSummary:
    """Aggregate loop counters for CLI reporting."""

    dispatched: int = 0
    completed: int = 0
    failed: int = 0
    retired: list[str] = field(default_factory=list)
    stop_reason: StopReason | None = None


class RalphLoop:
    """Drives the agent through ready tasks until done or a limit triggers."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: TaskRepository,
        backend: AgentBackend,
        executor: ExecutorSpec,
        settings: Settings,
        options: LoopOptions,
        emit: Callable[[str], None],
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.repository = repository
        self.backend = backend
        self.executor = executor
        self.settings = settings
        self.options = options
        self.failures = FailureTracker()
        self._emit = emit
        self._sleep = sleep
        self._clock = clock
        self._logs = TaskLogManager(settings.repo_path / settings.logs_dir)
        self._running: dict[str, RunningTask] = {}
        self._dry_run_done: set[str] = set()
        self._stop_requested = False
        self._stop_signal_name: str | None = None

    def run(self) -> LoopSummary:
        """Run the loop to completion and return its counters."""

        summary = LoopSummary()
        self._emit_header()
        with self._loop_log(), self._signal_handlers():
            logger.info(
                "Loop started executor=%s model=%s parallel=%d dry_run=%s",
                self.executor.display_name,
                self.options.model or "-",
                self.options.slots,
                self.options.dry_run,
            )
            try:
                summary.stop_reason = self._run_iterations(summary)
            finally:
                self._terminate_running()
            logger.info(
                "Loop stopped reason=%s completed=%d failed=%d",
                summary.stop_reason.value if summary.stop_reason else "error",
                summary.completed,
                summary.failed,
            )
        return summary

    def request_stop(self, *, signal_name: str = "manual") -> None:
        self._stop_requested = True
        self._stop_signal_name = signal_name

    def _run_iterations(self, summary: LoopSummary) -> StopReason:  # noqa: C901
        while True:
            if self._stop_requested:
                self._emit(f"Stop requested ({self._stop_signal_name}). Shutting down.")
                return StopReason.INTERRUPTED
            if self._max_tasks_reached(summary):
                self._emit(f"Reached maximum task limit ({self.options.max_tasks})")
                return StopReason.MAX_TASKS

            tasks = self.repository.load().tasks
            candidates = self._select(tasks)
            if not candidates and not self._running:
                return self._finish(tasks)

            for task in candidates[: self._capacity(summary)]:
                self._dispatch(task, summary)

            finished = self._await_running()
            for running, exit_code in finished:
                self._reap(running, exit_code, summary)

            if self.options.once and summary.dispatched and not self._running:
                self._emit("Exiting after one task (--once flag set)")
                return StopReason.ONCE
            if self._max_tasks_reached(summary):
                continue
            if finished or not self._running:
                self._throttle()

    def _select(self, tasks: Sequence[Task]) -> list[Task]:
        return [
            task
            for task in ready(tasks, assume_completed=self._dry_run_done)
            if not self.failures.is_exhausted(task.id) and task.id not in self._running
        ]

    def _capacity(self, summary: LoopSummary) -> int:
        capacity = self.options.slots - len(self._running)
        if self.options.once:
            capacity = min(capacity, 1 - summary.dispatched)
        if self.options.max_tasks is not None:
            capacity = min(capacity, self.options.max_tasks - summary.completed - len(self._running))
        return max(0, capacity)

    def _max_tasks_reached(self, summary: LoopSummary) -> bool:
        return self.options.max_tasks is not None and summary.completed >= self.options.max_tasks

    def _finish(self, tasks: Sequence[Task]) -> StopReason:
        remaining = pending(tasks, assume_completed=self._dry_run_done)
        if not remaining:
            self._emit("No pending tasks remaining. All tasks complete!")
            self._emit(f"Run: {self.settings.agent.tasks_command} pr")
            return StopReason.ALL_COMPLETE
        if any(self.failures.is_exhausted(task.id) for task in remaining):
            self._emit(f"All remaining tasks have failed {FAILURE_THRESHOLD}+ times. Stopping.")
            return StopReason.FAILURE_THRESHOLD
        blocked_ids = ", ".join(task.id for task in remaining)
        self._emit(f"Remaining tasks are blocked by missing prerequisites: {blocked_ids}")
        return StopReason.BLOCKED

    def _dispatch(self, task: Task, summary: LoopSummary) -> None:
        summary.dispatched += 1
        self._emit(f"Starting task: {task.id}")
        for line in task.content.splitlines():
            self._emit(f"  {line}")
        self._emit("")
        logger.info("Dispatching %s", task.id)

        if self.options.dry_run:
            self._emit("Would execute:")
            self._emit(
                "  "
                + self.executor.preview(
                    model=self.options.model,
                    streamed=self.options.streamed,
                ),
            )
            self._emit("")
            self._dry_run_done.add(task.id)
            self._score(task.id, 0, summary)
            return

        prompt = render_task_prompt(
            task_id=task.id,
            content=task.content,
            tasks_command=self.settings.agent.tasks_command,
        )
        log_path = (
            self._logs.prepare(task.id) if self.options.streamed else self._logs.path_for(task.id)
        )
        request = AgentRunRequest(
            args=self.executor.build_args(
                prompt,
                model=self.options.model,
                streamed=self.options.streamed,
            ),
            cwd=self.settings.repo_path,
            env={TASK_ID_ENV: task.id},
            streamed=self.options.streamed,
            log_path=log_path,
        )
        try:
            process = self.backend.spawn(request)
        except BackendRunError as error:
            logger.warning("Failed to start agent for %s: %s", task.id, error)
            self._emit(f"{self._prefix(task.id)}Failed to start agent: {error}")
            self._score(task.id, None, summary)
            return

        if self.options.streamed:
            self._emit(f"{self._prefix(task.id)}Streaming output to {log_path}")
        self._running[task.id] = RunningTask(
            task_id=task.id,
            content=task.content,
            process=process,
            log_path=log_path,
            started=self._clock(),
        )

    def _await_running(self) -> list[tuple[RunningTask, int | None]]:
        """Poll running children until at least one exits or a stop is requested."""

        timeout = self.settings.agent.task_timeout_seconds
        while self._running:
            finished: list[tuple[RunningTask, int | None]] = []
            for running in list(self._running.values()):
                exit_code = running.process.poll()
                if exit_code is not None:
                    finished.append((running, exit_code))
                elif timeout > 0 and self._clock() - running.started >= timeout:
                    logger.warning("Task %s timed out after %.0f seconds", running.task_id, timeout)
                    self._emit(
                        f"{self._prefix(running.task_id)}Task timed out after {timeout:g} seconds",
                    )
                    running.process.terminate()
                    finished.append((running, None))

            if finished:
                for running, _ in finished:
                    self._running.pop(running.task_id, None)
                return finished
            if self._stop_requested:
                return []
            self._sleep(self.settings.agent.poll_interval_seconds)
        return []

    def _reap(self, running: RunningTask, exit_code: int | None, summary: LoopSummary) -> None:
        output = running.process.collect_output()
        if exit_code != 0 and not self.options.streamed:
            self._logs.write_failure(
                running.task_id,
                exit_code=exit_code,
                stdout=output.stdout,
                stderr=output.stderr,
            )
        self._score(running.task_id, exit_code, summary, log_path=running.log_path)

    def _score(
        self,
        task_id: str,
        exit_code: int | None,
        summary: LoopSummary,
        *,
        log_path: Path | None = None,
    ) -> None:
        prefix = self._prefix(task_id)
        if exit_code == 0:
            self.failures.reset(task_id)
            summary.completed += 1
            logger.info("Task %s completed", task_id)
            self._emit(f"{prefix}Task completed successfully")
            self._emit("")
            return

        count = self.failures.record_failure(task_id)
        summary.failed += 1
        logger.warning("Task %s failed exit_code=%s consecutive=%d", task_id, exit_code, count)
        self._emit(f"{prefix}Task failed ({count} consecutive failures)")
        if log_path is not None and log_path.exists():
            self._emit(f"{prefix}Output: {log_path}")
        if self.failures.is_exhausted(task_id):
            summary.retired.append(task_id)
            logger.warning("Retiring %s for this run", task_id)
            self._emit(f"{prefix}Skipping task after {FAILURE_THRESHOLD} consecutive failures")
        self._emit("")

    def _throttle(self) -> None:
        delay = self.options.delay_seconds
        if delay <= 0 or self.options.dry_run or self._stop_requested:
            return
        self._emit(f"Waiting {delay:g} seconds before next task...")
        self._emit("")
        self._sleep_with_stop(delay)

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = self._clock() + seconds
        while not self._stop_requested:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return
            self._sleep(min(0.1, remaining))

    def _terminate_running(self) -> None:
        for running in list(self._running.values()):
            logger.warning("Terminating %s at loop exit", running.task_id)
            self._emit(f"Terminating {running.task_id}")
            running.process.terminate()
            running.process.collect_output()
        self._running.clear()

    def _prefix(self, task_id: str) -> str:
        return f"[{task_id}] " if self.options.slots > 1 else ""

    def _emit_header(self) -> None:
        self._emit("Starting RALPH loop...")
        if self.options.dry_run:
            self._emit("(dry-run mode - no commands will be executed)")
        executor_line = f"Executor: {self.executor.display_name}"
        if self.options.model:
            executor_line += f" (model: {self.options.model})"
        self._emit(executor_line)
        if self.options.slots > 1:
            self._emit(f"Parallel: {self.options.slots}")
        self._emit("")

    @contextmanager
    def _loop_log(self) -> Iterator[None]:
        if self.options.dry_run:
            yield
            return

        with activity_log(self.settings.repo_path / self.settings.loop_log_path):
            yield

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            self.request_stop(signal_name=name)

        installed = True
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
        except ValueError:
            # Signal handlers can only be installed in main thread.
            installed = False
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
