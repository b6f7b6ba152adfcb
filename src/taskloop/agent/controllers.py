"""Controllers for agent CLI commands."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from taskloop.agent.backend import AgentBackend, AgentRunRequest, CliAgentBackend
from taskloop.agent.executors import executor_from_settings
from taskloop.agent.logs import activity_log
from taskloop.agent.orchestrator import LoopOptions, OutputFormat, RalphLoop
from taskloop.agent.prompts import render_planning_prompt
from taskloop.config import Settings
from taskloop.tasks.objectstore import GitObjectStore, ObjectStore
from taskloop.tasks.repository import TaskRepository

logger = logging.getLogger(__name__)

PLANNING_PROMPT_PLACEHOLDER = '"<planning prompt>"'


@dataclass(slots=True)
class AgentRunCommand:
    """CLI input for the RALPH loop."""

    model: str | None = None
    once: bool = False
    dry_run: bool = False
    delay_seconds: int = 2
    max_tasks: int | None = None
    parallel: int | None = None
    output_format: str = OutputFormat.TEXT.value


@dataclass(slots=True)
class AgentPlanCommand:
    """CLI input for an interactive planning session."""

    description: str | None = None
    model: str | None = None
    dry_run: bool = False


@dataclass(slots=True)
class AgentPlanResult:
    """Planning session report to render in CLI."""

    lines: list[str]
    success: bool


class AgentCliController:
    """Coordinates the RALPH loop and planning sessions."""

    def __init__(
        self,
        *,
        backend_factory: Callable[[], AgentBackend] = CliAgentBackend,
        store_factory: Callable[[Settings], ObjectStore] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._backend_factory = backend_factory
        self._store_factory = store_factory or (lambda settings: GitObjectStore(settings.repo_path))
        self._sleep = sleep

    def run(self, command: AgentRunCommand, *, emit: Callable[[str], None]) -> list[str]:
        settings = Settings.from_env()
        executor = executor_from_settings(settings.agent)
        loop = RalphLoop(
            repository=TaskRepository(self._store_factory(settings)),
            backend=self._backend_factory(),
            executor=executor,
            settings=settings,
            options=LoopOptions(
                model=command.model,
                once=command.once,
                dry_run=command.dry_run,
                delay_seconds=command.delay_seconds,
                max_tasks=command.max_tasks,
                parallel=command.parallel,
                output_format=OutputFormat(command.output_format),
            ),
            emit=emit,
            sleep=self._sleep,
        )
        summary = loop.run()
        return [f"RALPH loop completed. {summary.completed} tasks processed."]

    def plan(self, command: AgentPlanCommand, *, emit: Callable[[str], None]) -> AgentPlanResult:
        """Start an interactive agent session that turns a goal into tasks."""

        settings = Settings.from_env()
        executor = executor_from_settings(settings.agent)
        tasks_command = settings.agent.tasks_command
        prompt = render_planning_prompt(
            description=command.description,
            tasks_command=tasks_command,
        )
        goal = (command.description or "").strip() or "(to be discussed with the agent)"

        if command.dry_run:
            return AgentPlanResult(
                lines=[
                    "=== Planning Session (dry-run) ===",
                    "",
                    f"Goal: {goal}",
                    "",
                    "Would execute:",
                    "  "
                    + executor.preview(
                        model=command.model,
                        interactive=True,
                        placeholder=PLANNING_PROMPT_PLACEHOLDER,
                    ),
                    "",
                    "--- Prompt Preview ---",
                    *prompt.splitlines(),
                ],
                success=True,
            )

        emit("=== Starting Planning Session ===")
        emit(f"Goal: {goal}")
        emit(f"Executor: {executor.display_name}")
        emit("")

        with activity_log(settings.repo_path / settings.loop_log_path):
            logger.info(
                "Planning session started executor=%s goal=%s",
                executor.display_name,
                goal,
            )
            process = self._backend_factory().spawn(
                AgentRunRequest(
                    args=executor.build_args(prompt, model=command.model, interactive=True),
                    cwd=settings.repo_path,
                    interactive=True,
                ),
            )
            try:
                exit_code = process.wait()
            except KeyboardInterrupt:
                process.terminate()
                raise
            finally:
                process.collect_output()
            logger.info("Planning session finished exit_code=%d", exit_code)

        if exit_code != 0:
            return AgentPlanResult(
                lines=["", f"=== Planning session failed (exit code {exit_code}) ==="],
                success=False,
            )
        return AgentPlanResult(
            lines=[
                "",
                "=== Planning session completed ===",
                f"Run '{tasks_command} list' to see created tasks",
                "Run 'taskloop agent run' to execute tasks",
            ],
            success=True,
        )
