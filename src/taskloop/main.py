"""CLI entrypoint for taskloop."""

from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from taskloop import __version__
from taskloop.agent.backend import BackendRunError
from taskloop.agent.controllers import AgentCliController, AgentPlanCommand, AgentRunCommand
from taskloop.agent.orchestrator import OutputFormat
from taskloop.tasks.controllers import (
    TaskAddCommand,
    TaskContentCommand,
    TaskIdCommand,
    TaskImportCommand,
    TaskListCommand,
    TasksCliController,
)
from taskloop.tasks.models import AgentModeBlockedError, TaskStoreError
from taskloop.tasks.objectstore import ObjectStoreError

click.rich_click.USE_MARKDOWN = True
TASKS_CONTROLLER = TasksCliController()
AGENT_CONTROLLER = AgentCliController()

_JSON_OPTION = click.option("--json", "as_json", is_flag=True, help="Machine-readable JSON output.")


@click.group()
@click.version_option(version=__version__, prog_name="taskloop")
def taskloop() -> None:
    """Git-backed task list and autonomous agent loop."""


@taskloop.group()
def tasks() -> None:
    """Task list stored under `refs/tasks/<branch>`."""


@tasks.command("add")
@click.argument("content", nargs=-1, required=True)
@click.option("--after", default=None, help="Id of a task that must be completed first.")
@_JSON_OPTION
def tasks_add(content: tuple[str, ...], after: str | None, as_json: bool) -> None:
    """Create a pending task."""

    with _domain_errors():
        _emit_lines(
            TASKS_CONTROLLER.add(
                TaskAddCommand(content=" ".join(content), after=after, as_json=as_json),
            ),
        )


@tasks.command("list")
@_JSON_OPTION
def tasks_list(as_json: bool) -> None:
    """List all tasks in insertion order."""

    with _domain_errors():
        _emit_lines(TASKS_CONTROLLER.list_tasks(TaskListCommand(as_json=as_json)))


@tasks.command("ready")
@_JSON_OPTION
def tasks_ready(as_json: bool) -> None:
    """List pending tasks whose prerequisite is completed."""

    with _domain_errors():
        _emit_lines(TASKS_CONTROLLER.ready(TaskListCommand(as_json=as_json)))


@tasks.command("show")
@click.argument("task_id")
@_JSON_OPTION
def tasks_show(task_id: str, as_json: bool) -> None:
    """Show one task."""

    with _domain_errors():
        _emit_lines(TASKS_CONTROLLER.show(TaskIdCommand(task_id=task_id, as_json=as_json)))


@tasks.command("edit")
@click.argument("task_id")
@click.argument("content", nargs=-1, required=True)
@_JSON_OPTION
def tasks_edit(task_id: str, content: tuple[str, ...], as_json: bool) -> None:
    """Replace the content of a task."""

    with _domain_errors():
        _emit_lines(
            TASKS_CONTROLLER.edit(
                TaskContentCommand(task_id=task_id, content=" ".join(content), as_json=as_json),
            ),
        )


@tasks.command("append")
@click.argument("task_id")
@click.argument("content", nargs=-1, required=True)
@_JSON_OPTION
def tasks_append(task_id: str, content: tuple[str, ...], as_json: bool) -> None:
    """Append a line to the content of a task."""

    with _domain_errors():
        _emit_lines(
            TASKS_CONTROLLER.append(
                TaskContentCommand(task_id=task_id, content=" ".join(content), as_json=as_json),
            ),
        )


@tasks.command("delete")
@click.argument("task_id")
@_JSON_OPTION
def tasks_delete(task_id: str, as_json: bool) -> None:
    """Delete a task nothing depends on."""

    with _domain_errors():
        _emit_lines(TASKS_CONTROLLER.delete(TaskIdCommand(task_id=task_id, as_json=as_json)))


@tasks.command("done")
@click.argument("task_id")
@_JSON_OPTION
def tasks_done(task_id: str, as_json: bool) -> None:
    """Mark a task completed."""

    with _domain_errors():
        _emit_lines(TASKS_CONTROLLER.done(TaskIdCommand(task_id=task_id, as_json=as_json)))


@tasks.command("pr")
def tasks_pr() -> None:
    """Export tasks as a Markdown checklist for a pull request description."""

    with _domain_errors():
        _emit_lines(TASKS_CONTROLLER.pr())


@tasks.command("import")
@click.argument("path", type=click.Path(path_type=Path, dir_okay=False))
@click.option("--dry-run", is_flag=True, help="Preview parsed tasks without creating them.")
@_JSON_OPTION
def tasks_import(path: Path, dry_run: bool, as_json: bool) -> None:
    """Create tasks from numbered, checkbox or bullet items of a Markdown plan."""

    with _domain_errors():
        _emit_lines(
            TASKS_CONTROLLER.import_plan(
                TaskImportCommand(path=path, dry_run=dry_run, as_json=as_json),
            ),
        )


@taskloop.group()
def agent() -> None:
    """Drive an AI coding agent through the task list.

    The executor is chosen by `TASKLOOP_AGENT` (`claude` or `opencode`), or
    replaced entirely by the command line in `TASKLOOP_AGENT_CMD`.
    """


@agent.command("run")
@click.option("--model", default=None, help="Model to use (executor default if omitted).")
@click.option("--once", is_flag=True, help="Run only one task, then exit.")
@click.option("--dry-run", is_flag=True, help="Show what would run without executing.")
@click.option(
    "--delay",
    type=click.IntRange(min=0),
    default=2,
    show_default=True,
    help="Seconds to wait between tasks.",
)
@click.option(
    "--max-tasks",
    type=click.IntRange(min=1),
    default=None,
    help="Stop after this many successfully completed tasks.",
)
@click.option(
    "--parallel",
    type=click.IntRange(min=1),
    default=None,
    help="Run up to this many agent processes at once.",
)
@click.option(
    "--output-format",
    type=click.Choice([item.value for item in OutputFormat]),
    default=OutputFormat.TEXT.value,
    show_default=True,
    help="`stream-json` streams agent output into per-task log files.",
)
def agent_run(  # noqa: PLR0913
    model: str | None,
    once: bool,
    dry_run: bool,
    delay: int,
    max_tasks: int | None,
    parallel: int | None,
    output_format: str,
) -> None:
    """Execute the RALPH loop until all tasks are complete."""

    with _domain_errors():
        _emit_lines(
            AGENT_CONTROLLER.run(
                AgentRunCommand(
                    model=model,
                    once=once,
                    dry_run=dry_run,
                    delay_seconds=delay,
                    max_tasks=max_tasks,
                    parallel=parallel,
                    output_format=output_format,
                ),
                emit=click.echo,
            ),
        )


@agent.command("plan")
@click.argument("description", nargs=-1)
@click.option("--model", default=None, help="Model to use (executor default if omitted).")
@click.option("--dry-run", is_flag=True, help="Show the prompt without executing.")
def agent_plan(description: tuple[str, ...], model: str | None, dry_run: bool) -> None:
    """Start an interactive planning session that creates tasks.

    Without a description the agent asks what to build.
    """

    with _domain_errors():
        result = AGENT_CONTROLLER.plan(
            AgentPlanCommand(
                description=" ".join(description) or None,
                model=model,
                dry_run=dry_run,
            ),
            emit=click.echo,
        )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Planning session failed.")


@contextmanager
def _domain_errors() -> Iterator[None]:
    try:
        yield
    except AgentModeBlockedError as error:
        raise click.ClickException(f"{error}\nhint: {error.hint}") from error
    except (TaskStoreError, ObjectStoreError, BackendRunError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    taskloop()
