"""Argument-vector construction for the external agent executor."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from taskloop.config import AgentSettings

PROMPT_PLACEHOLDER = '"<prompt>"'


class ExecutorKind(str, Enum):
    """Closed set of executor flavors, resolved once per run."""

    CLAUDE = "claude"
    OPENCODE = "opencode"
    CUSTOM = "custom"


SUPPORTED_EXECUTORS = (ExecutorKind.CLAUDE.value, ExecutorKind.OPENCODE.value)


class InvalidExecutorError(ValueError):
    """Named executor is not a recognized backend and no override was given."""

    def __init__(self, name: str) -> None:
        super().__init__(
            f"invalid TASKLOOP_AGENT value '{name}'\n"
            f"valid values: {', '.join(SUPPORTED_EXECUTORS)}\n"
            "use TASKLOOP_AGENT_CMD for custom executors",
        )
        self.name = name


@dataclass(frozen=True, slots=True)
class _BuiltinFlags:
    headless: tuple[str, ...]
    model_flag: str
    streaming: tuple[str, ...]


_BUILTIN_FLAGS = {
    ExecutorKind.CLAUDE: _BuiltinFlags(
        headless=("-p",),
        model_flag="--model",
        streaming=("--output-format", "stream-json", "--verbose"),
    ),
    ExecutorKind.OPENCODE: _BuiltinFlags(
        headless=("run",),
        model_flag="-m",
        streaming=("--format", "json"),
    ),
}


@dataclass(frozen=True, slots=True)
class ExecutorSpec:
    """Resolved executor: a built-in backend or a custom command prefix."""

    kind: ExecutorKind
    command: tuple[str, ...]

    @property
    def display_name(self) -> str:
        return " ".join(self.command)

    def build_args(
        self,
        prompt: str,
        *,
        model: str | None = None,
        interactive: bool = False,
        streamed: bool = False,
    ) -> list[str]:
        """Return the argument vector; the prompt is always the last element.

        Custom commands are used as given: model, headless and streaming
        flags are the command owner's responsibility.
        """

        args = list(self.command)
        flags = _BUILTIN_FLAGS.get(self.kind)
        if flags is not None:
            if not interactive:
                args.extend(flags.headless)
            if model:
                args.extend((flags.model_flag, model))
            if streamed:
                args.extend(flags.streaming)
        args.append(prompt)
        return args

    def preview(
        self,
        *,
        model: str | None = None,
        interactive: bool = False,
        streamed: bool = False,
        placeholder: str = PROMPT_PLACEHOLDER,
    ) -> str:
        """Human-readable invocation with the prompt replaced by a placeholder."""

        args = self.build_args(
            "",
            model=model,
            interactive=interactive,
            streamed=streamed,
        )
        return " ".join([*args[:-1], placeholder])


def resolve_executor(name: str | None, override: str | None = None) -> ExecutorSpec:
    """Pick the executor from the configured name and optional override command.

    An override bypasses name validation entirely and is split on whitespace
    without any quoting support.
    """

    if override is not None and override.strip():
        return ExecutorSpec(kind=ExecutorKind.CUSTOM, command=tuple(override.split()))

    normalized = (name or ExecutorKind.CLAUDE.value).strip()
    for kind in (ExecutorKind.CLAUDE, ExecutorKind.OPENCODE):
        if normalized == kind.value:
            return ExecutorSpec(kind=kind, command=(kind.value,))
    raise InvalidExecutorError(normalized)


def executor_from_settings(settings: AgentSettings) -> ExecutorSpec:
    return resolve_executor(settings.agent_name, settings.agent_command)
