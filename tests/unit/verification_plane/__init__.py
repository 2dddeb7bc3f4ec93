"""Shared deterministic fakes and builders for verification-plane tests."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from pathlib import Path

from workledger.domain.models import Record, RecordStatus, TaskType
from workledger.verification_plane.collaborators import AgentResponse
from workledger.verification_plane.process import CommandResult, CommandSpec
from workledger.verification_plane.strategies.base import StrategyConfig, StrategyResult


def make_record(
    record_id: str = "auth.login",
    *,
    acceptance: Sequence[str] = ("Form renders", "Bad password rejected"),
    task_type: TaskType | None = None,
    strategies: Sequence[dict[str, object]] = (),
    status: RecordStatus = RecordStatus.FAILING,
    version: int = 1,
) -> Record:
    return Record(
        id=record_id,
        description="User can log in",
        module=record_id.split(".")[0],
        acceptance=tuple(acceptance),
        task_type=task_type,
        verification_strategies=tuple(strategies),
        status=status,
        version=version,
    )


def command_result(
    exit_code: int | None = 0,
    *,
    stdout: str = "",
    stderr: str = "",
    timed_out: bool = False,
    error: str | None = None,
    argv: tuple[str, ...] = ("fake",),
) -> CommandResult:
    return CommandResult(
        argv=argv,
        exit_code=None if timed_out else exit_code,
        stdout=stdout,
        stderr=stderr,
        duration_ms=5,
        timed_out=timed_out,
        error=error,
    )


class FakeRunner:
    """Command executor that records every spec and replays scripted results."""

    def __init__(self, *results: CommandResult) -> None:
        self._results = list(results) or [command_result()]
        self.specs: list[CommandSpec] = []

    async def run(self, spec: CommandSpec) -> CommandResult:
        self.specs.append(spec)
        if len(self._results) > 1:
            return self._results.pop(0)
        return self._results[0]

    @property
    def last_argv(self) -> tuple[str, ...]:
        return self.specs[-1].argv


class FakeAgent:
    """Agent invoker that replays scripted responses; exceptions are raised."""

    def __init__(self, *responses: AgentResponse | Exception) -> None:
        self._responses = list(responses)
        self.prompts: list[str] = []
        self.models: list[str | None] = []

    async def call(
        self,
        prompt: str,
        *,
        timeout_ms: int,
        cwd: Path,
        model: str | None = None,
    ) -> AgentResponse:
        self.prompts.append(prompt)
        self.models.append(model)
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeGit:
    def __init__(self, diff: str = "") -> None:
        self._diff = diff

    async def diff(self, workdir: Path) -> str:
        return self._diff

    async def is_dirty(self, workdir: Path) -> bool:
        return bool(self._diff)


class ScriptedInput:
    """Interactive user input with canned answers."""

    def __init__(
        self,
        *,
        interactive: bool = True,
        yes: bool = True,
        checklist: Sequence[bool] = (),
    ) -> None:
        self._interactive = interactive
        self._yes = yes
        self._checklist = list(checklist)
        self.displayed: list[str] = []
        self.questions: list[str] = []

    @property
    def interactive(self) -> bool:
        return self._interactive

    def display(self, text: str) -> None:
        self.displayed.append(text)

    async def ask_yes_no(self, question: str, *, default: bool = False) -> bool:
        self.questions.append(question)
        return self._yes

    async def ask_checklist(self, items: Sequence[str]) -> list[bool]:
        return list(self._checklist)


class StubExecutor:
    """Executor for one strategy type that returns scripted results or raises."""

    def __init__(
        self,
        strategy_type: str,
        *results: StrategyResult | Exception,
        on_call: Callable[[StrategyConfig], None] | None = None,
    ) -> None:
        self.strategy_type = strategy_type
        self._results = list(results) or [StrategyResult(success=True, output="ok")]
        self._on_call = on_call
        self.calls = 0

    async def execute(self, workdir: Path, config: StrategyConfig, record: Record) -> StrategyResult:
        self.calls += 1
        if self._on_call is not None:
            self._on_call(config)
        result = self._results.pop(0) if len(self._results) > 1 else self._results[0]
        if isinstance(result, Exception):
            raise result
        return result
