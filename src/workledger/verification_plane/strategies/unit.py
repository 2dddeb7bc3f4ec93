"""Run the project's unit/integration test command, optionally narrowed to a pattern or cases."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Final

import structlog

from workledger.domain.models import Record
from workledger.errors import StrategyConfigError
from workledger.verification_plane.collaborators import CapabilityDetector
from workledger.verification_plane.process import (
    CommandExecutor,
    CommandSpec,
    LocalSubprocessExecutor,
    elapsed_ms,
)
from workledger.verification_plane.strategies.base import (
    ExecutorSettings,
    StrategyConfig,
    StrategyResult,
    TestStrategyConfig,
)
from workledger.verification_plane.strategies.common import (
    SPAWN_FAILED,
    TIMEOUT,
    ci_env,
    detect_framework,
    display_command,
    expect_config,
    split_command,
    timeout_ms,
)

logger = structlog.get_logger(__name__)

TEST_FRAMEWORKS: Final[tuple[tuple[str, str], ...]] = (
    ("vitest", "vitest"),
    ("jest", "jest"),
    ("mocha", "mocha"),
    ("pytest", "pytest"),
    ("go test", "go"),
    ("cargo test", "cargo"),
)


def pattern_args(framework: str, pattern: str) -> list[str]:
    if framework == "jest":
        return [f"--testPathPattern={pattern}"]
    if framework == "go":
        return ["-run", pattern]
    return [pattern]


def case_args(framework: str, cases: tuple[str, ...]) -> list[str]:
    joined = "|".join(cases)
    if framework in {"vitest", "jest"}:
        return ["-t", joined]
    if framework == "mocha":
        return ["--grep", joined]
    if framework == "pytest":
        return ["-k", " or ".join(cases)]
    if framework == "go":
        return ["-run", joined]
    return []


class TestStrategyExecutor:
    """Executes ``test`` strategies through the detected test command."""

    __test__ = False
    strategy_type = "test"

    def __init__(
        self,
        capabilities: CapabilityDetector,
        *,
        runner: CommandExecutor | None = None,
        settings: ExecutorSettings | None = None,
    ) -> None:
        self._capabilities = capabilities
        self._runner = runner if runner is not None else LocalSubprocessExecutor()
        self._settings = settings if settings is not None else ExecutorSettings()

    async def execute(
        self,
        workdir: Path,
        config: StrategyConfig,
        record: Record,
    ) -> StrategyResult:
        config = expect_config(config, TestStrategyConfig)
        started_ns = time.monotonic_ns()
        limit_ms = timeout_ms(config, self._settings.test_timeout_ms)

        detected = await self._capabilities.detect(workdir)
        if not detected.test_command:
            return StrategyResult.failure(
                "No test framework detected in project",
                reason="no-test-framework",
            ).with_duration(elapsed_ms(started_ns))

        try:
            argv = split_command(detected.test_command)
        except StrategyConfigError as exc:
            return StrategyResult.failure(str(exc), reason="invalid-command").with_duration(
                elapsed_ms(started_ns)
            )
        framework = (
            config.framework
            or detected.test_framework
            or detect_framework(detected.test_command, TEST_FRAMEWORKS)
        )
        if config.pattern:
            argv.extend(pattern_args(framework, config.pattern))
        if config.cases:
            argv.extend(case_args(framework, config.cases))

        command = display_command(argv)
        logger.debug("test_strategy_started", record_id=record.id, command=command)
        result = await self._runner.run(
            CommandSpec(
                argv=tuple(argv),
                cwd=str(workdir),
                env=ci_env(config),
                timeout_seconds=limit_ms / 1000.0,
            )
        )
        duration = elapsed_ms(started_ns)
        output = result.combined_output

        if result.timed_out:
            return StrategyResult.failure(
                f"Test execution timed out after {limit_ms}ms\n{output}",
                reason=TIMEOUT,
                timeout=limit_ms,
            ).with_duration(duration)
        if result.error is not None:
            return StrategyResult.failure(
                output or result.error, reason=SPAWN_FAILED, command=command
            ).with_duration(duration)

        details = {
            "command": command,
            "framework": framework,
            "pattern": config.pattern,
            "cases": list(config.cases),
            "exitCode": result.exit_code,
        }
        return StrategyResult(
            success=result.exit_code == 0,
            output=output,
            duration_ms=duration,
            details=details,
        )


__all__ = ["TEST_FRAMEWORKS", "TestStrategyExecutor", "case_args", "pattern_args"]
