"""Run the project's end-to-end suite, narrowed by tags or a file pattern."""

from __future__ import annotations

import shlex
import time
from pathlib import Path
from typing import Final

import structlog

from workledger.domain.models import Record
from workledger.errors import StrategyConfigError
from workledger.verification_plane.collaborators import CapabilityDetector, E2ECapability
from workledger.verification_plane.process import (
    CommandExecutor,
    CommandSpec,
    LocalSubprocessExecutor,
    elapsed_ms,
)
from workledger.verification_plane.strategies.base import (
    E2EStrategyConfig,
    ExecutorSettings,
    StrategyConfig,
    StrategyResult,
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

E2E_FRAMEWORKS: Final[tuple[tuple[str, str], ...]] = (
    ("playwright", "playwright"),
    ("cypress", "cypress"),
    ("puppeteer", "puppeteer"),
    ("webdriver", "webdriver"),
    ("selenium", "selenium"),
    ("testcafe", "testcafe"),
)

SMOKE_TAG: Final[str] = "@smoke"


def effective_tags(config: E2EStrategyConfig) -> tuple[str, ...]:
    if config.mode == "smoke" and SMOKE_TAG not in config.tags:
        return (*config.tags, SMOKE_TAG)
    return config.tags


def build_e2e_argv(
    capability: E2ECapability,
    config: E2EStrategyConfig,
    framework: str,
) -> list[str]:
    """Argument vector for the e2e run; a file pattern takes precedence over tag filters."""

    if config.pattern:
        if capability.file_template:
            return split_command(capability.file_template.replace("{files}", shlex.quote(config.pattern)))
        argv = split_command(capability.command)
        if framework == "cypress":
            return [*argv, "--spec", config.pattern]
        return [*argv, config.pattern]

    tags = effective_tags(config)
    if tags:
        tag_pattern = "|".join(tags)
        if capability.grep_template:
            return split_command(capability.grep_template.replace("{tags}", shlex.quote(tag_pattern)))
        argv = split_command(capability.command)
        if framework == "cypress":
            return [*argv, "--spec", tag_pattern]
        return [*argv, "--grep", tag_pattern]

    return split_command(capability.command)


class E2EStrategyExecutor:
    strategy_type = "e2e"

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
        config = expect_config(config, E2EStrategyConfig)
        started_ns = time.monotonic_ns()
        limit_ms = timeout_ms(config, self._settings.e2e_timeout_ms)

        detected = await self._capabilities.detect(workdir)
        capability = detected.e2e
        if capability is None or not capability.command:
            return StrategyResult.failure(
                "No E2E framework detected in project",
                reason="no-e2e-framework",
            ).with_duration(elapsed_ms(started_ns))

        framework = (
            config.framework
            or capability.framework
            or detect_framework(capability.command, E2E_FRAMEWORKS)
        )
        try:
            argv = build_e2e_argv(capability, config, framework)
        except StrategyConfigError as exc:
            return StrategyResult.failure(str(exc), reason="invalid-command").with_duration(
                elapsed_ms(started_ns)
            )

        command = display_command(argv)
        logger.debug("e2e_strategy_started", record_id=record.id, command=command)
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
                f"E2E test execution timed out after {limit_ms}ms\n{output}",
                reason=TIMEOUT,
                timeout=limit_ms,
            ).with_duration(duration)
        if result.error is not None:
            return StrategyResult.failure(
                output or result.error, reason=SPAWN_FAILED, command=command
            ).with_duration(duration)

        return StrategyResult(
            success=result.exit_code == 0,
            output=output,
            duration_ms=duration,
            details={
                "command": command,
                "framework": framework,
                "pattern": config.pattern,
                "tags": list(effective_tags(config)),
                "mode": config.mode,
                "exitCode": result.exit_code,
            },
        )


__all__ = ["E2EStrategyExecutor", "E2E_FRAMEWORKS", "SMOKE_TAG", "build_e2e_argv", "effective_tags"]
