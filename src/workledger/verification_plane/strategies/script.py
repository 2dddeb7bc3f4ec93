"""
workledger script strategy

File: src/workledger/verification_plane/strategies/script.py

Purpose
- Run a project-local verification script and assert its exit code and output.

Functional requirements
- The script must resolve inside the project root and be a readable file.
- Arguments are screened for destructive and shell-injection patterns before anything runs.
- Non-executable scripts run through an interpreter chosen by suffix.
- Success requires the expected exit code and, when configured, an ``output_pattern``
  match against stdout.
"""

from __future__ import annotations

import os
import re
import sys
import time
from pathlib import Path
from typing import Final

import structlog

from workledger.domain.models import JSONValue, Record
from workledger.errors import SecurityViolationError
from workledger.security.command_guard import check_args, check_command, resolve_inside
from workledger.verification_plane.process import (
    CommandExecutor,
    CommandSpec,
    LocalSubprocessExecutor,
    elapsed_ms,
)
from workledger.verification_plane.strategies.base import (
    ExecutorSettings,
    ScriptStrategyConfig,
    StrategyConfig,
    StrategyResult,
)
from workledger.verification_plane.strategies.common import (
    SECURITY_VIOLATION,
    SPAWN_FAILED,
    TIMEOUT,
    ci_env,
    display_command,
    expect_config,
    timeout_ms,
)

logger = structlog.get_logger(__name__)

_INTERPRETERS: Final[dict[str, tuple[str, ...]]] = {
    ".sh": ("sh",),
    ".bash": ("bash",),
    ".py": (sys.executable,),
}


def script_argv(script_path: Path, args: tuple[str, ...]) -> tuple[str, ...]:
    if os.access(script_path, os.X_OK):
        return (str(script_path), *args)
    interpreter = _INTERPRETERS.get(script_path.suffix.lower(), ("sh",))
    return (*interpreter, str(script_path), *args)


class ScriptStrategyExecutor:
    strategy_type = "script"

    def __init__(
        self,
        *,
        runner: CommandExecutor | None = None,
        settings: ExecutorSettings | None = None,
    ) -> None:
        self._runner = runner if runner is not None else LocalSubprocessExecutor()
        self._settings = settings if settings is not None else ExecutorSettings()

    async def execute(
        self,
        workdir: Path,
        config: StrategyConfig,
        record: Record,
    ) -> StrategyResult:
        config = expect_config(config, ScriptStrategyConfig)
        started_ns = time.monotonic_ns()
        limit_ms = timeout_ms(config, self._settings.script_timeout_ms)

        try:
            script_path = resolve_inside(workdir, config.path, what="script path")
        except SecurityViolationError:
            return StrategyResult.failure(
                f"Script path must be within project root: {config.path}",
                reason=SECURITY_VIOLATION,
                path=config.path,
            ).with_duration(elapsed_ms(started_ns))

        try:
            check_args(config.args)
        except SecurityViolationError as exc:
            logger.warning("script_arguments_rejected", record_id=record.id, error=str(exc))
            return StrategyResult.failure(
                f"Security violation: {exc}",
                reason=SECURITY_VIOLATION,
                args=list(config.args),
            ).with_duration(elapsed_ms(started_ns))

        command = display_command((config.path, *config.args))
        try:
            check_command(command)
        except SecurityViolationError as exc:
            logger.warning("script_command_rejected", record_id=record.id, error=str(exc))
            return StrategyResult.failure(
                f"Security violation: {exc}",
                reason=SECURITY_VIOLATION,
                command=command,
            ).with_duration(elapsed_ms(started_ns))

        cwd = workdir
        if config.cwd is not None:
            try:
                cwd = resolve_inside(workdir, config.cwd, what="working directory")
            except SecurityViolationError:
                return StrategyResult.failure(
                    f"Working directory must be within project root: {config.cwd}",
                    reason=SECURITY_VIOLATION,
                    cwd=config.cwd,
                ).with_duration(elapsed_ms(started_ns))

        if not script_path.is_file() or not os.access(script_path, os.R_OK):
            return StrategyResult.failure(
                f"Script file not found or not readable: {config.path}",
                reason="script-not-found",
                path=config.path,
            ).with_duration(elapsed_ms(started_ns))

        result = await self._runner.run(
            CommandSpec(
                argv=script_argv(script_path, config.args),
                cwd=str(cwd),
                env=ci_env(config),
                timeout_seconds=limit_ms / 1000.0,
            )
        )
        duration = elapsed_ms(started_ns)
        output = result.combined_output

        if result.timed_out:
            return StrategyResult.failure(
                f"Script execution timed out after {limit_ms}ms\n{output}",
                reason=TIMEOUT,
                timeout=limit_ms,
                path=config.path,
            ).with_duration(duration)
        if result.error is not None:
            return StrategyResult.failure(
                f"Script execution failed: {result.error}",
                reason=SPAWN_FAILED,
                path=config.path,
            ).with_duration(duration)

        exit_ok = result.exit_code == config.expected_exit_code
        details: dict[str, JSONValue] = {
            "command": command,
            "path": config.path,
            "exitCode": result.exit_code,
            "expectedExitCode": config.expected_exit_code,
        }
        pattern_ok = True
        if config.output_pattern is not None:
            pattern_ok = re.search(config.output_pattern, result.stdout) is not None
            details["patternMatch"] = pattern_ok

        return StrategyResult(
            success=exit_ok and pattern_ok,
            output=output,
            duration_ms=duration,
            details=details,
        )


__all__ = ["ScriptStrategyExecutor", "script_argv"]
