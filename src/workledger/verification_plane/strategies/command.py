"""Run an executable directly (no shell) and assert exit code, stream patterns, and negative patterns."""

from __future__ import annotations

import re
import time
from pathlib import Path

import structlog

from workledger.domain.models import JSONValue, Record
from workledger.errors import SecurityViolationError, StrategyConfigError
from workledger.security.command_guard import check_command, resolve_inside
from workledger.verification_plane.process import (
    CommandExecutor,
    CommandResult,
    CommandSpec,
    LocalSubprocessExecutor,
    elapsed_ms,
    truncate_text,
)
from workledger.verification_plane.strategies.base import (
    CommandStrategyConfig,
    ExecutorSettings,
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
    split_command,
    timeout_ms,
)

logger = structlog.get_logger(__name__)


class CommandStrategyExecutor:
    strategy_type = "command"

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
        config = expect_config(config, CommandStrategyConfig)
        started_ns = time.monotonic_ns()
        limit_ms = timeout_ms(config, self._settings.command_timeout_ms)

        cwd_text = config.cwd or "."
        try:
            cwd = resolve_inside(workdir, cwd_text, what="working directory")
        except SecurityViolationError:
            return StrategyResult.failure(
                f"Working directory must be within project root: {cwd_text}",
                reason=SECURITY_VIOLATION,
                cwd=cwd_text,
            ).with_duration(elapsed_ms(started_ns))

        try:
            argv = [*split_command(config.command), *config.args]
        except StrategyConfigError as exc:
            return StrategyResult.failure(str(exc), reason="invalid-command").with_duration(
                elapsed_ms(started_ns)
            )

        command = display_command(argv)
        try:
            check_command(command)
        except SecurityViolationError as exc:
            logger.warning("command_rejected", record_id=record.id, error=str(exc))
            return StrategyResult.failure(
                f"Security violation: {exc}",
                reason=SECURITY_VIOLATION,
                command=command,
            ).with_duration(elapsed_ms(started_ns))

        result = await self._runner.run(
            CommandSpec(
                argv=tuple(argv),
                cwd=str(cwd),
                env=ci_env(config),
                timeout_seconds=limit_ms / 1000.0,
            )
        )
        duration = elapsed_ms(started_ns)

        if result.timed_out:
            return StrategyResult.failure(
                f"Command execution timed out after {limit_ms}ms\n{result.combined_output}",
                reason=TIMEOUT,
                timeout=limit_ms,
                command=command,
            ).with_duration(duration)
        if result.error is not None:
            return StrategyResult.failure(
                f"Command execution failed: {result.error}",
                reason=SPAWN_FAILED,
                command=command,
            ).with_duration(duration)

        success, output, details = self._evaluate(config, result, command, cwd_text)
        return StrategyResult(success=success, output=output, duration_ms=duration, details=details)

    def _evaluate(
        self,
        config: CommandStrategyConfig,
        result: CommandResult,
        command: str,
        cwd_text: str,
    ) -> tuple[bool, str, dict[str, JSONValue]]:
        messages: list[str] = []
        details: dict[str, JSONValue] = {
            "command": command,
            "cwd": cwd_text,
            "exitCode": result.exit_code,
            "expectedExitCode": list(config.expected_exit_code),
        }

        exit_ok = result.exit_code in config.expected_exit_code
        details["exitCodeMatch"] = exit_ok
        if not exit_ok:
            messages.append("Exit code did not match expected value")

        success = exit_ok
        if config.stdout_pattern is not None:
            matched = re.search(config.stdout_pattern, result.stdout) is not None
            details["stdoutPatternMatch"] = matched
            if not matched:
                success = False
                messages.append("Stdout did not match expected pattern")

        if config.stderr_pattern is not None:
            matched = re.search(config.stderr_pattern, result.stderr) is not None
            details["stderrPatternMatch"] = matched
            if not matched:
                success = False
                messages.append("Stderr did not match expected pattern")

        if config.not_patterns:
            combined = f"{result.stdout}\n{result.stderr}"
            failed = next((p for p in config.not_patterns if re.search(p, combined)), None)
            details["notPatternsFailed"] = failed is not None
            if failed is not None:
                success = False
                details["failedNotPattern"] = failed
                messages.append(f"Negative assertion failed: pattern '{failed}' was found")

        limit = self._settings.max_output_chars
        lines = [f"Exit code: {result.exit_code}", *messages, "", "STDOUT:", truncate_text(result.stdout, limit)]
        if result.stderr:
            lines.extend(["", "STDERR:", truncate_text(result.stderr, limit)])
        return success, "\n".join(lines), details


__all__ = ["CommandStrategyExecutor"]
