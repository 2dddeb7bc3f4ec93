"""
workledger — unit tests for subprocess-backed strategies

File: tests/unit/verification_plane/test_process_strategies.py

Purpose
- Validate the test, e2e, script, and command executors against a fake command runner.

What this test file should cover
- Argument construction per framework without invoking a shell.
- Security screening happens before anything is spawned.
- Timeouts, spawn failures, and output assertions map to typed failure reasons.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from workledger.verification_plane.collaborators import (
    Capabilities,
    E2ECapability,
    StaticCapabilities,
)
from workledger.verification_plane.strategies import (
    CommandStrategyConfig,
    CommandStrategyExecutor,
    E2EStrategyConfig,
    E2EStrategyExecutor,
    ScriptStrategyConfig,
    ScriptStrategyExecutor,
    TestStrategyConfig,
    TestStrategyExecutor,
)

from . import FakeRunner, command_result, make_record


def _test_executor(runner: FakeRunner, command: str | None, framework: str | None = None) -> TestStrategyExecutor:
    capabilities = StaticCapabilities(Capabilities(test_command=command, test_framework=framework))
    return TestStrategyExecutor(capabilities, runner=runner)


def _e2e_executor(runner: FakeRunner, capability: E2ECapability | None) -> E2EStrategyExecutor:
    return E2EStrategyExecutor(StaticCapabilities(Capabilities(e2e=capability)), runner=runner)


# ---------------------------------------------------------------------------
# test
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_test_strategy_without_framework_fails_without_spawning(tmp_path: Path) -> None:
    runner = FakeRunner()

    result = await _test_executor(runner, None).execute(tmp_path, TestStrategyConfig(), make_record())

    assert result.success is False
    assert result.reason == "no-test-framework"
    assert runner.specs == []


@pytest.mark.asyncio
async def test_test_strategy_builds_jest_arguments(tmp_path: Path) -> None:
    runner = FakeRunner(command_result(0, stdout="2 passed"))
    config = TestStrategyConfig(pattern="auth", cases=("logs in", "rejects"), timeout_ms=5000)

    result = await _test_executor(runner, "npx jest").execute(tmp_path, config, make_record())

    assert result.success is True
    assert runner.last_argv == ("npx", "jest", "--testPathPattern=auth", "-t", "logs in|rejects")
    spec = runner.specs[0]
    assert spec.cwd == str(tmp_path)
    assert spec.env["CI"] == "true"
    assert spec.timeout_seconds == pytest.approx(5.0)
    assert result.details["framework"] == "jest"
    assert result.details["exitCode"] == 0


@pytest.mark.asyncio
async def test_test_strategy_builds_pytest_keyword_expression(tmp_path: Path) -> None:
    runner = FakeRunner()
    config = TestStrategyConfig(cases=("login", "logout"))

    await _test_executor(runner, "python -m pytest -q").execute(tmp_path, config, make_record())

    assert runner.last_argv[-2:] == ("-k", "login or logout")
    assert runner.specs[0].timeout_seconds == pytest.approx(60.0)


@pytest.mark.asyncio
async def test_test_strategy_nonzero_exit_fails(tmp_path: Path) -> None:
    runner = FakeRunner(command_result(1, stdout="1 failed", stderr="AssertionError"))

    result = await _test_executor(runner, "pytest").execute(tmp_path, TestStrategyConfig(), make_record())

    assert result.success is False
    assert result.details["exitCode"] == 1
    assert result.output == "1 failed\nAssertionError"


@pytest.mark.asyncio
async def test_test_strategy_timeout_reason(tmp_path: Path) -> None:
    runner = FakeRunner(command_result(timed_out=True, error="command timed out after 1.000s"))
    config = TestStrategyConfig(timeout_ms=1000)

    result = await _test_executor(runner, "pytest").execute(tmp_path, config, make_record())

    assert result.success is False
    assert result.reason == "timeout"
    assert result.details["timeout"] == 1000


@pytest.mark.asyncio
async def test_test_strategy_spawn_failure_reason(tmp_path: Path) -> None:
    runner = FakeRunner(command_result(None, error="No such file or directory"))

    result = await _test_executor(runner, "missing-tool").execute(tmp_path, TestStrategyConfig(), make_record())

    assert result.reason == "spawn-failed"
    assert "No such file" in result.output


# ---------------------------------------------------------------------------
# e2e
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_e2e_strategy_without_framework(tmp_path: Path) -> None:
    runner = FakeRunner()

    result = await _e2e_executor(runner, None).execute(tmp_path, E2EStrategyConfig(), make_record())

    assert result.reason == "no-e2e-framework"
    assert runner.specs == []


@pytest.mark.asyncio
async def test_e2e_smoke_mode_adds_smoke_tag_to_grep(tmp_path: Path) -> None:
    runner = FakeRunner()
    config = E2EStrategyConfig(mode="smoke", tags=("@auth",))

    result = await _e2e_executor(runner, E2ECapability(command="npx playwright test")).execute(
        tmp_path, config, make_record()
    )

    assert result.success is True
    assert runner.last_argv == ("npx", "playwright", "test", "--grep", "@auth|@smoke")
    assert result.details["tags"] == ["@auth", "@smoke"]
    assert result.details["framework"] == "playwright"


@pytest.mark.asyncio
async def test_e2e_cypress_pattern_uses_spec_flag(tmp_path: Path) -> None:
    runner = FakeRunner()
    config = E2EStrategyConfig(pattern="cypress/e2e/login.cy.ts", tags=("@ignored",))

    await _e2e_executor(runner, E2ECapability(command="npx cypress run")).execute(
        tmp_path, config, make_record()
    )

    assert runner.last_argv == ("npx", "cypress", "run", "--spec", "cypress/e2e/login.cy.ts")


@pytest.mark.asyncio
async def test_e2e_grep_template_quotes_tags(tmp_path: Path) -> None:
    runner = FakeRunner()
    capability = E2ECapability(
        command="npx playwright test",
        grep_template="npx playwright test --grep {tags}",
    )

    await _e2e_executor(runner, capability).execute(
        tmp_path, E2EStrategyConfig(tags=("@a", "@b")), make_record()
    )

    assert runner.last_argv == ("npx", "playwright", "test", "--grep", "@a|@b")


# ---------------------------------------------------------------------------
# script
# ---------------------------------------------------------------------------


def _write_script(root: Path, name: str, *, executable: bool = False) -> Path:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\necho OK\n", encoding="utf-8")
    if executable:
        path.chmod(path.stat().st_mode | stat.S_IXUSR)
    return path


@pytest.mark.asyncio
async def test_script_outside_root_is_security_violation(tmp_path: Path) -> None:
    runner = FakeRunner()

    result = await ScriptStrategyExecutor(runner=runner).execute(
        tmp_path, ScriptStrategyConfig(path="../outside.sh"), make_record()
    )

    assert result.success is False
    assert result.reason == "security-violation"
    assert runner.specs == []


@pytest.mark.asyncio
async def test_script_injection_argument_is_security_violation(tmp_path: Path) -> None:
    _write_script(tmp_path, "verify.sh")
    runner = FakeRunner()

    result = await ScriptStrategyExecutor(runner=runner).execute(
        tmp_path,
        ScriptStrategyConfig(path="verify.sh", args=("--user", "$(whoami)")),
        make_record(),
    )

    assert result.reason == "security-violation"
    assert runner.specs == []


@pytest.mark.asyncio
async def test_script_missing_file(tmp_path: Path) -> None:
    result = await ScriptStrategyExecutor(runner=FakeRunner()).execute(
        tmp_path, ScriptStrategyConfig(path="scripts/none.sh"), make_record()
    )

    assert result.reason == "script-not-found"


@pytest.mark.asyncio
async def test_script_runs_through_interpreter_and_matches_output(tmp_path: Path) -> None:
    script = _write_script(tmp_path, "scripts/verify.sh")
    runner = FakeRunner(command_result(0, stdout="health OK\n"))
    config = ScriptStrategyConfig(path="scripts/verify.sh", args=("--fast",), output_pattern=r"OK")

    result = await ScriptStrategyExecutor(runner=runner).execute(tmp_path, config, make_record())

    assert result.success is True
    assert result.details["patternMatch"] is True
    if not os.access(script, os.X_OK):
        assert runner.last_argv == ("sh", str(tmp_path / "scripts" / "verify.sh"), "--fast")


@pytest.mark.asyncio
async def test_script_executable_runs_directly(tmp_path: Path) -> None:
    _write_script(tmp_path, "verify.sh", executable=True)
    runner = FakeRunner()

    await ScriptStrategyExecutor(runner=runner).execute(
        tmp_path, ScriptStrategyConfig(path="verify.sh"), make_record()
    )

    assert runner.last_argv == (str(tmp_path / "verify.sh"),)


@pytest.mark.asyncio
async def test_script_exit_code_and_pattern_mismatch(tmp_path: Path) -> None:
    _write_script(tmp_path, "verify.sh")
    runner = FakeRunner(command_result(0, stdout="nothing to see"))
    config = ScriptStrategyConfig(path="verify.sh", expected_exit_code=3, output_pattern="OK")

    result = await ScriptStrategyExecutor(runner=runner).execute(tmp_path, config, make_record())

    assert result.success is False
    assert result.details["exitCode"] == 0
    assert result.details["expectedExitCode"] == 3
    assert result.details["patternMatch"] is False


# ---------------------------------------------------------------------------
# command
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_command_runs_argv_without_shell(tmp_path: Path) -> None:
    runner = FakeRunner(command_result(0, stdout="hello world"))
    config = CommandStrategyConfig(command="echo 'hello world'", args=("--verbose",))

    result = await CommandStrategyExecutor(runner=runner).execute(tmp_path, config, make_record())

    assert result.success is True
    assert runner.last_argv == ("echo", "hello world", "--verbose")
    assert runner.specs[0].cwd == str(tmp_path)
    assert result.output.startswith("Exit code: 0\n\nSTDOUT:\nhello world")


@pytest.mark.asyncio
async def test_command_dangerous_pattern_is_rejected(tmp_path: Path) -> None:
    runner = FakeRunner()

    result = await CommandStrategyExecutor(runner=runner).execute(
        tmp_path, CommandStrategyConfig(command="rm -rf /"), make_record()
    )

    assert result.reason == "security-violation"
    assert runner.specs == []


@pytest.mark.asyncio
async def test_command_cwd_escape_is_rejected(tmp_path: Path) -> None:
    runner = FakeRunner()

    result = await CommandStrategyExecutor(runner=runner).execute(
        tmp_path, CommandStrategyConfig(command="ls", cwd="../elsewhere"), make_record()
    )

    assert result.reason == "security-violation"
    assert result.details["cwd"] == "../elsewhere"
    assert runner.specs == []


@pytest.mark.asyncio
async def test_command_accepts_any_listed_exit_code(tmp_path: Path) -> None:
    runner = FakeRunner(command_result(1, stdout="warnings only"))
    config = CommandStrategyConfig(command="lint", expected_exit_code=(0, 1))

    result = await CommandStrategyExecutor(runner=runner).execute(tmp_path, config, make_record())

    assert result.success is True
    assert result.details["exitCodeMatch"] is True


@pytest.mark.asyncio
async def test_command_stream_patterns_and_negative_patterns(tmp_path: Path) -> None:
    runner = FakeRunner(command_result(0, stdout="build ok", stderr="FATAL: disk full"))
    config = CommandStrategyConfig(
        command="make build",
        stdout_pattern="build ok",
        stderr_pattern="^$",
        not_patterns=("FATAL",),
    )

    result = await CommandStrategyExecutor(runner=runner).execute(tmp_path, config, make_record())

    assert result.success is False
    assert result.details["stdoutPatternMatch"] is True
    assert result.details["stderrPatternMatch"] is False
    assert result.details["failedNotPattern"] == "FATAL"
    assert "Negative assertion failed: pattern 'FATAL' was found" in result.output
    assert "STDERR:\nFATAL: disk full" in result.output


@pytest.mark.asyncio
async def test_command_unparseable_command(tmp_path: Path) -> None:
    result = await CommandStrategyExecutor(runner=FakeRunner()).execute(
        tmp_path, CommandStrategyConfig(command="echo 'unterminated"), make_record()
    )

    assert result.reason == "invalid-command"
