"""
workledger — unit tests for strategy configuration parsing and the registry

File: tests/unit/verification_plane/test_strategy_config.py

Purpose
- Validate typed strategy configs built from camelCase record metadata and registry dispatch.

What this test file should cover
- Common fields and per-variant defaults.
- Rejection of unknown types, bad regexes, bad methods, and malformed values.
- Registry rejects unknown or duplicate registrations and reports unregistered tags.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from workledger.errors import StrategyConfigError, UnregisteredStrategyError, ValidationFailure
from workledger.verification_plane.collaborators import Capabilities, StaticCapabilities
from workledger.verification_plane.strategies import (
    AiStrategyConfig,
    CommandStrategyConfig,
    CompositeStrategyConfig,
    E2EStrategyConfig,
    FileCheck,
    FileStrategyConfig,
    HttpStrategyConfig,
    ScriptStrategyConfig,
    StrategyRegistry,
    StrategyResult,
    TestStrategyConfig,
    build_default_registry,
    parse_strategy_config,
    parse_strategy_configs,
)

from . import FakeAgent, StubExecutor, make_record


def test_common_fields_accept_camel_case() -> None:
    config = parse_strategy_config(
        {
            "type": "test",
            "required": False,
            "timeout": 5000,
            "retries": 2,
            "env": {"NODE_ENV": "test", "WORKERS": 4},
            "description": "unit suite",
            "pattern": "auth",
            "cases": ["logs in", "rejects bad password"],
        }
    )

    assert isinstance(config, TestStrategyConfig)
    assert config.required is False
    assert config.timeout_ms == 5000
    assert config.retries == 2
    assert config.env == {"NODE_ENV": "test", "WORKERS": "4"}
    assert config.cases == ("logs in", "rejects bad password")


def test_defaults_for_minimal_configs() -> None:
    test_config = parse_strategy_config({"type": "test"})
    e2e_config = parse_strategy_config({"type": "e2e"})
    ai_config = parse_strategy_config({"type": "ai"})

    assert test_config.required is True
    assert test_config.timeout_ms is None
    assert test_config.retries == 0
    assert isinstance(e2e_config, E2EStrategyConfig)
    assert e2e_config.mode == "full"
    assert isinstance(ai_config, AiStrategyConfig)
    assert ai_config.mode == "autonomous"
    assert ai_config.min_confidence == pytest.approx(0.7)


def test_script_and_command_fields() -> None:
    script = parse_strategy_config(
        {
            "type": "script",
            "path": "./scripts/check.sh",
            "args": ["--fast", 3],
            "expectedExitCode": 2,
            "outputPattern": "OK",
        }
    )
    command = parse_strategy_config(
        {
            "type": "command",
            "command": "npm run lint",
            "expectedExitCode": [0, 1],
            "expectedOutputPattern": "clean",
            "notPatterns": ["error", "FATAL"],
        }
    )

    assert isinstance(script, ScriptStrategyConfig)
    assert script.args == ("--fast", "3")
    assert script.expected_exit_code == 2
    assert script.output_pattern == "OK"
    assert isinstance(command, CommandStrategyConfig)
    assert command.expected_exit_code == (0, 1)
    assert command.stdout_pattern == "clean"
    assert command.not_patterns == ("error", "FATAL")


def test_http_fields_and_json_assertions() -> None:
    config = parse_strategy_config(
        {
            "type": "http",
            "url": "http://localhost:3000/health",
            "method": "post",
            "headers": {"Authorization": "Bearer ${TOKEN}"},
            "body": {"ping": True},
            "expectedStatus": [200, 204],
            "jsonAssertions": [{"path": "status", "expected": "ok"}],
        }
    )

    assert isinstance(config, HttpStrategyConfig)
    assert config.method == "POST"
    assert config.expected_status == (200, 204)
    assert config.json_assertions[0].path == "status"
    assert config.json_assertions[0].expected == "ok"
    assert config.allowed_hosts is None


def test_file_config_merges_legacy_path_and_checks() -> None:
    config = parse_strategy_config(
        {
            "type": "file",
            "path": "dist/app.js",
            "paths": ["dist/*.css", "dist/app.js"],
            "notEmpty": True,
            "checks": [{"containsPattern": "export", "sizeConstraint": {"max": 1024}}],
        }
    )

    assert isinstance(config, FileStrategyConfig)
    assert config.paths == ("dist/app.js", "dist/*.css")
    assert config.checks[0] == FileCheck(not_empty=True)
    assert config.checks[1].contains_pattern == "export"
    assert config.checks[1].size_max == 1024


def test_file_config_defaults_to_existence_check() -> None:
    config = parse_strategy_config({"type": "file", "path": "README.md"})

    assert isinstance(config, FileStrategyConfig)
    assert config.checks == (FileCheck(exists=True),)


def test_composite_parses_nested_children_and_logic_alias() -> None:
    config = parse_strategy_config(
        {
            "type": "composite",
            "logic": "OR",
            "strategies": [
                {"type": "file", "path": "a.txt"},
                {"type": "composite", "strategies": [{"type": "manual"}]},
            ],
        }
    )

    assert isinstance(config, CompositeStrategyConfig)
    assert config.operator == "or"
    assert [child.type for child in config.strategies] == ["file", "composite"]


@pytest.mark.parametrize(
    ("data", "message"),
    [
        ({"type": "teleport"}, "unknown strategy type"),
        ({"type": "script"}, "path"),
        ({"type": "command", "command": "ls", "stdoutPattern": "([unclosed"}, "invalid regular expression"),
        ({"type": "http", "url": "http://localhost", "method": "BREW"}, "unsupported HTTP method"),
        ({"type": "test", "retries": -1}, "retries"),
        ({"type": "test", "required": "yes"}, "required"),
        ({"type": "ai", "minConfidence": 1.5}, "between 0 and 1"),
        ({"type": "e2e", "mode": "nightly"}, "mode"),
        ({"type": "file", "path": "a", "permissions": "rwx"}, "octal"),
        ({"type": "http", "url": "http://x", "jsonAssertions": [{"path": "a"}]}, "expected"),
        ({"type": "composite", "operator": "xor"}, "operator"),
    ],
)
def test_invalid_configs_are_rejected(data: dict[str, object], message: str) -> None:
    with pytest.raises(StrategyConfigError, match=message):
        parse_strategy_config(data)


def test_parse_strategy_configs_reports_index_in_path() -> None:
    with pytest.raises(StrategyConfigError, match=r"verificationStrategies\[1\]\.type"):
        parse_strategy_configs([{"type": "test"}, {"type": "nope"}])


def test_registry_rejects_unknown_and_duplicate_types() -> None:
    registry = StrategyRegistry()
    registry.register(StubExecutor("test"))

    with pytest.raises(ValidationFailure, match="already registered"):
        registry.register(StubExecutor("test"))
    with pytest.raises(ValidationFailure, match="unknown tag"):
        registry.register(StubExecutor("telepathy"))


@pytest.mark.asyncio
async def test_registry_dispatches_by_type_and_reports_unregistered(tmp_path: Path) -> None:
    registry = StrategyRegistry()
    stub = StubExecutor("file", StrategyResult(success=True, output="fine"))
    registry.register(stub)

    result = await registry.execute(tmp_path, FileStrategyConfig(paths=("a",)), make_record())

    assert result.output == "fine"
    assert stub.calls == 1
    assert registry.has("file") is True
    with pytest.raises(UnregisteredStrategyError) as excinfo:
        registry.get("ai")
    assert excinfo.value.registered == ("file",)


def test_default_registry_covers_every_strategy_type() -> None:
    registry = build_default_registry(
        capabilities=StaticCapabilities(Capabilities()),
        agent=FakeAgent(),
    )

    assert registry.registered_types() == (
        "ai",
        "command",
        "composite",
        "e2e",
        "file",
        "http",
        "manual",
        "script",
        "test",
    )


def test_strategy_result_failure_and_serialization() -> None:
    result = StrategyResult.failure("nope", reason="timeout", timeout=100).with_duration(12)

    assert result.reason == "timeout"
    assert result.to_dict() == {
        "success": False,
        "output": "nope",
        "durationMs": 12,
        "details": {"reason": "timeout", "timeout": 100},
    }
