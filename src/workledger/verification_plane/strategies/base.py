"""
workledger verification strategy contract

File: src/workledger/verification_plane/strategies/base.py

Purpose
- Typed configuration for the nine verification strategy variants, the uniform
  ``StrategyResult`` outcome, and the registry that dispatches a config to its executor.

Functional requirements
- ``parse_strategy_config`` accepts camelCase (on-disk) or snake_case keys and raises
  ``StrategyConfigError`` for malformed data, including invalid regular expressions.
- Every variant carries ``required``, ``timeout_ms``, ``retries``, ``env`` and ``description``.
- The registry rejects unknown type tags and duplicate registrations at registration time,
  and raises ``UnregisteredStrategyError`` when asked to execute an unregistered tag.
- Executors never mutate the record they verify.

Non-functional requirements
- Results are JSON-compatible so they can be persisted in verification artifacts.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import ClassVar, Final, NoReturn, Protocol, runtime_checkable

from workledger.constants import (
    DEFAULT_AI_TIMEOUT_MS,
    DEFAULT_ALLOWED_HOSTS,
    DEFAULT_COMMAND_TIMEOUT_MS,
    DEFAULT_E2E_TIMEOUT_MS,
    DEFAULT_HTTP_TIMEOUT_MS,
    DEFAULT_MIN_CONFIDENCE,
    DEFAULT_SCRIPT_TIMEOUT_MS,
    DEFAULT_TEST_TIMEOUT_MS,
    MAX_STREAM_OUTPUT_CHARS,
    STRATEGY_TYPES,
)
from workledger.domain.models import JSONValue, Record
from workledger.errors import StrategyConfigError, UnregisteredStrategyError, ValidationFailure
from workledger.utils.backoff import RetryPolicy

_CAMEL_BOUNDARY: Final = re.compile(r"(?<=[a-z0-9])([A-Z])")

HTTP_METHODS: Final[tuple[str, ...]] = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")
E2E_MODES: Final[tuple[str, ...]] = ("full", "smoke")
AI_MODES: Final[tuple[str, ...]] = ("autonomous", "diff")
COMPOSITE_OPERATORS: Final[tuple[str, ...]] = ("and", "or")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StrategyResult:
    """Outcome of one strategy execution."""

    success: bool
    output: str = ""
    duration_ms: int = 0
    details: dict[str, JSONValue] = field(default_factory=dict)

    @property
    def reason(self) -> str | None:
        value = self.details.get("reason")
        return value if isinstance(value, str) else None

    def with_duration(self, duration_ms: int) -> StrategyResult:
        return StrategyResult(
            success=self.success,
            output=self.output,
            duration_ms=duration_ms,
            details=dict(self.details),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "success": self.success,
            "output": self.output,
            "durationMs": self.duration_ms,
            "details": dict(self.details),
        }

    @classmethod
    def failure(cls, output: str, *, reason: str, **details: JSONValue) -> StrategyResult:
        payload: dict[str, JSONValue] = {"reason": reason}
        payload.update(details)
        return cls(success=False, output=output, details=payload)


# ---------------------------------------------------------------------------
# Configs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True, kw_only=True)
class BaseStrategyConfig:
    type: ClassVar[str]

    required: bool = True
    timeout_ms: int | None = None
    retries: int = 0
    env: Mapping[str, str] = field(default_factory=dict)
    description: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class TestStrategyConfig(BaseStrategyConfig):
    type: ClassVar[str] = "test"
    __test__ = False

    pattern: str | None = None
    cases: tuple[str, ...] = ()
    framework: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class E2EStrategyConfig(BaseStrategyConfig):
    type: ClassVar[str] = "e2e"

    pattern: str | None = None
    tags: tuple[str, ...] = ()
    mode: str = "full"
    framework: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class ScriptStrategyConfig(BaseStrategyConfig):
    type: ClassVar[str] = "script"

    path: str
    args: tuple[str, ...] = ()
    cwd: str | None = None
    expected_exit_code: int = 0
    output_pattern: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class CommandStrategyConfig(BaseStrategyConfig):
    type: ClassVar[str] = "command"

    command: str
    args: tuple[str, ...] = ()
    cwd: str | None = None
    expected_exit_code: tuple[int, ...] = (0,)
    stdout_pattern: str | None = None
    stderr_pattern: str | None = None
    not_patterns: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class JsonAssertion:
    path: str
    expected: JSONValue


@dataclass(frozen=True, slots=True, kw_only=True)
class HttpStrategyConfig(BaseStrategyConfig):
    type: ClassVar[str] = "http"

    url: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str | dict[str, JSONValue] | list[JSONValue] | None = None
    expected_status: tuple[int, ...] = (200,)
    expected_body_pattern: str | None = None
    json_assertions: tuple[JsonAssertion, ...] = ()
    allowed_hosts: tuple[str, ...] | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class FileCheck:
    """One assertion applied to every matched file; unset fields are not checked."""

    exists: bool | None = None
    contains_pattern: str | None = None
    matches_content: str | None = None
    size_min: int | None = None
    size_max: int | None = None
    not_empty: bool = False
    permissions: str | None = None

    @property
    def is_empty(self) -> bool:
        return (
            self.exists is None
            and self.contains_pattern is None
            and self.matches_content is None
            and self.size_min is None
            and self.size_max is None
            and not self.not_empty
            and self.permissions is None
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class FileStrategyConfig(BaseStrategyConfig):
    type: ClassVar[str] = "file"

    paths: tuple[str, ...] = ()
    checks: tuple[FileCheck, ...] = ()


@dataclass(frozen=True, slots=True, kw_only=True)
class ManualStrategyConfig(BaseStrategyConfig):
    type: ClassVar[str] = "manual"

    instructions: str | None = None
    checklist: tuple[str, ...] = ()
    reviewer: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class AiStrategyConfig(BaseStrategyConfig):
    type: ClassVar[str] = "ai"

    mode: str = "autonomous"
    model: str | None = None
    min_confidence: float = DEFAULT_MIN_CONFIDENCE
    custom_prompt: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class CompositeStrategyConfig(BaseStrategyConfig):
    type: ClassVar[str] = "composite"

    operator: str = "and"
    strategies: tuple[StrategyConfig, ...] = ()


StrategyConfig = (
    TestStrategyConfig
    | E2EStrategyConfig
    | ScriptStrategyConfig
    | CommandStrategyConfig
    | HttpStrategyConfig
    | FileStrategyConfig
    | ManualStrategyConfig
    | AiStrategyConfig
    | CompositeStrategyConfig
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def normalize_keys(mapping: Mapping[str, object]) -> dict[str, object]:
    """Translate camelCase keys to snake_case; snake_case keys pass through."""

    return {_CAMEL_BOUNDARY.sub(r"_\1", str(key)).lower(): value for key, value in mapping.items()}


def parse_strategy_config(mapping: Mapping[str, object], path: str = "strategy") -> StrategyConfig:
    """Build a typed config from declarative data."""

    if not isinstance(mapping, Mapping):
        _fail(path, f"expected object, got {type(mapping).__name__}")
    data = normalize_keys(mapping)
    strategy_type = data.get("type")
    if strategy_type not in STRATEGY_TYPES:
        _fail(f"{path}.type", f"unknown strategy type {strategy_type!r}; expected one of: {', '.join(STRATEGY_TYPES)}")
    parser = _PARSERS[str(strategy_type)]
    return parser(data, path)


def parse_strategy_configs(
    items: Sequence[Mapping[str, object]],
    path: str = "verificationStrategies",
) -> tuple[StrategyConfig, ...]:
    return tuple(parse_strategy_config(item, f"{path}[{index}]") for index, item in enumerate(items))


def _common(data: Mapping[str, object], path: str) -> dict[str, object]:
    timeout = data.get("timeout", data.get("timeout_ms"))
    return {
        "required": _as_bool(data.get("required", True), f"{path}.required"),
        "timeout_ms": _as_positive_int_or_none(timeout, f"{path}.timeout"),
        "retries": _as_int(data.get("retries", 0), f"{path}.retries", minimum=0),
        "env": _as_str_mapping(data.get("env", {}), f"{path}.env"),
        "description": _as_optional_str(data.get("description"), f"{path}.description"),
    }


def _parse_test(data: Mapping[str, object], path: str) -> TestStrategyConfig:
    return TestStrategyConfig(
        **_common(data, path),
        pattern=_as_optional_str(data.get("pattern"), f"{path}.pattern"),
        cases=_as_str_tuple(data.get("cases", ()), f"{path}.cases"),
        framework=_as_optional_str(data.get("framework"), f"{path}.framework"),
    )


def _parse_e2e(data: Mapping[str, object], path: str) -> E2EStrategyConfig:
    return E2EStrategyConfig(
        **_common(data, path),
        pattern=_as_optional_str(data.get("pattern"), f"{path}.pattern"),
        tags=_as_str_tuple(data.get("tags", ()), f"{path}.tags"),
        mode=_as_choice(data.get("mode", "full"), E2E_MODES, f"{path}.mode"),
        framework=_as_optional_str(data.get("framework"), f"{path}.framework"),
    )


def _parse_script(data: Mapping[str, object], path: str) -> ScriptStrategyConfig:
    return ScriptStrategyConfig(
        **_common(data, path),
        path=_as_str(data.get("path"), f"{path}.path"),
        args=_as_arg_tuple(data.get("args", ()), f"{path}.args"),
        cwd=_as_optional_str(data.get("cwd"), f"{path}.cwd"),
        expected_exit_code=_as_int(data.get("expected_exit_code", 0), f"{path}.expectedExitCode"),
        output_pattern=_as_regex_or_none(data.get("output_pattern"), f"{path}.outputPattern"),
    )


def _parse_command(data: Mapping[str, object], path: str) -> CommandStrategyConfig:
    stdout_pattern = data.get("stdout_pattern", data.get("expected_output_pattern"))
    return CommandStrategyConfig(
        **_common(data, path),
        command=_as_str(data.get("command"), f"{path}.command"),
        args=_as_arg_tuple(data.get("args", ()), f"{path}.args"),
        cwd=_as_optional_str(data.get("cwd"), f"{path}.cwd"),
        expected_exit_code=_as_exit_codes(
            data.get("expected_exit_code", 0), f"{path}.expectedExitCode"
        ),
        stdout_pattern=_as_regex_or_none(stdout_pattern, f"{path}.stdoutPattern"),
        stderr_pattern=_as_regex_or_none(data.get("stderr_pattern"), f"{path}.stderrPattern"),
        not_patterns=tuple(
            _as_regex(item, f"{path}.notPatterns[{index}]")
            for index, item in enumerate(_as_str_tuple(data.get("not_patterns", ()), f"{path}.notPatterns"))
        ),
    )


def _parse_http(data: Mapping[str, object], path: str) -> HttpStrategyConfig:
    method = _as_str(data.get("method", "GET"), f"{path}.method").upper()
    if method not in HTTP_METHODS:
        _fail(f"{path}.method", f"unsupported HTTP method {method!r}")
    body = data.get("body")
    if body is not None and not isinstance(body, (str, dict, list)):
        _fail(f"{path}.body", f"expected string or JSON object, got {type(body).__name__}")
    allowed = data.get("allowed_hosts")
    return HttpStrategyConfig(
        **_common(data, path),
        url=_as_str(data.get("url"), f"{path}.url"),
        method=method,
        headers=_as_str_mapping(data.get("headers", {}), f"{path}.headers"),
        body=body,  # type: ignore[arg-type]
        expected_status=_as_exit_codes(data.get("expected_status", 200), f"{path}.expectedStatus"),
        expected_body_pattern=_as_regex_or_none(
            data.get("expected_body_pattern"), f"{path}.expectedBodyPattern"
        ),
        json_assertions=_as_json_assertions(data.get("json_assertions", ()), f"{path}.jsonAssertions"),
        allowed_hosts=None if allowed is None else _as_str_tuple(allowed, f"{path}.allowedHosts"),
    )


def _parse_file(data: Mapping[str, object], path: str) -> FileStrategyConfig:
    paths: list[str] = []
    single = _as_optional_str(data.get("path"), f"{path}.path")
    if single is not None:
        paths.append(single)
    for item in _as_str_tuple(data.get("paths", ()), f"{path}.paths"):
        if item not in paths:
            paths.append(item)

    checks: list[FileCheck] = []
    legacy = _as_file_check(data, f"{path}")
    if not legacy.is_empty:
        checks.append(legacy)
    raw_checks = data.get("checks", ())
    if not isinstance(raw_checks, Sequence) or isinstance(raw_checks, (str, bytes)):
        _fail(f"{path}.checks", "expected list")
    for index, item in enumerate(raw_checks):
        if not isinstance(item, Mapping):
            _fail(f"{path}.checks[{index}]", "expected object")
        checks.append(_as_file_check(normalize_keys(item), f"{path}.checks[{index}]"))
    if not checks:
        checks.append(FileCheck(exists=True))

    return FileStrategyConfig(**_common(data, path), paths=tuple(paths), checks=tuple(checks))


def _parse_manual(data: Mapping[str, object], path: str) -> ManualStrategyConfig:
    return ManualStrategyConfig(
        **_common(data, path),
        instructions=_as_optional_str(data.get("instructions"), f"{path}.instructions"),
        checklist=_as_str_tuple(data.get("checklist", ()), f"{path}.checklist"),
        reviewer=_as_optional_str(data.get("reviewer"), f"{path}.reviewer"),
    )


def _parse_ai(data: Mapping[str, object], path: str) -> AiStrategyConfig:
    confidence = data.get("min_confidence", DEFAULT_MIN_CONFIDENCE)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        _fail(f"{path}.minConfidence", "expected number")
    if not 0.0 <= float(confidence) <= 1.0:
        _fail(f"{path}.minConfidence", "must be between 0 and 1")
    return AiStrategyConfig(
        **_common(data, path),
        mode=_as_choice(data.get("mode", "autonomous"), AI_MODES, f"{path}.mode"),
        model=_as_optional_str(data.get("model"), f"{path}.model"),
        min_confidence=float(confidence),
        custom_prompt=_as_optional_str(data.get("custom_prompt"), f"{path}.customPrompt"),
    )


def _parse_composite(data: Mapping[str, object], path: str) -> CompositeStrategyConfig:
    operator = data.get("operator", data.get("logic", "and"))
    raw_children = data.get("strategies", ())
    if not isinstance(raw_children, Sequence) or isinstance(raw_children, (str, bytes)):
        _fail(f"{path}.strategies", "expected list")
    children = tuple(
        parse_strategy_config(item, f"{path}.strategies[{index}]")  # type: ignore[arg-type]
        for index, item in enumerate(raw_children)
    )
    return CompositeStrategyConfig(
        **_common(data, path),
        operator=_as_choice(operator, COMPOSITE_OPERATORS, f"{path}.operator"),
        strategies=children,
    )


_PARSERS: Final = {
    "test": _parse_test,
    "e2e": _parse_e2e,
    "script": _parse_script,
    "command": _parse_command,
    "http": _parse_http,
    "file": _parse_file,
    "manual": _parse_manual,
    "ai": _parse_ai,
    "composite": _parse_composite,
}


# ---------------------------------------------------------------------------
# Executor contract and registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExecutorSettings:
    """Per-run tunables shared by every executor."""

    test_timeout_ms: int = DEFAULT_TEST_TIMEOUT_MS
    e2e_timeout_ms: int = DEFAULT_E2E_TIMEOUT_MS
    script_timeout_ms: int = DEFAULT_SCRIPT_TIMEOUT_MS
    command_timeout_ms: int = DEFAULT_COMMAND_TIMEOUT_MS
    http_timeout_ms: int = DEFAULT_HTTP_TIMEOUT_MS
    ai_timeout_ms: int = DEFAULT_AI_TIMEOUT_MS
    max_output_chars: int = MAX_STREAM_OUTPUT_CHARS
    allowed_hosts: tuple[str, ...] = DEFAULT_ALLOWED_HOSTS
    ai_retry: RetryPolicy = field(default_factory=RetryPolicy)


@runtime_checkable
class StrategyExecutor(Protocol):
    """Uniform async executor contract: one instance per strategy type tag."""

    strategy_type: str

    async def execute(
        self,
        workdir: Path,
        config: StrategyConfig,
        record: Record,
    ) -> StrategyResult: ...


class StrategyRegistry:
    """Deterministic executor registry keyed by strategy type tag."""

    def __init__(self) -> None:
        self._executors: dict[str, StrategyExecutor] = {}

    def register(self, executor: StrategyExecutor) -> None:
        strategy_type = getattr(executor, "strategy_type", None)
        if strategy_type not in STRATEGY_TYPES:
            raise ValidationFailure(
                f"strategy_type: unknown tag {strategy_type!r}; expected one of: {', '.join(STRATEGY_TYPES)}"
            )
        if strategy_type in self._executors:
            raise ValidationFailure(f"strategy_type: {strategy_type!r} is already registered")
        self._executors[strategy_type] = executor

    def has(self, strategy_type: str) -> bool:
        return strategy_type in self._executors

    def get(self, strategy_type: str) -> StrategyExecutor:
        executor = self._executors.get(strategy_type)
        if executor is None:
            raise UnregisteredStrategyError(strategy_type, self.registered_types())
        return executor

    def registered_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._executors))

    async def execute(
        self,
        workdir: Path,
        config: StrategyConfig,
        record: Record,
    ) -> StrategyResult:
        return await self.get(config.type).execute(workdir, config, record)


# ---------------------------------------------------------------------------
# Validators
# ---------------------------------------------------------------------------


def _fail(path: str, message: str) -> NoReturn:
    raise StrategyConfigError(f"{path}: {message}")


def _as_bool(value: object, path: str) -> bool:
    if not isinstance(value, bool):
        _fail(path, f"expected boolean, got {type(value).__name__}")
    return value


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_positive_int_or_none(value: object, path: str) -> int | None:
    if value is None:
        return None
    return _as_int(value, path, minimum=1)


def _as_str(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    parsed = value.strip()
    if not parsed:
        _fail(path, "must not be empty")
    return parsed


def _as_optional_str(value: object, path: str) -> str | None:
    if value is None:
        return None
    return _as_str(value, path)


def _as_choice(value: object, choices: tuple[str, ...], path: str) -> str:
    parsed = _as_str(value, path).lower()
    if parsed not in choices:
        _fail(path, f"invalid value {parsed!r}; expected one of: {', '.join(choices)}")
    return parsed


def _as_str_tuple(value: object, path: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (_as_str(value, path),)
    if not isinstance(value, Sequence) or isinstance(value, (bytes, bytearray)):
        _fail(path, f"expected list, got {type(value).__name__}")
    return tuple(_as_str(item, f"{path}[{index}]") for index, item in enumerate(value))


def _as_arg_tuple(value: object, path: str) -> tuple[str, ...]:
    # Arguments may legitimately be empty strings or numbers written without quotes.
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        _fail(path, f"expected list, got {type(value).__name__}")
    out: list[str] = []
    for index, item in enumerate(value):
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            _fail(f"{path}[{index}]", f"expected string, got {type(item).__name__}")
        out.append(str(item))
    return tuple(out)


def _as_str_mapping(value: object, path: str) -> dict[str, str]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")
    out: dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str) or not key:
            _fail(path, "keys must be non-empty strings")
        if isinstance(item, bool) or not isinstance(item, (str, int, float)):
            _fail(f"{path}.{key}", f"expected string, got {type(item).__name__}")
        out[key] = str(item)
    return out


def _as_exit_codes(value: object, path: str) -> tuple[int, ...]:
    if isinstance(value, int) and not isinstance(value, bool):
        return (value,)
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        _fail(path, f"expected integer or list of integers, got {type(value).__name__}")
    codes = tuple(_as_int(item, f"{path}[{index}]") for index, item in enumerate(value))
    if not codes:
        _fail(path, "must not be empty")
    return codes


def _as_regex(value: object, path: str) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    pattern = value
    try:
        re.compile(pattern)
    except re.error as exc:
        _fail(path, f"invalid regular expression {pattern!r}: {exc}")
    return pattern


def _as_regex_or_none(value: object, path: str) -> str | None:
    if value is None:
        return None
    return _as_regex(value, path)


def _as_octal_mode(value: object, path: str) -> str:
    parsed = _as_str(value, path)
    if not re.fullmatch(r"0?[0-7]{3}", parsed):
        _fail(path, f"expected octal permission string like '644', got {parsed!r}")
    return parsed[-3:]


def _as_file_check(data: Mapping[str, object], path: str) -> FileCheck:
    exists = data.get("exists")
    size = data.get("size_constraint", data.get("size"))
    size_min: int | None = None
    size_max: int | None = None
    if size is not None:
        if not isinstance(size, Mapping):
            _fail(f"{path}.sizeConstraint", "expected object with min and/or max")
        size_min = None if size.get("min") is None else _as_int(size.get("min"), f"{path}.sizeConstraint.min", minimum=0)
        size_max = None if size.get("max") is None else _as_int(size.get("max"), f"{path}.sizeConstraint.max", minimum=0)
    permissions = data.get("permissions")
    matches_content = data.get("matches_content")
    if matches_content is not None and not isinstance(matches_content, str):
        _fail(f"{path}.matchesContent", "expected string")
    return FileCheck(
        exists=None if exists is None else _as_bool(exists, f"{path}.exists"),
        contains_pattern=_as_regex_or_none(data.get("contains_pattern"), f"{path}.containsPattern"),
        matches_content=matches_content,
        size_min=size_min,
        size_max=size_max,
        not_empty=_as_bool(data.get("not_empty", False), f"{path}.notEmpty"),
        permissions=None if permissions is None else _as_octal_mode(permissions, f"{path}.permissions"),
    )


def _as_json_assertions(value: object, path: str) -> tuple[JsonAssertion, ...]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        _fail(path, f"expected list, got {type(value).__name__}")
    out: list[JsonAssertion] = []
    for index, item in enumerate(value):
        if not isinstance(item, Mapping):
            _fail(f"{path}[{index}]", "expected object with path and expected")
        if "expected" not in item:
            _fail(f"{path}[{index}].expected", "is required")
        out.append(
            JsonAssertion(
                path=_as_str(item.get("path"), f"{path}[{index}].path"),
                expected=item["expected"],  # type: ignore[arg-type]
            )
        )
    return tuple(out)


__all__ = [
    "AiStrategyConfig",
    "BaseStrategyConfig",
    "CommandStrategyConfig",
    "CompositeStrategyConfig",
    "E2EStrategyConfig",
    "ExecutorSettings",
    "FileCheck",
    "FileStrategyConfig",
    "HttpStrategyConfig",
    "JsonAssertion",
    "ManualStrategyConfig",
    "ScriptStrategyConfig",
    "StrategyConfig",
    "StrategyExecutor",
    "StrategyRegistry",
    "StrategyResult",
    "TestStrategyConfig",
    "normalize_keys",
    "parse_strategy_config",
    "parse_strategy_configs",
]
