"""
workledger configuration schema and validation

File: src/workledger/config/schema.py

Purpose
- Define the built-in configuration defaults and the validation rules applied to every
  layer (file, environment, CLI) before it is used.

Functional requirements
- Validation collects every problem as a ``ConfigValidationIssue`` (dotted path plus
  message) and raises them together in one ``ConfigValidationError``.
- Unknown keys are rejected; keys that look like embedded secrets get a dedicated message.
- Merging is a deterministic deep merge; inputs are never mutated.

Non-functional requirements
- Keep rules deterministic and easy to audit.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, NotRequired, TypedDict

from workledger.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_AI_TIMEOUT_MS,
    DEFAULT_ALLOWED_HOSTS,
    DEFAULT_COMMAND_TIMEOUT_MS,
    DEFAULT_E2E_TIMEOUT_MS,
    DEFAULT_HTTP_TIMEOUT_MS,
    DEFAULT_SCRIPT_TIMEOUT_MS,
    DEFAULT_TEST_TIMEOUT_MS,
    MAX_STREAM_OUTPUT_CHARS,
    TASKS_DIR,
    VERIFICATION_DIR,
)

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "api_key",
    "apikey",
    "password",
    "secret",
    "token",
    "private_key",
    "credential",
)
_CAMEL_CASE_BOUNDARY: Final = re.compile(r"([a-z0-9])([A-Z])")
_HOST_PATTERN: Final = re.compile(r"^(\*\.)?[A-Za-z0-9_.:\-\[\]/]+$")

LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")


class MetaConfig(TypedDict):
    schema_version: int


class PathsConfig(TypedDict):
    tasks_dir: str
    verification_dir: str


class VerificationConfig(TypedDict):
    test_timeout_ms: int
    e2e_timeout_ms: int
    script_timeout_ms: int
    command_timeout_ms: int
    http_timeout_ms: int
    ai_timeout_ms: int
    max_output_chars: int
    max_concurrency: int


class BackoffConfig(TypedDict):
    max_retries: int
    base_delay_ms: int
    max_delay_ms: int


class RetryConfig(TypedDict):
    ai: BackoffConfig
    optimistic: BackoffConfig


class HttpConfig(TypedDict):
    allowed_hosts: list[str]


class ObservabilityConfig(TypedDict):
    log_level: str
    log_to_stdout: bool
    redact_secrets: bool
    log_dir: NotRequired[str]


class WorkledgerConfig(TypedDict):
    meta: MetaConfig
    paths: PathsConfig
    verification: VerificationConfig
    retry: RetryConfig
    http: HttpConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[WorkledgerConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "paths": {
        "tasks_dir": str(TASKS_DIR),
        "verification_dir": str(VERIFICATION_DIR),
    },
    "verification": {
        "test_timeout_ms": DEFAULT_TEST_TIMEOUT_MS,
        "e2e_timeout_ms": DEFAULT_E2E_TIMEOUT_MS,
        "script_timeout_ms": DEFAULT_SCRIPT_TIMEOUT_MS,
        "command_timeout_ms": DEFAULT_COMMAND_TIMEOUT_MS,
        "http_timeout_ms": DEFAULT_HTTP_TIMEOUT_MS,
        "ai_timeout_ms": DEFAULT_AI_TIMEOUT_MS,
        "max_output_chars": MAX_STREAM_OUTPUT_CHARS,
        "max_concurrency": 8,
    },
    "retry": {
        "ai": {"max_retries": 3, "base_delay_ms": 1_000, "max_delay_ms": 10_000},
        "optimistic": {"max_retries": 3, "base_delay_ms": 50, "max_delay_ms": 500},
    },
    "http": {"allowed_hosts": list(DEFAULT_ALLOWED_HOSTS)},
    "observability": {
        "log_level": "INFO",
        "log_to_stdout": False,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ValueError):
    """Raised when a config payload fails validation."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered or '- <root>: unknown validation failure'}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)


def default_config() -> WorkledgerConfig:
    """Deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    _merge_into(merged, overlay)
    return merged


def validate_config(config: object) -> tuple[ConfigValidationIssue, ...]:
    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        return issues.items()

    validators: dict[str, Callable[[Mapping[str, object], str, _IssueCollector], None]] = {
        "meta": _validate_meta,
        "paths": _validate_paths,
        "verification": _validate_verification,
        "retry": _validate_retry,
        "http": _validate_http,
        "observability": _validate_observability,
    }
    _reject_unknown_keys(config, set(validators), "", issues)
    for key in sorted(validators):
        if key not in config:
            issues.add(key, "missing required section")
            continue
        section = config[key]
        if not isinstance(section, Mapping):
            issues.add(key, f"expected object, got {type(section).__name__}")
            continue
        validators[key](section, key, issues)
    return issues.items()


def assert_valid_config(config: object) -> dict[str, Any]:
    """Validated deep copy of ``config``; raises ``ConfigValidationError`` on any issue."""

    issues = validate_config(config)
    if issues:
        raise ConfigValidationError(issues)
    return copy.deepcopy(dict(config))  # type: ignore[arg-type]


def _validate_meta(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> None:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    version = _as_int(payload.get("schema_version"), _join(path, "schema_version"), issues, 1)
    if version is not None and version != CONFIG_SCHEMA_VERSION:
        issues.add(
            _join(path, "schema_version"),
            f"schema version {version} is not supported (expected {CONFIG_SCHEMA_VERSION})",
        )


def _validate_paths(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> None:
    allowed = {"tasks_dir", "verification_dir"}
    _reject_unknown_keys(payload, allowed, path, issues)
    for key in sorted(allowed):
        value = _as_str(payload.get(key), _join(path, key), issues)
        if value is None:
            continue
        if value.startswith("/") or ".." in value.replace("\\", "/").split("/"):
            issues.add(_join(path, key), "must be a relative path inside the project root")


def _validate_verification(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> None:
    int_fields = {
        "test_timeout_ms",
        "e2e_timeout_ms",
        "script_timeout_ms",
        "command_timeout_ms",
        "http_timeout_ms",
        "ai_timeout_ms",
        "max_output_chars",
        "max_concurrency",
    }
    _reject_unknown_keys(payload, int_fields, path, issues)
    for key in sorted(int_fields):
        _as_int(payload.get(key), _join(path, key), issues, 1)


def _validate_retry(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> None:
    _reject_unknown_keys(payload, {"ai", "optimistic"}, path, issues)
    for name in ("ai", "optimistic"):
        section_path = _join(path, name)
        section = payload.get(name)
        if not isinstance(section, Mapping):
            issues.add(section_path, "expected object")
            continue
        _reject_unknown_keys(
            section, {"max_retries", "base_delay_ms", "max_delay_ms"}, section_path, issues
        )
        _as_int(section.get("max_retries"), _join(section_path, "max_retries"), issues, 0)
        base = _as_int(section.get("base_delay_ms"), _join(section_path, "base_delay_ms"), issues, 0)
        ceiling = _as_int(
            section.get("max_delay_ms"), _join(section_path, "max_delay_ms"), issues, 0
        )
        if base is not None and ceiling is not None and ceiling < base:
            issues.add(_join(section_path, "max_delay_ms"), "must be >= base_delay_ms")


def _validate_http(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> None:
    _reject_unknown_keys(payload, {"allowed_hosts"}, path, issues)
    hosts = payload.get("allowed_hosts")
    hosts_path = _join(path, "allowed_hosts")
    if not isinstance(hosts, list):
        issues.add(hosts_path, f"expected list, got {type(hosts).__name__}")
        return
    for index, host in enumerate(hosts):
        if not isinstance(host, str) or not _HOST_PATTERN.fullmatch(host.strip()):
            issues.add(f"{hosts_path}[{index}]", f"invalid host pattern {host!r}")


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> None:
    _reject_unknown_keys(
        payload, {"log_level", "log_to_stdout", "redact_secrets", "log_dir"}, path, issues
    )
    level = _as_str(payload.get("log_level"), _join(path, "log_level"), issues)
    if level is not None and level.upper() not in LOG_LEVELS:
        issues.add(
            _join(path, "log_level"),
            f"invalid value {level!r}; expected one of: {', '.join(LOG_LEVELS)}",
        )
    for key in ("log_to_stdout", "redact_secrets"):
        if not isinstance(payload.get(key), bool):
            issues.add(_join(path, key), f"expected boolean, got {type(payload.get(key)).__name__}")
    if "log_dir" in payload:
        _as_str(payload["log_dir"], _join(path, "log_dir"), issues)


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_int(value: object, path: str, issues: _IssueCollector, minimum: int) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        if _looks_sensitive_key(key):
            issues.add(_join(path, key), "embedded secret values are forbidden in config files")
        else:
            issues.add(_join(path, key), "unknown field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = _CAMEL_CASE_BOUNDARY.sub(r"\1_\2", key.strip()).lower()
    return any(term in normalized for term in _SENSITIVE_KEY_TERMS)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        existing = target.get(key)
        if isinstance(value, Mapping) and isinstance(existing, dict):
            _merge_into(existing, value)
        elif isinstance(value, Mapping):
            nested: dict[str, Any] = {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = copy.deepcopy(value)


__all__ = [
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "BackoffConfig",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "HttpConfig",
    "MetaConfig",
    "ObservabilityConfig",
    "PathsConfig",
    "RetryConfig",
    "VerificationConfig",
    "WorkledgerConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "validate_config",
]
