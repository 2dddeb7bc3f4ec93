"""
workledger runtime config loader

File: src/workledger/config/loader.py

Purpose
- Load the effective runtime config from defaults, ``workledger.toml``, ``WORKLEDGER_*``
  environment variables, and CLI overrides.

Functional requirements
- Precedence: CLI > env > file > defaults.
- Every scalar and string-list setting has an environment binding named after its
  dotted path (``verification.test_timeout_ms`` -> ``WORKLEDGER_VERIFICATION_TEST_TIMEOUT_MS``).
- ``observability.log_dir`` is normalized relative to the config file's directory.
- Typed views (executor settings, optimistic retry policy, logging config) are derived
  from a validated config.

Non-functional requirements
- Keep loading deterministic and reproducible.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

from workledger.config.schema import assert_valid_config, default_config, merge_config
from workledger.observability.logging import LoggingConfig
from workledger.utils.backoff import RetryPolicy
from workledger.verification_plane.strategies.base import ExecutorSettings

DEFAULT_CONFIG_FILE: Final[str] = "workledger.toml"
ENV_PREFIX: Final[str] = "WORKLEDGER_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

_ValueKind = Literal["str", "int", "float", "bool", "list"]


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: _ValueKind


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    root: str | Path | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > file > defaults.

    Without ``config_path`` the loader looks for ``workledger.toml`` in ``root`` (or the
    current directory) and silently falls back to defaults when it is absent. An
    explicit path that does not exist is an error.
    """

    resolved_path = _resolve_config_path(config_path, root)
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_toml_file(resolved_path, required=config_path is not None)
    merged = assert_valid_config(merge_config(default_config(), file_payload))

    merged = merge_config(merged, _collect_env_overrides(merged, env_map))
    merged = merge_config(merged, _materialize_cli_overrides(dict(cli_overrides or {})))
    merged = assert_valid_config(merged)

    _normalize_log_dir(merged, resolved_path.parent)
    return merged


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Deterministic JSON dump of an effective config."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def executor_settings(config: Mapping[str, Any]) -> ExecutorSettings:
    verification = config["verification"]
    return ExecutorSettings(
        test_timeout_ms=verification["test_timeout_ms"],
        e2e_timeout_ms=verification["e2e_timeout_ms"],
        script_timeout_ms=verification["script_timeout_ms"],
        command_timeout_ms=verification["command_timeout_ms"],
        http_timeout_ms=verification["http_timeout_ms"],
        ai_timeout_ms=verification["ai_timeout_ms"],
        max_output_chars=verification["max_output_chars"],
        allowed_hosts=tuple(host.strip() for host in config["http"]["allowed_hosts"]),
        ai_retry=_retry_policy(config["retry"]["ai"]),
    )


def optimistic_policy(config: Mapping[str, Any]) -> RetryPolicy:
    return _retry_policy(config["retry"]["optimistic"])


def logging_config(config: Mapping[str, Any]) -> LoggingConfig:
    observability = config["observability"]
    return LoggingConfig(
        level=observability["log_level"].upper(),
        log_dir=observability.get("log_dir"),
        log_to_stdout=observability["log_to_stdout"],
        redact_secrets=observability["redact_secrets"],
    )


def _retry_policy(section: Mapping[str, Any]) -> RetryPolicy:
    return RetryPolicy(
        max_retries=section["max_retries"],
        base_delay_ms=section["base_delay_ms"],
        max_delay_ms=section["max_delay_ms"],
    )


def _resolve_config_path(config_path: str | Path | None, root: str | Path | None) -> Path:
    if config_path is None:
        base = Path.cwd() if root is None else Path(root)
        return (base / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        _set_nested(overrides, binding.path, _coerce_env(raw, binding.value_type, env_name, binding.path))
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_leaf_paths(config):
        kind = _kind_for_value(value)
        if kind is None:
            continue
        bindings[_env_name_for_path(path)] = _Binding(path=path, value_type=kind)

    optional = (_Binding(("observability", "log_dir"), "str"),)
    for binding in optional:
        bindings.setdefault(_env_name_for_path(binding.path), binding)
    return bindings


def _iter_leaf_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_leaf_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _kind_for_value(value: object) -> _ValueKind | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    if isinstance(value, list):
        return "list"
    return None


def _coerce_env(raw: str, value_type: _ValueKind, env_name: str, path: tuple[str, ...]) -> object:
    value = raw.strip()
    dotted = ".".join(path)
    if value_type == "str":
        return value
    if value_type == "list":
        return [item.strip() for item in value.split(",") if item.strip()]
    if value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be an integer") from exc
    if value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        value = cli_overrides[key]
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _normalize_log_dir(config: dict[str, Any], base_dir: Path) -> None:
    observability = config["observability"]
    raw = observability.get("log_dir")
    if not isinstance(raw, str):
        return
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    observability["log_dir"] = Path(os.path.normpath(str(candidate))).as_posix()


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "ConfigLoadError",
    "dump_effective_config",
    "executor_settings",
    "load_config",
    "logging_config",
    "optimistic_policy",
]
