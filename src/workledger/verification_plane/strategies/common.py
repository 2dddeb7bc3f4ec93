"""Helpers shared by the subprocess-backed strategy executors."""

from __future__ import annotations

import shlex
from collections.abc import Sequence
from typing import TypeVar

from workledger.errors import StrategyConfigError
from workledger.verification_plane.strategies.base import BaseStrategyConfig

TConfig = TypeVar("TConfig", bound=BaseStrategyConfig)

SECURITY_VIOLATION = "security-violation"
TIMEOUT = "timeout"
SPAWN_FAILED = "spawn-failed"


def expect_config(config: object, config_type: type[TConfig]) -> TConfig:
    if not isinstance(config, config_type):
        raise StrategyConfigError(
            f"{config_type.type} executor received {type(config).__name__}"
        )
    return config


def ci_env(config: BaseStrategyConfig) -> dict[str, str]:
    """``CI=true`` so tools run non-interactively; strategy env may still override it."""

    env = {"CI": "true"}
    env.update(config.env)
    return env


def timeout_ms(config: BaseStrategyConfig, default_ms: int) -> int:
    return config.timeout_ms if config.timeout_ms is not None else default_ms


def split_command(command: str) -> list[str]:
    """Tokenize a command line without invoking a shell."""

    try:
        argv = shlex.split(command)
    except ValueError as exc:
        raise StrategyConfigError(f"cannot parse command {command!r}: {exc}") from exc
    if not argv:
        raise StrategyConfigError("command must not be empty")
    return argv


def display_command(argv: Sequence[str]) -> str:
    return shlex.join(argv)


def detect_framework(command: str, known: Sequence[tuple[str, str]]) -> str:
    lowered = command.lower()
    for needle, framework in known:
        if needle in lowered:
            return framework
    return "unknown"


__all__ = [
    "SECURITY_VIOLATION",
    "SPAWN_FAILED",
    "TIMEOUT",
    "ci_env",
    "detect_framework",
    "display_command",
    "expect_config",
    "split_command",
    "timeout_ms",
]
