"""
workledger structured logging

File: src/workledger/observability/logging.py

Purpose
- Configure stdlib logging with a JSON-lines formatter and bridge ``structlog`` into it,
  so ``structlog.get_logger(__name__)`` calls across the package share one sink.

Functional requirements
- Each line is one JSON object: timestamp, level, logger, event, correlation fields, and
  the remaining key/value pairs under ``fields``.
- Correlation fields (``record_id``, ``run_id`` ...) are bound with ``correlation_scope``
  and attached to every event emitted inside the scope.
- Secrets are redacted before formatting: sensitive key names mask the whole value, and
  token-shaped substrings are masked inside free text.
- Calling ``setup_logging`` again replaces the previous handlers.
"""

from __future__ import annotations

import contextvars
import json
import logging
import math
import re
import sys
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import structlog

from workledger.domain.models import JSONValue

LogRedactor = Callable[[JSONValue], JSONValue]

REDACTED: Final[str] = "***REDACTED***"
DEFAULT_LOGGER_NAME: Final[str] = "workledger"
DEFAULT_LOG_FILENAME: Final[str] = "workledger.jsonl"

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

_SECRET_PATTERNS: Final[tuple[tuple[re.Pattern[str], str], ...]] = (
    (
        re.compile(
            r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
        ),
        r"\1\2" + REDACTED,
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*"), "Bearer " + REDACTED),
    (re.compile(r"\bsk-(?:ant-)?[A-Za-z0-9_-]{12,}\b"), REDACTED),
    (re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}\b"), REDACTED),
)

_STANDARD_RECORD_FIELDS: Final[frozenset[str]] = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime"}

_CORRELATION: contextvars.ContextVar[tuple[tuple[str, str], ...]] = contextvars.ContextVar(
    "workledger_correlation", default=()
)


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Where and how much to log."""

    level: int | str = "INFO"
    log_dir: Path | str | None = None
    log_filename: str = DEFAULT_LOG_FILENAME
    log_to_stdout: bool = False
    logger_name: str = DEFAULT_LOGGER_NAME
    redact_secrets: bool = True


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """Install JSON-lines handlers on the package logger and route structlog through it."""

    config = config if config is not None else LoggingConfig()
    level = _parse_level(config.level)
    redactor: LogRedactor = default_log_redactor if config.redact_secrets else _identity
    formatter = JsonLineFormatter(redactor=redactor)

    handlers: list[logging.Handler] = []
    if config.log_dir is not None:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        if Path(config.log_filename).name != config.log_filename:
            raise ValueError("log_filename must not include path separators")
        handlers.append(logging.FileHandler(log_dir / config.log_filename, encoding="utf-8"))
    if config.log_to_stdout:
        handlers.append(logging.StreamHandler(sys.stdout))
    if not handlers:
        handlers.append(logging.StreamHandler(sys.stderr))

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
    return logger


class JsonLineFormatter(logging.Formatter):
    """Render one canonical JSON object per log record."""

    def __init__(self, *, redactor: LogRedactor | None = None) -> None:
        super().__init__()
        self._redactor = redactor if redactor is not None else default_log_redactor

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z(record.created),
            "level": record.levelname,
            "logger": record.name,
            "event": _as_text(self._redactor(record.getMessage())),
        }
        for key, value in sorted(get_correlation_context().items()):
            event[key] = value

        extras = {
            key: _to_json(value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_RECORD_FIELDS and not key.startswith("_")
        }
        if extras:
            event["fields"] = self._redactor(extras)
        if record.exc_info is not None:
            event["exception"] = _as_text(self._redactor(self.formatException(record.exc_info)))
        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def get_correlation_context() -> dict[str, str]:
    return dict(_CORRELATION.get())


@contextmanager
def correlation_scope(**fields: str | None) -> Iterator[None]:
    """Bind correlation fields for every log event emitted inside the block."""

    state = get_correlation_context()
    for key, value in fields.items():
        if value is None:
            state.pop(key, None)
        elif not isinstance(value, str) or not value.strip():
            raise ValueError(f"correlation field {key!r} must be a non-empty string")
        else:
            state[key] = value.strip()
    token = _CORRELATION.set(tuple(state.items()))
    try:
        yield
    finally:
        _CORRELATION.reset(token)


def default_log_redactor(value: JSONValue) -> JSONValue:
    return _redact(value, key=None)


def redact_text(text: str) -> str:
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _redact(value: JSONValue, *, key: str | None) -> JSONValue:
    if key is not None and any(term in key.lower() for term in _SENSITIVE_KEY_TERMS):
        return REDACTED
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, list):
        return [_redact(item, key=None) for item in value]
    if isinstance(value, dict):
        return {name: _redact(item, key=name) for name, item in value.items()}
    return value


def _identity(value: JSONValue) -> JSONValue:
    return value


def _parse_level(value: int | str) -> int:
    if isinstance(value, int):
        return value
    parsed = logging.getLevelName(value.strip().upper())
    if isinstance(parsed, int):
        return parsed
    raise ValueError(f"unsupported logging level {value!r}")


def _iso8601z(epoch_seconds: float) -> str:
    stamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return stamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _as_text(value: JSONValue) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _to_json(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _to_json(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_json(item) for item in value]
    return repr(value)


__all__ = [
    "DEFAULT_LOGGER_NAME",
    "REDACTED",
    "JsonLineFormatter",
    "LogRedactor",
    "LoggingConfig",
    "correlation_scope",
    "default_log_redactor",
    "get_correlation_context",
    "redact_text",
    "setup_logging",
]
