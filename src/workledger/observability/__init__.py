"""Observability exports: structured logging setup and correlation scopes."""

from workledger.observability.logging import (
    LoggingConfig,
    correlation_scope,
    default_log_redactor,
    redact_text,
    setup_logging,
)

__all__ = [
    "LoggingConfig",
    "correlation_scope",
    "default_log_redactor",
    "redact_text",
    "setup_logging",
]
