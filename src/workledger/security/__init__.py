"""Command and path guards for executors that touch the host."""

from workledger.security.command_guard import (
    DANGEROUS_PATTERNS,
    SHELL_INJECTION_PATTERNS,
    check_args,
    check_command,
    resolve_inside,
)

__all__ = [
    "DANGEROUS_PATTERNS",
    "SHELL_INJECTION_PATTERNS",
    "check_args",
    "check_command",
    "resolve_inside",
]
