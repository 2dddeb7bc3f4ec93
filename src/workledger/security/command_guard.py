"""
workledger command and path guard

File: src/workledger/security/command_guard.py

Purpose
- Reject destructive commands, shell-injection arguments, and paths that escape the
  project root before any subprocess or filesystem access happens.

Functional requirements
- All checks are lexical; nothing here touches the filesystem or spawns a process.
- Every rejection raises ``SecurityViolationError`` naming the offending pattern or path.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from pathlib import Path
from typing import Final

from workledger.errors import SecurityViolationError
from workledger.utils.fs import is_within, lexical_resolve

DANGEROUS_PATTERNS: Final[tuple[re.Pattern[str], ...]] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"rm\s+(-rf?|--recursive)\s+[/~]",
        r"rm\s+(-rf?|--recursive)\s+\.\.",
        r">\s*/dev/sd[a-z]",
        r"mkfs\.",
        r"dd\s+.*of\s*=\s*/dev",
        r":\s*\(\)\s*\{\s*:\|:",
        r"wget\s+.*\|\s*(bash|sh|zsh)",
        r"curl\s+.*\|\s*(bash|sh|zsh)",
        r"eval\s+\$\(",
        r"chmod\s+777\s+/",
        r"chown\s+.*\s+/",
    )
)

SHELL_INJECTION_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"\|\s*(bash|sh|zsh|ksh|csh)", re.IGNORECASE),
    re.compile(r";\s*(rm|chmod|chown|mkfs|dd)", re.IGNORECASE),
    re.compile(r"`[^`]*`"),
    re.compile(r"\$\([^)]+\)"),
)


def check_command(command: str) -> None:
    """Raise if ``command`` matches a destructive pattern."""

    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(command):
            raise SecurityViolationError(f"command contains dangerous pattern: {pattern.pattern}")


def check_args(args: Sequence[str]) -> None:
    """Raise if the joined args are destructive or any single arg looks like shell injection."""

    joined = " ".join(args)
    for pattern in DANGEROUS_PATTERNS:
        if pattern.search(joined):
            raise SecurityViolationError(f"arguments contain dangerous pattern: {pattern.pattern}")
    for arg in args:
        for pattern in SHELL_INJECTION_PATTERNS:
            if pattern.search(arg):
                raise SecurityViolationError(f"argument contains dangerous pattern: {arg}")


def resolve_inside(root: Path | str, candidate: Path | str, *, what: str = "path") -> Path:
    """Absolute lexical location of ``candidate`` under ``root``; raise if it escapes."""

    if not is_within(candidate, root):
        raise SecurityViolationError(f"{what} must be within project root: {candidate}")
    return lexical_resolve(root, candidate)


__all__ = [
    "DANGEROUS_PATTERNS",
    "SHELL_INJECTION_PATTERNS",
    "check_args",
    "check_command",
    "resolve_inside",
]
