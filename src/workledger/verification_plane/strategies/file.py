"""
workledger file strategy

File: src/workledger/verification_plane/strategies/file.py

Purpose
- Assert existence, content, size, and permissions of files matched by glob patterns.

Functional requirements
- Every pattern is checked lexically against the project root before the filesystem is touched.
- Matches whose real path leaves the root (symlinks) are ignored.
- With no matches, a strategy whose checks all expect absence succeeds; otherwise it fails.
- An ``exists`` failure stops the remaining checks for that file.
"""

from __future__ import annotations

import glob
import os
import re
import stat
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

import structlog

from workledger.domain.models import JSONValue, Record
from workledger.utils.fs import is_within
from workledger.verification_plane.process import elapsed_ms
from workledger.verification_plane.strategies.base import (
    FileCheck,
    FileStrategyConfig,
    StrategyConfig,
    StrategyResult,
)
from workledger.verification_plane.strategies.common import SECURITY_VIOLATION, expect_config

logger = structlog.get_logger(__name__)

MAX_PASSED_LISTED: Final[int] = 10


@dataclass(frozen=True, slots=True)
class CheckOutcome:
    type: str
    success: bool
    message: str

    def to_dict(self) -> dict[str, JSONValue]:
        return {"type": self.type, "success": self.success, "message": self.message}


@dataclass(slots=True)
class FileOutcome:
    path: str
    checks: list[CheckOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(check.success for check in self.checks)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "path": self.path,
            "success": self.success,
            "checks": [check.to_dict() for check in self.checks],
        }


def expand_patterns(root: Path, patterns: tuple[str, ...]) -> list[str]:
    """Relative POSIX paths of regular files matching any pattern, sorted and de-duplicated."""

    real_root = os.path.realpath(root)
    found: set[str] = set()
    for pattern in patterns:
        relative = pattern
        if os.path.isabs(pattern):
            relative = os.path.relpath(pattern, root)
        for match in glob.glob(relative, root_dir=root, recursive=True):
            absolute = root / match
            if not absolute.is_file():
                continue
            if not is_within(os.path.realpath(absolute), real_root):
                logger.warning("file_strategy_symlink_escape_ignored", path=match)
                continue
            found.add(Path(match).as_posix())
    return sorted(found)


def run_checks_on_file(root: Path, relative: str, checks: tuple[FileCheck, ...]) -> FileOutcome:
    outcome = FileOutcome(path=relative)
    path = root / relative
    content: str | None = None

    for check in checks:
        if check.exists is not None:
            exists = path.exists()
            if exists and check.exists:
                outcome.checks.append(CheckOutcome("exists", True, "File exists"))
            elif exists:
                outcome.checks.append(CheckOutcome("exists", False, "File exists but should not"))
                break
            elif check.exists:
                outcome.checks.append(CheckOutcome("exists", False, "File does not exist"))
                break
            else:
                outcome.checks.append(CheckOutcome("exists", True, "File does not exist"))
                continue

        if check.contains_pattern is not None or check.matches_content is not None:
            if content is None:
                content = path.read_text(encoding="utf-8", errors="replace")
            if check.contains_pattern is not None:
                found = re.search(check.contains_pattern, content) is not None
                outcome.checks.append(
                    CheckOutcome(
                        "containsPattern",
                        found,
                        f"Pattern found: {check.contains_pattern}"
                        if found
                        else f"Pattern not found: {check.contains_pattern}",
                    )
                )
            if check.matches_content is not None:
                matched = content == check.matches_content
                outcome.checks.append(
                    CheckOutcome(
                        "matchesContent",
                        matched,
                        "File content matches expected"
                        if matched
                        else "File content does not match expected",
                    )
                )

        if check.size_min is not None or check.size_max is not None or check.not_empty or check.permissions is not None:
            info = path.stat()
            size = info.st_size
            if check.size_min is not None or check.size_max is not None:
                if check.size_min is not None and size < check.size_min:
                    outcome.checks.append(
                        CheckOutcome("sizeConstraint", False, f"File size {size} is less than minimum {check.size_min}")
                    )
                elif check.size_max is not None and size > check.size_max:
                    outcome.checks.append(
                        CheckOutcome("sizeConstraint", False, f"File size {size} exceeds maximum {check.size_max}")
                    )
                else:
                    outcome.checks.append(CheckOutcome("sizeConstraint", True, f"File size {size} within limits"))
            if check.not_empty:
                outcome.checks.append(
                    CheckOutcome("notEmpty", size > 0, "File is not empty" if size > 0 else "File is empty")
                )
            if check.permissions is not None:
                actual = f"{stat.S_IMODE(info.st_mode) & 0o777:03o}"
                ok = actual == check.permissions
                outcome.checks.append(
                    CheckOutcome(
                        "permissions",
                        ok,
                        f"Permissions {actual}"
                        if ok
                        else f"Permissions {actual} do not match expected {check.permissions}",
                    )
                )

    return outcome


def format_report(patterns: tuple[str, ...], outcomes: list[FileOutcome]) -> str:
    passed = [item for item in outcomes if item.success]
    failed = [item for item in outcomes if not item.success]
    lines = [
        f"File verification for patterns: {', '.join(patterns)}",
        f"Files checked: {len(outcomes)}",
        f"Results: {len(passed)} passed, {len(failed)} failed",
    ]
    if failed:
        lines.extend(["", "Failed:"])
        for item in failed:
            lines.append(f"  ✗ {item.path}")
            lines.extend(
                f"    ✗ {check.type}: {check.message}" for check in item.checks if not check.success
            )
    if passed:
        lines.extend(["", "Passed:"])
        lines.extend(f"  ✓ {item.path}" for item in passed[:MAX_PASSED_LISTED])
        if len(passed) > MAX_PASSED_LISTED:
            lines.append(f"  ... and {len(passed) - MAX_PASSED_LISTED} more")
    return "\n".join(lines)


class FileStrategyExecutor:
    strategy_type = "file"

    async def execute(
        self,
        workdir: Path,
        config: StrategyConfig,
        record: Record,
    ) -> StrategyResult:
        config = expect_config(config, FileStrategyConfig)
        started_ns = time.monotonic_ns()
        patterns = config.paths

        if not patterns:
            return StrategyResult.failure(
                "No paths specified for file verification", reason="no-paths"
            ).with_duration(elapsed_ms(started_ns))

        escaping = [pattern for pattern in patterns if not is_within(pattern, workdir)]
        if escaping:
            logger.warning("file_strategy_path_rejected", record_id=record.id, paths=escaping)
            return StrategyResult.failure(
                f"Path must be within project root: {escaping[0]}",
                reason=SECURITY_VIOLATION,
                paths=list(escaping),
            ).with_duration(elapsed_ms(started_ns))

        try:
            matches = expand_patterns(workdir, patterns)
            if not matches:
                if any(check.exists is not False for check in config.checks):
                    return StrategyResult.failure(
                        f"No files matched the pattern(s): {', '.join(patterns)}",
                        reason="no-files-matched",
                        patterns=list(patterns),
                    ).with_duration(elapsed_ms(started_ns))
                return StrategyResult(
                    success=True,
                    output=f"Verified no files exist matching: {', '.join(patterns)}",
                    duration_ms=elapsed_ms(started_ns),
                    details={"filesFound": 0, "patterns": list(patterns)},
                )
            outcomes = [run_checks_on_file(workdir, match, config.checks) for match in matches]
        except OSError as exc:
            return StrategyResult.failure(
                f"File verification failed: {exc}", reason="error"
            ).with_duration(elapsed_ms(started_ns))

        return StrategyResult(
            success=all(item.success for item in outcomes),
            output=format_report(patterns, outcomes),
            duration_ms=elapsed_ms(started_ns),
            details={
                "filesChecked": len(outcomes),
                "patterns": list(patterns),
                "results": [item.to_dict() for item in outcomes],
            },
        )


__all__ = [
    "CheckOutcome",
    "FileOutcome",
    "FileStrategyExecutor",
    "expand_patterns",
    "format_report",
    "run_checks_on_file",
]
