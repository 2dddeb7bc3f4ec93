"""
workledger — unit tests for record path mapping

File: tests/unit/persistence/test_record_paths.py

Purpose
- Validate the id-to-path mapping and the on-disk resolution order.

What this test file should cover
- Module and legacy layouts, including ids whose module has dots.
- A cached manifest path wins and is never second-guessed.
- Paths that escape the tasks directory are refused.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from workledger.domain.models import ManifestEntry, RecordStatus
from workledger.errors import SecurityViolationError
from workledger.persistence.paths import (
    derive_record_path,
    ensure_inside,
    legacy_record_path,
    record_id_from_path,
    resolve_record_path,
)

from . import record_text, write_record_file


def _entry(*, module: str, file_path: str | None = None) -> ManifestEntry:
    return ManifestEntry(
        status=RecordStatus.FAILING,
        priority=0,
        module=module,
        description="Example",
        file_path=file_path,
    )


@pytest.mark.parametrize(
    ("record_id", "module", "expected"),
    [
        ("auth.login", "auth", "auth/login.md"),
        ("auth.login.mfa", "auth", "auth/login.mfa.md"),
        ("web.ui.button", "web.ui", "web.ui/button.md"),
        ("web.ui.button", None, "web/ui.button.md"),
        ("standalone", None, "standalone.md"),
    ],
)
def test_derive_record_path(record_id: str, module: str | None, expected: str) -> None:
    assert derive_record_path(record_id, module) == expected


def test_legacy_path_round_trips_to_id() -> None:
    assert legacy_record_path("cli.survey") == "cli/survey.md"
    assert record_id_from_path("cli/survey.md") == "cli.survey"
    assert record_id_from_path("cli\\survey.md") == "cli.survey"


def test_resolution_prefers_module_layout_over_legacy(tmp_path: Path) -> None:
    write_record_file(tmp_path, "web.ui/button.md", record_text("web.ui.button", module="web.ui"))
    write_record_file(tmp_path, "web/ui.button.md", record_text("web.ui.button", module="web.ui"))

    assert resolve_record_path(tmp_path, "web.ui.button", module="web.ui") == "web.ui/button.md"
    assert resolve_record_path(tmp_path, "web.ui.button") == "web/ui.button.md"


def test_cached_path_is_authoritative(tmp_path: Path) -> None:
    write_record_file(tmp_path, "auth/login.md", record_text("auth.login", module="auth"))

    entry = _entry(module="auth", file_path="auth/old-name.md")

    assert resolve_record_path(tmp_path, "auth.login", entry) is None


def test_scan_matches_metadata_id(tmp_path: Path) -> None:
    write_record_file(tmp_path, "auth/other.md", record_text("auth.other", module="auth"))
    write_record_file(tmp_path, "auth/zz-login.md", record_text("auth.login", module="auth"))
    write_record_file(tmp_path, "auth/broken.md", "no frontmatter here\n")

    assert resolve_record_path(tmp_path, "auth.login") == "auth/zz-login.md"
    assert resolve_record_path(tmp_path, "auth.unknown") is None


def test_escaping_paths_are_refused(tmp_path: Path) -> None:
    with pytest.raises(SecurityViolationError):
        ensure_inside(tmp_path, "../outside.md")
    with pytest.raises(SecurityViolationError):
        resolve_record_path(tmp_path, "auth.login", _entry(module="auth", file_path="../../etc/passwd"))
