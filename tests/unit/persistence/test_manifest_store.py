"""
workledger — unit tests for the manifest store

File: tests/unit/persistence/test_manifest_store.py

Purpose
- Validate manifest load/save with timestamp-based optimistic locking and record sync.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from workledger.domain.models import ManifestEntry, RecordStatus
from workledger.errors import ManifestConflictError, ManifestFormatError
from workledger.persistence import ManifestStore, create_empty, stats, upsert_entry

from . import make_record

_OLD_STAMP = "2020-01-01T00:00:00.000Z"


def _write_manifest(path: Path, features: dict[str, object], *, updated_at: str = _OLD_STAMP) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(
            {"version": "1", "updatedAt": updated_at, "metadata": {}, "features": features}
        ),
        encoding="utf-8",
    )


def _entry(status: str, *, module: str = "auth", priority: int = 0) -> dict[str, object]:
    return {"status": status, "priority": priority, "module": module, "description": ""}


def test_load_missing_manifest_returns_none(tmp_path: Path) -> None:
    store = ManifestStore(tmp_path / "index.json")

    assert store.exists() is False
    assert store.load() is None


def test_load_rejects_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(ManifestFormatError, match="invalid JSON"):
        ManifestStore(path).load()


def test_load_rejects_unknown_status(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    _write_manifest(path, {"auth.login": _entry("exploded")})

    with pytest.raises(ManifestFormatError):
        ManifestStore(path).load()


def test_save_refreshes_updated_at_and_round_trips(tmp_path: Path) -> None:
    path = tmp_path / "tasks" / "index.json"
    _write_manifest(path, {"auth.login": _entry("failing")})
    store = ManifestStore(path)
    manifest = store.load()
    assert manifest is not None
    assert manifest.loaded_at == _OLD_STAMP

    store.save(manifest)

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["updatedAt"] != _OLD_STAMP
    assert payload["features"]["auth.login"]["status"] == "failing"
    assert manifest.loaded_at == payload["updatedAt"]


def test_save_detects_concurrent_update(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    _write_manifest(path, {})
    store = ManifestStore(path)
    manifest = store.load()
    assert manifest is not None
    _write_manifest(path, {}, updated_at="2020-06-01T00:00:00.000Z")

    with pytest.raises(ManifestConflictError) as excinfo:
        store.save(manifest)

    assert excinfo.value.expected_updated_at == _OLD_STAMP
    assert excinfo.value.actual_updated_at == "2020-06-01T00:00:00.000Z"


def test_sync_corrects_drift_adds_missing_and_removes_orphans(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    _write_manifest(
        path,
        {
            "auth.login": _entry("failing", priority=3),
            "auth.orphan": _entry("passing"),
        },
    )
    store = ManifestStore(path)
    manifest = store.load()
    assert manifest is not None
    records = [
        make_record("auth.login", status=RecordStatus.PASSING, priority=3),
        make_record("api.health", priority=1),
    ]

    assert store.sync(records, manifest) is True

    reloaded = store.load()
    assert reloaded is not None
    assert set(reloaded.records) == {"auth.login", "api.health"}
    assert reloaded.records["auth.login"].status is RecordStatus.PASSING
    assert reloaded.records["auth.login"].priority == 3
    assert reloaded.records["api.health"].module == "api"


def test_sync_without_changes_does_not_write(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    _write_manifest(path, {"auth.login": _entry("failing")})
    store = ManifestStore(path)
    manifest = store.load()
    assert manifest is not None

    assert store.sync([make_record("auth.login")], manifest) is False
    assert json.loads(path.read_text(encoding="utf-8"))["updatedAt"] == _OLD_STAMP


def test_upsert_entry_keeps_previous_file_path() -> None:
    manifest = create_empty("ship it")
    manifest.records["auth.login"] = ManifestEntry(
        status=RecordStatus.FAILING,
        priority=0,
        module="auth",
        description="",
        file_path="auth/login.md",
    )

    entry = upsert_entry(manifest, make_record("auth.login", status=RecordStatus.PASSING))

    assert entry.status is RecordStatus.PASSING
    assert entry.file_path == "auth/login.md"
    assert manifest.metadata["projectGoal"] == "ship it"


def test_stats_counts_every_status() -> None:
    manifest = create_empty()
    upsert_entry(manifest, make_record("a.one"))
    upsert_entry(manifest, make_record("a.two"))
    upsert_entry(manifest, make_record("b.one", status=RecordStatus.PASSING))

    counts = stats(manifest)

    assert counts[RecordStatus.FAILING] == 2
    assert counts[RecordStatus.PASSING] == 1
    assert counts[RecordStatus.DEPRECATED] == 0
    assert set(counts) == set(RecordStatus)
