"""
workledger manifest store

File: src/workledger/persistence/manifest.py

Purpose
- Persist the JSON rollup of every record's key fields with timestamp-based optimistic locking.

Functional requirements
- ``load`` remembers the ``updatedAt`` it observed; ``save`` refuses to overwrite a manifest
  whose ``updatedAt`` moved in the meantime.
- Writes are atomic (temp file in the same directory, fsync, replace).
- The manifest is derived data: ``sync`` corrects it from records, never the reverse.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from pathlib import Path

import structlog

from workledger.constants import MANIFEST_SCHEMA_VERSION
from workledger.domain.models import Manifest, ManifestEntry, Record, RecordStatus, utc_now_iso
from workledger.errors import ManifestConflictError, ManifestFormatError
from workledger.utils.fs import atomic_write, read_text_or_none

logger = structlog.get_logger(__name__)


class ManifestStore:
    """Reads and writes a single manifest JSON file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.is_file()

    def load(self) -> Manifest | None:
        text = read_text_or_none(self._path)
        if text is None:
            return None
        manifest = Manifest.from_dict(_decode(text, self._path))
        manifest.loaded_at = manifest.updated_at
        return manifest

    def save(self, manifest: Manifest) -> None:
        """Write ``manifest``, raising ``ManifestConflictError`` on a concurrent update."""

        if manifest.loaded_at is not None:
            text = read_text_or_none(self._path)
            if text is not None:
                current = _decode(text, self._path)
                actual = current.get("updatedAt")
                if actual != manifest.loaded_at:
                    raise ManifestConflictError(manifest.loaded_at, str(actual))

        manifest.updated_at = utc_now_iso()
        payload = json.dumps(manifest.to_dict(), indent=2, ensure_ascii=False) + "\n"
        atomic_write(self._path, payload, create_parents=True)
        manifest.loaded_at = manifest.updated_at
        logger.debug("manifest_saved", path=str(self._path), records=len(manifest.records))

    def sync(self, records: Iterable[Record], manifest: Manifest) -> bool:
        """Bring ``manifest`` in line with ``records`` and persist it if anything changed.

        Status drift is corrected from the record, records missing from the manifest are
        added, and entries with no backing record are removed.
        """

        changed = False
        seen: set[str] = set()
        for record in records:
            seen.add(record.id)
            entry = manifest.records.get(record.id)
            if entry is None:
                manifest.records[record.id] = ManifestEntry.from_record(record)
                changed = True
            elif entry.status != record.status:
                logger.info(
                    "manifest_status_drift_corrected",
                    record_id=record.id,
                    manifest_status=entry.status.value,
                    record_status=record.status.value,
                )
                manifest.records[record.id] = ManifestEntry(
                    status=record.status,
                    priority=entry.priority,
                    module=entry.module,
                    description=entry.description,
                    file_path=entry.file_path or record.file_path,
                )
                changed = True

        for orphan in [record_id for record_id in manifest.records if record_id not in seen]:
            logger.info("manifest_orphan_removed", record_id=orphan)
            del manifest.records[orphan]
            changed = True

        if changed:
            self.save(manifest)
        return changed


def upsert_entry(manifest: Manifest, record: Record) -> ManifestEntry:
    """Write the entry for ``record`` into ``manifest`` (in memory) and return it."""

    previous = manifest.records.get(record.id)
    entry = ManifestEntry.from_record(record)
    if entry.file_path is None and previous is not None and previous.file_path is not None:
        entry = ManifestEntry(
            status=entry.status,
            priority=entry.priority,
            module=entry.module,
            description=entry.description,
            file_path=previous.file_path,
        )
    manifest.records[record.id] = entry
    return entry


def stats(manifest: Manifest) -> dict[RecordStatus, int]:
    """Number of manifest entries per status (every status present, zero included)."""

    counts = dict.fromkeys(RecordStatus, 0)
    for entry in manifest.records.values():
        counts[entry.status] += 1
    return counts


def create_empty(project_goal: str = "") -> Manifest:
    now = utc_now_iso()
    return Manifest(
        updated_at=now,
        metadata={
            "projectGoal": project_goal,
            "createdAt": now,
            "updatedAt": now,
            "version": MANIFEST_SCHEMA_VERSION,
        },
    )


def _decode(text: str, path: Path) -> dict[str, object]:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestFormatError(f"{path}: invalid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ManifestFormatError(f"{path}: manifest must be a JSON object")
    return payload


__all__ = ["ManifestStore", "create_empty", "stats", "upsert_entry"]
