"""
workledger record store

File: src/workledger/persistence/records.py

Purpose
- Load and persist individual record files under the tasks directory with optimistic
  version checks.

Functional requirements
- ``load`` resolves the on-disk location (cached path, module path, legacy path, scan) and
  falls back to a minimal record synthesized from the manifest entry when the file is gone.
- Every persisted mutation writes ``version = on-disk version + 1``.
- A save whose output is byte-identical to the file on disk is skipped and reports ``False``.
- A stale ``expected_version`` raises ``RecordConflictError`` and leaves the file untouched.
- Metadata-only saves keep the existing body byte for byte.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator
from pathlib import Path, PurePosixPath

import structlog

from workledger.constants import MANIFEST_FILE, RECORD_SUFFIX, TASKS_DIR
from workledger.domain.models import Manifest, ManifestEntry, Record
from workledger.errors import RecordConflictError, RecordFormatError, RecordNotFoundError
from workledger.persistence.frontmatter import (
    parse_record,
    serialize_metadata_only,
    serialize_record,
    split_document,
)
from workledger.persistence.manifest import ManifestStore
from workledger.persistence.paths import derive_record_path, ensure_inside, resolve_record_path
from workledger.utils.fs import atomic_write, read_text_or_none

logger = structlog.get_logger(__name__)


class RecordStore:
    """File-backed store for records rooted at ``<root>/<tasks_dir>``."""

    def __init__(
        self,
        root: Path | str,
        *,
        tasks_dir: PurePosixPath | str = TASKS_DIR,
        manifest_file: str = MANIFEST_FILE,
    ) -> None:
        self._root = Path(root)
        self._tasks_dir = self._root / Path(tasks_dir)
        self.manifest = ManifestStore(self._tasks_dir / manifest_file)

    @property
    def root(self) -> Path:
        return self._root

    @property
    def tasks_dir(self) -> Path:
        return self._tasks_dir

    # ------------------------------------------------------------------ reads

    def load(self, record_id: str, entry: ManifestEntry | None = None) -> Record | None:
        """Load ``record_id`` or return ``None`` when neither file nor manifest entry exists.

        When ``entry`` is not given the manifest on disk is consulted for it.
        """

        if entry is None:
            manifest = self.manifest.load()
            if manifest is not None:
                entry = manifest.records.get(record_id)

        relative = resolve_record_path(self._tasks_dir, record_id, entry)
        if relative is not None:
            text = read_text_or_none(self._tasks_dir / relative)
            if text is not None:
                return parse_record(text, file_path=relative)

        if entry is None:
            return None
        logger.warning("record_file_missing_using_manifest_entry", record_id=record_id)
        return Record(
            id=record_id,
            description=entry.description,
            module=entry.module,
            priority=entry.priority,
            status=entry.status,
        )

    def require(self, record_id: str, entry: ManifestEntry | None = None) -> Record:
        record = self.load(record_id, entry)
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    def load_all(self, manifest: Manifest) -> list[Record]:
        """Load every record listed in ``manifest``, in manifest order."""

        loaded: list[Record] = []
        for record_id, entry in manifest.records.items():
            record = self.load(record_id, entry)
            if record is not None:
                loaded.append(record)
        return loaded

    def list_records(self) -> list[Record]:
        """Parse every record file under the tasks directory, sorted by relative path."""

        records: list[Record] = []
        for path in self._iter_record_files():
            relative = path.relative_to(self._tasks_dir).as_posix()
            text = read_text_or_none(path)
            if text is None:
                continue
            try:
                records.append(parse_record(text, file_path=relative))
            except RecordFormatError as exc:
                logger.warning("record_file_unparseable", path=relative, error=str(exc))
        return records

    def record_path(self, record: Record) -> Path:
        """Absolute location used when persisting ``record``."""

        return ensure_inside(self._tasks_dir, self._relative_location(record))

    # ----------------------------------------------------------------- writes

    def save_full(
        self,
        record: Record,
        expected_version: int | None = None,
        *,
        skip_version_increment: bool = False,
    ) -> bool:
        """Persist ``record`` with its managed body sections patched in place.

        Returns ``True`` when the file was written and ``False`` when the content on disk
        already matched. On write, ``record.version`` and ``record.file_path`` are updated.
        """

        relative = self._relative_location(record)
        path = ensure_inside(self._tasks_dir, relative)
        existing = read_text_or_none(path)
        disk_version = self._check_expected_version(record.id, existing, expected_version)

        if disk_version is None:
            base_version = record.version
        else:
            base_version = disk_version
            if existing is not None:
                unchanged = serialize_record(dataclasses.replace(record, version=base_version))
                if unchanged == existing:
                    return self._skipped(record, relative)

        new_version = base_version if skip_version_increment else base_version + 1
        content = serialize_record(dataclasses.replace(record, version=new_version))
        if content == existing:
            return self._skipped(record, relative)
        return self._write(record, path, relative, content, new_version)

    def save_metadata_only(self, record: Record, expected_version: int | None = None) -> bool:
        """Rewrite only the metadata block of ``record``; the body on disk is preserved exactly."""

        relative = self._relative_location(record)
        path = ensure_inside(self._tasks_dir, relative)
        existing = read_text_or_none(path)
        if existing is None:
            return self.save_full(record, expected_version)

        disk_version = self._check_expected_version(record.id, existing, expected_version)
        _, body = split_document(existing)
        base_version = disk_version if disk_version is not None else record.version

        unchanged = serialize_metadata_only(dataclasses.replace(record, version=base_version), body)
        if unchanged == existing:
            return self._skipped(record, relative)

        new_version = base_version + 1
        content = serialize_metadata_only(dataclasses.replace(record, version=new_version), body)
        written = self._write(record, path, relative, content, new_version)
        record.body = body
        return written

    def delete(self, record_id: str, entry: ManifestEntry | None = None) -> bool:
        """Remove the file backing ``record_id``. Returns ``False`` when there was none."""

        relative = resolve_record_path(self._tasks_dir, record_id, entry)
        if relative is None:
            return False
        path = ensure_inside(self._tasks_dir, relative)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("record_deleted", record_id=record_id, path=relative)
        return True

    # ---------------------------------------------------------------- helpers

    def _relative_location(self, record: Record) -> str:
        if record.file_path:
            return record.file_path
        existing = resolve_record_path(self._tasks_dir, record.id, module=record.module)
        return existing or derive_record_path(record.id, record.module)

    def _check_expected_version(
        self,
        record_id: str,
        existing: str | None,
        expected_version: int | None,
    ) -> int | None:
        if existing is None:
            return None
        disk_version = _version_of(existing)
        if expected_version is not None and disk_version != expected_version:
            logger.info(
                "record_conflict",
                record_id=record_id,
                expected_version=expected_version,
                actual_version=disk_version,
            )
            raise RecordConflictError(record_id, expected_version, disk_version)
        return disk_version

    def _write(self, record: Record, path: Path, relative: str, content: str, version: int) -> bool:
        atomic_write(path, content, create_parents=True)
        record.version = version
        record.file_path = relative
        logger.info("record_saved", record_id=record.id, version=version, path=relative)
        return True

    def _skipped(self, record: Record, relative: str) -> bool:
        record.file_path = relative
        logger.debug("record_save_skipped_unchanged", record_id=record.id, path=relative)
        return False

    def _iter_record_files(self) -> Iterator[Path]:
        if not self._tasks_dir.is_dir():
            return iter(())
        return iter(sorted(self._tasks_dir.rglob(f"*{RECORD_SUFFIX}")))


def _version_of(text: str) -> int:
    meta, _ = split_document(text)
    value = meta.get("version", 1)
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordFormatError(f"metadata field 'version' must be an integer, got {value!r}")
    return value


__all__ = ["RecordStore"]
