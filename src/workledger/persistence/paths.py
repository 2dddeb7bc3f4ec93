"""Record identifier to on-disk location mapping.

Resolution order used by ``resolve_record_path``:

1. cached ``file_path`` (from a manifest entry); when that file is gone nothing else is tried
2. ``<module>/<rest>.md`` when the id starts with ``<module>.``
3. ``<first-segment>/<rest>.md`` (legacy layout)
4. scan of candidate directories for a file whose metadata ``id`` matches
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from workledger.constants import RECORD_SUFFIX
from workledger.errors import RecordFormatError, SecurityViolationError
from workledger.utils.fs import is_within, read_text_or_none

if TYPE_CHECKING:
    from workledger.domain.models import ManifestEntry

logger = structlog.get_logger(__name__)


def derive_record_path(record_id: str, module: str | None = None) -> str:
    """Deterministic relative location for a record, without touching disk."""

    if module and record_id.startswith(f"{module}."):
        name = record_id[len(module) + 1 :]
        return f"{module}/{name}{RECORD_SUFFIX}"
    return legacy_record_path(record_id)


def legacy_record_path(record_id: str) -> str:
    parts = record_id.split(".")
    if len(parts) == 1:
        return f"{record_id}{RECORD_SUFFIX}"
    return f"{parts[0]}/{'.'.join(parts[1:])}{RECORD_SUFFIX}"


def record_id_from_path(relative_path: str) -> str:
    """Inverse of the legacy layout: ``cli/survey.md`` -> ``cli.survey``."""

    without_suffix = relative_path.removesuffix(RECORD_SUFFIX)
    return without_suffix.replace("\\", "/").replace("/", ".")


def ensure_inside(tasks_dir: Path, relative_path: str) -> Path:
    """Absolute location of ``relative_path`` or ``SecurityViolationError`` if it escapes."""

    if not is_within(relative_path, tasks_dir):
        raise SecurityViolationError(f"record path escapes the tasks directory: {relative_path!r}")
    return tasks_dir / relative_path


def resolve_record_path(
    tasks_dir: Path,
    record_id: str,
    entry: ManifestEntry | None = None,
    *,
    module: str | None = None,
) -> str | None:
    """Relative path of the existing file for ``record_id``, or ``None`` when absent."""

    explicit = entry.file_path if entry is not None else None
    hinted_module = module or (entry.module if entry is not None else None)

    if explicit:
        if ensure_inside(tasks_dir, explicit).is_file():
            return explicit
        return None

    candidates: list[str] = []
    if hinted_module and record_id.startswith(f"{hinted_module}."):
        candidates.append(derive_record_path(record_id, hinted_module))
    if "." in record_id:
        candidates.append(legacy_record_path(record_id))

    for candidate in candidates:
        if ensure_inside(tasks_dir, candidate).is_file():
            return candidate

    return _scan_for_record(tasks_dir, record_id, hinted_module)


def _scan_for_record(tasks_dir: Path, record_id: str, module: str | None) -> str | None:
    # Imported lazily: frontmatter depends on the domain models only.
    from workledger.persistence.frontmatter import split_document

    parts = record_id.split(".")
    if len(parts) < 2:
        return None

    directories: list[str] = []
    if module:
        directories.append(module)
    for index in range(1, len(parts)):
        prefix = ".".join(parts[:index])
        if prefix not in directories:
            directories.append(prefix)

    for directory in directories:
        directory_path = ensure_inside(tasks_dir, directory)
        if not directory_path.is_dir():
            continue
        for file_path in sorted(directory_path.glob(f"*{RECORD_SUFFIX}")):
            text = read_text_or_none(file_path)
            if text is None:
                continue
            try:
                meta, _ = split_document(text)
            except RecordFormatError:
                logger.warning("unparseable_record_skipped", path=str(file_path))
                continue
            if meta.get("id") == record_id:
                return f"{directory}/{file_path.name}"
    return None


__all__ = [
    "derive_record_path",
    "ensure_inside",
    "legacy_record_path",
    "record_id_from_path",
    "resolve_record_path",
]
