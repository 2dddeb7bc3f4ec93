"""
workledger filesystem helpers

File: src/workledger/utils/fs.py

Purpose
- Crash-safe replacement of record, manifest, and artifact files.
- Lexical containment checks for ids and globs that come from record files.

Functional requirements
- A reader sees either the old file or the new one; temp files never survive a failure.
- Containment is decided without touching the filesystem, so a hostile path is refused
  before any ``stat`` or ``open``.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "is_within",
    "lexical_resolve",
    "read_text_or_none",
]


def atomic_write(
    path: PathLike,
    data: bytes | str,
    *,
    encoding: str = "utf-8",
    create_parents: bool = False,
) -> None:
    """Replace ``path`` with ``data`` via a sibling temp file and ``os.replace``.

    Text is written with ``newline=""`` so record bodies keep their line endings.
    """

    target = Path(path)
    if create_parents:
        target.parent.mkdir(parents=True, exist_ok=True)
    directory = target.parent.resolve(strict=True)
    if not directory.is_dir():
        raise NotADirectoryError(f"{directory!s} is not a directory")

    payload = data if isinstance(data, bytes) else data.encode(encoding)
    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, target)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(temp_name)
        raise
    _sync_directory(directory)


def read_text_or_none(path: PathLike, *, encoding: str = "utf-8") -> str | None:
    """File text with line endings untouched, or ``None`` when the file is absent."""

    try:
        return Path(path).read_bytes().decode(encoding)
    except FileNotFoundError:
        return None


def lexical_resolve(root: PathLike, candidate: PathLike) -> Path:
    """Join ``candidate`` onto ``root`` and collapse ``.``/``..`` without following links."""

    base = Path(os.path.abspath(root))
    joined = base / candidate  # an absolute candidate replaces the base
    return Path(os.path.normpath(joined))


def is_within(child: PathLike, parent: PathLike) -> bool:
    """``True`` when ``child`` (relative to ``parent`` unless absolute) stays under ``parent``."""

    boundary = Path(os.path.normpath(os.path.abspath(parent)))
    return lexical_resolve(boundary, child).is_relative_to(boundary)


def _sync_directory(directory: Path) -> None:
    # Directory fsync is unsupported on Windows and on some filesystems.
    if os.name == "nt":
        return
    flags = os.O_RDONLY | getattr(os, "O_DIRECTORY", 0)
    try:
        dir_fd = os.open(directory, flags)
    except OSError:
        return
    try:
        with contextlib.suppress(OSError):
            os.fsync(dir_fd)
    finally:
        os.close(dir_fd)
