"""Shared deterministic fixtures and builders for persistence tests."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from workledger.domain.models import Record, RecordStatus


def record_text(
    record_id: str,
    *,
    module: str,
    version: int = 1,
    status: str = "failing",
    priority: int = 0,
    description: str = "Example record",
    acceptance: Sequence[str] = (),
    extra_body: str = "",
) -> str:
    lines = [
        "---",
        f"id: {record_id}",
        f"module: {module}",
        f"priority: {priority}",
        f"status: {status}",
        f"version: {version}",
        "origin: manual",
        "dependsOn: []",
        "supersedes: []",
        "tags: []",
        "---",
        f"# {description}",
        "",
    ]
    if acceptance:
        lines.extend(["## Acceptance Criteria", ""])
        lines.extend(f"{index}. {item}" for index, item in enumerate(acceptance, start=1))
        lines.append("")
    text = "\n".join(lines) + "\n"
    if extra_body:
        text += extra_body
    return text


def write_record_file(tasks_dir: Path, relative: str, text: str) -> Path:
    path = tasks_dir / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def make_record(
    record_id: str,
    *,
    status: RecordStatus = RecordStatus.FAILING,
    priority: int = 0,
    acceptance: Sequence[str] = (),
    description: str | None = None,
) -> Record:
    module = record_id.split(".")[0]
    return Record(
        id=record_id,
        description=description if description is not None else f"Record {record_id}",
        module=module,
        priority=priority,
        status=status,
        acceptance=tuple(acceptance),
    )
