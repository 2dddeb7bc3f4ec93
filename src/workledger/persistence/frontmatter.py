"""
workledger record file codec

File: src/workledger/persistence/frontmatter.py

Purpose
- Parse and serialize record files: a YAML metadata block between ``---`` fences
  followed by a free-form markdown body.

Functional requirements
- Managed body sections (H1 description, ``## Acceptance Criteria``, ``## Notes``) are
  patched in place by targeted region replacement; every other byte of the body passes
  through unchanged.
- Headings inside fenced code blocks never delimit or name a managed section.
- The acceptance section is fully managed; prose inside it is not preserved on save.
- Metadata-only serialization re-emits the given body verbatim.
- Unset optional metadata fields are omitted.
- Strategy entries with an unknown ``type`` are dropped with a warning.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Final

import structlog
import yaml

from workledger.constants import DEFAULT_PRIORITY, DEFAULT_VERSION, STRATEGY_TYPES
from workledger.domain.models import (
    JSONValue,
    Record,
    RecordOrigin,
    RecordStatus,
    VerificationSummary,
)
from workledger.errors import RecordFormatError

logger = structlog.get_logger(__name__)

_FENCE: Final[str] = "---"
_DOCUMENT_RE: Final[re.Pattern[str]] = re.compile(
    r"\A---[ \t]*\r?\n(?P<meta>.*?)^---[ \t]*(?:\r?\n|\Z)",
    re.MULTILINE | re.DOTALL,
)
_H1_RE: Final[re.Pattern[str]] = re.compile(r"^#[ \t]+(?P<text>.+)$", re.MULTILINE)
_H1_LINE_RE: Final[re.Pattern[str]] = re.compile(r"^#[ \t]+.+\n", re.MULTILINE)
_ACCEPTANCE_RE: Final[re.Pattern[str]] = re.compile(
    r"## Acceptance Criteria[ \t]*\n(?P<content>.*?)(?=\n## |\n# |\Z)",
    re.IGNORECASE | re.DOTALL,
)
_NOTES_RE: Final[re.Pattern[str]] = re.compile(
    r"## Notes[ \t]*\n(?P<content>.*?)(?=\n## |\n# |\Z)",
    re.IGNORECASE | re.DOTALL,
)
_NUMBERED_ITEM_RE: Final[re.Pattern[str]] = re.compile(r"^\d+\.\s+(.+)$", re.MULTILINE)
_CODE_FENCE_RE: Final[re.Pattern[str]] = re.compile(r"[ \t]{0,3}(?P<fence>`{3,}|~{3,})(?P<info>[^\r\n]*)")
_EXCESS_BLANK_LINES_RE: Final[re.Pattern[str]] = re.compile(r"\n{3,}")

_ACCEPTANCE_HEADER: Final[str] = "## Acceptance Criteria"
_NOTES_HEADER: Final[str] = "## Notes"


def split_document(text: str) -> tuple[dict[str, Any], str]:
    """Split a record file into its metadata mapping and raw body."""

    match = _DOCUMENT_RE.match(text)
    if match is None:
        return {}, text
    try:
        loaded = yaml.safe_load(match.group("meta"))
    except yaml.YAMLError as exc:
        raise RecordFormatError(f"invalid YAML metadata block: {exc}") from exc
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise RecordFormatError("metadata block must be a mapping")
    return loaded, text[match.end() :]


def parse_record(text: str, *, file_path: str | None = None) -> Record:
    """Parse record file text into a ``Record``."""

    meta, body = split_document(text)
    record_id = meta.get("id")
    if not isinstance(record_id, str) or not record_id.strip():
        raise RecordFormatError("metadata field 'id' is required")
    record_id = record_id.strip()

    module = meta.get("module")
    if not isinstance(module, str) or not module.strip():
        module = module_from_id(record_id)

    description = extract_description(body)
    if not description:
        fallback = meta.get("description")
        description = fallback.strip() if isinstance(fallback, str) else ""

    verification_raw = meta.get("verification")
    verification = (
        VerificationSummary.from_dict(verification_raw) if verification_raw is not None else None
    )

    return Record(
        id=record_id,
        description=description,
        module=module,
        priority=_int_or_default(meta.get("priority"), DEFAULT_PRIORITY, "priority"),
        status=meta.get("status") or RecordStatus.FAILING,
        acceptance=tuple(extract_acceptance(body)),
        depends_on=_str_list(meta.get("dependsOn"), "dependsOn"),
        supersedes=_str_list(meta.get("supersedes"), "supersedes"),
        tags=_str_list(meta.get("tags"), "tags"),
        version=_int_or_default(meta.get("version"), DEFAULT_VERSION, "version"),
        origin=meta.get("origin") or RecordOrigin.MANUAL,
        notes=extract_notes(body),
        verification=verification,
        body=body,
        task_type=meta.get("taskType"),
        e2e_tags=_str_list(meta.get("e2eTags"), "e2eTags"),
        test_requirements=_mapping_or_none(meta.get("testRequirements"), "testRequirements"),
        test_files=_str_list(meta.get("testFiles"), "testFiles"),
        verification_strategies=_valid_strategies(meta.get("verificationStrategies"), record_id),
        affected_by=_str_list(meta.get("affectedBy"), "affectedBy"),
        file_path=file_path,
    )


def build_metadata(record: Record) -> dict[str, Any]:
    """Metadata mapping for ``record`` in on-disk key order, omitting unset optional fields."""

    meta: dict[str, Any] = {
        "id": record.id,
        "module": record.module,
        "priority": record.priority,
        "status": record.status.value,
        "version": record.version,
        "origin": record.origin.value,
        "dependsOn": list(record.depends_on),
        "supersedes": list(record.supersedes),
        "tags": list(record.tags),
    }
    if record.e2e_tags:
        meta["e2eTags"] = list(record.e2e_tags)
    if record.test_requirements is not None:
        meta["testRequirements"] = record.test_requirements
    if record.test_files:
        meta["testFiles"] = list(record.test_files)
    if record.verification is not None:
        meta["verification"] = record.verification.to_dict()
    if record.task_type is not None:
        meta["taskType"] = record.task_type.value
    if record.verification_strategies:
        meta["verificationStrategies"] = [dict(item) for item in record.verification_strategies]
    if record.affected_by:
        meta["affectedBy"] = list(record.affected_by)
    return meta


def render_document(meta: Mapping[str, Any], body: str) -> str:
    """Render a metadata mapping and body into record file text."""

    dumped = yaml.safe_dump(
        dict(meta),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
        width=4096,
    )
    return f"{_FENCE}\n{dumped}{_FENCE}\n{body}"


def serialize_record(record: Record) -> str:
    """Serialize ``record`` with its body patched (or freshly generated when empty)."""

    if record.body:
        body = update_description_heading(record.body, record.description)
        body = update_acceptance_section(body, record.acceptance)
        body = update_notes_section(body, record.notes)
    else:
        body = generate_fresh_body(record)
    return render_document(build_metadata(record), body)


def serialize_metadata_only(record: Record, body: str) -> str:
    """Serialize ``record`` metadata in front of ``body`` without touching the body."""

    return render_document(build_metadata(record), body)


def generate_fresh_body(record: Record) -> str:
    parts: list[str] = [f"# {record.description}", ""]
    if record.acceptance:
        parts.extend([_ACCEPTANCE_HEADER, ""])
        parts.extend(f"{index}. {item}" for index, item in enumerate(record.acceptance, start=1))
        parts.append("")
    notes = record.notes.strip()
    if notes:
        parts.extend([_NOTES_HEADER, "", notes, ""])
    return "\n".join(parts)


def extract_description(body: str) -> str:
    match = _H1_RE.search(_mask_code_blocks(body))
    if match is None:
        return ""
    return match.group("text").strip()


def extract_acceptance(body: str) -> list[str]:
    match = _ACCEPTANCE_RE.search(_mask_code_blocks(body))
    if match is None:
        return []
    return [item.strip() for item in _NUMBERED_ITEM_RE.findall(match.group("content"))]


def extract_notes(body: str) -> str:
    match = _NOTES_RE.search(_mask_code_blocks(body))
    if match is None:
        return ""
    return _section_content(body, match).strip()


def update_description_heading(body: str, description: str) -> str:
    if not description:
        return body
    match = _H1_RE.search(_mask_code_blocks(body))
    if match is not None:
        return body[: match.start()] + f"# {description}" + body[match.end() :]
    return f"# {description}\n\n{body}"


def update_acceptance_section(body: str, acceptance: tuple[str, ...] | list[str]) -> str:
    """Rewrite the acceptance section from ``acceptance``.

    The section is fully managed: anything between its heading and the next heading,
    prose included, is replaced by the numbered list.
    """

    criteria = "\n".join(f"{index}. {item}" for index, item in enumerate(acceptance, start=1))
    masked = _mask_code_blocks(body)
    match = _ACCEPTANCE_RE.search(masked)
    if match is not None:
        content = _section_content(body, match)
        if acceptance:
            replacement = f"{_ACCEPTANCE_HEADER}\n\n{criteria}{_section_tail(content)}"
        else:
            replacement = f"{_ACCEPTANCE_HEADER}\n{_section_tail(content, empty=True)}"
        return body[: match.start()] + replacement + body[match.end() :]

    if not acceptance:
        return body
    section = f"{_ACCEPTANCE_HEADER}\n\n{criteria}\n"
    heading = _H1_LINE_RE.search(masked)
    if heading is not None:
        position = heading.end()
        return body[:position] + "\n" + section + body[position:]
    return section + "\n" + body


def update_notes_section(body: str, notes: str) -> str:
    content = notes.strip()
    match = _NOTES_RE.search(_mask_code_blocks(body))
    if content:
        if match is not None:
            tail = _section_tail(_section_content(body, match))
            replacement = f"{_NOTES_HEADER}\n\n{content}{tail}"
            return body[: match.start()] + replacement + body[match.end() :]
        return body.rstrip() + f"\n\n{_NOTES_HEADER}\n\n{content}\n"
    if match is None:
        return body
    stripped = body[: match.start()] + body[match.end() :]
    return _EXCESS_BLANK_LINES_RE.sub("\n\n", stripped)


def module_from_id(record_id: str) -> str:
    """First dotted segment of ``record_id`` (or the whole id when it has none)."""

    parts = record_id.split(".")
    return parts[0] if len(parts) > 1 else record_id


def _mask_code_blocks(body: str) -> str:
    """Copy of ``body`` with fenced code blocks blanked to spaces; offsets are unchanged."""

    out: list[str] = []
    opening: str | None = None
    for line in body.splitlines(keepends=True):
        fence = _CODE_FENCE_RE.match(line)
        if opening is None:
            if fence is None:
                out.append(line)
                continue
            opening = fence.group("fence")
        elif (
            fence is not None
            and fence.group("fence")[0] == opening[0]
            and len(fence.group("fence")) >= len(opening)
            and not fence.group("info").strip()
        ):
            opening = None
        text = line.rstrip("\r\n")
        out.append(" " * len(text) + line[len(text) :])
    return "".join(out)


def _section_content(body: str, match: re.Match[str]) -> str:
    return body[match.start("content") : match.end("content")]


def _section_tail(content: str, *, empty: bool = False) -> str:
    """Whitespace that separated a section's old content from whatever follows it."""

    if not content.strip():
        return content if empty else "\n"
    if empty:
        return ""
    return content[len(content.rstrip()) :]


def _int_or_default(value: object, default: int, key: str) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordFormatError(f"metadata field {key!r} must be an integer")
    return value


def _str_list(value: object, key: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise RecordFormatError(f"metadata field {key!r} must be a list")
    return tuple(str(item) for item in value if item is not None)


def _mapping_or_none(value: object, key: str) -> dict[str, JSONValue] | None:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise RecordFormatError(f"metadata field {key!r} must be a mapping")
    return _jsonify(value)


def _valid_strategies(value: object, record_id: str) -> tuple[dict[str, JSONValue], ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        logger.warning("verification_strategies_not_a_list", record_id=record_id)
        return ()
    kept: list[dict[str, JSONValue]] = []
    for index, item in enumerate(value):
        strategy_type = item.get("type") if isinstance(item, dict) else None
        if strategy_type not in STRATEGY_TYPES:
            logger.warning(
                "invalid_verification_strategy_dropped",
                record_id=record_id,
                index=index,
                strategy_type=strategy_type,
            )
            continue
        kept.append(_jsonify(item))
    return tuple(kept)


def _jsonify(value: dict[str, Any]) -> dict[str, JSONValue]:
    out: dict[str, JSONValue] = {}
    for key, item in value.items():
        out[str(key)] = _jsonify_value(item)
    return out


def _jsonify_value(value: object) -> JSONValue:
    if isinstance(value, dict):
        return _jsonify(value)
    if isinstance(value, list):
        return [_jsonify_value(item) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


__all__ = [
    "build_metadata",
    "extract_acceptance",
    "extract_description",
    "extract_notes",
    "generate_fresh_body",
    "module_from_id",
    "parse_record",
    "render_document",
    "serialize_metadata_only",
    "serialize_record",
    "split_document",
    "update_acceptance_section",
    "update_description_heading",
    "update_notes_section",
]
