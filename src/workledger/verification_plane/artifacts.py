"""
workledger verification artifacts

File: src/workledger/verification_plane/artifacts.py

Purpose
- Keep a per-record history of verification runs under ``<root>/ai/verification``.

Functional requirements
- Each run writes ``<id>/NNN.json`` (compact metadata) and ``<id>/NNN.md`` (human report).
- Run numbers start at 1 and continue after the highest run already on disk.
- ``index.json`` rolls up the latest run, verdict, and pass/fail counts per record.
- An unreadable index is replaced by a fresh one rather than blocking verification.

Non-functional requirements
- Every file is written atomically; record ids can never address paths outside the
  verification directory.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Final

import structlog

from workledger.constants import (
    VERIFICATION_DIR,
    VERIFICATION_INDEX_FILE,
    VERIFICATION_INDEX_SCHEMA_VERSION,
)
from workledger.domain.models import JSONValue, Record, Verdict, utc_now_iso
from workledger.errors import SecurityViolationError
from workledger.utils.fs import atomic_write, is_within, read_text_or_none

if TYPE_CHECKING:
    from workledger.verification_plane.runner import VerificationRun

logger = structlog.get_logger(__name__)

_RUN_FILE_RE: Final = re.compile(r"^(\d{3,})\.json$")
_REPORT_OUTPUT_CHARS: Final[int] = 2_000


def format_run_number(number: int) -> str:
    return f"{number:03d}"


class VerificationArtifactStore:
    """Run history and rollup index for verification runs."""

    def __init__(
        self,
        root: Path | str,
        *,
        verification_dir: PurePosixPath | str = VERIFICATION_DIR,
    ) -> None:
        self._dir = Path(root) / Path(verification_dir)

    @property
    def directory(self) -> Path:
        return self._dir

    @property
    def index_path(self) -> Path:
        return self._dir / VERIFICATION_INDEX_FILE

    def record_dir(self, record_id: str) -> Path:
        if not record_id or "/" in record_id or "\\" in record_id or record_id in {".", ".."}:
            raise SecurityViolationError(f"invalid record id for artifacts: {record_id!r}")
        if not is_within(record_id, self._dir):
            raise SecurityViolationError(f"artifact path escapes verification dir: {record_id!r}")
        return self._dir / record_id

    def next_run_number(self, record_id: str) -> int:
        directory = self.record_dir(record_id)
        if not directory.is_dir():
            return 1
        numbers = [
            int(match.group(1))
            for child in directory.iterdir()
            if (match := _RUN_FILE_RE.match(child.name))
        ]
        return max(numbers, default=0) + 1

    def save(self, run: VerificationRun, record: Record) -> int:
        """Write metadata, report, and index entry for ``run``; return its run number."""

        run_number = self.next_run_number(run.record_id)
        stem = format_run_number(run_number)
        directory = self.record_dir(run.record_id)

        metadata = run_metadata(run, run_number)
        atomic_write(
            directory / f"{stem}.json",
            json.dumps(metadata, indent=2, ensure_ascii=False) + "\n",
            create_parents=True,
        )
        atomic_write(directory / f"{stem}.md", render_report(run, record, run_number))

        index = self.load_index()
        update_index(index, run, run_number)
        atomic_write(
            self.index_path,
            json.dumps(index, indent=2, ensure_ascii=False) + "\n",
            create_parents=True,
        )
        logger.info(
            "verification_artifacts_written",
            record_id=run.record_id,
            run_number=run_number,
            verdict=run.verdict.value,
        )
        return run_number

    def load_index(self) -> dict[str, JSONValue]:
        text = read_text_or_none(self.index_path)
        if text is None:
            return create_empty_index()
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning("verification_index_corrupt", path=str(self.index_path), error=str(exc))
            return create_empty_index()
        if not isinstance(payload, dict) or not isinstance(payload.get("features"), dict):
            logger.warning("verification_index_corrupt", path=str(self.index_path))
            return create_empty_index()
        return payload

    def load_run(self, record_id: str, run_number: int) -> dict[str, JSONValue] | None:
        path = self.record_dir(record_id) / f"{format_run_number(run_number)}.json"
        text = read_text_or_none(path)
        if text is None:
            return None
        payload = json.loads(text)
        return payload if isinstance(payload, dict) else None

    def latest(self, record_id: str) -> dict[str, JSONValue] | None:
        features = self.load_index().get("features")
        if not isinstance(features, dict):
            return None
        summary = features.get(record_id)
        if not isinstance(summary, dict):
            return None
        latest_run = summary.get("latestRun")
        if not isinstance(latest_run, int):
            return None
        return self.load_run(record_id, latest_run)


def create_empty_index() -> dict[str, JSONValue]:
    return {
        "features": {},
        "updatedAt": utc_now_iso(),
        "version": VERIFICATION_INDEX_SCHEMA_VERSION,
    }


def update_index(index: dict[str, JSONValue], run: VerificationRun, run_number: int) -> None:
    features = index.get("features")
    if not isinstance(features, dict):
        features = {}
        index["features"] = features
    existing = features.get(run.record_id)
    pass_count = 0
    fail_count = 0
    if isinstance(existing, Mapping):
        pass_count = _count(existing.get("passCount"))
        fail_count = _count(existing.get("failCount"))
    if run.verdict is Verdict.PASS:
        pass_count += 1
    elif run.verdict is Verdict.FAIL:
        fail_count += 1
    features[run.record_id] = {
        "featureId": run.record_id,
        "latestRun": run_number,
        "latestTimestamp": run.verified_at,
        "latestVerdict": run.verdict.value,
        "totalRuns": run_number,
        "passCount": pass_count,
        "failCount": fail_count,
    }
    index["updatedAt"] = utc_now_iso()
    index.setdefault("version", VERIFICATION_INDEX_SCHEMA_VERSION)


def run_metadata(run: VerificationRun, run_number: int) -> dict[str, JSONValue]:
    """Compact run record: outputs, reasoning, and evidence are left to the report."""

    return {
        "featureId": run.record_id,
        "runNumber": run_number,
        "runId": run.run_id,
        "timestamp": run.verified_at,
        "commitHash": run.commit_hash,
        "verdict": run.verdict.value,
        "verifiedBy": run.verified_by,
        "summary": run.summary,
        "version": run.version,
        "strategyResults": [
            {
                "type": item.check.config.type,
                "required": item.required,
                "success": item.result.success,
                "skipped": item.skipped,
                "attempts": item.attempts,
                "durationMs": item.result.duration_ms,
                "reason": item.result.reason,
            }
            for item in run.outcomes
        ],
        "criteriaResults": [
            {
                "index": entry.get("index"),
                "criterion": entry.get("criterion"),
                "satisfied": entry.get("satisfied"),
                "confidence": entry.get("confidence"),
            }
            for entry in run.criteria_results
        ],
    }


def render_report(run: VerificationRun, record: Record, run_number: int) -> str:
    lines = [
        f"# Verification Report: {run.record_id}",
        "",
        f"- **Run**: {format_run_number(run_number)}",
        f"- **Timestamp**: {run.verified_at}",
        f"- **Verdict**: {run.verdict.value.upper()}",
        f"- **Verified by**: {run.verified_by}",
    ]
    if run.commit_hash:
        lines.append(f"- **Commit**: {run.commit_hash}")
    lines.extend(["", "## Description", "", record.description or "(none)", ""])

    if run.criteria_results:
        lines.extend(["## Acceptance Criteria", ""])
        for entry in run.criteria_results:
            mark = "x" if entry.get("satisfied") is True else " "
            confidence = entry.get("confidence")
            suffix = (
                f" ({int(float(confidence) * 100 + 0.5)}%)"
                if isinstance(confidence, (int, float)) and not isinstance(confidence, bool)
                else ""
            )
            lines.append(f"- [{mark}] {entry.get('criterion')}{suffix}")
            reasoning = entry.get("reasoning")
            if isinstance(reasoning, str) and reasoning:
                lines.append(f"  - {reasoning}")
        lines.append("")

    lines.extend(["## Strategy Results", ""])
    for item in run.outcomes:
        status = "SKIPPED" if item.skipped else ("PASS" if item.result.success else "FAIL")
        optional = "" if item.required else " (optional)"
        lines.append(
            f"### {item.check.label}{optional}: {status} ({item.result.duration_ms}ms)"
        )
        if item.result.output:
            output = item.result.output
            if len(output) > _REPORT_OUTPUT_CHARS:
                output = output[:_REPORT_OUTPUT_CHARS] + "\n... (truncated)"
            lines.extend(["", "```", output, "```"])
        lines.append("")

    if run.suggestions:
        lines.extend(["## Suggestions", ""])
        lines.extend(f"- {item}" for item in run.suggestions)
        lines.append("")
    return "\n".join(lines)


def _count(value: object) -> int:
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


__all__ = [
    "VerificationArtifactStore",
    "create_empty_index",
    "format_run_number",
    "render_report",
    "run_metadata",
    "update_index",
]
