"""
workledger — unit tests for verification artifacts

File: tests/unit/verification_plane/test_verification_artifacts.py

Purpose
- Validate the per-record run history and the rollup index.

What this test file should cover
- Run numbers continue after the highest run on disk.
- Index entries roll up the latest verdict and pass/fail counts.
- A corrupt index is replaced instead of failing the run.
- Record ids cannot address paths outside the verification directory.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

from workledger.domain.models import RecordStatus, Verdict
from workledger.errors import SecurityViolationError
from workledger.verification_plane.artifacts import VerificationArtifactStore, render_report
from workledger.verification_plane.runner import Check, CheckOutcome, VerificationRun
from workledger.verification_plane.strategies import StrategyResult, TestStrategyConfig

from . import make_record


def _run(verdict: Verdict, *, record_id: str = "auth.login") -> VerificationRun:
    success = verdict is Verdict.PASS
    result = (
        StrategyResult(success=True, output="3 passed", duration_ms=40)
        if success
        else StrategyResult.failure("1 failed", reason="exit-code").with_duration(40)
    )
    return VerificationRun(
        record_id=record_id,
        verdict=verdict,
        status=RecordStatus.PASSING if success else RecordStatus.FAILING,
        version=4,
        verified_at="2026-01-02T03:04:05.000Z",
        verified_by="workledger",
        summary="1/1 strategies passed" if success else "0/1 strategies passed; failed: test",
        outcomes=(CheckOutcome(check=Check(TestStrategyConfig()), result=result),),
        criteria_results=(
            {"index": 0, "criterion": "Form renders", "satisfied": success, "confidence": 0.8,
             "reasoning": "Verified by strategy execution"},
        ),
        suggestions=("Add a lockout test",),
        commit_hash="abc1234",
    )


def test_save_writes_metadata_report_and_index(tmp_path: Path) -> None:
    store = VerificationArtifactStore(tmp_path)

    number = store.save(_run(Verdict.PASS), make_record())

    assert number == 1
    run_dir = tmp_path / "ai" / "verification" / "auth.login"
    metadata = json.loads((run_dir / "001.json").read_text(encoding="utf-8"))
    assert metadata["runNumber"] == 1
    assert metadata["verdict"] == "pass"
    assert metadata["strategyResults"][0] == {
        "type": "test",
        "required": True,
        "success": True,
        "skipped": False,
        "attempts": 1,
        "durationMs": 40,
        "reason": None,
    }
    report = (run_dir / "001.md").read_text(encoding="utf-8")
    assert "# Verification Report: auth.login" in report
    assert "- [x] Form renders (80%)" in report
    assert "- Add a lockout test" in report
    assert store.latest("auth.login") == metadata


def test_index_rolls_up_counts(tmp_path: Path) -> None:
    store = VerificationArtifactStore(tmp_path)
    record = make_record()

    store.save(_run(Verdict.FAIL), record)
    store.save(_run(Verdict.PASS), record)
    store.save(_run(Verdict.NEEDS_REVIEW), record)

    entry = store.load_index()["features"]["auth.login"]
    assert entry["latestRun"] == 3
    assert entry["latestVerdict"] == "needs_review"
    assert entry["totalRuns"] == 3
    assert (entry["passCount"], entry["failCount"]) == (1, 1)


def test_run_numbers_continue_after_existing_runs(tmp_path: Path) -> None:
    store = VerificationArtifactStore(tmp_path)
    run_dir = store.record_dir("auth.login")
    run_dir.mkdir(parents=True)
    (run_dir / "007.json").write_text("{}", encoding="utf-8")
    (run_dir / "notes.json").write_text("{}", encoding="utf-8")

    assert store.next_run_number("auth.login") == 8
    assert store.next_run_number("api.health") == 1


def test_corrupt_index_is_replaced(tmp_path: Path) -> None:
    store = VerificationArtifactStore(tmp_path)
    store.index_path.parent.mkdir(parents=True)
    store.index_path.write_text("{not json", encoding="utf-8")

    store.save(_run(Verdict.PASS), make_record())

    index = json.loads(store.index_path.read_text(encoding="utf-8"))
    assert list(index["features"]) == ["auth.login"]


@pytest.mark.parametrize("record_id", ["", "..", "../escape", "a/b", "a\\b"])
def test_record_dir_rejects_unsafe_ids(tmp_path: Path, record_id: str) -> None:
    with pytest.raises(SecurityViolationError):
        VerificationArtifactStore(tmp_path).record_dir(record_id)


def test_report_marks_optional_and_truncates_output() -> None:
    run = _run(Verdict.FAIL)
    long = StrategyResult.failure("x" * 3_000, reason="exit-code")
    optional = CheckOutcome(check=Check(TestStrategyConfig(required=False), name="unit"), result=long)
    run = replace(run, outcomes=(optional,))

    report = render_report(run, make_record(), 2)

    assert "### unit (optional): FAIL (0ms)" in report
    assert "... (truncated)" in report
    assert "- **Commit**: abc1234" in report

