"""
workledger verification runner

File: src/workledger/verification_plane/runner.py

Purpose
- Execute a record's verification strategies, aggregate one verdict, and persist the
  outcome through the record store and the manifest.

Functional requirements
- Strategy resolution order: explicit ``verification_strategies``, then the legacy
  ``test_requirements`` hints, then task-type defaults, then a single AI strategy.
- Non end-to-end checks run as one concurrent batch; a check that raises becomes a failed
  result and never aborts its siblings.
- End-to-end checks run afterwards, one at a time, and only when every other check passed.
  Otherwise they are recorded as skipped without being invoked.
- Every check runs exactly once. ``retries`` is carried on the config but only the AI
  executor retries, and only transient agent errors.
- Verdict: fail when a required check failed unambiguously, needs_review when any check
  reported an ambiguous outcome, pass otherwise.
- Persisting the verdict is a read-modify-write cycle retried on optimistic conflicts.
- A cancelled run stops before any queued check starts and persists nothing.
"""

from __future__ import annotations

import asyncio
import random
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Final

import structlog

from workledger.domain.models import (
    JSONValue,
    Record,
    RecordStatus,
    TaskType,
    Verdict,
    VerificationSummary,
    utc_now_iso,
)
from workledger.errors import RecordNotFoundError
from workledger.observability.logging import correlation_scope
from workledger.persistence.manifest import create_empty, upsert_entry
from workledger.persistence.records import RecordStore
from workledger.persistence.retry import DEFAULT_OPTIMISTIC_POLICY, with_optimistic_retry
from workledger.utils.backoff import RandomFn, RetryPolicy, SleepFn, default_sleep
from workledger.utils.concurrency import CancellationToken, WorkerPool
from workledger.verification_plane.artifacts import VerificationArtifactStore
from workledger.verification_plane.strategies.base import (
    AiStrategyConfig,
    CommandStrategyConfig,
    FileStrategyConfig,
    ManualStrategyConfig,
    ScriptStrategyConfig,
    StrategyConfig,
    StrategyRegistry,
    StrategyResult,
    TestStrategyConfig,
    parse_strategy_config,
    parse_strategy_configs,
)
from workledger.verification_plane.strategies.common import SECURITY_VIOLATION

logger = structlog.get_logger(__name__)

SKIPPED_OUTPUT: Final[str] = "Skipped: prerequisite failed"
DEFAULT_VERIFIER: Final[str] = "workledger"
DEFAULT_MAX_CONCURRENCY: Final[int] = 8

STATUS_FOR_VERDICT: Final[Mapping[Verdict, RecordStatus]] = {
    Verdict.PASS: RecordStatus.PASSING,
    Verdict.FAIL: RecordStatus.FAILING,
    Verdict.NEEDS_REVIEW: RecordStatus.NEEDS_REVIEW,
}


@dataclass(frozen=True, slots=True)
class Check:
    """One strategy scheduled for execution."""

    config: StrategyConfig
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.config.type

    @property
    def is_e2e(self) -> bool:
        return self.config.type == "e2e"


@dataclass(frozen=True, slots=True)
class CheckOutcome:
    check: Check
    result: StrategyResult
    attempts: int = 1
    skipped: bool = False

    @property
    def required(self) -> bool:
        return self.check.config.required

    @property
    def ambiguous(self) -> bool:
        return self.result.details.get("verdict") == Verdict.NEEDS_REVIEW.value

    def to_dict(self) -> dict[str, JSONValue]:
        payload = self.result.to_dict()
        payload.update(
            {
                "type": self.check.config.type,
                "name": self.check.label,
                "required": self.required,
                "attempts": self.attempts,
                "skipped": self.skipped,
            }
        )
        return payload


@dataclass(frozen=True, slots=True)
class VerificationRun:
    """Everything one ``verify_record`` call decided and persisted."""

    record_id: str
    verdict: Verdict
    status: RecordStatus
    version: int
    verified_at: str
    verified_by: str
    summary: str
    outcomes: tuple[CheckOutcome, ...]
    criteria_results: tuple[dict[str, JSONValue], ...] = ()
    suggestions: tuple[str, ...] = ()
    commit_hash: str | None = None
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    run_number: int | None = None


# ---------------------------------------------------------------------------
# Strategy resolution
# ---------------------------------------------------------------------------


def default_strategies_for(task_type: TaskType | None) -> tuple[StrategyConfig, ...]:
    """Built-in strategies for records that declare nothing more specific."""

    if task_type is TaskType.CODE:
        return (TestStrategyConfig(required=False), AiStrategyConfig())
    if task_type is TaskType.OPS:
        return (ScriptStrategyConfig(required=False, path="./verify.sh"), AiStrategyConfig())
    if task_type is TaskType.DATA:
        return (FileStrategyConfig(required=False), AiStrategyConfig())
    if task_type is TaskType.INFRA:
        return (
            CommandStrategyConfig(required=False, command="terraform validate"),
            AiStrategyConfig(),
        )
    if task_type is TaskType.MANUAL:
        return (ManualStrategyConfig(),)
    return (AiStrategyConfig(),)


def resolve_strategies(record: Record) -> tuple[StrategyConfig, ...]:
    """Strategies that verify ``record``; malformed declarations raise ``StrategyConfigError``."""

    if record.verification_strategies:
        return parse_strategy_configs(
            record.verification_strategies, f"{record.id}.verificationStrategies"
        )

    converted: list[StrategyConfig] = []
    hints = record.test_requirements or {}
    for key, strategy_type in (("unit", "test"), ("e2e", "e2e")):
        hint = hints.get(key)
        if isinstance(hint, Mapping):
            data = {name: value for name, value in hint.items() if name != "scenarios"}
            data["type"] = strategy_type
            converted.append(parse_strategy_config(data, f"{record.id}.testRequirements.{key}"))
    if converted:
        return tuple(converted)

    return default_strategies_for(record.task_type)


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


async def execute_check(
    registry: StrategyRegistry,
    workdir: Path,
    check: Check,
    record: Record,
) -> CheckOutcome:
    """Run one check exactly once; transient AI failures are retried inside the executor."""

    result = await registry.execute(workdir, check.config, record)
    if result.reason == SECURITY_VIOLATION:
        logger.warning("check_security_violation", record_id=record.id, check=check.label)
    return CheckOutcome(check=check, result=result)


async def run_checks(
    registry: StrategyRegistry,
    workdir: Path,
    record: Record,
    checks: Sequence[Check],
    *,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    cancel_token: CancellationToken | None = None,
) -> list[CheckOutcome]:
    """Run ``checks`` and return their outcomes in the order the checks were given.

    Cancelling ``cancel_token`` stops checks that have not started yet and raises
    ``asyncio.CancelledError`` once the running ones settle.
    """

    indexed = list(enumerate(checks))
    batch = [(index, check) for index, check in indexed if not check.is_e2e]
    deferred = [(index, check) for index, check in indexed if check.is_e2e]
    outcomes: dict[int, CheckOutcome] = {}

    if batch:
        pool: WorkerPool[CheckOutcome] = WorkerPool(
            max_concurrency=max_concurrency, cancel_token=cancel_token
        )
        settled = await pool.settle_all(
            execute_check(registry, workdir, check, record) for _, check in batch
        )
        for (index, check), item in zip(batch, settled, strict=True):
            if item.ok and item.value is not None:
                outcomes[index] = item.value
            else:
                outcomes[index] = _crashed(check, record, item.error)

    prerequisites_passed = all(outcomes[index].result.success for index, _ in batch)
    for index, check in deferred:
        if not prerequisites_passed:
            outcomes[index] = CheckOutcome(
                check=check,
                result=StrategyResult.failure(SKIPPED_OUTPUT, reason="skipped"),
                attempts=0,
                skipped=True,
            )
            continue
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        try:
            outcomes[index] = await execute_check(registry, workdir, check, record)
        except Exception as exc:
            outcomes[index] = _crashed(check, record, exc)

    if deferred and not prerequisites_passed:
        logger.info("e2e_checks_skipped", record_id=record.id, count=len(deferred))
    return [outcomes[index] for index, _ in indexed]


def _crashed(check: Check, record: Record, error: BaseException | None) -> CheckOutcome:
    message = str(error) if error is not None else "no result"
    logger.error(
        "check_raised",
        record_id=record.id,
        check=check.label,
        error_type=type(error).__name__,
        error=message,
    )
    return CheckOutcome(
        check=check,
        result=StrategyResult.failure(
            f"Check failed with error: {message}",
            reason="error",
            error=message,
            strategyType=check.config.type,
        ),
    )


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def aggregate_verdict(outcomes: Sequence[CheckOutcome]) -> Verdict:
    if any(item.required and not item.result.success and not item.ambiguous for item in outcomes):
        return Verdict.FAIL
    if any(item.ambiguous for item in outcomes):
        return Verdict.NEEDS_REVIEW
    return Verdict.PASS


def criteria_results(
    record: Record, outcomes: Sequence[CheckOutcome]
) -> tuple[dict[str, JSONValue], ...]:
    """Per-criterion judgement: the AI's when one exists, otherwise derived from the checks."""

    for item in outcomes:
        judged = item.result.details.get("criteriaResults")
        if isinstance(judged, list):
            return tuple(entry for entry in judged if isinstance(entry, dict))

    satisfied = all(item.result.success or not item.required for item in outcomes)
    return tuple(
        {
            "index": index,
            "criterion": criterion,
            "satisfied": satisfied,
            "reasoning": (
                "Verified by strategy execution"
                if satisfied
                else "One or more required strategies failed"
            ),
            "confidence": 0.8 if satisfied else 0.3,
        }
        for index, criterion in enumerate(record.acceptance)
    )


def summarize(outcomes: Sequence[CheckOutcome]) -> str:
    passed = sum(1 for item in outcomes if item.result.success)
    failed = [item.check.label for item in outcomes if not item.result.success]
    text = f"{passed}/{len(outcomes)} strategies passed"
    if failed:
        text += f"; failed: {', '.join(failed)}"
    return text


def _verified_by(outcomes: Sequence[CheckOutcome]) -> str:
    for item in outcomes:
        agent = item.result.details.get("agentUsed")
        if isinstance(agent, str) and agent:
            return agent
    return DEFAULT_VERIFIER


def _suggestions(outcomes: Sequence[CheckOutcome]) -> tuple[str, ...]:
    collected: list[str] = []
    for item in outcomes:
        values = item.result.details.get("suggestions")
        if isinstance(values, list):
            collected.extend(str(value) for value in values)
    return tuple(collected)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


async def verify_record(
    store: RecordStore,
    registry: StrategyRegistry,
    record_id: str,
    *,
    workdir: Path | None = None,
    artifacts: VerificationArtifactStore | None = None,
    commit_hash: str | None = None,
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    optimistic_policy: RetryPolicy = DEFAULT_OPTIMISTIC_POLICY,
    sleep: SleepFn = default_sleep,
    rng: RandomFn = random.random,
    cancel_token: CancellationToken | None = None,
) -> VerificationRun:
    """Verify ``record_id`` and persist status, version, and verification summary."""

    record = store.require(record_id)
    root = workdir if workdir is not None else store.root
    run_id = uuid.uuid4().hex

    with correlation_scope(record_id=record_id, run_id=run_id):
        checks = [Check(config) for config in resolve_strategies(record)]
        logger.info(
            "verification_started",
            record_id=record_id,
            strategies=[check.label for check in checks],
        )
        try:
            outcomes = await run_checks(
                registry,
                root,
                record,
                checks,
                max_concurrency=max_concurrency,
                cancel_token=cancel_token,
            )
        except asyncio.CancelledError:
            logger.warning("verification_cancelled", record_id=record_id)
            raise
        verdict = aggregate_verdict(outcomes)
        summary = VerificationSummary(
            verified_at=utc_now_iso(),
            verdict=verdict,
            verified_by=_verified_by(outcomes),
            summary=summarize(outcomes),
            commit_hash=commit_hash,
        )

        async def persist() -> Record:
            fresh = store.load(record_id)
            if fresh is None:
                raise RecordNotFoundError(record_id)
            expected = fresh.version
            fresh.status = STATUS_FOR_VERDICT[verdict]
            fresh.verification = summary
            store.save_metadata_only(fresh, expected_version=expected)
            manifest = store.manifest.load() or create_empty()
            upsert_entry(manifest, fresh)
            store.manifest.save(manifest)
            return fresh

        saved = await with_optimistic_retry(
            persist, optimistic_policy, sleep=sleep, rng=rng
        )
        run = VerificationRun(
            record_id=record_id,
            verdict=verdict,
            status=saved.status,
            version=saved.version,
            verified_at=summary.verified_at,
            verified_by=summary.verified_by,
            summary=summary.summary,
            outcomes=tuple(outcomes),
            criteria_results=criteria_results(record, outcomes),
            suggestions=_suggestions(outcomes),
            commit_hash=commit_hash,
            run_id=run_id,
        )
        if artifacts is not None:
            run_number = artifacts.save(run, record)
            run = replace(run, run_number=run_number)

        logger.info(
            "verification_completed",
            record_id=record_id,
            verdict=verdict.value,
            version=saved.version,
            run_number=run.run_number,
        )
        return run


__all__ = [
    "DEFAULT_VERIFIER",
    "SKIPPED_OUTPUT",
    "STATUS_FOR_VERDICT",
    "Check",
    "CheckOutcome",
    "VerificationRun",
    "aggregate_verdict",
    "criteria_results",
    "default_strategies_for",
    "execute_check",
    "resolve_strategies",
    "run_checks",
    "summarize",
    "verify_record",
]
