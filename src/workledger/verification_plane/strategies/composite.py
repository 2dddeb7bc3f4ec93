"""
workledger composite strategy

File: src/workledger/verification_plane/strategies/composite.py

Purpose
- Combine nested strategies with AND/OR semantics.

Functional requirements
- AND executes every child, even after a failure, so the report lists every problem.
- OR stops at the first success.
- Children run sequentially in declaration order through the shared registry.
- A child without a registered executor, or one that raises, counts as a failed child.
- An empty child list is vacuously true.
- A failed composite whose outcome rests on children awaiting review is itself
  marked ``verdict: needs_review`` so the record is not rejected outright.
"""

from __future__ import annotations

import time
from pathlib import Path

import structlog

from workledger.domain.models import JSONValue, Record, Verdict
from workledger.errors import UnregisteredStrategyError
from workledger.verification_plane.process import elapsed_ms
from workledger.verification_plane.strategies.base import (
    CompositeStrategyConfig,
    StrategyConfig,
    StrategyRegistry,
    StrategyResult,
)
from workledger.verification_plane.strategies.common import expect_config

logger = structlog.get_logger(__name__)


class CompositeStrategyExecutor:
    strategy_type = "composite"

    def __init__(self, registry: StrategyRegistry) -> None:
        self._registry = registry

    async def execute(
        self,
        workdir: Path,
        config: StrategyConfig,
        record: Record,
    ) -> StrategyResult:
        config = expect_config(config, CompositeStrategyConfig)
        started_ns = time.monotonic_ns()
        children = config.strategies
        total = len(children)

        if not children:
            return StrategyResult(
                success=True,
                output="Composite strategy has no nested strategies (vacuously true)",
                duration_ms=elapsed_ms(started_ns),
                details={
                    "operator": config.operator,
                    "nestedResults": [],
                    "executedCount": 0,
                    "totalCount": 0,
                    "shortCircuited": False,
                },
            )

        executed: list[tuple[StrategyConfig, StrategyResult]] = []
        for child in children:
            result = await self._run_child(workdir, child, record)
            executed.append((child, result))
            if config.operator == "or" and result.success:
                break

        if config.operator == "or":
            success = any(result.success for _, result in executed)
        else:
            success = all(result.success for _, result in executed)

        passed = sum(1 for _, result in executed if result.success)
        failed = len(executed) - passed
        lines = [
            f"Composite ({config.operator.upper()}): {passed} passed, {failed} failed ({len(executed)} executed)",
            "",
            "Results:",
        ]
        nested: list[JSONValue] = []
        for index, (child, result) in enumerate(executed):
            lines.append(f"  [{index + 1}/{total}] {child.type}: {result.output}")
            nested.append(
                {
                    "type": child.type,
                    "index": index,
                    "success": result.success,
                    "duration": result.duration_ms,
                    "output": result.output,
                    "details": dict(result.details),
                }
            )

        details: dict[str, JSONValue] = {
            "operator": config.operator,
            "nestedResults": nested,
            "executedCount": len(executed),
            "totalCount": total,
            "shortCircuited": len(executed) < total,
        }
        if not success and _undecided(config.operator, [result for _, result in executed]):
            details["verdict"] = Verdict.NEEDS_REVIEW.value

        return StrategyResult(
            success=success,
            output="\n".join(lines),
            duration_ms=elapsed_ms(started_ns),
            details=details,
        )

    async def _run_child(
        self,
        workdir: Path,
        child: StrategyConfig,
        record: Record,
    ) -> StrategyResult:
        try:
            return await self._registry.execute(workdir, child, record)
        except UnregisteredStrategyError as exc:
            return StrategyResult.failure(str(exc), reason="no-executor")
        except Exception as exc:
            logger.warning(
                "composite_child_raised",
                record_id=record.id,
                strategy_type=child.type,
                error=str(exc),
            )
            return StrategyResult.failure(
                f"Composite verification failed: {exc}", reason="error"
            )


def _undecided(operator: str, results: list[StrategyResult]) -> bool:
    """Whether a failed composite still hinges on a child awaiting human review.

    AND is undecided only when every failing child is awaiting review. OR is
    undecided when any child is, since that child could still pass.
    """

    pending = [
        result.details.get("verdict") == Verdict.NEEDS_REVIEW.value
        for result in results
        if not result.success
    ]
    if operator == "or":
        return any(pending)
    return bool(pending) and all(pending)


__all__ = ["CompositeStrategyExecutor"]
