"""Human sign-off: show instructions, then block on a yes/no answer or a checklist."""

from __future__ import annotations

import os
import time
from pathlib import Path

import structlog

from workledger.domain.models import Record
from workledger.verification_plane.collaborators import NonInteractiveInput, UserInput
from workledger.verification_plane.process import elapsed_ms
from workledger.verification_plane.strategies.base import (
    ManualStrategyConfig,
    StrategyConfig,
    StrategyResult,
)
from workledger.verification_plane.strategies.common import expect_config

logger = structlog.get_logger(__name__)

_RULE = "=" * 60


def render_prompt(config: ManualStrategyConfig, record: Record) -> str:
    lines = ["", _RULE, "          MANUAL VERIFICATION REQUIRED", _RULE, ""]
    if config.reviewer:
        lines.extend([f"Assigned to: {config.reviewer}", ""])
    if config.instructions:
        lines.extend(["Instructions:", "-------------", config.instructions, ""])
    lines.extend([f"Task: {record.id}", f"Description: {record.description}", ""])
    if config.checklist:
        lines.extend(["Checklist:", "-----------"])
    return "\n".join(lines)


class ManualStrategyExecutor:
    strategy_type = "manual"

    def __init__(self, user_input: UserInput | None = None) -> None:
        self._input = user_input if user_input is not None else NonInteractiveInput()

    async def execute(
        self,
        workdir: Path,
        config: StrategyConfig,
        record: Record,
    ) -> StrategyResult:
        config = expect_config(config, ManualStrategyConfig)
        started_ns = time.monotonic_ns()

        if os.environ.get("CI", "").lower() == "true" or not self._input.interactive:
            return StrategyResult.failure(
                "Manual verification required - cannot complete in CI environment",
                reason="ci-environment",
                verdict="needs_review",
                instructions=config.instructions,
                checklist=list(config.checklist),
                reviewer=config.reviewer,
            ).with_duration(elapsed_ms(started_ns))

        self._input.display(render_prompt(config, record))
        logger.info("manual_verification_prompted", record_id=record.id)

        if config.checklist:
            answers = await self._input.ask_checklist(config.checklist)
            summary = ["", "Checklist Results:"]
            summary.extend(
                f"  {'[x]' if done else '[ ]'} {item}"
                for item, done in zip(config.checklist, answers, strict=False)
            )
            self._input.display("\n".join(summary))
            incomplete = [
                item
                for index, item in enumerate(config.checklist)
                if index >= len(answers) or not answers[index]
            ]
            if incomplete:
                return StrategyResult.failure(
                    f"Manual verification incomplete. {len(incomplete)} items not completed.",
                    reason="checklist-incomplete",
                    verdict="needs_review",
                    checklist=list(config.checklist),
                    results=list(answers),
                    incompleteItems=incomplete,
                ).with_duration(elapsed_ms(started_ns))
            approved = True
        else:
            approved = await self._input.ask_yes_no("Verification complete?")

        return StrategyResult(
            success=approved,
            output=(
                "Manual verification passed"
                if approved
                else "Manual verification rejected by reviewer"
            ),
            duration_ms=elapsed_ms(started_ns),
            details={
                "reviewer": config.reviewer,
                "instructions": config.instructions,
                "checklist": list(config.checklist),
                "approved": approved,
            },
        )


__all__ = ["ManualStrategyExecutor", "render_prompt"]
