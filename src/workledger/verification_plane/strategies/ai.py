"""
workledger AI strategy

File: src/workledger/verification_plane/strategies/ai.py

Purpose
- Ask an external agent to judge a record's acceptance criteria and turn its JSON
  answer into a ``StrategyResult``.

Functional requirements
- Prompt selection: a custom prompt wins; otherwise ``diff`` mode reviews the working-tree
  diff and ``autonomous`` mode asks the agent to explore the repository.
- Agent calls go through ``call_with_backoff`` so transient failures are retried.
- Parsing is tolerant: fenced or prose-wrapped JSON is accepted, missing criteria are
  reported as not analyzed, and an unparseable answer marks every criterion unsatisfied.
- A satisfied criterion below ``min_confidence`` downgrades a ``pass`` verdict to
  ``needs_review``.
"""

from __future__ import annotations

import json
import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

import structlog

from workledger.domain.models import JSONValue, Record, Verdict
from workledger.utils.backoff import SleepFn, default_sleep
from workledger.verification_plane.backoff import call_with_backoff
from workledger.verification_plane.collaborators import AgentInvoker, GitHelper
from workledger.verification_plane.process import elapsed_ms
from workledger.verification_plane.prompts import (
    AUTONOMOUS_TEMPLATE,
    DIFF_REVIEW_TEMPLATE,
    PromptTemplateEngine,
    PromptTemplateError,
    record_variables,
    truncate_diff,
)
from workledger.verification_plane.strategies.base import (
    AiStrategyConfig,
    ExecutorSettings,
    StrategyConfig,
    StrategyResult,
)
from workledger.verification_plane.strategies.common import expect_config, timeout_ms

logger = structlog.get_logger(__name__)

NO_DIFF: Final[str] = "No diff available"
MAX_REASONING_CHARS: Final[int] = 200

_FENCED_JSON: Final = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_JSON_OBJECT: Final = re.compile(r"\{[\s\S]*\}")


@dataclass(frozen=True, slots=True)
class CriterionJudgement:
    index: int
    criterion: str
    satisfied: bool
    reasoning: str
    evidence: tuple[str, ...] = ()
    confidence: float = 0.0

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "index": self.index,
            "criterion": self.criterion,
            "satisfied": self.satisfied,
            "reasoning": self.reasoning,
            "evidence": list(self.evidence),
            "confidence": self.confidence,
        }


@dataclass(frozen=True, slots=True)
class AiJudgement:
    criteria_results: tuple[CriterionJudgement, ...]
    verdict: Verdict
    overall_reasoning: str = ""
    suggestions: tuple[str, ...] = ()
    code_quality_notes: tuple[str, ...] = field(default=())


def extract_json_text(response: str) -> str:
    text = response.strip()
    fenced = _FENCED_JSON.search(text)
    if fenced:
        text = fenced.group(1)
    found = _JSON_OBJECT.search(text)
    if found:
        text = found.group(0)
    return text


def parse_ai_response(response: str, acceptance: Sequence[str]) -> AiJudgement:
    """Judgement for every acceptance criterion, matched to the agent's answers by index."""

    try:
        parsed = json.loads(extract_json_text(response))
        if not isinstance(parsed, Mapping):
            raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    except ValueError as exc:
        return AiJudgement(
            criteria_results=tuple(
                CriterionJudgement(
                    index=index,
                    criterion=criterion,
                    satisfied=False,
                    reasoning=f"Failed to parse AI response: {exc}",
                )
                for index, criterion in enumerate(acceptance)
            ),
            verdict=Verdict.NEEDS_REVIEW,
            overall_reasoning="AI response could not be parsed",
        )

    by_index: dict[int, Mapping[str, object]] = {}
    raw_results = parsed.get("criteriaResults")
    if isinstance(raw_results, list):
        for position, item in enumerate(raw_results):
            if not isinstance(item, Mapping):
                continue
            index = item.get("index", position)
            if isinstance(index, int) and not isinstance(index, bool) and index not in by_index:
                by_index[index] = item

    results: list[CriterionJudgement] = []
    for index, criterion in enumerate(acceptance):
        item = by_index.get(index)
        if item is None:
            results.append(
                CriterionJudgement(
                    index=index,
                    criterion=criterion,
                    satisfied=False,
                    reasoning="Criterion not analyzed by AI",
                )
            )
            continue
        results.append(
            CriterionJudgement(
                index=index,
                criterion=criterion,
                satisfied=item.get("satisfied") is True,
                reasoning=_text_or(item.get("reasoning"), "No reasoning provided"),
                evidence=_str_tuple(item.get("evidence")),
                confidence=_confidence(item.get("confidence")),
            )
        )

    return AiJudgement(
        criteria_results=tuple(results),
        verdict=_verdict(parsed.get("verdict")),
        overall_reasoning=_text_or(parsed.get("overallReasoning"), ""),
        suggestions=_str_tuple(parsed.get("suggestions")),
        code_quality_notes=_str_tuple(parsed.get("codeQualityNotes")),
    )


def format_ai_output(judgement: AiJudgement, verdict: Verdict) -> str:
    lines = [f"AI Verification: {verdict.value.upper()}", "", "Criteria Results:"]
    for result in judgement.criteria_results:
        status = "[PASS]" if result.satisfied else "[FAIL]"
        percent = int(result.confidence * 100 + 0.5)
        lines.append(f"  {status} ({percent}%) {result.criterion}")
        if result.reasoning:
            reasoning = result.reasoning[:MAX_REASONING_CHARS]
            if len(result.reasoning) > MAX_REASONING_CHARS:
                reasoning += "..."
            lines.append(f"       {reasoning}")
    if judgement.overall_reasoning:
        lines.extend(["", f"Overall: {judgement.overall_reasoning}"])
    if judgement.suggestions:
        lines.extend(["", "Suggestions:"])
        lines.extend(f"  - {item}" for item in judgement.suggestions)
    return "\n".join(lines)


class AiStrategyExecutor:
    strategy_type = "ai"

    def __init__(
        self,
        agent: AgentInvoker,
        *,
        git: GitHelper | None = None,
        settings: ExecutorSettings | None = None,
        prompts: PromptTemplateEngine | None = None,
        sleep: SleepFn = default_sleep,
    ) -> None:
        self._agent = agent
        self._git = git
        self._settings = settings if settings is not None else ExecutorSettings()
        self._prompts = prompts if prompts is not None else PromptTemplateEngine()
        self._sleep = sleep

    async def execute(
        self,
        workdir: Path,
        config: StrategyConfig,
        record: Record,
    ) -> StrategyResult:
        config = expect_config(config, AiStrategyConfig)
        started_ns = time.monotonic_ns()
        limit_ms = timeout_ms(config, self._settings.ai_timeout_ms)

        try:
            prompt = await self._build_prompt(workdir, config, record)
        except PromptTemplateError as exc:
            return StrategyResult.failure(
                f"AI verification failed: {exc}", reason="prompt-error"
            ).with_duration(elapsed_ms(started_ns))

        response = await call_with_backoff(
            self._agent,
            prompt,
            cwd=workdir,
            timeout_ms=limit_ms,
            model=config.model,
            policy=self._settings.ai_retry,
            sleep=self._sleep,
        )
        if not response.success:
            return StrategyResult.failure(
                f"AI verification failed: {response.error or 'Unknown error'}",
                reason="ai-call-failed",
                error=response.error,
                agentUsed=response.agent_used,
            ).with_duration(elapsed_ms(started_ns))

        judgement = parse_ai_response(response.output, record.acceptance)
        low_confidence = [
            item.criterion
            for item in judgement.criteria_results
            if item.satisfied and item.confidence < config.min_confidence
        ]
        verdict = judgement.verdict
        if low_confidence and verdict is Verdict.PASS:
            verdict = Verdict.NEEDS_REVIEW
            logger.info(
                "ai_verdict_downgraded",
                record_id=record.id,
                low_confidence=len(low_confidence),
                min_confidence=config.min_confidence,
            )

        return StrategyResult(
            success=verdict is Verdict.PASS,
            output=format_ai_output(judgement, verdict),
            duration_ms=elapsed_ms(started_ns),
            details={
                "mode": "custom" if config.custom_prompt else config.mode,
                "agentUsed": response.agent_used,
                "verdict": verdict.value,
                "criteriaResults": [item.to_dict() for item in judgement.criteria_results],
                "overallReasoning": judgement.overall_reasoning,
                "suggestions": list(judgement.suggestions),
                "minConfidence": config.min_confidence,
                "lowConfidenceCriteria": low_confidence,
            },
        )

    async def _build_prompt(self, workdir: Path, config: AiStrategyConfig, record: Record) -> str:
        variables = record_variables(record, workdir, min_confidence=config.min_confidence)
        if config.custom_prompt:
            variables["automated_checks"] = []
            return self._prompts.render_custom(config.custom_prompt, variables=variables)
        if config.mode == "diff":
            variables["diff"] = await self._diff(workdir)
            return self._prompts.render(DIFF_REVIEW_TEMPLATE, variables=variables).prompt
        variables["automated_checks"] = []
        return self._prompts.render(AUTONOMOUS_TEMPLATE, variables=variables).prompt

    async def _diff(self, workdir: Path) -> str:
        if self._git is None:
            return NO_DIFF
        try:
            diff = (await self._git.diff(workdir)).strip()
        except OSError as exc:
            logger.warning("git_diff_unavailable", error=str(exc))
            return NO_DIFF
        return truncate_diff(diff) if diff else NO_DIFF


def _text_or(value: object, default: str) -> str:
    return value if isinstance(value, str) and value else default


def _str_tuple(value: object) -> tuple[str, ...]:
    if not isinstance(value, list):
        return ()
    return tuple(str(item) for item in value if isinstance(item, (str, int, float)))


def _confidence(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.5
    return min(1.0, max(0.0, float(value)))


def _verdict(value: object) -> Verdict:
    if not isinstance(value, str):
        return Verdict.NEEDS_REVIEW
    try:
        return Verdict(value.strip().lower())
    except ValueError:
        return Verdict.NEEDS_REVIEW


__all__ = [
    "AiJudgement",
    "AiStrategyExecutor",
    "CriterionJudgement",
    "extract_json_text",
    "format_ai_output",
    "parse_ai_response",
]
