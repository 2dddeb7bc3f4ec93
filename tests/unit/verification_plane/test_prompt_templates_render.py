"""
workledger — unit tests for prompt template rendering

File: tests/unit/verification_plane/test_prompt_templates_render.py

Purpose
- Validate deterministic rendering of the built-in AI verification prompts.

What this test file should cover
- Built-in templates render with the record variables and carry a version and hash.
- Variables outside the allow-list, missing variables, and bad template names are rejected.
- Custom prompts render in the sandbox.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from workledger.verification_plane.prompts import (
    AUTONOMOUS_TEMPLATE,
    DIFF_REVIEW_TEMPLATE,
    PromptTemplateEngine,
    PromptTemplateError,
    PromptTemplateNotFoundError,
    PromptTemplateVariableError,
    record_variables,
    truncate_diff,
)

from . import make_record


def _variables(**extra: object) -> dict[str, object]:
    variables = record_variables(make_record(), Path("/work"), min_confidence=0.7)
    variables.update(extra)
    return variables


def test_autonomous_template_lists_criteria_and_checks() -> None:
    engine = PromptTemplateEngine()

    rendered = engine.render(
        AUTONOMOUS_TEMPLATE,
        variables=_variables(automated_checks=[{"type": "test", "success": True, "duration_ms": 12}]),
    )

    assert rendered.template_name == "AUTONOMOUS.md"
    assert rendered.template_version == "1"
    assert len(rendered.template_hash) == 64
    assert "1. Form renders\n2. Bad password rejected" in rendered.prompt
    assert "- TEST: PASSED (12ms)" in rendered.prompt
    assert "/work" in rendered.prompt


def test_autonomous_template_without_checks() -> None:
    rendered = PromptTemplateEngine().render(AUTONOMOUS_TEMPLATE, variables=_variables(automated_checks=[]))

    assert "No automated checks were run." in rendered.prompt


def test_rendering_is_deterministic() -> None:
    engine = PromptTemplateEngine()
    variables = _variables(diff="+added line")

    first = engine.render(DIFF_REVIEW_TEMPLATE, variables=variables)
    second = engine.render(DIFF_REVIEW_TEMPLATE, variables=variables)

    assert first == second
    assert "```diff\n+added line\n```" in first.prompt


def test_missing_and_unexpected_variables_are_rejected() -> None:
    engine = PromptTemplateEngine()

    with pytest.raises(PromptTemplateVariableError, match="missing required template variables: diff"):
        engine.render(DIFF_REVIEW_TEMPLATE, variables=_variables())
    with pytest.raises(PromptTemplateVariableError, match="unexpected variables"):
        engine.render(DIFF_REVIEW_TEMPLATE, variables=_variables(diff="", token="x"))


def test_template_names_are_validated(tmp_path: Path) -> None:
    engine = PromptTemplateEngine(template_root=tmp_path)

    with pytest.raises(PromptTemplateError, match="invalid template name"):
        engine.render("../etc/passwd", variables={})
    with pytest.raises(PromptTemplateNotFoundError):
        engine.render("MISSING", variables={})
    with pytest.raises(PromptTemplateNotFoundError):
        PromptTemplateEngine(template_root=tmp_path / "absent")


def test_custom_prompt_runs_in_sandbox() -> None:
    engine = PromptTemplateEngine()

    with pytest.raises(PromptTemplateError):
        engine.render_custom("{{ record_id.__class__.__mro__ }}", variables=_variables())
    assert engine.render_custom("Review {{ record_id }}", variables=_variables()) == "Review auth.login"


def test_truncate_diff() -> None:
    assert truncate_diff("abc", limit=5) == "abc"
    assert truncate_diff("abcdefgh", limit=5) == "abcde\n... (truncated)"
