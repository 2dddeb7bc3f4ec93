"""
workledger verification prompt templates

File: src/workledger/verification_plane/prompts.py

Purpose
- Load and render the built-in AI verification prompts and user-supplied custom prompts.

Functional requirements
- Built-in templates live beside this module and render with ``StrictUndefined``.
- Every template variable must be in the allow-list; unknown or missing variables raise.
- Custom prompts come from record data, so they render in a sandboxed environment.
- Legacy single-brace placeholders (``{featureId}`` and friends) are still expanded.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Collection, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from jinja2 import Environment, StrictUndefined, TemplateError, meta
from jinja2.sandbox import SandboxedEnvironment

from workledger.constants import MAX_DIFF_CHARS
from workledger.domain.models import Record

DIFF_REVIEW_TEMPLATE: Final[str] = "DIFF_REVIEW"
AUTONOMOUS_TEMPLATE: Final[str] = "AUTONOMOUS"

PROMPT_VARIABLES: Final[frozenset[str]] = frozenset(
    {
        "automated_checks",
        "criteria",
        "cwd",
        "description",
        "diff",
        "min_confidence",
        "module",
        "record_id",
    }
)

_TEMPLATE_NAME_RE: Final = re.compile(r"^[A-Za-z0-9_\-]+$")
_VERSION_RE: Final = re.compile(r"template-version:\s*([\w.\-]+)")

# Single-brace placeholders from older record files, rewritten to template expressions.
_LEGACY_PLACEHOLDERS: Final[Mapping[str, str]] = {
    "cwd": "{{ cwd }}",
    "featureId": "{{ record_id }}",
    "featureDescription": "{{ description }}",
    "featureModule": "{{ module }}",
    "acceptanceCriteria": (
        "{% for c in criteria %}{{ loop.index }}. {{ c }}"
        "{% if not loop.last %}\n{% endif %}{% endfor %}"
    ),
}
_LEGACY_PLACEHOLDER_RE: Final = re.compile(
    r"(?<!\{)\{(" + "|".join(_LEGACY_PLACEHOLDERS) + r")\}(?!\})"
)


class PromptTemplateError(RuntimeError):
    """Base class for prompt rendering failures."""


class PromptTemplateNotFoundError(PromptTemplateError, FileNotFoundError):
    """Requested template file does not exist."""


class PromptTemplateVariableError(PromptTemplateError, ValueError):
    """Template references or receives a variable outside the allow-list."""


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    prompt: str
    template_name: str
    template_version: str
    template_hash: str


class PromptTemplateEngine:
    """Deterministic prompt template loader and renderer."""

    def __init__(self, *, template_root: Path | str | None = None) -> None:
        root = Path(template_root) if template_root is not None else _default_template_root()
        resolved_root = root.resolve()
        if not resolved_root.is_dir():
            raise PromptTemplateNotFoundError(f"template root does not exist: {resolved_root}")
        self._template_root = resolved_root
        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=False,
            lstrip_blocks=False,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )
        self._sandbox = SandboxedEnvironment(
            undefined=StrictUndefined,
            autoescape=False,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )

    @property
    def template_root(self) -> Path:
        return self._template_root

    def render(
        self,
        name: str,
        *,
        variables: Mapping[str, object],
        allowed_variables: Collection[str] = PROMPT_VARIABLES,
    ) -> RenderedPrompt:
        """Render one built-in template with strict variable checks."""

        path = self._resolve_template_path(name)
        source = _normalize_newlines(path.read_text(encoding="utf-8"))
        rendered = self._render_source(self._environment, source, variables, allowed_variables)
        return RenderedPrompt(
            prompt=rendered,
            template_name=path.name,
            template_version=_extract_template_version(source),
            template_hash=hashlib.sha256(source.encode("utf-8")).hexdigest(),
        )

    def render_custom(self, source: str, *, variables: Mapping[str, object]) -> str:
        """Render a record-supplied prompt in the sandbox."""

        text = _LEGACY_PLACEHOLDER_RE.sub(
            lambda match: _LEGACY_PLACEHOLDERS[match.group(1)], _normalize_newlines(source)
        )
        return self._render_source(self._sandbox, text, variables, PROMPT_VARIABLES)

    def _render_source(
        self,
        environment: Environment,
        source: str,
        variables: Mapping[str, object],
        allowed_variables: Collection[str],
    ) -> str:
        allowed = set(allowed_variables)
        try:
            declared = meta.find_undeclared_variables(environment.parse(source))
        except TemplateError as exc:
            raise PromptTemplateError(f"invalid prompt template: {exc}") from exc

        unexpected_in_template = sorted(declared - allowed)
        if unexpected_in_template:
            raise PromptTemplateVariableError(
                "template uses variables not allowed by whitelist: "
                + ", ".join(unexpected_in_template)
            )
        unexpected_inputs = sorted(set(variables) - allowed)
        if unexpected_inputs:
            raise PromptTemplateVariableError(
                "unexpected variables were provided: " + ", ".join(unexpected_inputs)
            )
        missing = sorted(declared - set(variables))
        if missing:
            raise PromptTemplateVariableError(
                "missing required template variables: " + ", ".join(missing)
            )

        try:
            rendered = environment.from_string(source).render(**variables)
        except TemplateError as exc:
            raise PromptTemplateError(f"prompt rendering failed: {exc}") from exc
        return _normalize_newlines(rendered)

    def _resolve_template_path(self, name: str) -> Path:
        if not _TEMPLATE_NAME_RE.fullmatch(name):
            raise PromptTemplateError(f"invalid template name: {name!r}")
        candidate = self._template_root / f"{name.upper()}.md"
        if not candidate.is_file():
            raise PromptTemplateNotFoundError(
                f"template not found: {name!r} under {self._template_root}"
            )
        return candidate


def truncate_diff(diff: str, limit: int = MAX_DIFF_CHARS) -> str:
    if len(diff) <= limit:
        return diff
    return diff[:limit] + "\n... (truncated)"


def record_variables(record: Record, workdir: Path, *, min_confidence: float) -> dict[str, object]:
    return {
        "record_id": record.id,
        "description": record.description,
        "module": record.module,
        "criteria": list(record.acceptance),
        "cwd": str(workdir),
        "min_confidence": min_confidence,
    }


def _default_template_root() -> Path:
    return Path(__file__).resolve().parent / "templates"


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


def _extract_template_version(source: str) -> str:
    match = _VERSION_RE.search(source)
    return match.group(1) if match else "unversioned"


__all__ = [
    "AUTONOMOUS_TEMPLATE",
    "DIFF_REVIEW_TEMPLATE",
    "PROMPT_VARIABLES",
    "PromptTemplateEngine",
    "PromptTemplateError",
    "PromptTemplateNotFoundError",
    "PromptTemplateVariableError",
    "RenderedPrompt",
    "record_variables",
    "truncate_diff",
]
