"""
phase-orchestrator — packaged prompt templates

File: src/phase_orchestrator/synthesis_plane/prompt_templates.py
Last updated: 2026-10-19

Purpose
- Loads and renders the packaged Jinja2 prompt templates (phase agents, critic
  review, critic feedback, artifact format retry, artifact regeneration).

What should be included in this file
- Strict rendering: every variable a template declares must be supplied and
  no undeclared variable may be passed.
- Prompt and template hashing for reproducibility.

Functional requirements
- Must render prompts deterministically for same inputs.
"""

from __future__ import annotations

from dataclasses import dataclass
from importlib import resources
from typing import TYPE_CHECKING, Final

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError, meta

from phase_orchestrator.utils.hashing import sha256_text

if TYPE_CHECKING:
    from collections.abc import Mapping

TEMPLATE_PACKAGE: Final[str] = "phase_orchestrator.synthesis_plane"
TEMPLATE_DIR: Final[str] = "templates"
TEMPLATE_SUFFIX: Final[str] = ".md.j2"

PHASE_AGENT_TEMPLATE: Final[str] = "phase_agent"
CRITIC_REVIEW_TEMPLATE: Final[str] = "critic_review"
CRITIC_FEEDBACK_TEMPLATE: Final[str] = "critic_feedback"
FORMAT_RETRY_TEMPLATE: Final[str] = "artifact_format_retry"
REGENERATION_TEMPLATE: Final[str] = "artifact_regeneration"


class PromptTemplateError(RuntimeError):
    """Base error for prompt template loading and rendering."""


class PromptTemplateNotFoundError(PromptTemplateError, FileNotFoundError):
    """Raised when a packaged template does not exist."""


class PromptTemplateVariableError(PromptTemplateError, ValueError):
    """Raised for missing or unexpected variables."""


@dataclass(frozen=True, slots=True)
class RenderedPrompt:
    """Rendered prompt and deterministic hashes."""

    prompt: str
    prompt_hash: str
    template_name: str
    template_hash: str
    declared_variables: tuple[str, ...]


class PromptTemplateEngine:
    """Deterministic loader and strict renderer for packaged templates."""

    def __init__(self, *, overrides: Mapping[str, str] | None = None) -> None:
        self._environment = Environment(
            undefined=StrictUndefined,
            autoescape=False,
            trim_blocks=False,
            lstrip_blocks=False,
            newline_sequence="\n",
            keep_trailing_newline=True,
        )
        self._overrides = dict(overrides or {})
        self._sources: dict[str, str] = {}

    def source(self, name: str) -> str:
        """Return the normalized template source for ``name``."""

        cached = self._sources.get(name)
        if cached is not None:
            return cached
        if name in self._overrides:
            text = self._overrides[name]
        else:
            resource = resources.files(TEMPLATE_PACKAGE).joinpath(
                f"{TEMPLATE_DIR}/{name}{TEMPLATE_SUFFIX}"
            )
            if not resource.is_file():
                raise PromptTemplateNotFoundError(f"template not found: {name!r}")
            text = resource.read_text(encoding="utf-8")
        normalized = _normalize_newlines(text)
        self._sources[name] = normalized
        return normalized

    def declared_variables(self, name: str) -> tuple[str, ...]:
        source = self.source(name)
        try:
            parsed = self._environment.parse(source)
        except TemplateSyntaxError as exc:
            raise PromptTemplateError(f"template {name!r} is invalid: {exc}") from exc
        return tuple(sorted(meta.find_undeclared_variables(parsed)))

    def render(self, name: str, variables: Mapping[str, object]) -> RenderedPrompt:
        """Render template ``name`` with exactly its declared variables."""

        source = self.source(name)
        declared = self.declared_variables(name)
        payload = {key.strip(): value for key, value in variables.items()}

        unexpected = sorted(set(payload) - set(declared))
        if unexpected:
            raise PromptTemplateVariableError(
                "unexpected variables were provided: " + ", ".join(unexpected)
            )
        missing = sorted(set(declared) - set(payload))
        if missing:
            raise PromptTemplateVariableError(
                "missing required template variables: " + ", ".join(missing)
            )

        template = self._environment.from_string(source)
        try:
            rendered = template.render(**payload)
        except UndefinedError as exc:
            raise PromptTemplateVariableError(f"template {name!r}: {exc}") from exc
        rendered = _normalize_newlines(rendered)
        return RenderedPrompt(
            prompt=rendered,
            prompt_hash=sha256_text(rendered),
            template_name=name,
            template_hash=sha256_text(source),
            declared_variables=declared,
        )


def _normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


__all__ = [
    "CRITIC_FEEDBACK_TEMPLATE",
    "CRITIC_REVIEW_TEMPLATE",
    "FORMAT_RETRY_TEMPLATE",
    "PHASE_AGENT_TEMPLATE",
    "REGENERATION_TEMPLATE",
    "PromptTemplateEngine",
    "PromptTemplateError",
    "PromptTemplateNotFoundError",
    "PromptTemplateVariableError",
    "RenderedPrompt",
]
