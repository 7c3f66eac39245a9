"""
phase-orchestrator — prompt template renderer unit tests

File: tests/unit/synthesis_plane/test_prompt_templates.py
Last updated: 2026-10-19

Purpose
- Validate strict template variable controls and deterministic hashing for the
  packaged prompt templates.

Functional requirements
- Offline only.
"""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from phase_orchestrator.synthesis_plane.prompt_templates import (
    CRITIC_FEEDBACK_TEMPLATE,
    FORMAT_RETRY_TEMPLATE,
    PHASE_AGENT_TEMPLATE,
    REGENERATION_TEMPLATE,
    PromptTemplateEngine,
    PromptTemplateNotFoundError,
    PromptTemplateVariableError,
)
from phase_orchestrator.utils.hashing import sha256_text


def _phase_agent_variables(**overrides: object) -> dict[str, object]:
    variables: dict[str, object] = {
        "agent_role": "Product Manager",
        "project_name": "Tasks App",
        "agent_perspective": "user value",
        "responsibilities": ("write requirements",),
        "phase": "SPEC_PM",
        "phase_description": "Product requirements",
        "instructions": "",
        "outputs": ("PRD.md",),
    }
    variables.update(overrides)
    return variables


def test_packaged_phase_agent_template_declares_its_variables() -> None:
    engine = PromptTemplateEngine()

    assert engine.declared_variables(PHASE_AGENT_TEMPLATE) == tuple(
        sorted(_phase_agent_variables())
    )


def test_render_phase_agent_prompt_lists_outputs_and_hashes() -> None:
    engine = PromptTemplateEngine()

    rendered = engine.render(PHASE_AGENT_TEMPLATE, _phase_agent_variables())

    assert 'You are the Product Manager for project "Tasks App".' in rendered.prompt
    assert "- PRD.md" in rendered.prompt
    assert "ADDITIONAL INSTRUCTIONS" not in rendered.prompt
    assert rendered.prompt_hash == sha256_text(rendered.prompt)
    assert rendered.template_hash == sha256_text(engine.source(PHASE_AGENT_TEMPLATE))


def test_instructions_section_appears_only_when_given() -> None:
    rendered = PromptTemplateEngine().render(
        PHASE_AGENT_TEMPLATE, _phase_agent_variables(instructions="Fix the API section")
    )

    assert "# ADDITIONAL INSTRUCTIONS\nFix the API section" in rendered.prompt


def test_missing_and_unexpected_variables_are_rejected() -> None:
    engine = PromptTemplateEngine()
    variables = _phase_agent_variables()
    del variables["phase"]

    with pytest.raises(PromptTemplateVariableError, match="missing required template variables: phase"):
        engine.render(PHASE_AGENT_TEMPLATE, variables)
    with pytest.raises(PromptTemplateVariableError, match="unexpected variables were provided: extra"):
        engine.render(PHASE_AGENT_TEMPLATE, _phase_agent_variables(extra="x"))


def test_unknown_template_is_not_found() -> None:
    with pytest.raises(PromptTemplateNotFoundError):
        PromptTemplateEngine().source("no_such_template")


def test_overrides_replace_packaged_sources_and_normalize_newlines() -> None:
    engine = PromptTemplateEngine(overrides={"greeting": "Hello {{ name }}\r\nBye\r"})

    rendered = engine.render("greeting", {"name": "Ada"})

    assert rendered.prompt == "Hello Ada\nBye\n"


def test_format_retry_template_lists_every_expected_file() -> None:
    rendered = PromptTemplateEngine().render(
        FORMAT_RETRY_TEMPLATE,
        {
            "original_prompt": "ORIGINAL",
            "attempt": 2,
            "errors": ("Structured output missing required files",),
            "expected_files": ("PRD.md", "architecture.md"),
        },
    )

    assert rendered.prompt.startswith("ORIGINAL")
    assert "(Retry #2)" in rendered.prompt
    assert '{"filename": "PRD.md", "content": "..."},' in rendered.prompt
    assert '{"filename": "architecture.md", "content": "..."}\n' in rendered.prompt
    assert "All 2 files must be present." in rendered.prompt


def test_critic_feedback_template_numbers_issues() -> None:
    rendered = PromptTemplateEngine().render(
        CRITIC_FEEDBACK_TEMPLATE,
        {
            "original_prompt": "ORIGINAL",
            "feedback": [
                {
                    "severity": "medium",
                    "category": "Scope",
                    "concern": "Too broad",
                    "recommendation": "Trim it",
                }
            ],
        },
    )

    assert "1. [MEDIUM] Scope" in rendered.prompt
    assert "Fix: Trim it" in rendered.prompt


@settings(max_examples=25, deadline=None)
@given(
    name=st.text(min_size=1, max_size=40).filter(lambda text: text.strip() != ""),
    content=st.text(max_size=200),
)
def test_regeneration_rendering_is_deterministic(name: str, content: str) -> None:
    engine = PromptTemplateEngine()
    variables = {
        "artifact_name": name,
        "phase": "SPEC_ARCHITECT",
        "trigger_artifact": "PRD.md",
        "impact_level": "HIGH",
        "reason": "upstream changed",
        "current_content": content,
    }

    first = engine.render(REGENERATION_TEMPLATE, variables)
    second = engine.render(REGENERATION_TEMPLATE, variables)

    assert first.prompt == second.prompt
    assert first.prompt_hash == second.prompt_hash
