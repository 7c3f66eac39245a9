"""
phase-orchestrator — workflow schema tests

File: tests/unit/config/test_schema.py
Last updated: 2026-10-19

Purpose
- Validate parsing of the workflow mapping into immutable typed objects.

What this test file should cover
- Reference checks, cycle detection, and name/owner normalization.
- Gate, critic, and generation override parsing.
- Phase sequence traversal over the packaged workflow.
"""

from __future__ import annotations

from typing import Any

import pytest

from phase_orchestrator.config.loader import load_default_spec
from phase_orchestrator.config.schema import parse_workflow_spec
from phase_orchestrator.constants import Phase
from phase_orchestrator.errors import ConfigError, UnknownPhaseError


def _raw(**extra: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "phases": {
            "A": {"owner": "analyst", "outputs": ["a.md"], "next_phase": "B"},
            "B": {
                "owner": ["pm", "architect"],
                "inputs": ["a.md"],
                "outputs": ["b.md"],
                "depends_on": ["A"],
                "next_phase": "C",
            },
            "C": {"depends_on": ["B"]},
        }
    }
    raw.update(extra)
    return raw


def test_parse_fills_names_owners_and_terminal_phase() -> None:
    spec = parse_workflow_spec(_raw())

    assert spec.first_phase == "A"
    assert spec.phase("B").owners == ("pm", "architect")
    assert spec.phase("B").owner == "pm"
    assert spec.phase("C").owner == "orchestrator"
    assert spec.phase("C").is_terminal
    assert spec.phase_sequence() == ("A", "B", "C")
    assert spec.phase_sequence("B") == ("B", "C")
    assert spec.producer_of("b.md") == "B"
    assert spec.producer_of("missing.md") is None


def test_phase_lookup_raises_unknown_phase() -> None:
    spec = parse_workflow_spec(_raw())

    with pytest.raises(UnknownPhaseError, match="Unknown phase: Z"):
        spec.phase("Z")


def test_phases_mapping_is_read_only() -> None:
    spec = parse_workflow_spec(_raw())

    with pytest.raises(TypeError):
        spec.phases["D"] = spec.phase("A")  # type: ignore[index]


@pytest.mark.parametrize(
    ("mutate", "message"),
    [
        (lambda raw: raw["phases"]["A"].update(next_phase="Q"), "unknown phase Q"),
        (lambda raw: raw["phases"]["B"].update(depends_on=["Q"]), "unknown phase Q"),
        (lambda raw: raw["phases"]["A"].update(depends_on=["C"]), "cycle"),
        (lambda raw: raw["phases"]["A"].update(name="X"), "must match its key"),
        (lambda raw: raw["phases"]["A"].update(outputs=[1]), "non-empty string"),
        (lambda raw: raw["phases"]["C"].update(next_phase="A"), "next_phase chain"),
    ],
)
def test_invalid_specs_raise_config_error(mutate: Any, message: str) -> None:
    raw = _raw()
    mutate(raw)

    with pytest.raises(ConfigError, match=message):
        parse_workflow_spec(raw)


def test_empty_phases_rejected() -> None:
    with pytest.raises(ConfigError, match="at least one phase"):
        parse_workflow_spec({"phases": {}})


def test_gates_and_critics_parse_and_validate_phase_references() -> None:
    spec = parse_workflow_spec(
        _raw(
            gates={"g": {"phase": "A", "blocking": True, "auto_approve_threshold": 90}},
            critics={"B": {"persona": "qa_lead", "max_regenerations": 1}},
        )
    )

    assert spec.gates["g"].blocking is True
    assert spec.gates["g"].auto_approve_threshold == 90.0
    assert spec.gates_for_phase("A") == (spec.gates["g"],)
    assert spec.critics["B"].persona == "qa_lead"
    assert spec.critics["B"].max_regenerations == 1
    assert spec.critics["B"].enabled is True

    with pytest.raises(ConfigError, match="gates.bad.phase"):
        parse_workflow_spec(_raw(gates={"bad": {"phase": "Q"}}))
    with pytest.raises(ConfigError, match="critics.Q"):
        parse_workflow_spec(_raw(critics={"Q": {"persona": "qa_lead"}}))


def test_generation_overrides_apply_per_phase() -> None:
    spec = parse_workflow_spec(
        _raw(
            llm_config={
                "temperature": 0.5,
                "max_tokens": 1000,
                "phase_overrides": {"B": {"temperature": 0.1, "max_tokens": 50}},
            }
        )
    )

    assert spec.generation.for_phase("B").temperature == 0.1
    assert spec.generation.for_phase("B").max_tokens == 50
    assert spec.generation.for_phase("A").temperature == 0.5
    assert spec.generation.for_phase(None).max_tokens == 1000


def test_generation_rejects_boolean_numbers() -> None:
    with pytest.raises(ConfigError, match="must be a number"):
        parse_workflow_spec(_raw(llm_config={"temperature": True}))


def test_packaged_workflow_follows_reference_pipeline() -> None:
    spec = load_default_spec()

    assert spec.phase_sequence() == tuple(Phase)
    assert spec.phase(Phase.DONE).is_terminal
    assert spec.phase(Phase.SOLUTIONING).owners == ("architect", "scrummaster")
    assert spec.gates["stack_approved"].blocking is True
    assert spec.gates["architecture_approved"].auto_approve_threshold == 95.0
    assert {critic.persona for critic in spec.critics.values()} == {
        "skeptical_cto",
        "qa_lead",
        "security_auditor",
        "a11y_specialist",
    }
    assert spec.generation.rate_limit.min_interval_seconds == 1.0
    assert spec.validators["content_quality"].params["min_length"] == 100
