"""Tests for grouping validation failures by origin."""

from __future__ import annotations

import pytest

from phase_orchestrator.constants import Phase
from phase_orchestrator.verification_plane.root_cause import (
    REMEDIATION_HINTS,
    UNKNOWN_CONFIDENCE,
    ErrorType,
    analyze_root_cause,
    classify_error_type,
    originating_phase,
)
from phase_orchestrator.verification_plane.validators import IssueSeverity, ValidationIssue

PRODUCERS = {
    "PRD.md": Phase.SPEC_PM,
    "data-model.md": Phase.SPEC_ARCHITECT,
    "tasks.md": Phase.SOLUTIONING,
}


def _issue(message: str, artifact: str | None = None) -> ValidationIssue:
    return ValidationIssue(IssueSeverity.ERROR, message, Phase.VALIDATE, artifact)


def test_classify_error_type() -> None:
    assert classify_error_type("JSON parse error at line 3")[0] is ErrorType.PARSING
    assert classify_error_type("Required file tasks.md is missing")[0] is ErrorType.MISSING_FILE
    assert classify_error_type("Section is too short")[0] is ErrorType.CONTENT_QUALITY
    assert classify_error_type("Breaks Article 3 of the constitution")[0] is ErrorType.CONSTITUTIONAL
    assert classify_error_type("something odd") == (ErrorType.UNKNOWN, UNKNOWN_CONFIDENCE)


def test_more_matching_patterns_raise_confidence() -> None:
    _, single = classify_error_type("malformed")
    _, several = classify_error_type("malformed input: syntax error, unexpected token")

    assert single == pytest.approx(0.9)
    assert several == pytest.approx(1.0)


def test_originating_phase_prefers_the_producer() -> None:
    assert originating_phase(_issue("x", "tasks.md"), PRODUCERS) == Phase.SOLUTIONING
    assert originating_phase(_issue("x", "notes.md"), PRODUCERS) == Phase.VALIDATE
    assert originating_phase(_issue("x"), PRODUCERS) == Phase.VALIDATE


def test_failures_group_by_type_and_origin() -> None:
    analysis = analyze_root_cause(
        [
            _issue("Task list is malformed", "tasks.md"),
            _issue("Section is too short", "data-model.md"),
            _issue("Unexpected token in task table", "tasks.md"),
        ],
        producers=PRODUCERS,
    )

    keys = [(group.error_type, group.originating_phase) for group in analysis.groups]
    assert keys == [
        (ErrorType.PARSING, Phase.SOLUTIONING),
        (ErrorType.CONTENT_QUALITY, Phase.SPEC_ARCHITECT),
    ]
    assert len(analysis.groups[0].failures) == 2


def test_earliest_originating_phase_wins() -> None:
    late = _issue("Task list is malformed", "tasks.md")
    early = _issue("Section is too short", "PRD.md")

    analysis = analyze_root_cause([late, early], producers=PRODUCERS)

    assert analysis.originating_phase == Phase.SPEC_PM
    assert analysis.error_type is ErrorType.CONTENT_QUALITY
    assert analysis.primary is early
    assert analysis.remediation_hint == REMEDIATION_HINTS[ErrorType.CONTENT_QUALITY]
    assert analysis.explanation == (
        "1 content_quality failure(s) originated in SPEC_PM; 1 other group(s) downstream or unrelated"
    )


def test_unknown_phases_sort_last_and_ties_keep_failure_order() -> None:
    first = _issue("Section is too short", "PRD.md")
    second = _issue("Task list is malformed", "PRD.md")

    tie = analyze_root_cause([first, second], producers=PRODUCERS)
    custom = analyze_root_cause(
        [_issue("malformed", "x.md"), _issue("too short", "tasks.md")],
        producers={"x.md": "CUSTOM", "tasks.md": Phase.SOLUTIONING},
    )

    assert tie.primary is first
    assert custom.originating_phase == Phase.SOLUTIONING


def test_phase_order_can_be_supplied() -> None:
    analysis = analyze_root_cause(
        [_issue("malformed", "b.md"), _issue("too short", "a.md")],
        producers={"a.md": "A", "b.md": "B"},
        phase_order=("B", "A"),
    )

    assert analysis.originating_phase == "B"
    assert analysis.explanation.startswith("1 parsing failure(s) originated in B")


def test_empty_failures_rejected() -> None:
    with pytest.raises(ValueError, match="cannot be empty"):
        analyze_root_cause([])
