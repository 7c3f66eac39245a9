"""Validation failure classification and the remediation lookup table."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from phase_orchestrator.constants import Phase


class FailureType(StrEnum):
    MISSING_REQUIREMENT_MAPPING = "missing_requirement_mapping"
    PERSONA_MISMATCH = "persona_mismatch"
    API_DATA_MODEL_GAP = "api_data_model_gap"
    STRUCTURAL_INCONSISTENCY = "structural_inconsistency"
    FORMAT_VALIDATION_ERROR = "format_validation_error"
    CONSTITUTIONAL_VIOLATION = "constitutional_violation"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class FailureClassification:
    type: FailureType
    confidence: float
    reason: str


@dataclass(frozen=True, slots=True)
class RemediationStrategy:
    """Which agent to re-run, against which phase, with what extra guidance."""

    agent_to_rerun: str
    phase: str
    additional_instructions: str
    requires_manual_review: bool
    reason: str


@dataclass(frozen=True, slots=True)
class _PatternRule:
    type: FailureType
    patterns: tuple[re.Pattern[str], ...]
    confidence: float


def _rule(failure_type: FailureType, confidence: float, *patterns: str) -> _PatternRule:
    return _PatternRule(
        type=failure_type,
        patterns=tuple(re.compile(pattern, re.IGNORECASE) for pattern in patterns),
        confidence=confidence,
    )


# Evaluated in order; the first matching pattern wins.
CLASSIFICATION_RULES: Final[tuple[_PatternRule, ...]] = (
    _rule(
        FailureType.MISSING_REQUIREMENT_MAPPING,
        0.85,
        r"missing.*(requirement|feature|functionality)",
        r"not.*(captured|included|specified).*in.*PRD",
        r"gap.*between.*project-brief.*and.*PRD",
        r"PRD.*missing.*mentioned.*in.*project-brief",
    ),
    _rule(
        FailureType.PERSONA_MISMATCH,
        0.80,
        r"not.*align.*with.*persona",
        r"persona.*mismatch",
        r"user.*stor(y|ies).*inconsistent.*with.*persona",
        r'does.*not.*match.*persona.*"[^"]+"',
    ),
    _rule(
        FailureType.API_DATA_MODEL_GAP,
        0.85,
        r"api.*references.*field.*not.*in.*data.*model",
        r"data.*model.*missing.*field.*used.*in.*api",
        r"api.*spec.*inconsistent.*with.*data.*model",
        r"field.*not.*present.*in.*data-model",
    ),
    _rule(
        FailureType.STRUCTURAL_INCONSISTENCY,
        0.75,
        r"references.*not.*defined",
        r"component.*references.*token.*not.*defined",
        r"inconsistent.*with.*architecture",
        r"violates.*dependency.*graph",
    ),
    _rule(
        FailureType.FORMAT_VALIDATION_ERROR,
        0.95,
        r"invalid.*(json|yaml|markdown|syntax)",
        r"parse.*error",
        r"malformed",
        r"syntax.*error",
        r"formatting.*error",
    ),
    _rule(
        FailureType.CONSTITUTIONAL_VIOLATION,
        0.98,
        r"violates.*constitutional.*article",
        r"constitutional.*violation",
        r"forbidden.*by.*constitution",
        r"against.*constitutional.*principle",
    ),
)

UNKNOWN_CONFIDENCE: Final[float] = 0.3


def classify_failure(phase: str, message: str) -> FailureClassification:
    """Match ``message`` against the failure taxonomy.

    ``phase`` is accepted for call-site symmetry with
    :func:`remediation_strategy`; classification depends on the message only.
    """

    del phase
    for rule in CLASSIFICATION_RULES:
        for pattern in rule.patterns:
            if pattern.search(message):
                return FailureClassification(
                    type=rule.type,
                    confidence=rule.confidence,
                    reason=f"Matched pattern for {rule.type}: {pattern.pattern}",
                )
    return FailureClassification(
        type=FailureType.UNKNOWN,
        confidence=UNKNOWN_CONFIDENCE,
        reason="No classification pattern matched",
    )


def remediation_strategy(failure_type: FailureType, failed_phase: str) -> RemediationStrategy:
    """Look up the remediation for ``failure_type`` raised in ``failed_phase``."""

    if failure_type is FailureType.MISSING_REQUIREMENT_MAPPING:
        return RemediationStrategy(
            agent_to_rerun="pm",
            phase=Phase.SPEC_PM,
            additional_instructions=(
                "Perform gap analysis between project-brief.md and PRD.md. "
                "Identify missing requirements and add them to PRD with proper user stories."
            ),
            requires_manual_review=False,
            reason="Re-run PM with gap analysis to capture missing requirements",
        )
    if failure_type is FailureType.PERSONA_MISMATCH:
        return RemediationStrategy(
            agent_to_rerun="pm",
            phase=Phase.SPEC_PM,
            additional_instructions=(
                "Review PRD user stories for persona consistency with personas.md. "
                "Ensure all features align with defined persona needs and behaviors."
            ),
            requires_manual_review=False,
            reason="Re-run PM with persona consistency check",
        )
    if failure_type is FailureType.API_DATA_MODEL_GAP:
        return RemediationStrategy(
            agent_to_rerun="architect",
            phase=Phase.SPEC_ARCHITECT,
            additional_instructions=(
                "Synchronize api-spec.json and data-model.md. "
                "Add missing fields to data model or remove undefined fields from API spec."
            ),
            requires_manual_review=False,
            reason="Re-run Architect to synchronize API and data model",
        )
    if failure_type is FailureType.STRUCTURAL_INCONSISTENCY:
        if "DESIGN" in failed_phase:
            agent = "designer"
        elif "ARCHITECT" in failed_phase:
            agent = "architect"
        else:
            agent = "pm"
        return RemediationStrategy(
            agent_to_rerun=agent,
            phase=failed_phase,
            additional_instructions=(
                "Fix cross-artifact reference errors. "
                "Ensure all referenced entities are properly defined."
            ),
            requires_manual_review=False,
            reason=f"Re-run {agent} to fix structural inconsistencies",
        )
    if failure_type is FailureType.FORMAT_VALIDATION_ERROR:
        if "PM" in failed_phase:
            agent = "pm"
        elif "ARCHITECT" in failed_phase:
            agent = "architect"
        elif "DESIGN" in failed_phase:
            agent = "designer"
        else:
            agent = "analyst"
        return RemediationStrategy(
            agent_to_rerun=agent,
            phase=failed_phase,
            additional_instructions=(
                "Fix formatting errors. "
                "Ensure valid JSON/YAML/Markdown syntax and proper structure."
            ),
            requires_manual_review=False,
            reason=f"Re-run {agent} to fix formatting errors",
        )
    if failure_type is FailureType.CONSTITUTIONAL_VIOLATION:
        return RemediationStrategy(
            agent_to_rerun="analyst",
            phase=failed_phase,
            additional_instructions="",
            requires_manual_review=True,
            reason="Constitutional violation requires manual review and decision",
        )
    return RemediationStrategy(
        agent_to_rerun="analyst",
        phase=failed_phase,
        additional_instructions="",
        requires_manual_review=True,
        reason="Unknown failure type requires manual investigation",
    )


__all__ = [
    "CLASSIFICATION_RULES",
    "FailureClassification",
    "FailureType",
    "RemediationStrategy",
    "classify_failure",
    "remediation_strategy",
]
