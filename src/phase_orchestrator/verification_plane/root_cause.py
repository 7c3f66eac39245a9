"""
phase-orchestrator — root-cause analysis for validation failures

File: src/phase_orchestrator/verification_plane/root_cause.py
Last updated: 2026-10-19

Purpose
- Group validation failures by error type and originating phase, then pick
  the earliest originating phase as the place remediation should start.

Functional requirements
- A failure originates in the phase that produces its artifact when that is
  known, otherwise in the phase that reported it.
- Phases are ordered by pipeline position; phases outside the order sort last.
- The primary failure is the first failure of the earliest group.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from phase_orchestrator.constants import Phase
from phase_orchestrator.verification_plane.validators import ValidationIssue


class ErrorType(StrEnum):
    PARSING = "parsing"
    MISSING_FILE = "missing_file"
    CONTENT_QUALITY = "content_quality"
    CONSTITUTIONAL = "constitutional"
    UNKNOWN = "unknown"


def _patterns(*sources: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(source, re.IGNORECASE) for source in sources)


# Evaluated in order; the first error type with a matching pattern wins.
ERROR_TYPE_PATTERNS: Final[tuple[tuple[ErrorType, float, tuple[re.Pattern[str], ...]], ...]] = (
    (
        ErrorType.PARSING,
        0.9,
        _patterns(
            r"parse\s*(fail|error|exception)",
            r"json\s*parse\s*error",
            r"syntax\s*error",
            r"unexpected\s*token",
            r"invalid\s*(json|yaml|xml|html)",
            r"malformed",
        ),
    ),
    (
        ErrorType.MISSING_FILE,
        0.85,
        _patterns(
            r"required\s*file.*missing",
            r"file\s*not\s*found",
            r"no\s*such\s*file",
            r"missing\s*artifact",
            r"artifact.*not\s*found",
            r"missing\s+file",
        ),
    ),
    (
        ErrorType.CONTENT_QUALITY,
        0.8,
        _patterns(
            r"too\s*short",
            r"missing\s*required\s*content",
            r"placeholder",
            r"incomplete",
            r"insufficient\s*(detail|content|information)",
            r"lacks?\s+(sufficient|detail|content)",
        ),
    ),
    (
        ErrorType.CONSTITUTIONAL,
        0.95,
        _patterns(
            r"constitution",
            r"article\s*\d+",
            r"violates.*principle",
            r"forbidden",
        ),
    ),
)

UNKNOWN_CONFIDENCE: Final[float] = 0.3

REMEDIATION_HINTS: Final[Mapping[ErrorType, str]] = {
    ErrorType.PARSING: "Fix syntax errors and make sure the artifact parses.",
    ErrorType.MISSING_FILE: "Regenerate the missing artifact in its originating phase.",
    ErrorType.CONTENT_QUALITY: "Regenerate the artifact with more detail and complete sections.",
    ErrorType.CONSTITUTIONAL: "Review the artifact against the constitution articles.",
    ErrorType.UNKNOWN: "Investigate the failure manually.",
}


@dataclass(frozen=True, slots=True)
class RootCauseGroup:
    error_type: ErrorType
    originating_phase: str
    failures: tuple[ValidationIssue, ...]


@dataclass(frozen=True, slots=True)
class RootCauseAnalysis:
    originating_phase: str
    error_type: ErrorType
    confidence: float
    explanation: str
    remediation_hint: str
    primary: ValidationIssue
    groups: tuple[RootCauseGroup, ...]


def classify_error_type(message: str) -> tuple[ErrorType, float]:
    """Return the error type for ``message`` and a pattern-count confidence."""

    for error_type, _, patterns in ERROR_TYPE_PATTERNS:
        if any(pattern.search(message) for pattern in patterns):
            return error_type, type_confidence(error_type, message)
    return ErrorType.UNKNOWN, UNKNOWN_CONFIDENCE


def type_confidence(error_type: ErrorType, text: str) -> float:
    for candidate, base, patterns in ERROR_TYPE_PATTERNS:
        if candidate is error_type:
            matches = sum(1 for pattern in patterns if pattern.search(text))
            return min(1.0, base + min(0.15, max(0, matches - 1) * 0.05))
    return UNKNOWN_CONFIDENCE


def originating_phase(issue: ValidationIssue, producers: Mapping[str, str]) -> str:
    if issue.artifact is not None:
        producer = producers.get(issue.artifact)
        if producer is not None:
            return producer
    return issue.phase


def analyze_root_cause(
    failures: Sequence[ValidationIssue],
    *,
    producers: Mapping[str, str] | None = None,
    phase_order: Sequence[str] = tuple(Phase),
) -> RootCauseAnalysis:
    """Group ``failures`` and choose the earliest originating phase.

    Raises ``ValueError`` for an empty failure list.
    """

    if not failures:
        raise ValueError("failures cannot be empty")
    producers = producers or {}
    rank = {phase: index for index, phase in enumerate(phase_order)}

    grouped: dict[tuple[ErrorType, str], list[ValidationIssue]] = {}
    for issue in failures:
        error_type, _ = classify_error_type(issue.message)
        key = (error_type, originating_phase(issue, producers))
        grouped.setdefault(key, []).append(issue)
    groups = tuple(
        RootCauseGroup(error_type=error_type, originating_phase=phase, failures=tuple(items))
        for (error_type, phase), items in grouped.items()
    )

    # min() keeps the first group on ties, so failure order breaks them.
    earliest = min(groups, key=lambda group: rank.get(group.originating_phase, len(rank)))
    confidence = type_confidence(
        earliest.error_type, "\n".join(issue.message for issue in earliest.failures)
    )
    explanation = (
        f"{len(earliest.failures)} {earliest.error_type} failure(s) originated in "
        f"{earliest.originating_phase}"
    )
    if len(groups) > 1:
        explanation += f"; {len(groups) - 1} other group(s) downstream or unrelated"
    return RootCauseAnalysis(
        originating_phase=earliest.originating_phase,
        error_type=earliest.error_type,
        confidence=confidence,
        explanation=explanation,
        remediation_hint=REMEDIATION_HINTS[earliest.error_type],
        primary=earliest.failures[0],
        groups=groups,
    )


__all__ = [
    "ERROR_TYPE_PATTERNS",
    "ErrorType",
    "REMEDIATION_HINTS",
    "RootCauseAnalysis",
    "RootCauseGroup",
    "analyze_root_cause",
    "classify_error_type",
    "originating_phase",
    "type_confidence",
]
