"""
phase-orchestrator — AUTO_REMEDY decision pipeline

File: src/phase_orchestrator/verification_plane/auto_remedy.py
Last updated: 2026-10-19

Purpose
- Decide whether a validation failure may be remediated automatically or must
  escalate to a human.

What should be included in this file
- Root-cause grouping of the failures; the earliest originating phase picks
  the primary failure, its classification, and the remediation target.
- Safeguard chain, evaluated in order; the first failing guard halts the rest:
  1. attempt-count guard,
  2. classification guard (remediation flagged manual-review-only),
  3. protected-artifact guard,
  4. user-edit guard (hash mismatch, with a conflict rendering).
- An audit record for every decision.

Functional requirements
- Never raises: unexpected errors produce a manual-review result whose reason
  names the error.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from phase_orchestrator.constants import DEFAULT_MAX_REMEDY_ATTEMPTS, Phase
from phase_orchestrator.verification_plane.classifier import (
    FailureClassification,
    FailureType,
    RemediationStrategy,
    classify_failure,
    remediation_strategy,
)
from phase_orchestrator.verification_plane.root_cause import RootCauseAnalysis, analyze_root_cause
from phase_orchestrator.verification_plane.safeguards import (
    SafeguardResult,
    create_conflict_markers,
    detect_user_edit,
    first_differing_line,
    is_protected_artifact,
)
from phase_orchestrator.verification_plane.validators import ValidationIssue

ClockFn = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True, slots=True)
class ArtifactContent:
    """Content snapshots for one artifact under remediation."""

    current: str
    original: str
    original_hash: str
    proposed: str | None = None


@dataclass(frozen=True, slots=True)
class AutoRemedyContext:
    project_id: str
    failed_phase: str
    validation_failures: Sequence[ValidationIssue]
    current_attempt: int
    max_attempts: int = DEFAULT_MAX_REMEDY_ATTEMPTS
    artifact_content: Mapping[str, ArtifactContent] = field(default_factory=dict)
    validation_run_id: str | None = None
    artifact_producers: Mapping[str, str] = field(default_factory=dict)
    phase_order: Sequence[str] = tuple(Phase)


@dataclass(frozen=True, slots=True)
class RemedyRecord:
    """Audit row describing one AUTO_REMEDY decision."""

    project_id: str
    started_at: datetime
    successful: bool
    changes_applied: str
    validation_run_id: str | None = None
    completed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class AutoRemedyResult:
    can_proceed: bool
    requires_manual_review: bool
    reason: str
    classification: FailureClassification
    remediation: RemediationStrategy
    safeguard_result: SafeguardResult
    next_attempt: int
    record: RemedyRecord
    root_cause: RootCauseAnalysis | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "can_proceed": self.can_proceed,
            "requires_manual_review": self.requires_manual_review,
            "reason": self.reason,
            "classification": {
                "type": str(self.classification.type),
                "confidence": self.classification.confidence,
            },
            "remediation": {
                "agent_to_rerun": self.remediation.agent_to_rerun,
                "phase": self.remediation.phase,
                "additional_instructions": self.remediation.additional_instructions,
            },
            "safeguard": {
                "approved": self.safeguard_result.approved,
                "reason": self.safeguard_result.reason,
                "user_edit_detected": self.safeguard_result.user_edit_detected,
            },
            "next_attempt": self.next_attempt,
            "root_cause": None
            if self.root_cause is None
            else {
                "originating_phase": self.root_cause.originating_phase,
                "error_type": str(self.root_cause.error_type),
                "confidence": self.root_cause.confidence,
                "explanation": self.root_cause.explanation,
                "remediation_hint": self.root_cause.remediation_hint,
            },
        }


class AutoRemedyExecutor:
    """Runs the classification and safeguard chain for one remediation attempt."""

    def __init__(self, *, clock: ClockFn = utc_now, logger: Any | None = None) -> None:
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def execute(self, context: AutoRemedyContext) -> AutoRemedyResult:
        started_at = self._clock()
        try:
            result = self._decide(context, started_at)
        except Exception as exc:  # noqa: BLE001
            self._logger.exception(
                "auto_remedy_execution_error",
                project_id=context.project_id,
                failed_phase=context.failed_phase,
            )
            result = self._halt(
                context,
                started_at,
                reason=f"AUTO_REMEDY execution error: {exc}",
                safeguard=SafeguardResult(approved=False, reason=str(exc)),
                changes="Execution error",
            )
        self._logger.info(
            "auto_remedy_decided",
            project_id=context.project_id,
            failed_phase=context.failed_phase,
            can_proceed=result.can_proceed,
            classification=str(result.classification.type),
            attempt=context.current_attempt,
            reason=result.reason,
        )
        return result

    def _decide(self, context: AutoRemedyContext, started_at: datetime) -> AutoRemedyResult:
        if not context.validation_failures:
            return self._halt(
                context,
                started_at,
                reason="No validation failures to remediate",
                safeguard=SafeguardResult(approved=False, reason="No validation failures"),
                changes="Nothing to remediate",
            )

        root_cause = analyze_root_cause(
            context.validation_failures,
            producers=context.artifact_producers,
            phase_order=context.phase_order,
        )
        primary = root_cause.primary
        classification = classify_failure(primary.phase, primary.message)
        traced = primary.artifact is not None and primary.artifact in context.artifact_producers
        remedy_phase = root_cause.originating_phase if traced else context.failed_phase
        remediation = remediation_strategy(classification.type, remedy_phase)

        if context.current_attempt >= context.max_attempts:
            return self._halt(
                context,
                started_at,
                reason=f"AUTO_REMEDY max attempts reached ({context.max_attempts})",
                safeguard=SafeguardResult(approved=False, reason="Max retry limit reached"),
                changes="Max attempts exceeded",
                classification=classification,
                remediation=remediation,
                root_cause=root_cause,
            )

        if remediation.requires_manual_review:
            return self._halt(
                context,
                started_at,
                reason=remediation.reason,
                safeguard=SafeguardResult(approved=False, reason=remediation.reason),
                changes="Manual review required",
                classification=classification,
                remediation=remediation,
                root_cause=root_cause,
            )

        artifact = primary.artifact
        if artifact is not None and is_protected_artifact(artifact):
            reason = f"{artifact} is a protected artifact - manual review required"
            return self._halt(
                context,
                started_at,
                reason=reason,
                safeguard=SafeguardResult(approved=False, reason=reason),
                changes="Safeguard check failed",
                classification=classification,
                remediation=remediation,
                root_cause=root_cause,
            )

        snapshot = context.artifact_content.get(artifact) if artifact is not None else None
        if snapshot is not None:
            edit_check = detect_user_edit(snapshot.original, snapshot.current, snapshot.original_hash)
            if edit_check.user_edit_detected:
                incoming = snapshot.proposed if snapshot.proposed is not None else snapshot.original
                conflict = create_conflict_markers(
                    snapshot.current,
                    incoming,
                    first_differing_line(snapshot.original, snapshot.current),
                    artifact or "",
                )
                reason = "User edit detected - conflict markers required"
                return self._halt(
                    context,
                    started_at,
                    reason=reason,
                    safeguard=SafeguardResult(
                        approved=False,
                        reason=reason,
                        user_edit_detected=True,
                        conflict=conflict,
                    ),
                    changes="Safeguard check failed",
                    classification=classification,
                    remediation=remediation,
                    root_cause=root_cause,
                )

        return AutoRemedyResult(
            can_proceed=True,
            requires_manual_review=False,
            reason="AUTO_REMEDY can proceed - all safeguards passed",
            classification=classification,
            remediation=remediation,
            safeguard_result=SafeguardResult(approved=True, reason="All safeguards passed"),
            next_attempt=context.current_attempt + 1,
            record=RemedyRecord(
                project_id=context.project_id,
                validation_run_id=context.validation_run_id,
                started_at=started_at,
                successful=True,
                changes_applied="Pending agent execution",
            ),
            root_cause=root_cause,
        )

    def _halt(
        self,
        context: AutoRemedyContext,
        started_at: datetime,
        *,
        reason: str,
        safeguard: SafeguardResult,
        changes: str,
        classification: FailureClassification | None = None,
        remediation: RemediationStrategy | None = None,
        root_cause: RootCauseAnalysis | None = None,
    ) -> AutoRemedyResult:
        if classification is None:
            classification = FailureClassification(
                type=FailureType.UNKNOWN, confidence=0.0, reason="Not classified"
            )
        if remediation is None:
            remediation = remediation_strategy(FailureType.UNKNOWN, context.failed_phase)
        return AutoRemedyResult(
            can_proceed=False,
            requires_manual_review=True,
            reason=reason,
            classification=classification,
            remediation=remediation,
            safeguard_result=safeguard,
            next_attempt=context.current_attempt + 1,
            record=RemedyRecord(
                project_id=context.project_id,
                validation_run_id=context.validation_run_id,
                started_at=started_at,
                completed_at=self._clock(),
                successful=False,
                changes_applied=changes,
            ),
            root_cause=root_cause,
        )


def execute_auto_remedy(context: AutoRemedyContext) -> AutoRemedyResult:
    """Convenience one-shot wrapper around :class:`AutoRemedyExecutor`."""

    return AutoRemedyExecutor().execute(context)


__all__ = [
    "ArtifactContent",
    "AutoRemedyContext",
    "AutoRemedyExecutor",
    "AutoRemedyResult",
    "RemedyRecord",
    "execute_auto_remedy",
    "utc_now",
]
