"""Phase outcome state machine: validation result -> transition decision."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from phase_orchestrator.constants import Phase
from phase_orchestrator.verification_plane.validators import ValidationResult


class PhaseOutcome(StrEnum):
    ALL_PASS = "all_pass"
    WARNINGS_ONLY = "warnings_only"
    FAILURES_DETECTED = "failures_detected"


class TransitionKind(StrEnum):
    PROCEED = "proceed"
    USER_CHOICE = "user_choice"
    AUTO_REMEDY = "auto_remedy"


USER_CHOICES: Final[tuple[str, ...]] = ("proceed", "fix_warnings")


@dataclass(frozen=True, slots=True)
class PhaseTransitionDecision:
    state: PhaseOutcome
    transition: TransitionKind
    can_proceed: bool
    next_phase: str
    requires_user_decision: bool
    reason: str
    error_count: int = 0
    warning_count: int = 0
    failed_artifacts: tuple[str, ...] = ()
    choices: tuple[str, ...] = ()


def determine_outcome(phase: str, result: ValidationResult) -> PhaseTransitionDecision:
    """Errors take precedence over warnings, warnings over a clean pass."""

    errors = result.errors
    warnings = result.warnings

    if errors:
        failed = tuple(dict.fromkeys(issue.artifact for issue in errors if issue.artifact))
        return PhaseTransitionDecision(
            state=PhaseOutcome.FAILURES_DETECTED,
            transition=TransitionKind.AUTO_REMEDY,
            can_proceed=False,
            next_phase=Phase.AUTO_REMEDY,
            requires_user_decision=False,
            error_count=len(errors),
            failed_artifacts=failed,
            reason=f"{len(errors)} validation error(s) detected - triggering AUTO_REMEDY",
        )

    if warnings:
        return PhaseTransitionDecision(
            state=PhaseOutcome.WARNINGS_ONLY,
            transition=TransitionKind.USER_CHOICE,
            can_proceed=True,
            next_phase=phase,
            requires_user_decision=True,
            warning_count=len(warnings),
            choices=USER_CHOICES,
            reason=f"{len(warnings)} warning(s) detected - user choice required",
        )

    return PhaseTransitionDecision(
        state=PhaseOutcome.ALL_PASS,
        transition=TransitionKind.PROCEED,
        can_proceed=True,
        next_phase=Phase.DONE,
        requires_user_decision=False,
        reason="All validations passed - proceeding to completion",
    )


__all__ = [
    "PhaseOutcome",
    "PhaseTransitionDecision",
    "TransitionKind",
    "USER_CHOICES",
    "determine_outcome",
]
