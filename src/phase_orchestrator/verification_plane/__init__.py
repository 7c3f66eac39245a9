"""
phase-orchestrator — verification plane public API.

File: src/phase_orchestrator/verification_plane/__init__.py
Last updated: 2026-10-19

Purpose
- Export phase validation, outcome routing, failure classification,
  safeguards, auto-remediation, and adversarial review.

Non-functional requirements
- Keep import-time behavior deterministic and lightweight.
"""

from phase_orchestrator.verification_plane.auto_remedy import (
    ArtifactContent,
    AutoRemedyContext,
    AutoRemedyExecutor,
    AutoRemedyResult,
    RemedyRecord,
    execute_auto_remedy,
)
from phase_orchestrator.verification_plane.checker import (
    CRITIC_PERSONAS,
    DEFAULT_ASSIGNMENTS,
    CheckerResult,
    CheckerService,
    CheckerStatus,
    CriticFeedback,
    CriticPersona,
    CriticSeverity,
    count_by_severity,
    evaluate_decision,
    has_critical_issues,
    parse_critic_response,
)
from phase_orchestrator.verification_plane.classifier import (
    FailureClassification,
    FailureType,
    RemediationStrategy,
    classify_failure,
    remediation_strategy,
)
from phase_orchestrator.verification_plane.outcomes import (
    USER_CHOICES,
    PhaseOutcome,
    PhaseTransitionDecision,
    TransitionKind,
    determine_outcome,
)
from phase_orchestrator.verification_plane.root_cause import (
    ErrorType,
    RootCauseAnalysis,
    RootCauseGroup,
    analyze_root_cause,
)
from phase_orchestrator.verification_plane.safeguards import (
    SafeguardResult,
    create_conflict_markers,
    detect_user_edit,
    generate_diff_preview,
    is_protected_artifact,
    validate_change_scope,
)
from phase_orchestrator.verification_plane.validators import (
    IssueSeverity,
    ValidationContext,
    ValidationIssue,
    ValidationResult,
    ValidationStatus,
    ValidatorRegistry,
)

__all__ = [
    "ArtifactContent",
    "AutoRemedyContext",
    "AutoRemedyExecutor",
    "AutoRemedyResult",
    "CRITIC_PERSONAS",
    "CheckerResult",
    "CheckerService",
    "CheckerStatus",
    "CriticFeedback",
    "CriticPersona",
    "CriticSeverity",
    "DEFAULT_ASSIGNMENTS",
    "ErrorType",
    "FailureClassification",
    "FailureType",
    "IssueSeverity",
    "PhaseOutcome",
    "PhaseTransitionDecision",
    "RemediationStrategy",
    "RemedyRecord",
    "RootCauseAnalysis",
    "RootCauseGroup",
    "SafeguardResult",
    "TransitionKind",
    "USER_CHOICES",
    "ValidationContext",
    "ValidationIssue",
    "ValidationResult",
    "ValidationStatus",
    "ValidatorRegistry",
    "analyze_root_cause",
    "classify_failure",
    "count_by_severity",
    "create_conflict_markers",
    "detect_user_edit",
    "determine_outcome",
    "evaluate_decision",
    "execute_auto_remedy",
    "generate_diff_preview",
    "has_critical_issues",
    "is_protected_artifact",
    "parse_critic_response",
    "remediation_strategy",
    "validate_change_scope",
]
