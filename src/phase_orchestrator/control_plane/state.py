"""Mutable project state owned by the orchestrator engine."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from phase_orchestrator.verification_plane.auto_remedy import AutoRemedyResult
    from phase_orchestrator.verification_plane.validators import ValidationIssue

_SLUG_RE = re.compile(r"[^a-z0-9]+")


class TransitionType(StrEnum):
    ADVANCE = "advance"
    ROLLBACK = "rollback"
    REMEDY = "remedy"


@dataclass(frozen=True, slots=True)
class PhaseTransition:
    from_phase: str
    to_phase: str
    kind: TransitionType
    at: datetime
    actor: str | None = None


@dataclass(slots=True)
class ProjectState:
    """One project's position in the pipeline.

    ``phases_completed`` is append-only except for rollback truncation. Only
    the engine mutates instances.
    """

    id: str
    name: str
    current_phase: str
    phases_completed: list[str] = field(default_factory=list)
    stack_choice: str | None = None
    approval_gates: dict[str, bool] = field(default_factory=dict)
    artifact_versions: dict[str, int] = field(default_factory=dict)
    transitions: list[PhaseTransition] = field(default_factory=list)
    remedy_attempts: int = 0
    failed_phase: str | None = None
    validation_failures: list[ValidationIssue] = field(default_factory=list)
    remediation_plan: AutoRemedyResult | None = None

    @property
    def slug(self) -> str:
        return _SLUG_RE.sub("-", self.name.lower()).strip("-") or self.id

    def has_completed(self, phase: str) -> bool:
        return phase in self.phases_completed


__all__ = ["PhaseTransition", "ProjectState", "TransitionType"]
