"""Project-wide constants for the phase pipeline and its safeguards."""

from __future__ import annotations

from enum import StrEnum
from typing import Final


class Phase(StrEnum):
    """Fixed, named phases of the artifact-generation pipeline."""

    ANALYSIS = "ANALYSIS"
    STACK_SELECTION = "STACK_SELECTION"
    SPEC_PM = "SPEC_PM"
    SPEC_ARCHITECT = "SPEC_ARCHITECT"
    SPEC_DESIGN_TOKENS = "SPEC_DESIGN_TOKENS"
    SPEC_DESIGN_COMPONENTS = "SPEC_DESIGN_COMPONENTS"
    FRONTEND_BUILD = "FRONTEND_BUILD"
    DEPENDENCIES = "DEPENDENCIES"
    SOLUTIONING = "SOLUTIONING"
    VALIDATE = "VALIDATE"
    AUTO_REMEDY = "AUTO_REMEDY"
    DONE = "DONE"


# Phases whose output comes from a human decision rather than generation.
USER_DRIVEN_PHASES: Final[frozenset[str]] = frozenset({Phase.STACK_SELECTION})

PROTECTED_ARTIFACTS: Final[frozenset[str]] = frozenset({"constitution.md", "project-brief.md"})
MAX_LINES_CHANGED: Final[int] = 50
DEFAULT_MAX_REMEDY_ATTEMPTS: Final[int] = 2

DEFAULT_MAX_CONTINUATIONS: Final[int] = 3
DEFAULT_MAX_RETRIES: Final[int] = 3
DEFAULT_CREDENTIAL_CAP: Final[int] = 1000
DEFAULT_EVICTION_FRACTION: Final[float] = 0.2
DEFAULT_EVICTION_MIN_INTERVAL_SECONDS: Final[float] = 60.0

DEFAULT_WORKFLOW_SPEC_ENV: Final[str] = "PHASE_ORCHESTRATOR_WORKFLOW_SPEC"
ENVIRONMENT_ENV: Final[str] = "PHASE_ORCHESTRATOR_ENV"
DEFAULT_RELOAD_INTERVAL_SECONDS: Final[float] = 5.0

__all__ = [
    "DEFAULT_CREDENTIAL_CAP",
    "DEFAULT_EVICTION_FRACTION",
    "DEFAULT_EVICTION_MIN_INTERVAL_SECONDS",
    "DEFAULT_MAX_CONTINUATIONS",
    "DEFAULT_MAX_REMEDY_ATTEMPTS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_RELOAD_INTERVAL_SECONDS",
    "DEFAULT_WORKFLOW_SPEC_ENV",
    "ENVIRONMENT_ENV",
    "MAX_LINES_CHANGED",
    "PROTECTED_ARTIFACTS",
    "Phase",
    "USER_DRIVEN_PHASES",
]
