"""Control-plane public API."""

from phase_orchestrator.control_plane.engine import (
    FIX_WARNINGS_CHOICE,
    PROCEED_CHOICE,
    AdvanceResult,
    AppliedOutcome,
    EngineHooks,
    OrchestratorEngine,
    PhaseRunResult,
)
from phase_orchestrator.control_plane.parallel import (
    DEFAULT_STAGES,
    GroupResult,
    GroupType,
    ParallelGroup,
    ParallelWorkflowResult,
    ParallelWorkflowRunner,
    PhaseError,
    PhaseResultEntry,
    StageSpec,
    WorkflowOptions,
    plan_groups,
)
from phase_orchestrator.control_plane.regeneration import (
    RegenerationOptions,
    RegenerationResult,
    RegenerationWorkflow,
    select_artifacts,
)
from phase_orchestrator.control_plane.state import PhaseTransition, ProjectState, TransitionType

__all__ = [
    "AdvanceResult",
    "AppliedOutcome",
    "DEFAULT_STAGES",
    "EngineHooks",
    "FIX_WARNINGS_CHOICE",
    "GroupResult",
    "GroupType",
    "OrchestratorEngine",
    "PROCEED_CHOICE",
    "ParallelGroup",
    "ParallelWorkflowResult",
    "ParallelWorkflowRunner",
    "PhaseError",
    "PhaseResultEntry",
    "PhaseRunResult",
    "PhaseTransition",
    "ProjectState",
    "RegenerationOptions",
    "RegenerationResult",
    "RegenerationWorkflow",
    "StageSpec",
    "TransitionType",
    "WorkflowOptions",
    "plan_groups",
    "select_artifacts",
]
