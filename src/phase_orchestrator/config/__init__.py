"""Workflow specification loading and schema."""

from phase_orchestrator.config.loader import (
    WorkflowSpecLoader,
    load_default_spec,
    load_workflow_spec,
    load_yaml_mapping,
)
from phase_orchestrator.config.schema import (
    AgentSpec,
    CriticAssignment,
    GateDefinition,
    GenerationConfig,
    GenerationSettings,
    PhaseOverride,
    PhaseSpec,
    RateLimitConfig,
    ValidatorSpec,
    WorkflowSpec,
    parse_workflow_spec,
)

__all__ = [
    "AgentSpec",
    "CriticAssignment",
    "GateDefinition",
    "GenerationConfig",
    "GenerationSettings",
    "PhaseOverride",
    "PhaseSpec",
    "RateLimitConfig",
    "ValidatorSpec",
    "WorkflowSpec",
    "WorkflowSpecLoader",
    "load_default_spec",
    "load_workflow_spec",
    "load_yaml_mapping",
    "parse_workflow_spec",
]
