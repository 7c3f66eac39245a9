"""Synthesis plane: admission control, generation client, prompts, and phase executors."""

from phase_orchestrator.synthesis_plane.admission import AdmissionController, AdmissionState
from phase_orchestrator.synthesis_plane.generation import (
    GenerationClient,
    GenerationResult,
    StructuredSchema,
    TextGenerator,
    build_prompt,
    parse_structured,
)
from phase_orchestrator.synthesis_plane.phase_agents import (
    ArtifactParseError,
    ArtifactRegenerator,
    GenerativeArtifactRegenerator,
    GenerativePhaseExecutor,
    PhaseExecutor,
    PhaseExecutorRegistry,
    PhaseOutput,
    PhaseRunContext,
    RegenerationRequest,
    parse_artifacts,
)
from phase_orchestrator.synthesis_plane.prompt_templates import PromptTemplateEngine, RenderedPrompt

__all__ = [
    "AdmissionController",
    "AdmissionState",
    "ArtifactParseError",
    "ArtifactRegenerator",
    "GenerationClient",
    "GenerationResult",
    "GenerativeArtifactRegenerator",
    "GenerativePhaseExecutor",
    "PhaseExecutor",
    "PhaseExecutorRegistry",
    "PhaseOutput",
    "PhaseRunContext",
    "PromptTemplateEngine",
    "RegenerationRequest",
    "RenderedPrompt",
    "StructuredSchema",
    "TextGenerator",
    "build_prompt",
    "parse_artifacts",
    "parse_structured",
]
