"""Generation provider interface and shared retry helpers."""

from phase_orchestrator.synthesis_plane.providers.base import (
    BackoffConfig,
    GenerationProvider,
    GenerationRequest,
    GenerationResponse,
    GenerationUsage,
    compute_backoff_delay,
    is_truncated,
)

__all__ = [
    "BackoffConfig",
    "GenerationProvider",
    "GenerationRequest",
    "GenerationResponse",
    "GenerationUsage",
    "compute_backoff_delay",
    "is_truncated",
]
