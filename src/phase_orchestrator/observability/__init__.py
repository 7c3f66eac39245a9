"""Observability public API."""

from phase_orchestrator.observability.logging import (
    configure_logging,
    correlation_scope,
    redact_event,
    redact_text,
)

__all__ = [
    "configure_logging",
    "correlation_scope",
    "redact_event",
    "redact_text",
]
