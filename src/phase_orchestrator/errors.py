"""
phase-orchestrator — error taxonomy

File: src/phase_orchestrator/errors.py
Last updated: 2026-10-19

Purpose
- One exception hierarchy shared by every plane so callers can branch on kind.

Functional requirements
- Every halt state carries a human-readable ``reason`` that is actionable
  without inspecting logs.
- Provider errors keep deterministic machine-readable fields
  (``code``, ``retryable``, ``http_status``).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from phase_orchestrator.verification_plane.auto_remedy import AutoRemedyResult
    from phase_orchestrator.verification_plane.checker import CheckerResult
    from phase_orchestrator.verification_plane.safeguards import SafeguardResult


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


class OrchestratorError(RuntimeError):
    """Base class for every error raised by the orchestrator core."""

    def __init__(self, reason: str) -> None:
        self.reason = _normalize_detail(reason)
        super().__init__(self.reason)


class ConfigError(OrchestratorError, ValueError):
    """Workflow specification is missing, unparseable, or structurally invalid."""


class UnknownPhaseError(OrchestratorError):
    """A phase name does not resolve against the loaded workflow specification."""

    def __init__(self, phase: str, *, reason: str | None = None) -> None:
        self.phase = phase
        super().__init__(reason if reason is not None else f"Unknown phase: {phase}")


class ValidationFailure(OrchestratorError):
    """Non-fatal validation failure fed into the phase outcome state machine."""

    def __init__(self, phase: str, errors: tuple[str, ...]) -> None:
        self.phase = phase
        self.errors = tuple(errors)
        count = len(self.errors)
        super().__init__(f"{phase} failed validation with {count} error(s)")


class ProviderError(OrchestratorError):
    """Normalized generation-provider error; never retried unless ``retryable``."""

    def __init__(
        self,
        detail: str,
        *,
        provider: str = "provider",
        code: str = "service",
        retryable: bool = False,
        http_status: int | None = None,
    ) -> None:
        self.provider = provider.strip() or "provider"
        self.code = code.strip() or "service"
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        self.http_status = http_status
        parts = [
            f"provider={self.provider}",
            f"code={self.code}",
            f"retryable={str(self.retryable).lower()}",
        ]
        if self.http_status is not None:
            parts.append(f"http_status={self.http_status}")
        parts.append(f"detail={self.detail}")
        super().__init__(" ".join(parts))


class RateLimitSignal(ProviderError):
    """Single rate-limit response from the provider (retryable)."""

    def __init__(
        self,
        detail: str = "rate limited",
        *,
        provider: str = "provider",
        retry_after_seconds: float | None = None,
        http_status: int | None = 429,
    ) -> None:
        if retry_after_seconds is not None and retry_after_seconds < 0:
            raise ValueError("retry_after_seconds must be >= 0")
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            detail,
            provider=provider,
            code="rate_limit",
            retryable=True,
            http_status=http_status,
        )


class RateLimitedError(OrchestratorError):
    """Rate-limit retries exhausted for one generation call."""

    def __init__(
        self,
        *,
        attempts: int,
        provider: str = "provider",
        retry_after_seconds: float | None = None,
    ) -> None:
        self.attempts = attempts
        self.provider = provider
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"{provider} rate limited after {attempts} attempt(s); "
            "reduce request volume or retry later"
        )


RateLimited = RateLimitedError


class GenerationTimeoutError(OrchestratorError):
    """One outbound generation call exceeded its own timeout."""

    def __init__(self, *, timeout_seconds: float, phase: str | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        self.phase = phase
        where = f" for phase {phase}" if phase else ""
        super().__init__(f"generation call{where} timed out after {timeout_seconds:g} seconds")


class StructuredOutputError(OrchestratorError):
    """Generated content did not parse into the requested structured shape."""

    def __init__(self, detail: str, *, attempts: int = 1) -> None:
        self.attempts = attempts
        self.detail = _normalize_detail(detail)
        super().__init__(f"structured output parse error after {attempts} attempt(s): {detail}")


class ApprovalBlockedError(OrchestratorError):
    """A pending blocking approval gate prevents phase execution."""

    def __init__(self, *, gate: str, phase: str, blocked_phase: str | None = None) -> None:
        self.gate = gate
        self.phase = phase
        self.blocked_phase = blocked_phase
        target = f" before {blocked_phase} can run" if blocked_phase else ""
        super().__init__(
            f"Approval gate '{gate}' on phase {phase} is pending{target}; approve it to continue"
        )


class ManualReviewRequiredError(OrchestratorError):
    """Automated progression halted pending a human decision."""

    def __init__(self, reason: str, *, result: AutoRemedyResult | None = None) -> None:
        self.result = result
        super().__init__(reason)


class SafeguardRejectedError(OrchestratorError):
    """Remediated output refused by a safeguard; nothing was persisted."""

    def __init__(
        self,
        reason: str,
        *,
        artifact: str | None = None,
        result: SafeguardResult | None = None,
    ) -> None:
        self.artifact = artifact
        self.result = result
        super().__init__(reason)


class CheckerEscalationError(OrchestratorError):
    """Adversarial review escalated; generated artifacts are kept for inspection."""

    def __init__(
        self,
        *,
        phase: str,
        result: CheckerResult,
        artifacts: Mapping[str, str],
    ) -> None:
        self.phase = phase
        self.result = result
        self.artifacts = dict(artifacts)
        super().__init__(f"Checker escalated {phase} for human review: {result.summary}")


class PhaseExecutionError(OrchestratorError):
    """Unexpected failure inside a phase generation routine."""

    def __init__(self, phase: str, detail: object) -> None:
        self.phase = phase
        super().__init__(f"Failed to execute agent for phase {phase}: {_normalize_detail(detail)}")


__all__ = [
    "ApprovalBlockedError",
    "CheckerEscalationError",
    "ConfigError",
    "GenerationTimeoutError",
    "ManualReviewRequiredError",
    "OrchestratorError",
    "PhaseExecutionError",
    "ProviderError",
    "RateLimitSignal",
    "RateLimited",
    "RateLimitedError",
    "SafeguardRejectedError",
    "StructuredOutputError",
    "UnknownPhaseError",
    "ValidationFailure",
]
