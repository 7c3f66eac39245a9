"""
phase-orchestrator — generation provider base models and shared utilities

File: src/phase_orchestrator/synthesis_plane/providers/base.py
Last updated: 2026-10-19

Purpose
- Provider-agnostic request/response models for generation calls.
- Backoff policy shared by the retrying caller.

What should be included in this file
- Request fields: model, prompt, context docs, phase, sampling parameters.
- Response fields: content, token usage, model, finish reason.
- Truncation detection for continuation calls.

Functional requirements
- Providers raise ``RateLimitSignal`` for rate-limit responses and
  ``ProviderError`` for every other non-success response.

Non-functional requirements
- Must make it easy to add new providers without touching core logic.
"""

from __future__ import annotations

import random as random_module
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Final, Protocol, TypeAlias, runtime_checkable

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]
RandomFn: TypeAlias = Callable[[], float]

TRUNCATION_FINISH_REASONS: Final[frozenset[str]] = frozenset(
    {"length", "max_tokens", "MAX_TOKENS"}
)


def _validate_non_empty_str(value: str, field_name: str) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{field_name} must be a string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} cannot be empty")
    return normalized


@dataclass(frozen=True, slots=True)
class GenerationUsage:
    """Token accounting for one response (or a summed continuation chain)."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __post_init__(self) -> None:
        if self.prompt_tokens < 0:
            raise ValueError("prompt_tokens must be >= 0")
        if self.completion_tokens < 0:
            raise ValueError("completion_tokens must be >= 0")
        if self.total_tokens < 0:
            raise ValueError("total_tokens must be >= 0")

    def __add__(self, other: GenerationUsage) -> GenerationUsage:
        return GenerationUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True, slots=True)
class GenerationRequest:
    """One outbound call to the generation capability."""

    prompt: str
    model: str
    max_tokens: int
    temperature: float
    top_p: float | None = None
    phase: str | None = None
    context_docs: tuple[str, ...] = ()
    metadata: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "model", _validate_non_empty_str(self.model, "model"))
        if not isinstance(self.prompt, str) or not self.prompt:
            raise ValueError("prompt cannot be empty")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be > 0")
        object.__setattr__(self, "context_docs", tuple(self.context_docs))


@dataclass(frozen=True, slots=True)
class GenerationResponse:
    """Provider-agnostic normalized response."""

    content: str
    model: str
    usage: GenerationUsage = field(default_factory=GenerationUsage)
    finish_reason: str | None = None

    @property
    def truncated(self) -> bool:
        return is_truncated(self.finish_reason)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "content": self.content,
            "model": self.model,
            "usage": self.usage.to_dict(),
        }
        if self.finish_reason is not None:
            payload["finish_reason"] = self.finish_reason
        return payload


@runtime_checkable
class GenerationProvider(Protocol):
    """Protocol implemented by concrete provider adapters."""

    async def send(self, request: GenerationRequest) -> GenerationResponse:
        """Send one request; raise ``RateLimitSignal`` or ``ProviderError`` on failure."""


def is_truncated(finish_reason: str | None) -> bool:
    return finish_reason is not None and finish_reason in TRUNCATION_FINISH_REASONS


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    """Exponential backoff: ``base * 2**attempt`` plus bounded random jitter."""

    base_delay_seconds: float = 1.0
    max_jitter_seconds: float = 0.25
    honor_retry_after: bool = True

    def __post_init__(self) -> None:
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")
        if self.max_jitter_seconds < 0:
            raise ValueError("max_jitter_seconds must be >= 0")


def compute_backoff_delay(
    *,
    attempt: int,
    config: BackoffConfig,
    retry_after_seconds: float | None = None,
    random_fn: RandomFn = random_module.random,
) -> float:
    """Return the wait before the next attempt after ``attempt`` (1-based) failed."""

    if attempt <= 0:
        raise ValueError("attempt must be > 0")
    if retry_after_seconds is not None and config.honor_retry_after:
        return max(0.0, retry_after_seconds)
    random_value = random_fn()
    if not (0.0 <= random_value <= 1.0):
        raise ValueError("random_fn must return values in [0.0, 1.0]")
    return config.base_delay_seconds * (2**attempt) + random_value * config.max_jitter_seconds


__all__ = [
    "BackoffConfig",
    "GenerationProvider",
    "GenerationRequest",
    "GenerationResponse",
    "GenerationUsage",
    "RandomFn",
    "SleepFn",
    "TRUNCATION_FINISH_REASONS",
    "compute_backoff_delay",
    "is_truncated",
]
