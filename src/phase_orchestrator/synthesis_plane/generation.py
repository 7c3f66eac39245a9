"""
phase-orchestrator — retrying generation client

File: src/phase_orchestrator/synthesis_plane/generation.py
Last updated: 2026-10-19

Purpose
- The single entry point every phase agent, critic, and regeneration routine
  uses to call the external text-generation capability.

What should be included in this file
- Prompt assembly with numbered context documents.
- Admission through :class:`AdmissionController` for every outbound call.
- Rate-limit retries with exponential backoff and jitter (or a provider
  retry-after hint when present).
- Continuation calls when a response is truncated, bounded per request.
- Optional structured (JSON) output with validation retries.

Functional requirements
- Rate limiting is retried; after ``max_retries + 1`` attempts the call fails
  with ``RateLimitedError``.
- Any other provider error fails immediately with ``ProviderError``.
- A per-call timeout fails with ``GenerationTimeoutError``.
- Usage of chained continuation calls is summed.

Non-functional requirements
- Sleep, randomness, and the provider are injectable for deterministic tests.
"""

from __future__ import annotations

import asyncio
import json
import random as random_module
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Final, Protocol

import structlog

from phase_orchestrator.config.schema import GenerationConfig, GenerationSettings
from phase_orchestrator.errors import (
    GenerationTimeoutError,
    OrchestratorError,
    ProviderError,
    RateLimitedError,
    RateLimitSignal,
    StructuredOutputError,
)
from phase_orchestrator.synthesis_plane.admission import AdmissionController
from phase_orchestrator.synthesis_plane.providers.base import (
    BackoffConfig,
    GenerationProvider,
    GenerationRequest,
    GenerationResponse,
    GenerationUsage,
    RandomFn,
    SleepFn,
    compute_backoff_delay,
    is_truncated,
)
from phase_orchestrator.utils.concurrency import run_with_timeout

DEFAULT_CREDENTIAL: Final[str] = "default"
TASK_MARKER: Final[str] = "--- Task ---"
CONTINUATION_INSTRUCTION: Final[str] = (
    "Continue exactly where the previous response stopped. "
    "Do not repeat any earlier text and do not add a preamble."
)

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


@dataclass(frozen=True, slots=True)
class StructuredSchema:
    """Minimal shape contract for structured output."""

    kind: str = "object"
    required_keys: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.kind not in {"object", "array"}:
            raise ValueError("kind must be 'object' or 'array'")
        object.__setattr__(self, "required_keys", tuple(self.required_keys))

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> StructuredSchema:
        """Build from a ``{"type": ..., "required": [...]}`` mapping."""

        return cls(
            kind=str(raw.get("type", "object")),
            required_keys=tuple(str(key) for key in raw.get("required", ())),
        )


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Assembled output of one logical generation, continuations included."""

    content: str
    model: str
    usage: GenerationUsage = field(default_factory=GenerationUsage)
    finish_reason: str | None = None
    continuations: int = 0
    attempts: int = 1
    structured: Any | None = None

    @property
    def truncated(self) -> bool:
        return is_truncated(self.finish_reason)


class TextGenerator(Protocol):
    """What phase agents, critics, and regeneration need from a generator."""

    async def generate(
        self,
        prompt: str,
        context_docs: Sequence[str] = (),
        *,
        max_retries: int | None = None,
        phase: str | None = None,
    ) -> GenerationResult: ...


def build_prompt(prompt: str, context_docs: Sequence[str] = ()) -> str:
    """Prefix ``prompt`` with numbered context documents."""

    if not context_docs:
        return prompt
    blocks = [
        f"--- Context Document {index} ---\n{doc}"
        for index, doc in enumerate(context_docs, start=1)
    ]
    return "\n\n".join(blocks) + f"\n\n{TASK_MARKER}\n{prompt}"


def build_continuation_prompt(prompt: str, partial: str) -> str:
    return f"{prompt}\n\n--- Partial Response ---\n{partial}\n\n{CONTINUATION_INSTRUCTION}"


def parse_structured(content: str, schema: StructuredSchema) -> Any:
    """Extract and check JSON from generated text; raise ``StructuredOutputError``."""

    candidates: list[str] = []
    fenced = _FENCED_JSON_RE.search(content)
    if fenced is not None:
        candidates.append(fenced.group(1))
    candidates.append(content)
    pattern = _JSON_OBJECT_RE if schema.kind == "object" else _JSON_ARRAY_RE
    embedded = pattern.search(content)
    if embedded is not None:
        candidates.append(embedded.group(0))

    parsed: Any = None
    found = False
    for candidate in candidates:
        try:
            parsed = json.loads(candidate.strip())
        except json.JSONDecodeError:
            continue
        found = True
        break
    if not found:
        raise StructuredOutputError("no parseable JSON found in response")

    expected_type: type = dict if schema.kind == "object" else list
    if not isinstance(parsed, expected_type):
        raise StructuredOutputError(f"expected a JSON {schema.kind}")
    if schema.kind == "object":
        missing = [key for key in schema.required_keys if key not in parsed]
        if missing:
            raise StructuredOutputError("missing required key(s): " + ", ".join(missing))
    return parsed


class GenerationClient:
    """Admission-controlled, retrying, continuation-aware generation caller."""

    def __init__(
        self,
        provider: GenerationProvider,
        *,
        config: GenerationConfig,
        admission: AdmissionController | None = None,
        credential: str = DEFAULT_CREDENTIAL,
        backoff: BackoffConfig | None = None,
        sleep: SleepFn = asyncio.sleep,
        random_fn: RandomFn = random_module.random,
        logger: Any | None = None,
    ) -> None:
        self._provider = provider
        self._config = config
        self._admission = (
            admission
            if admission is not None
            else AdmissionController(
                max_concurrent=config.rate_limit.max_concurrent,
                min_interval_seconds=config.rate_limit.min_interval_seconds,
            )
        )
        self._credential = credential
        self._backoff = backoff or BackoffConfig()
        self._sleep = sleep
        self._random = random_fn
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def config(self) -> GenerationConfig:
        return self._config

    async def generate(
        self,
        prompt: str,
        context_docs: Sequence[str] = (),
        *,
        max_retries: int | None = None,
        phase: str | None = None,
        continuation_count: int = 0,
        max_continuations: int | None = None,
        structured_schema: StructuredSchema | Mapping[str, Any] | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> GenerationResult:
        """Generate text for ``prompt``; see module docstring for failure modes."""

        retries = self._config.max_retries if max_retries is None else max_retries
        if retries < 0:
            raise ValueError("max_retries must be >= 0")
        continuation_cap = (
            self._config.max_continuations if max_continuations is None else max_continuations
        )
        settings = self._config.for_phase(phase)
        full_prompt = build_prompt(prompt, context_docs)
        meta = dict(metadata or {})
        if isinstance(structured_schema, Mapping):
            structured_schema = StructuredSchema.from_mapping(structured_schema)

        if structured_schema is None:
            return await self._generate_with_continuations(
                full_prompt,
                settings,
                phase=phase,
                max_retries=retries,
                continuation_count=continuation_count,
                max_continuations=continuation_cap,
                metadata=meta,
            )

        last_error: StructuredOutputError | None = None
        total_attempts = retries + 1
        for attempt in range(1, total_attempts + 1):
            result = await self._generate_with_continuations(
                full_prompt,
                settings,
                phase=phase,
                max_retries=retries,
                continuation_count=continuation_count,
                max_continuations=continuation_cap,
                metadata=meta,
            )
            try:
                parsed = parse_structured(result.content, structured_schema)
            except StructuredOutputError as exc:
                last_error = exc
                self._logger.warning(
                    "structured_output_invalid",
                    phase=phase,
                    attempt=attempt,
                    reason=exc.reason,
                )
                continue
            return replace(result, structured=parsed)

        detail = last_error.detail if last_error is not None else "unknown error"
        raise StructuredOutputError(detail, attempts=total_attempts)

    async def _generate_with_continuations(
        self,
        prompt: str,
        settings: GenerationSettings,
        *,
        phase: str | None,
        max_retries: int,
        continuation_count: int,
        max_continuations: int,
        metadata: dict[str, str],
    ) -> GenerationResult:
        response, attempts = await self._call_with_retries(
            self._request(prompt, settings, phase, metadata), max_retries=max_retries
        )
        parts = [response.content]
        usage = response.usage
        continuations = continuation_count

        while response.truncated and continuations < max_continuations:
            continuations += 1
            self._logger.info(
                "generation_continuation",
                phase=phase,
                continuation=continuations,
                max_continuations=max_continuations,
            )
            follow_up = build_continuation_prompt(prompt, "".join(parts))
            response, extra_attempts = await self._call_with_retries(
                self._request(follow_up, settings, phase, metadata), max_retries=max_retries
            )
            attempts += extra_attempts
            parts.append(response.content)
            usage = usage + response.usage

        if response.truncated:
            self._logger.warning(
                "generation_truncated",
                phase=phase,
                continuations=continuations,
                max_continuations=max_continuations,
            )

        return GenerationResult(
            content="".join(parts),
            model=response.model,
            usage=usage,
            finish_reason=response.finish_reason,
            continuations=continuations - continuation_count,
            attempts=attempts,
        )

    async def _call_with_retries(
        self,
        request: GenerationRequest,
        *,
        max_retries: int,
    ) -> tuple[GenerationResponse, int]:
        settings_timeout = self._config.for_phase(request.phase).timeout_seconds
        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._admission.call(
                    self._credential,
                    lambda: self._send_with_timeout(request, settings_timeout),
                )
                return response, attempt
            except RateLimitSignal as signal:
                if attempt > max_retries:
                    self._logger.error(
                        "generation_rate_limited",
                        phase=request.phase,
                        attempts=attempt,
                        provider=signal.provider,
                    )
                    raise RateLimitedError(
                        attempts=attempt,
                        provider=signal.provider,
                        retry_after_seconds=signal.retry_after_seconds,
                    ) from signal
                delay = compute_backoff_delay(
                    attempt=attempt,
                    config=self._backoff,
                    retry_after_seconds=signal.retry_after_seconds,
                    random_fn=self._random,
                )
                self._logger.warning(
                    "generation_retry_scheduled",
                    phase=request.phase,
                    attempt=attempt,
                    delay_seconds=round(delay, 3),
                    retry_after_seconds=signal.retry_after_seconds,
                )
                await self._sleep(delay)

    async def _send_with_timeout(
        self,
        request: GenerationRequest,
        timeout_seconds: float,
    ) -> GenerationResponse:
        try:
            return await run_with_timeout(self._provider.send(request), timeout_seconds)
        except TimeoutError as exc:
            raise GenerationTimeoutError(
                timeout_seconds=timeout_seconds, phase=request.phase
            ) from exc
        except OrchestratorError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ProviderError(str(exc) or type(exc).__name__) from exc

    def _request(
        self,
        prompt: str,
        settings: GenerationSettings,
        phase: str | None,
        metadata: dict[str, str],
    ) -> GenerationRequest:
        return GenerationRequest(
            prompt=prompt,
            model=settings.model,
            max_tokens=settings.max_tokens,
            temperature=settings.temperature,
            top_p=settings.top_p,
            phase=phase,
            metadata=metadata,
        )


__all__ = [
    "CONTINUATION_INSTRUCTION",
    "GenerationClient",
    "GenerationResult",
    "StructuredSchema",
    "TextGenerator",
    "build_continuation_prompt",
    "build_prompt",
    "parse_structured",
]
