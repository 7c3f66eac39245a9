"""
phase-orchestrator — generation client unit tests

File: tests/unit/synthesis_plane/test_generation.py
Last updated: 2026-10-19

Purpose
- Validate prompt assembly, rate-limit retries, continuation chaining, timeouts,
  and structured output parsing against a scripted provider.

Functional requirements
- Offline only; sleep and jitter are injected.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field

import pytest

from phase_orchestrator.config.schema import GenerationConfig, PhaseOverride
from phase_orchestrator.errors import (
    GenerationTimeoutError,
    ProviderError,
    RateLimitedError,
    RateLimitSignal,
    StructuredOutputError,
)
from phase_orchestrator.synthesis_plane.admission import AdmissionController
from phase_orchestrator.synthesis_plane.generation import (
    CONTINUATION_INSTRUCTION,
    TASK_MARKER,
    GenerationClient,
    StructuredSchema,
    build_prompt,
    parse_structured,
)
from phase_orchestrator.synthesis_plane.providers.base import (
    BackoffConfig,
    GenerationRequest,
    GenerationResponse,
    GenerationUsage,
    compute_backoff_delay,
)


@dataclass(slots=True)
class _ScriptedProvider:
    outcomes: deque[GenerationResponse | Exception]
    requests: list[GenerationRequest] = field(default_factory=list)

    async def send(self, request: GenerationRequest) -> GenerationResponse:
        self.requests.append(request)
        if not self.outcomes:
            raise RuntimeError("scripted provider outcomes exhausted")
        outcome = self.outcomes.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@dataclass(slots=True)
class _HangingProvider:
    async def send(self, request: GenerationRequest) -> GenerationResponse:
        await asyncio.sleep(3600)
        raise AssertionError("unreachable")


@dataclass(slots=True)
class _RecordingSleep:
    delays: list[float] = field(default_factory=list)

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _response(content: str, finish_reason: str | None = "stop", tokens: int = 10) -> GenerationResponse:
    return GenerationResponse(
        content=content,
        model="test-model",
        usage=GenerationUsage(prompt_tokens=tokens, completion_tokens=tokens, total_tokens=2 * tokens),
        finish_reason=finish_reason,
    )


def _client(
    provider: object,
    *,
    config: GenerationConfig | None = None,
    sleep: _RecordingSleep | None = None,
) -> GenerationClient:
    return GenerationClient(
        provider,  # type: ignore[arg-type]
        config=config or GenerationConfig(model="test-model"),
        admission=AdmissionController(max_concurrent=4, min_interval_seconds=0.0),
        sleep=sleep or _RecordingSleep(),
        random_fn=lambda: 0.0,
    )


def test_build_prompt_numbers_context_documents() -> None:
    assert build_prompt("do it") == "do it"

    prompt = build_prompt("do it", ["first", "second"])

    assert prompt.startswith("--- Context Document 1 ---\nfirst")
    assert "--- Context Document 2 ---\nsecond" in prompt
    assert prompt.endswith(f"{TASK_MARKER}\ndo it")


def test_backoff_doubles_and_honors_retry_after() -> None:
    config = BackoffConfig(base_delay_seconds=1.0, max_jitter_seconds=0.5)

    assert compute_backoff_delay(attempt=1, config=config, random_fn=lambda: 0.0) == 2.0
    assert compute_backoff_delay(attempt=3, config=config, random_fn=lambda: 1.0) == 8.5
    assert compute_backoff_delay(attempt=2, config=config, retry_after_seconds=0.25) == 0.25
    with pytest.raises(ValueError):
        compute_backoff_delay(attempt=0, config=config)


@pytest.mark.asyncio
async def test_generate_sends_phase_settings_and_context() -> None:
    provider = _ScriptedProvider(deque([_response("hello")]))
    config = GenerationConfig(
        model="test-model",
        max_tokens=1000,
        phase_overrides={"SPEC_ARCHITECT": PhaseOverride(temperature=0.3, max_tokens=12000)},
    )

    result = await _client(provider, config=config).generate(
        "write", ["ctx"], phase="SPEC_ARCHITECT"
    )

    assert result.content == "hello"
    assert result.attempts == 1
    request = provider.requests[0]
    assert request.max_tokens == 12000
    assert request.temperature == 0.3
    assert request.phase == "SPEC_ARCHITECT"
    assert "--- Context Document 1 ---\nctx" in request.prompt


@pytest.mark.asyncio
async def test_rate_limit_is_retried_with_backoff() -> None:
    provider = _ScriptedProvider(
        deque([RateLimitSignal(), RateLimitSignal(retry_after_seconds=0.5), _response("done")])
    )
    sleep = _RecordingSleep()

    result = await _client(provider, sleep=sleep).generate("write", max_retries=3)

    assert result.content == "done"
    assert result.attempts == 3
    assert sleep.delays == [2.0, 0.5]


@pytest.mark.asyncio
async def test_rate_limit_exhaustion_raises_rate_limited() -> None:
    provider = _ScriptedProvider(deque([RateLimitSignal(provider="gemini") for _ in range(3)]))
    sleep = _RecordingSleep()

    with pytest.raises(RateLimitedError) as excinfo:
        await _client(provider, sleep=sleep).generate("write", max_retries=2)

    assert excinfo.value.attempts == 3
    assert excinfo.value.provider == "gemini"
    assert len(provider.requests) == 3
    assert len(sleep.delays) == 2


@pytest.mark.asyncio
async def test_non_rate_limit_provider_error_fails_immediately() -> None:
    provider = _ScriptedProvider(deque([ProviderError("bad request", http_status=400)]))

    with pytest.raises(ProviderError) as excinfo:
        await _client(provider).generate("write", max_retries=5)

    assert excinfo.value.http_status == 400
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_unexpected_provider_exception_is_normalized() -> None:
    provider = _ScriptedProvider(deque([ConnectionError("socket closed")]))

    with pytest.raises(ProviderError, match="socket closed"):
        await _client(provider).generate("write")


@pytest.mark.asyncio
async def test_negative_max_retries_rejected() -> None:
    provider = _ScriptedProvider(deque())

    with pytest.raises(ValueError):
        await _client(provider).generate("write", max_retries=-1)


@pytest.mark.asyncio
async def test_truncated_response_is_continued_and_usage_summed() -> None:
    provider = _ScriptedProvider(
        deque([_response("part one, ", "length", tokens=5), _response("part two", "stop", tokens=7)])
    )

    result = await _client(provider).generate("write", phase="SPEC_PM")

    assert result.content == "part one, part two"
    assert result.continuations == 1
    assert result.usage.total_tokens == 24
    assert not result.truncated
    follow_up = provider.requests[1].prompt
    assert "--- Partial Response ---\npart one, " in follow_up
    assert CONTINUATION_INSTRUCTION in follow_up


@pytest.mark.asyncio
async def test_continuations_stop_at_cap() -> None:
    provider = _ScriptedProvider(deque([_response("a", "length"), _response("b", "length")]))

    result = await _client(provider).generate("write", max_continuations=1)

    assert result.content == "ab"
    assert result.continuations == 1
    assert result.truncated
    assert len(provider.requests) == 2


@pytest.mark.asyncio
async def test_continuation_count_already_at_cap_skips_follow_up() -> None:
    provider = _ScriptedProvider(deque([_response("a", "max_tokens")]))

    result = await _client(provider).generate("write", continuation_count=3, max_continuations=3)

    assert result.content == "a"
    assert result.continuations == 0
    assert len(provider.requests) == 1


@pytest.mark.asyncio
async def test_call_timeout_raises_generation_timeout() -> None:
    config = GenerationConfig(model="test-model", timeout_seconds=0.01)

    with pytest.raises(GenerationTimeoutError) as excinfo:
        await _client(_HangingProvider(), config=config).generate("write", phase="ANALYSIS")

    assert excinfo.value.phase == "ANALYSIS"


@pytest.mark.asyncio
async def test_structured_output_retries_until_valid() -> None:
    provider = _ScriptedProvider(
        deque(
            [
                _response("no json here"),
                _response('```json\n{"verdict": "approve", "feedback": []}\n```'),
            ]
        )
    )

    result = await _client(provider).generate(
        "review",
        max_retries=1,
        structured_schema={"type": "object", "required": ["verdict", "feedback"]},
    )

    assert result.structured == {"verdict": "approve", "feedback": []}
    assert len(provider.requests) == 2


@pytest.mark.asyncio
async def test_structured_output_exhaustion_raises() -> None:
    provider = _ScriptedProvider(deque([_response("{}"), _response("{}")]))

    with pytest.raises(StructuredOutputError) as excinfo:
        await _client(provider).generate(
            "review",
            max_retries=1,
            structured_schema=StructuredSchema(required_keys=("verdict",)),
        )

    assert excinfo.value.attempts == 2
    assert "missing required key(s): verdict" in excinfo.value.reason


def test_parse_structured_finds_embedded_values() -> None:
    assert parse_structured('Sure! {"a": 1} hope that helps', StructuredSchema()) == {"a": 1}
    assert parse_structured("items: [1, 2]", StructuredSchema(kind="array")) == [1, 2]
    with pytest.raises(StructuredOutputError, match="expected a JSON array"):
        parse_structured('{"a": 1}', StructuredSchema(kind="array"))
