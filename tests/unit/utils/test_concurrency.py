"""Tests for isolated task execution and timeouts."""

from __future__ import annotations

import asyncio

import pytest

from phase_orchestrator.utils.concurrency import run_isolated, run_with_timeout


async def _value(value: int, delay: float = 0.0) -> int:
    await asyncio.sleep(delay)
    return value


async def _boom(message: str) -> int:
    await asyncio.sleep(0)
    raise RuntimeError(message)


async def test_run_isolated_returns_outcomes_in_input_order() -> None:
    outcomes = await run_isolated([_value(1, 0.02), _value(2, 0.0), _value(3, 0.01)])

    assert [outcome.index for outcome in outcomes] == [0, 1, 2]
    assert [outcome.value for outcome in outcomes] == [1, 2, 3]
    assert all(outcome.ok for outcome in outcomes)


async def test_run_isolated_failure_does_not_cancel_siblings() -> None:
    outcomes = await run_isolated([_value(1, 0.01), _boom("bad"), _value(3, 0.02)])

    assert outcomes[0].ok and outcomes[0].value == 1
    assert not outcomes[1].ok
    assert isinstance(outcomes[1].error, RuntimeError)
    assert str(outcomes[1].error) == "bad"
    assert outcomes[2].ok and outcomes[2].value == 3


async def test_run_isolated_respects_max_concurrency() -> None:
    in_flight = 0
    peak = 0

    async def tracked() -> None:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1

    outcomes = await run_isolated([tracked() for _ in range(6)], max_concurrency=2)

    assert len(outcomes) == 6
    assert peak == 2


async def test_run_isolated_empty_input_returns_empty_list() -> None:
    assert await run_isolated([]) == []


async def test_run_isolated_rejects_non_positive_concurrency() -> None:
    with pytest.raises(ValueError, match="max_concurrency"):
        await run_isolated([_value(1)], max_concurrency=0)


async def test_run_with_timeout_returns_value() -> None:
    assert await run_with_timeout(_value(7), 1.0) == 7


async def test_run_with_timeout_raises_on_expiry() -> None:
    with pytest.raises(TimeoutError, match="timed out"):
        await run_with_timeout(_value(1, 0.5), 0.01)


async def test_run_with_timeout_rejects_non_positive_timeout() -> None:
    with pytest.raises(ValueError, match="timeout_seconds"):
        await run_with_timeout(_value(1), 0)


async def test_run_isolated_closes_pending_coroutines_on_bad_limit() -> None:
    pending = _value(1)

    with pytest.raises(ValueError):
        await run_isolated([pending], max_concurrency=-1)

    assert pending.cr_frame is None
