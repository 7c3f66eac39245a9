"""
phase-orchestrator — per-credential admission control

File: src/phase_orchestrator/synthesis_plane/admission.py
Last updated: 2026-10-19

Purpose
- Gate outbound generation calls per credential: at most ``max_concurrent``
  in flight and start times spaced by ``min_interval_seconds``.

Functional requirements
- Waiting callers are admitted in FIFO order.
- Start times for one credential are non-decreasing and spaced by at least
  the configured interval, even with many concurrent callers.
- The slot is always released, on success, failure, and cancellation.
- Tracked credential state is bounded; least recently used idle entries are
  evicted in batches.

Non-functional requirements
- All counters are mutated under one ``asyncio.Lock``.
"""

from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

from phase_orchestrator.constants import (
    DEFAULT_CREDENTIAL_CAP,
    DEFAULT_EVICTION_FRACTION,
    DEFAULT_EVICTION_MIN_INTERVAL_SECONDS,
)
from phase_orchestrator.utils.lru import LRUCache

T = TypeVar("T")

ClockFn = Callable[[], float]
SleepFn = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class AdmissionState:
    """Mutable admission bookkeeping for one credential."""

    credential_id: str
    max_concurrent: int
    min_interval_seconds: float
    in_flight: int = 0
    next_allowed_start: float = 0.0
    last_used_at: float = 0.0
    peak_in_flight: int = 0
    waiters: deque[asyncio.Future[None]] = field(default_factory=deque)

    @property
    def idle(self) -> bool:
        return self.in_flight == 0 and not self.waiters

    def snapshot(self) -> dict[str, Any]:
        return {
            "credential_id": self.credential_id,
            "in_flight": self.in_flight,
            "max_concurrent": self.max_concurrent,
            "min_interval_seconds": self.min_interval_seconds,
            "queued": len(self.waiters),
            "next_allowed_start": self.next_allowed_start,
            "last_used_at": self.last_used_at,
            "peak_in_flight": self.peak_in_flight,
        }


class AdmissionController:
    """Per-credential concurrency limiter with request spacing."""

    def __init__(
        self,
        *,
        max_concurrent: int = 4,
        min_interval_seconds: float = 1.0,
        capacity: int = DEFAULT_CREDENTIAL_CAP,
        eviction_fraction: float = DEFAULT_EVICTION_FRACTION,
        cleanup_interval_seconds: float = DEFAULT_EVICTION_MIN_INTERVAL_SECONDS,
        clock: ClockFn = time.monotonic,
        sleep: SleepFn = asyncio.sleep,
        logger: Any | None = None,
    ) -> None:
        if max_concurrent <= 0:
            raise ValueError("max_concurrent must be > 0")
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be >= 0")
        self._max_concurrent = max_concurrent
        self._min_interval = min_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._states: LRUCache[str, AdmissionState] = LRUCache(
            capacity,
            eviction_fraction=eviction_fraction,
            min_cleanup_interval=cleanup_interval_seconds,
            evictable=lambda state: state.idle,
        )
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def tracked_credentials(self) -> int:
        return len(self._states)

    def state(self, credential_id: str) -> AdmissionState | None:
        """Return live state for diagnostics without touching LRU order."""

        return self._states.peek(credential_id)

    async def call(self, credential_id: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` once admitted for ``credential_id``; always release the slot."""

        state = await self._acquire(credential_id)
        try:
            start_at = await self._reserve_start(state)
            delay = start_at - self._clock()
            if delay > 0:
                await self._sleep(delay)
            return await fn()
        finally:
            await self._release(state)

    async def _acquire(self, credential_id: str) -> AdmissionState:
        async with self._lock:
            now = self._clock()
            # Evict before lookup so the caller's own entry is never a candidate.
            evicted = self._states.evict_if_needed(now)
            if evicted:
                self._logger.info(
                    "admission_credentials_evicted",
                    evicted=len(evicted),
                    tracked=len(self._states),
                )
            state = self._states.get_or_create(
                credential_id,
                lambda: AdmissionState(
                    credential_id=credential_id,
                    max_concurrent=self._max_concurrent,
                    min_interval_seconds=self._min_interval,
                ),
            )
            state.last_used_at = now
            if state.in_flight < state.max_concurrent and not state.waiters:
                self._mark_in_flight(state)
                return state
            waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
            state.waiters.append(waiter)
            queued = len(state.waiters)

        self._logger.debug(
            "admission_queued",
            credential_id=credential_id,
            queued=queued,
            in_flight=state.in_flight,
        )
        try:
            await waiter
        except asyncio.CancelledError:
            async with self._lock:
                if waiter.done() and not waiter.cancelled():
                    # Slot was handed over before cancellation landed.
                    self._hand_off_or_decrement(state)
                else:
                    try:
                        state.waiters.remove(waiter)
                    except ValueError:
                        pass
            raise
        return state

    async def _reserve_start(self, state: AdmissionState) -> float:
        async with self._lock:
            now = self._clock()
            start_at = max(state.next_allowed_start, now)
            state.next_allowed_start = start_at + state.min_interval_seconds
            state.last_used_at = now
            return start_at

    async def _release(self, state: AdmissionState) -> None:
        async with self._lock:
            state.last_used_at = self._clock()
            self._hand_off_or_decrement(state)

    def _hand_off_or_decrement(self, state: AdmissionState) -> None:
        while state.waiters:
            waiter = state.waiters.popleft()
            if waiter.done():
                continue
            # In-flight count carries over to the next caller.
            waiter.set_result(None)
            return
        state.in_flight -= 1

    def _mark_in_flight(self, state: AdmissionState) -> None:
        state.in_flight += 1
        state.peak_in_flight = max(state.peak_in_flight, state.in_flight)


__all__ = ["AdmissionController", "AdmissionState"]
