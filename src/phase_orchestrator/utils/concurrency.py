"""Fan-out and timeout helpers shared by parallel stages, regeneration, and generation."""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Sequence

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class TaskOutcome(Generic[T]):
    """Result of one isolated task: either ``value`` or ``error`` is set."""

    index: int
    value: T | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_isolated(
    coroutines: Sequence[Awaitable[T]],
    *,
    max_concurrency: int | None = None,
) -> list[TaskOutcome[T]]:
    """Run awaitables concurrently; one failure never cancels its siblings.

    Outcomes come back in input order. Cancelling the caller cancels every
    task still running.
    """

    if max_concurrency is not None and max_concurrency <= 0:
        for coroutine in coroutines:
            close_unscheduled(coroutine)
        raise ValueError("max_concurrency must be > 0")
    if not coroutines:
        return []

    limit = asyncio.Semaphore(max_concurrency or len(coroutines))

    async def _guarded(index: int, coroutine: Awaitable[T]) -> TaskOutcome[T]:
        async with limit:
            try:
                return TaskOutcome(index=index, value=await coroutine)
            except Exception as exc:  # noqa: BLE001
                return TaskOutcome(index=index, error=exc)

    async with asyncio.TaskGroup() as group:
        tasks = [
            group.create_task(_guarded(index, coroutine))
            for index, coroutine in enumerate(coroutines)
        ]
    return [task.result() for task in tasks]


async def run_with_timeout(awaitable: Awaitable[T], timeout_seconds: float) -> T:
    """Await ``awaitable``; raise ``TimeoutError`` once ``timeout_seconds`` elapse."""

    if timeout_seconds <= 0:
        close_unscheduled(awaitable)
        raise ValueError("timeout_seconds must be > 0")
    try:
        async with asyncio.timeout(timeout_seconds):
            return await awaitable
    except TimeoutError as exc:
        raise TimeoutError(f"operation timed out after {timeout_seconds} seconds") from exc


def close_unscheduled(awaitable: Awaitable[object]) -> None:
    # A coroutine object that is never awaited warns at garbage collection.
    if inspect.iscoroutine(awaitable):
        awaitable.close()


__all__ = ["TaskOutcome", "close_unscheduled", "run_isolated", "run_with_timeout"]
