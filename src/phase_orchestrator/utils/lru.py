"""Bounded LRU map with batch eviction of the least recently used entries."""

from __future__ import annotations

import math
from collections import OrderedDict
from collections.abc import Callable, Iterator
from typing import Generic, TypeVar

K = TypeVar("K")
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """Capacity-bounded map ordered by last use.

    Not synchronized: the owner serializes access (the admission controller
    holds its lock around every call).

    Eviction runs only when the size exceeds ``capacity`` and at least
    ``min_cleanup_interval`` has passed since the previous cleanup. It removes
    the oldest ``eviction_fraction`` of entries (at least one), skipping
    entries the ``evictable`` predicate rejects.
    """

    def __init__(
        self,
        capacity: int,
        *,
        eviction_fraction: float = 0.2,
        min_cleanup_interval: float = 0.0,
        evictable: Callable[[V], bool] | None = None,
    ) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be > 0")
        if not (0.0 < eviction_fraction <= 1.0):
            raise ValueError("eviction_fraction must be in (0.0, 1.0]")
        if min_cleanup_interval < 0:
            raise ValueError("min_cleanup_interval must be >= 0")
        self._capacity = capacity
        self._eviction_fraction = eviction_fraction
        self._min_cleanup_interval = min_cleanup_interval
        self._evictable = evictable
        self._entries: OrderedDict[K, V] = OrderedDict()
        self._last_cleanup: float | None = None

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[K]:
        return iter(self._entries)

    def get(self, key: K) -> V | None:
        value = self._entries.get(key)
        if value is not None:
            self._entries.move_to_end(key)
        return value

    def get_or_create(self, key: K, factory: Callable[[], V]) -> V:
        """Return the entry for ``key``, creating it with ``factory`` on first use."""

        value = self._entries.get(key)
        if value is None:
            value = factory()
            self._entries[key] = value
        else:
            self._entries.move_to_end(key)
        return value

    def peek(self, key: K) -> V | None:
        """Return the entry without changing its recency."""

        return self._entries.get(key)

    def touch(self, key: K) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)

    def pop(self, key: K) -> V | None:
        return self._entries.pop(key, None)

    def evict_if_needed(self, now: float) -> tuple[K, ...]:
        """Evict the oldest entries when over capacity; return evicted keys."""

        if len(self._entries) <= self._capacity:
            return ()
        if (
            self._last_cleanup is not None
            and now - self._last_cleanup < self._min_cleanup_interval
        ):
            return ()
        self._last_cleanup = now

        quota = max(1, math.ceil(len(self._entries) * self._eviction_fraction))
        evicted: list[K] = []
        for key in list(self._entries):
            if len(evicted) >= quota:
                break
            value = self._entries[key]
            if self._evictable is not None and not self._evictable(value):
                continue
            del self._entries[key]
            evicted.append(key)
        return tuple(evicted)


__all__ = ["LRUCache"]
