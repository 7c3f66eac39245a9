"""Deterministic dependency-graph helpers."""

from __future__ import annotations

from collections import defaultdict
from heapq import heapify, heappop, heappush
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class GraphCycleError(ValueError):
    """Raised when a dependency graph is not acyclic."""

    def __init__(self, remaining: Iterable[str]) -> None:
        self.remaining = tuple(sorted(remaining))
        super().__init__(
            "dependency graph contains at least one cycle among: " + ", ".join(self.remaining)
        )


def topological_order(
    dependencies: Mapping[str, Iterable[str]],
    *,
    priority: Mapping[str, int] | None = None,
) -> tuple[str, ...]:
    """Order nodes so every node follows its dependencies.

    ``dependencies`` maps node -> nodes it depends on. Unknown dependency names
    raise ``KeyError``. Ties are broken by ``priority`` (lower first), then by
    name, so the order is deterministic.
    """

    rank = dict(priority or {})
    parents_by_id: dict[str, set[str]] = {node: set(deps) for node, deps in dependencies.items()}
    children_by_id: dict[str, set[str]] = defaultdict(set)
    for node, parents in parents_by_id.items():
        for parent in parents:
            if parent not in parents_by_id:
                raise KeyError(f"{node} depends on unknown node {parent}")
            children_by_id[parent].add(node)

    indegree = {node: len(parents) for node, parents in parents_by_id.items()}
    ready = [(rank.get(node, 0), node) for node, degree in indegree.items() if degree == 0]
    heapify(ready)

    ordered: list[str] = []
    while ready:
        _, node = heappop(ready)
        ordered.append(node)
        for child in sorted(children_by_id[node]):
            indegree[child] -= 1
            if indegree[child] == 0:
                heappush(ready, (rank.get(child, 0), child))

    if len(ordered) != len(parents_by_id):
        raise GraphCycleError(node for node, degree in indegree.items() if degree > 0)
    return tuple(ordered)


__all__ = ["GraphCycleError", "topological_order"]
