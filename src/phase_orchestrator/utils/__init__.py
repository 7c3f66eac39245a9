"""Utility exports for hashing, LRU bookkeeping, graphs, and concurrency helpers."""

from phase_orchestrator.utils.concurrency import TaskOutcome, run_isolated, run_with_timeout
from phase_orchestrator.utils.graphs import GraphCycleError, topological_order
from phase_orchestrator.utils.hashing import content_hash, sha256_text
from phase_orchestrator.utils.lru import LRUCache

__all__ = [
    "GraphCycleError",
    "LRUCache",
    "TaskOutcome",
    "content_hash",
    "run_isolated",
    "run_with_timeout",
    "sha256_text",
    "topological_order",
]
