"""
phase-orchestrator — change impact analysis

File: src/phase_orchestrator/impact_plane/analyzer.py
Last updated: 2026-10-19

Purpose
- Compute the blast radius of one artifact change and recommend a
  regeneration strategy.

What should be included in this file
- Breadth-first traversal over the artifact graph with a visited set.
- Depth-based impact attenuation as an explicit, configurable policy.
- Strategy recommendation and a human-readable reasoning string.

Functional requirements
- ``impact_summary`` counts always sum to the number of affected artifacts.
- No affected artifacts recommends ``ignore``; any HIGH ``regenerate_all``;
  otherwise any MEDIUM ``high_impact_only``; only LOW ``manual_review``.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

import structlog

from phase_orchestrator.impact_plane.change_detection import (
    ArtifactChange,
    ChangedSection,
    ChangeType,
    ImpactLevel,
)
from phase_orchestrator.impact_plane.graph import ArtifactGraph, artifact_basename


class RegenerationStrategy(StrEnum):
    REGENERATE_ALL = "regenerate_all"
    HIGH_IMPACT_ONLY = "high_impact_only"
    MANUAL_REVIEW = "manual_review"
    IGNORE = "ignore"


@dataclass(frozen=True, slots=True)
class AttenuationPolicy:
    """How trigger impact decays with distance from the changed artifact.

    Depth 0 is a direct dependent. A HIGH trigger stays HIGH up to
    ``high_max_depth`` and becomes MEDIUM beyond it. A MEDIUM trigger (or an
    attenuated HIGH one) stays MEDIUM up to ``medium_max_depth`` (``None`` means
    unbounded) and becomes LOW beyond it. A LOW trigger is LOW everywhere.
    """

    high_max_depth: int = 0
    medium_max_depth: int | None = None

    def __post_init__(self) -> None:
        if self.high_max_depth < 0:
            raise ValueError("high_max_depth must be >= 0")
        if self.medium_max_depth is not None and self.medium_max_depth < 0:
            raise ValueError("medium_max_depth must be >= 0")

    def level_at(self, trigger: ImpactLevel, depth: int) -> ImpactLevel:
        if trigger is ImpactLevel.HIGH and depth <= self.high_max_depth:
            return ImpactLevel.HIGH
        if trigger in (ImpactLevel.HIGH, ImpactLevel.MEDIUM):
            if self.medium_max_depth is None or depth <= self.medium_max_depth:
                return ImpactLevel.MEDIUM
        return ImpactLevel.LOW


@dataclass(frozen=True, slots=True)
class AffectedArtifact:
    artifact_id: str
    artifact: str
    phase: str
    impact_level: ImpactLevel
    reason: str
    depth: int = 0
    change_type: ChangeType | None = None
    section: str | None = None


@dataclass(frozen=True, slots=True)
class ImpactSummary:
    high: int = 0
    medium: int = 0
    low: int = 0

    @property
    def total(self) -> int:
        return self.high + self.medium + self.low

    @classmethod
    def count(cls, affected: Iterable[AffectedArtifact]) -> ImpactSummary:
        levels = [item.impact_level for item in affected]
        return cls(
            high=levels.count(ImpactLevel.HIGH),
            medium=levels.count(ImpactLevel.MEDIUM),
            low=levels.count(ImpactLevel.LOW),
        )


@dataclass(frozen=True, slots=True)
class ImpactAnalysis:
    trigger_change: ArtifactChange
    affected_artifacts: tuple[AffectedArtifact, ...]
    impact_summary: ImpactSummary
    recommended_strategy: RegenerationStrategy
    reasoning: str

    def artifacts_at(self, level: ImpactLevel) -> tuple[AffectedArtifact, ...]:
        return tuple(item for item in self.affected_artifacts if item.impact_level is level)


def _describe_sections(sections: Sequence[ChangedSection]) -> str:
    if not sections:
        return "content edits"
    described = [f"{section.change_type} '{section.header}'" for section in sections[:3]]
    if len(sections) > 3:
        described.append(f"{len(sections) - 3} more")
    return ", ".join(described)


def find_affected_artifacts(
    changed_artifact: str,
    graph: ArtifactGraph,
    trigger_impact: ImpactLevel,
    *,
    policy: AttenuationPolicy | None = None,
    sections: Sequence[ChangedSection] = (),
) -> tuple[AffectedArtifact, ...]:
    """Breadth-first walk of every artifact downstream of ``changed_artifact``."""

    policy = policy or AttenuationPolicy()
    origin = artifact_basename(changed_artifact)
    visited = {origin}
    queue: deque[tuple[str, int]] = deque([(origin, 0)])
    primary = sections[0] if sections else None
    summary = _describe_sections(sections)
    affected: list[AffectedArtifact] = []

    while queue:
        current, depth = queue.popleft()
        for dependent in graph.dependents_of(current):
            if dependent.artifact in visited:
                continue
            visited.add(dependent.artifact)
            level = policy.level_at(trigger_impact, depth)
            if depth == 0:
                reason = (
                    f"{dependent.artifact} ({dependent.phase}) consumes {origin} directly; "
                    f"{origin} changed with {trigger_impact} impact ({summary})"
                )
            else:
                reason = (
                    f"{dependent.artifact} ({dependent.phase}) depends on {origin} "
                    f"through {current} ({depth + 1} hops); impact attenuated to {level}"
                )
            affected.append(
                AffectedArtifact(
                    artifact_id=dependent.artifact_id,
                    artifact=dependent.artifact,
                    phase=dependent.phase,
                    impact_level=level,
                    reason=reason,
                    depth=depth,
                    change_type=primary.change_type if primary is not None and depth == 0 else None,
                    section=primary.header if primary is not None and depth == 0 else None,
                )
            )
            queue.append((dependent.artifact, depth + 1))
    return tuple(affected)


def recommend_strategy(
    affected: Sequence[AffectedArtifact], summary: ImpactSummary | None = None
) -> RegenerationStrategy:
    summary = summary or ImpactSummary.count(affected)
    if not affected:
        return RegenerationStrategy.IGNORE
    if summary.high > 0:
        return RegenerationStrategy.REGENERATE_ALL
    if summary.medium > 0:
        return RegenerationStrategy.HIGH_IMPACT_ONLY
    return RegenerationStrategy.MANUAL_REVIEW


def _reasoning(
    artifact: str, strategy: RegenerationStrategy, summary: ImpactSummary
) -> str:
    if strategy is RegenerationStrategy.IGNORE:
        return f"No downstream artifacts depend on {artifact}; no regeneration needed."
    if strategy is RegenerationStrategy.REGENERATE_ALL:
        return (
            f"{artifact} has structural changes (sections added or removed) giving "
            f"{summary.high} artifact(s) HIGH impact and {summary.medium} MEDIUM; "
            f"regenerate all {summary.total} affected artifact(s)."
        )
    if strategy is RegenerationStrategy.HIGH_IMPACT_ONLY:
        return (
            f"{artifact} has content-level changes with MEDIUM impact on "
            f"{summary.medium} artifact(s); regenerate high-impact artifacts only and "
            "review the rest."
        )
    return (
        f"Only LOW impact detected on {summary.low} artifact(s) downstream of "
        f"{artifact}; manual review recommended."
    )


class ImpactAnalyzer:
    """Graph-backed blast-radius analysis for artifact changes."""

    def __init__(
        self,
        graph: ArtifactGraph,
        *,
        policy: AttenuationPolicy | None = None,
        logger: Any | None = None,
    ) -> None:
        self._graph = graph
        self._policy = policy or AttenuationPolicy()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def graph(self) -> ArtifactGraph:
        return self._graph

    @property
    def policy(self) -> AttenuationPolicy:
        return self._policy

    def analyze(self, change: ArtifactChange) -> ImpactAnalysis:
        affected = find_affected_artifacts(
            change.artifact_name,
            self._graph,
            change.impact_level,
            policy=self._policy,
            sections=change.changed_sections,
        )
        summary = ImpactSummary.count(affected)
        strategy = recommend_strategy(affected, summary)
        self._logger.info(
            "impact_analyzed",
            project_id=change.project_id,
            artifact=change.artifact_name,
            trigger_impact=str(change.impact_level),
            affected=len(affected),
            high=summary.high,
            medium=summary.medium,
            low=summary.low,
            strategy=str(strategy),
        )
        return ImpactAnalysis(
            trigger_change=change,
            affected_artifacts=affected,
            impact_summary=summary,
            recommended_strategy=strategy,
            reasoning=_reasoning(artifact_basename(change.artifact_name), strategy, summary),
        )


__all__ = [
    "AffectedArtifact",
    "AttenuationPolicy",
    "ImpactAnalysis",
    "ImpactAnalyzer",
    "ImpactSummary",
    "RegenerationStrategy",
    "find_affected_artifacts",
    "recommend_strategy",
]
