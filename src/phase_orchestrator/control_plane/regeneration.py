"""
phase-orchestrator — regeneration workflow

File: src/phase_orchestrator/control_plane/regeneration.py
Last updated: 2026-10-19

Purpose
- Execute one audited regeneration run for the artifacts affected by a
  trigger change.

Functional requirements
- ``ignore`` short-circuits with success and no run record.
- The run record is created before any artifact is touched and completed
  exactly once, including when the workflow fails part way.
- One artifact failing is recorded as skipped; the others still run.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import structlog

from phase_orchestrator.errors import OrchestratorError
from phase_orchestrator.impact_plane.analyzer import (
    ImpactAnalysis,
    ImpactAnalyzer,
    RegenerationStrategy,
)
from phase_orchestrator.impact_plane.change_detection import ArtifactChange, ImpactLevel
from phase_orchestrator.impact_plane.graph import artifact_basename
from phase_orchestrator.observability.logging import correlation_scope
from phase_orchestrator.persistence.repositories import (
    Collaborators,
    RegenerationRun,
    new_id,
    utc_now,
)
from phase_orchestrator.synthesis_plane.phase_agents import ArtifactRegenerator, RegenerationRequest
from phase_orchestrator.utils.concurrency import run_isolated

ClockFn = Callable[[], datetime]
MonotonicFn = Callable[[], float]


@dataclass(frozen=True, slots=True)
class RegenerationOptions:
    trigger_artifact_id: str
    selected_strategy: str
    manual_artifact_ids: tuple[str, ...] | None = None
    trigger_change_id: str | None = None


@dataclass(frozen=True, slots=True)
class RegenerationResult:
    success: bool
    regeneration_run_id: str | None
    selected_strategy: str
    artifacts_to_regenerate: tuple[str, ...]
    artifacts_regenerated: tuple[str, ...]
    artifacts_skipped: tuple[str, ...]
    duration_ms: int
    error_message: str | None = None
    impact_analysis: ImpactAnalysis | None = None


def select_artifacts(
    analysis: ImpactAnalysis,
    strategy: str,
    manual_artifact_ids: Iterable[str] | None = None,
) -> tuple[str, ...]:
    """Artifact ids to regenerate for ``strategy``; unknown strategies select nothing."""

    try:
        chosen = RegenerationStrategy(strategy)
    except ValueError:
        return ()
    if chosen is RegenerationStrategy.REGENERATE_ALL:
        return tuple(item.artifact_id for item in analysis.affected_artifacts)
    if chosen is RegenerationStrategy.HIGH_IMPACT_ONLY:
        return tuple(item.artifact_id for item in analysis.artifacts_at(ImpactLevel.HIGH))
    if chosen is RegenerationStrategy.MANUAL_REVIEW:
        return tuple(dict.fromkeys(manual_artifact_ids or ()))
    return ()


def regeneration_reason(change: ArtifactChange) -> str:
    trigger = artifact_basename(change.artifact_name)
    return f"Regenerated after {change.impact_level} impact change to {trigger}"


class RegenerationWorkflow:
    def __init__(
        self,
        analyzer: ImpactAnalyzer,
        regenerator: ArtifactRegenerator,
        collaborators: Collaborators,
        *,
        max_concurrency: int | None = None,
        clock: ClockFn = utc_now,
        monotonic: MonotonicFn = time.monotonic,
        id_factory: Callable[[], str] = new_id,
        logger: Any | None = None,
    ) -> None:
        self._analyzer = analyzer
        self._regenerator = regenerator
        self._store = collaborators
        self._max_concurrency = max_concurrency
        self._clock = clock
        self._monotonic = monotonic
        self._id_factory = id_factory
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._monotonic() - started) * 1000))

    def resolve_trigger(self, project_id: str, options: RegenerationOptions) -> ArtifactChange:
        """Recorded change for the trigger, or a HIGH-impact synthetic one."""

        if options.trigger_change_id is not None:
            change = self._store.changes.get(options.trigger_change_id)
            if change is None:
                raise OrchestratorError(
                    f"Trigger change not found: {options.trigger_change_id}"
                )
            return change
        recorded = self._store.changes.latest_for(project_id, options.trigger_artifact_id)
        if recorded is not None:
            return recorded
        return ArtifactChange(
            project_id=project_id,
            artifact_name=options.trigger_artifact_id,
            old_hash="",
            new_hash="",
            has_changes=True,
            impact_level=ImpactLevel.HIGH,
            timestamp=self._clock(),
        )

    async def execute(self, project_id: str, options: RegenerationOptions) -> RegenerationResult:
        started = self._monotonic()
        run: RegenerationRun | None = None
        selected: tuple[str, ...] = ()
        with correlation_scope(project_id=project_id):
            try:
                change = self.resolve_trigger(project_id, options)
                analysis = self._analyzer.analyze(change)
                selected = select_artifacts(
                    analysis, options.selected_strategy, options.manual_artifact_ids
                )
                if options.selected_strategy == RegenerationStrategy.IGNORE:
                    self._logger.info(
                        "regeneration_ignored", trigger=options.trigger_artifact_id
                    )
                    return RegenerationResult(
                        success=True,
                        regeneration_run_id=None,
                        selected_strategy=options.selected_strategy,
                        artifacts_to_regenerate=(),
                        artifacts_regenerated=(),
                        artifacts_skipped=(),
                        duration_ms=self._elapsed_ms(started),
                        impact_analysis=analysis,
                    )

                run = self._store.runs.create(
                    RegenerationRun(
                        id=self._id_factory(),
                        project_id=project_id,
                        trigger_artifact_id=options.trigger_artifact_id,
                        selected_strategy=options.selected_strategy,
                        artifacts_to_regenerate=selected,
                        started_at=self._clock(),
                    )
                )
                self._logger.info(
                    "regeneration_run_started",
                    run_id=run.id,
                    trigger=options.trigger_artifact_id,
                    strategy=options.selected_strategy,
                    artifacts=list(selected),
                )
                regenerated, skipped = await self._regenerate_all(project_id, run.id, change, selected)
            except Exception as exc:  # noqa: BLE001
                return self._fail(started, run, options, selected, exc)

            duration_ms = self._elapsed_ms(started)
            success = not skipped
            self._store.runs.complete(
                run.id,
                artifacts_regenerated=regenerated,
                artifacts_skipped=skipped,
                completed_at=self._clock(),
                duration_ms=duration_ms,
                success=success,
            )
            self._logger.info(
                "regeneration_run_completed",
                run_id=run.id,
                success=success,
                regenerated=len(regenerated),
                skipped=len(skipped),
                duration_ms=duration_ms,
            )
            return RegenerationResult(
                success=success,
                regeneration_run_id=run.id,
                selected_strategy=options.selected_strategy,
                artifacts_to_regenerate=selected,
                artifacts_regenerated=regenerated,
                artifacts_skipped=skipped,
                duration_ms=duration_ms,
                impact_analysis=analysis,
            )

    async def _regenerate_all(
        self,
        project_id: str,
        run_id: str,
        change: ArtifactChange,
        artifact_ids: Sequence[str],
    ) -> tuple[tuple[str, ...], tuple[str, ...]]:
        outcomes = await run_isolated(
            [self._regenerate_one(project_id, run_id, change, item) for item in artifact_ids],
            max_concurrency=self._max_concurrency,
        )
        regenerated: list[str] = []
        skipped: list[str] = []
        for artifact_id, outcome in zip(artifact_ids, outcomes, strict=True):
            if outcome.ok:
                regenerated.append(artifact_id)
                continue
            skipped.append(artifact_id)
            self._logger.warning(
                "artifact_regeneration_failed",
                run_id=run_id,
                artifact=artifact_id,
                error=str(outcome.error),
            )
        return tuple(regenerated), tuple(skipped)

    async def _regenerate_one(
        self,
        project_id: str,
        run_id: str,
        change: ArtifactChange,
        artifact_id: str,
    ) -> str:
        phase, _, name = artifact_id.rpartition("/")
        if not phase:
            phase = self._analyzer.graph.producer_of(name) or ""
        if not phase:
            raise OrchestratorError(f"No producing phase for artifact: {artifact_id}")
        current = self._store.artifacts.read(project_id, phase, name) or ""
        reason = regeneration_reason(change)
        content = await self._regenerator.regenerate(
            RegenerationRequest(
                project_id=project_id,
                artifact_name=name,
                phase=phase,
                trigger_artifact=change.artifact_name,
                impact_level=str(change.impact_level),
                reason=reason,
                current_content=current,
            )
        )
        self._store.artifacts.save(project_id, phase, name, content)
        self._store.versions.add(
            project_id, phase, name, content, reason=reason, regeneration_run_id=run_id
        )
        return content

    def _fail(
        self,
        started: float,
        run: RegenerationRun | None,
        options: RegenerationOptions,
        selected: tuple[str, ...],
        exc: Exception,
    ) -> RegenerationResult:
        duration_ms = self._elapsed_ms(started)
        message = str(exc)
        self._logger.error(
            "regeneration_run_failed",
            run_id=run.id if run is not None else None,
            trigger=options.trigger_artifact_id,
            error=message,
        )
        if run is not None:
            self._store.runs.complete(
                run.id,
                artifacts_regenerated=(),
                artifacts_skipped=selected,
                completed_at=self._clock(),
                duration_ms=duration_ms,
                success=False,
                error_message=message,
            )
        return RegenerationResult(
            success=False,
            regeneration_run_id=run.id if run is not None else None,
            selected_strategy=options.selected_strategy,
            artifacts_to_regenerate=selected,
            artifacts_regenerated=(),
            artifacts_skipped=selected if run is not None else (),
            duration_ms=duration_ms,
            error_message=message,
        )


__all__ = [
    "RegenerationOptions",
    "RegenerationResult",
    "RegenerationWorkflow",
    "regeneration_reason",
    "select_artifacts",
]
