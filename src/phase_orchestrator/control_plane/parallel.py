"""
phase-orchestrator — parallel stage execution

File: src/phase_orchestrator/control_plane/parallel.py
Last updated: 2026-10-19

Purpose
- Run the generative phases as ordered stages, executing independent phases
  of one stage concurrently and reporting timing against a sequential run.

What should be included in this file
- The static stage table and its dependency order.
- Group execution with per-phase failure isolation.
- Workflow execution with a sequential fallback for a failed parallel stage.

Functional requirements
- A failed stage stops the workflow; later stages never start.
- ``time_saved_ms`` is never negative and ``time_saved_percent`` stays in
  ``0..100``.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Final

import structlog

from phase_orchestrator.constants import Phase
from phase_orchestrator.observability.logging import correlation_scope
from phase_orchestrator.utils.concurrency import run_isolated
from phase_orchestrator.utils.graphs import topological_order

PhaseRunner = Callable[[str], Awaitable[Any]]
MonotonicFn = Callable[[], float]


class GroupType(StrEnum):
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"


@dataclass(frozen=True, slots=True)
class StageSpec:
    name: str
    phases: tuple[str, ...]
    depends_on: tuple[str, ...] = ()


DEFAULT_STAGES: Final[tuple[StageSpec, ...]] = (
    StageSpec("foundation", (Phase.ANALYSIS,)),
    StageSpec(
        "stack_and_tokens",
        (Phase.STACK_SELECTION, Phase.SPEC_DESIGN_TOKENS),
        ("foundation",),
    ),
    StageSpec(
        "requirements_and_components",
        (Phase.SPEC_PM, Phase.SPEC_DESIGN_COMPONENTS),
        ("stack_and_tokens",),
    ),
    StageSpec(
        "architecture_and_frontend",
        (Phase.SPEC_ARCHITECT, Phase.FRONTEND_BUILD),
        ("requirements_and_components",),
    ),
    StageSpec("dependencies", (Phase.DEPENDENCIES,), ("architecture_and_frontend",)),
    StageSpec("solutioning", (Phase.SOLUTIONING,), ("dependencies",)),
)


@dataclass(frozen=True, slots=True)
class ParallelGroup:
    name: str
    type: GroupType
    phases: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class PhaseResultEntry:
    phase: str
    success: bool
    duration_ms: int
    artifacts: Mapping[str, str] = field(default_factory=dict)
    message: str = ""
    error: str | None = None


@dataclass(frozen=True, slots=True)
class GroupResult:
    name: str
    type: GroupType
    phases: tuple[str, ...]
    success: bool
    duration_ms: int
    results: tuple[PhaseResultEntry, ...]

    @property
    def failures(self) -> tuple[PhaseResultEntry, ...]:
        return tuple(entry for entry in self.results if not entry.success)


@dataclass(frozen=True, slots=True)
class PhaseError:
    phase: str
    error: str


@dataclass(frozen=True, slots=True)
class WorkflowOptions:
    enable_parallel: bool = True
    fallback_to_sequential: bool = True
    max_concurrency: int | None = None


@dataclass(frozen=True, slots=True)
class ParallelWorkflowResult:
    success: bool
    project_id: str
    phases_executed: tuple[str, ...]
    groups_executed: tuple[GroupResult, ...]
    total_duration_ms: int
    parallel_duration_ms: int
    sequential_duration_ms: int
    time_saved_ms: int
    time_saved_percent: int
    errors: tuple[PhaseError, ...] = ()
    fallback_used: bool = False


def plan_groups(
    stages: Iterable[StageSpec], available_phases: Iterable[str]
) -> tuple[ParallelGroup, ...]:
    """Order stages by dependency and keep only phases the workflow defines.

    Stages left without phases are dropped. A stage with more than one phase
    becomes a parallel group.
    """

    stage_list = list(stages)
    by_name = {stage.name: stage for stage in stage_list}
    order = topological_order(
        {stage.name: stage.depends_on for stage in stage_list},
        priority={stage.name: index for index, stage in enumerate(stage_list)},
    )
    available = set(available_phases)
    groups: list[ParallelGroup] = []
    for name in order:
        phases = tuple(phase for phase in by_name[name].phases if phase in available)
        if not phases:
            continue
        kind = GroupType.PARALLEL if len(phases) > 1 else GroupType.SEQUENTIAL
        groups.append(ParallelGroup(name=name, type=kind, phases=phases))
    return tuple(groups)


def time_saved(parallel_ms: int, sequential_ms: int) -> tuple[int, int]:
    saved = max(0, sequential_ms - parallel_ms)
    if sequential_ms <= 0:
        return saved, 0
    percent = round(saved / sequential_ms * 100)
    return saved, min(100, max(0, percent))


class ParallelWorkflowRunner:
    def __init__(
        self,
        stages: tuple[StageSpec, ...] = DEFAULT_STAGES,
        *,
        monotonic: MonotonicFn = time.monotonic,
        logger: Any | None = None,
    ) -> None:
        self._stages = stages
        self._monotonic = monotonic
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @property
    def stages(self) -> tuple[StageSpec, ...]:
        return self._stages

    def _elapsed_ms(self, started: float) -> int:
        return max(0, int((self._monotonic() - started) * 1000))

    async def _run_timed(self, phase: str, run: PhaseRunner) -> PhaseResultEntry:
        started = self._monotonic()
        try:
            result = await run(phase)
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("parallel_phase_failed", phase=phase, error=str(exc))
            return PhaseResultEntry(
                phase=phase, success=False, duration_ms=self._elapsed_ms(started), error=str(exc)
            )
        success = bool(result.success)
        return PhaseResultEntry(
            phase=phase,
            success=success,
            duration_ms=self._elapsed_ms(started),
            artifacts=dict(result.artifacts),
            message=result.message,
            error=None if success else result.message,
        )

    async def execute_group(
        self,
        group: ParallelGroup,
        run: PhaseRunner,
        *,
        parallel: bool = True,
        max_concurrency: int | None = None,
    ) -> GroupResult:
        started = self._monotonic()
        concurrent = parallel and group.type is GroupType.PARALLEL
        self._logger.info(
            "parallel_group_started",
            group=group.name,
            mode=str(GroupType.PARALLEL if concurrent else GroupType.SEQUENTIAL),
            phases=list(group.phases),
        )
        entries: list[PhaseResultEntry] = []
        if concurrent:
            outcomes = await run_isolated(
                [self._run_timed(phase, run) for phase in group.phases],
                max_concurrency=max_concurrency,
            )
            for phase, outcome in zip(group.phases, outcomes, strict=True):
                if outcome.ok and outcome.value is not None:
                    entries.append(outcome.value)
                else:
                    entries.append(
                        PhaseResultEntry(
                            phase=phase, success=False, duration_ms=0, error=str(outcome.error)
                        )
                    )
        else:
            for phase in group.phases:
                entry = await self._run_timed(phase, run)
                entries.append(entry)
                if not entry.success:
                    break

        success = len(entries) == len(group.phases) and all(entry.success for entry in entries)
        result = GroupResult(
            name=group.name,
            type=GroupType.PARALLEL if concurrent else GroupType.SEQUENTIAL,
            phases=group.phases,
            success=success,
            duration_ms=self._elapsed_ms(started),
            results=tuple(entries),
        )
        self._logger.info(
            "parallel_group_completed",
            group=group.name,
            success=success,
            duration_ms=result.duration_ms,
        )
        return result

    async def execute_workflow(
        self,
        project_id: str,
        available_phases: Iterable[str],
        run: PhaseRunner,
        options: WorkflowOptions | None = None,
    ) -> ParallelWorkflowResult:
        options = options or WorkflowOptions()
        started = self._monotonic()
        parallel = options.enable_parallel
        fallback_used = False
        executed: list[str] = []
        results: list[GroupResult] = []
        errors: list[PhaseError] = []

        with correlation_scope(project_id=project_id):
            for group in plan_groups(self._stages, available_phases):
                result = await self.execute_group(
                    group, run, parallel=parallel, max_concurrency=options.max_concurrency
                )
                if (
                    not result.success
                    and result.type is GroupType.PARALLEL
                    and options.fallback_to_sequential
                ):
                    self._logger.warning(
                        "parallel_group_fallback",
                        group=group.name,
                        failed=[entry.phase for entry in result.failures],
                    )
                    parallel = False
                    fallback_used = True
                    result = await self.execute_group(group, run, parallel=False)

                results.append(result)
                executed.extend(entry.phase for entry in result.results if entry.success)
                if not result.success:
                    errors.extend(
                        PhaseError(phase=entry.phase, error=entry.error or "unknown error")
                        for entry in result.failures
                    )
                    break

            parallel_ms = sum(group.duration_ms for group in results)
            sequential_ms = sum(entry.duration_ms for group in results for entry in group.results)
            saved_ms, saved_percent = time_saved(parallel_ms, sequential_ms)
            outcome = ParallelWorkflowResult(
                success=not errors,
                project_id=project_id,
                phases_executed=tuple(executed),
                groups_executed=tuple(results),
                total_duration_ms=self._elapsed_ms(started),
                parallel_duration_ms=parallel_ms,
                sequential_duration_ms=sequential_ms,
                time_saved_ms=saved_ms,
                time_saved_percent=saved_percent,
                errors=tuple(errors),
                fallback_used=fallback_used,
            )
            self._logger.info(
                "parallel_workflow_completed",
                success=outcome.success,
                phases=len(executed),
                groups=len(results),
                time_saved_ms=saved_ms,
                fallback_used=fallback_used,
            )
        return outcome


__all__ = [
    "DEFAULT_STAGES",
    "GroupResult",
    "GroupType",
    "ParallelGroup",
    "ParallelWorkflowResult",
    "ParallelWorkflowRunner",
    "PhaseError",
    "PhaseResultEntry",
    "StageSpec",
    "WorkflowOptions",
    "plan_groups",
    "time_saved",
]
