"""
phase-orchestrator — orchestrator engine

File: src/phase_orchestrator/control_plane/engine.py
Last updated: 2026-10-19

Purpose
- Own the phase state machine for a project: validate completion, advance,
  roll back, dispatch phase generation, and route validation outcomes.

What should be included in this file
- ``validate_phase_completion`` merging output presence with phase validators.
- ``can_advance`` / ``advance_phase`` / ``rollback_phase`` with recorded
  transitions.
- ``run_phase_agent``: approval gate precheck, phase executor dispatch,
  bespoke STACK_SELECTION / AUTO_REMEDY / DONE handling, critic review with
  bounded regeneration, best-effort persistence, commit, and snapshot.
- Parallel stage execution and the regeneration workflow, delegated to
  ``parallel`` and ``regeneration``.

Functional requirements
- Taxonomy errors propagate unchanged; anything else raised by a phase
  executor is wrapped in ``PhaseExecutionError``.
- A pending blocking gate aborts a run before any generation starts.
- Store, commit, and snapshot failures are logged and never abort a phase.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from types import MappingProxyType
from typing import Any

import structlog

from phase_orchestrator.config.schema import PhaseSpec, WorkflowSpec
from phase_orchestrator.constants import DEFAULT_MAX_REMEDY_ATTEMPTS, USER_DRIVEN_PHASES, Phase
from phase_orchestrator.control_plane.parallel import (
    DEFAULT_STAGES,
    ParallelGroup,
    ParallelWorkflowResult,
    ParallelWorkflowRunner,
    GroupResult,
    StageSpec,
    WorkflowOptions,
)
from phase_orchestrator.control_plane.regeneration import (
    RegenerationOptions,
    RegenerationResult,
    RegenerationWorkflow,
)
from phase_orchestrator.control_plane.state import PhaseTransition, ProjectState, TransitionType
from phase_orchestrator.errors import (
    ApprovalBlockedError,
    CheckerEscalationError,
    ManualReviewRequiredError,
    OrchestratorError,
    PhaseExecutionError,
    SafeguardRejectedError,
    UnknownPhaseError,
)
from phase_orchestrator.impact_plane.analyzer import AttenuationPolicy, ImpactAnalysis, ImpactAnalyzer
from phase_orchestrator.impact_plane.change_detection import ArtifactChange, detect_change
from phase_orchestrator.impact_plane.graph import build_graph
from phase_orchestrator.persistence.repositories import (
    Collaborators,
    CommitResult,
    InMemoryApprovalGateService,
    utc_now,
)
from phase_orchestrator.synthesis_plane.phase_agents import (
    ArtifactRegenerator,
    PhaseExecutorRegistry,
    PhaseOutput,
    PhaseRunContext,
)
from phase_orchestrator.verification_plane.auto_remedy import (
    ArtifactContent,
    AutoRemedyContext,
    AutoRemedyExecutor,
    AutoRemedyResult,
)
from phase_orchestrator.verification_plane.checker import CheckerResult, CheckerService, CheckerStatus
from phase_orchestrator.verification_plane.safeguards import validate_change_scope
from phase_orchestrator.verification_plane.outcomes import (
    PhaseOutcome,
    PhaseTransitionDecision,
    determine_outcome,
)
from phase_orchestrator.verification_plane.validators import (
    IssueSeverity,
    ValidationContext,
    ValidationIssue,
    ValidationResult,
    ValidationStatus,
    ValidatorRegistry,
)

ClockFn = Callable[[], datetime]
MonotonicFn = Callable[[], float]

PROCEED_CHOICE = "proceed"
FIX_WARNINGS_CHOICE = "fix_warnings"


@dataclass(frozen=True, slots=True)
class AdvanceResult:
    success: bool
    message: str
    new_phase: str | None = None


@dataclass(frozen=True, slots=True)
class PhaseRunResult:
    """Artifacts are keyed ``"<phase>/<filename>"``."""

    success: bool
    phase: str
    artifacts: Mapping[str, str]
    message: str
    checker: CheckerResult | None = None
    regenerations: int = 0
    commit: CommitResult | None = None
    snapshot_id: str | None = None
    remedy: AutoRemedyResult | None = None


@dataclass(frozen=True, slots=True)
class AppliedOutcome:
    decision: PhaseTransitionDecision
    advance: AdvanceResult | None = None


@dataclass(frozen=True, slots=True)
class _Review:
    output: PhaseOutput
    result: CheckerResult | None = None
    regenerations: int = 0


@dataclass(slots=True)
class EngineHooks:
    """Optional collaborators that do not affect the state machine."""

    regenerator: ArtifactRegenerator | None = None
    attenuation: AttenuationPolicy = field(default_factory=AttenuationPolicy)


class OrchestratorEngine:
    """Phase state machine over :class:`ProjectState`."""

    def __init__(
        self,
        spec: WorkflowSpec,
        *,
        executors: PhaseExecutorRegistry | None = None,
        collaborators: Collaborators | None = None,
        validators: ValidatorRegistry | None = None,
        checker: CheckerService | None = None,
        auto_remedy: AutoRemedyExecutor | None = None,
        hooks: EngineHooks | None = None,
        stages: tuple[StageSpec, ...] = DEFAULT_STAGES,
        max_remedy_attempts: int = DEFAULT_MAX_REMEDY_ATTEMPTS,
        clock: ClockFn = utc_now,
        monotonic: MonotonicFn = time.monotonic,
        logger: Any | None = None,
    ) -> None:
        self._spec = spec
        self._executors = executors or PhaseExecutorRegistry()
        self._store = collaborators or Collaborators()
        if self._store.gates is None:
            self._store.gates = InMemoryApprovalGateService(spec.gates.values(), clock=clock)
        self._validators = validators or ValidatorRegistry()
        self._checker = checker
        self._auto_remedy = auto_remedy or AutoRemedyExecutor(clock=clock)
        self._hooks = hooks or EngineHooks()
        self._max_remedy_attempts = max_remedy_attempts
        self._clock = clock
        self._monotonic = monotonic
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._analyzer = ImpactAnalyzer(
            build_graph(spec), policy=self._hooks.attenuation, logger=self._logger
        )
        self._parallel = ParallelWorkflowRunner(
            stages, monotonic=monotonic, logger=self._logger
        )

    # ------------------------------------------------------------------ accessors

    @property
    def spec(self) -> WorkflowSpec:
        return self._spec

    @property
    def collaborators(self) -> Collaborators:
        return self._store

    @property
    def analyzer(self) -> ImpactAnalyzer:
        return self._analyzer

    def create_project(self, project_id: str, name: str) -> ProjectState:
        project = ProjectState(id=project_id, name=name, current_phase=self._spec.first_phase)
        if self._store.gates is not None:
            self._store.gates.get_project_gates(project_id)
        self._logger.info("project_created", project_id=project_id, phase=project.current_phase)
        return project

    def get_phase_spec(self, phase: str) -> PhaseSpec:
        return self._spec.phase(phase)

    def get_phase_sequence(self, start: str | None = None) -> tuple[PhaseSpec, ...]:
        return tuple(self._spec.phase(name) for name in self._spec.phase_sequence(start))

    def get_phase_artifacts(self, project: ProjectState, phase: str | None = None) -> dict[str, str]:
        """Declared outputs of ``phase`` that exist in the artifact store."""

        target = self._spec.phase(phase or project.current_phase)
        found: dict[str, str] = {}
        for name in target.outputs:
            content = self._store.artifacts.read(project.id, target.name, name)
            if content is not None:
                found[name] = content
        return found

    def available_artifacts(self, project: ProjectState) -> dict[str, str]:
        """Every declared output of every phase that exists in the store."""

        found: dict[str, str] = {}
        for phase in self._spec.phases.values():
            for name in phase.outputs:
                content = self._store.artifacts.read(project.id, phase.name, name)
                if content is not None:
                    found[name] = content
        return found

    # ------------------------------------------------------------------ validation and gates

    def approved_gates(self, project: ProjectState) -> frozenset[str]:
        approved = {gate for gate, granted in project.approval_gates.items() if granted}
        if self._store.gates is not None:
            approved.update(
                record.gate_name
                for record in self._store.gates.get_project_gates(project.id)
                if record.passed
            )
        return frozenset(approved)

    def approve_gate(
        self,
        project: ProjectState,
        gate: str,
        *,
        approved_by: str = "user",
        score: float | None = None,
    ) -> None:
        project.approval_gates[gate] = True
        if self._store.gates is not None and gate in self._spec.gates:
            self._store.gates.approve_gate(project.id, gate, approved_by=approved_by, score=score)
        self._logger.info("gate_approved", project_id=project.id, gate=gate, approved_by=approved_by)

    def validate_phase_completion(self, project: ProjectState) -> ValidationResult:
        if not self._spec.has_phase(project.current_phase):
            return ValidationResult.merge(
                project.current_phase,
                [
                    ValidationIssue(
                        severity=IssueSeverity.ERROR,
                        message=f"Unknown phase: {project.current_phase}",
                        phase=project.current_phase,
                    )
                ],
                {},
            )
        phase = self._spec.phase(project.current_phase)
        context = ValidationContext(
            phase=phase,
            artifacts=MappingProxyType(self.available_artifacts(project)),
            approved_gates=self.approved_gates(project),
        )
        result = self._validators.validate_phase(self._spec, context)
        self._logger.info(
            "phase_validated",
            project_id=project.id,
            phase=phase.name,
            status=str(result.status),
            errors=len(result.errors),
            warnings=len(result.warnings),
        )
        return result

    def can_advance(self, project: ProjectState) -> bool:
        if not self._spec.has_phase(project.current_phase):
            return False
        phase = self._spec.phase(project.current_phase)
        approved = self.approved_gates(project)
        if any(gate not in approved for gate in phase.gates):
            return False
        return all(project.has_completed(dependency) for dependency in phase.depends_on)

    def advance_phase(self, project: ProjectState, *, actor: str | None = None) -> AdvanceResult:
        validation = self.validate_phase_completion(project)
        return self._advance(project, validation, actor=actor)

    def _advance(
        self, project: ProjectState, validation: ValidationResult, *, actor: str | None
    ) -> AdvanceResult:
        if validation.status is ValidationStatus.FAIL:
            return AdvanceResult(
                success=False,
                message=f"Cannot advance phase: {', '.join(validation.error_messages)}",
            )
        if not self.can_advance(project):
            return AdvanceResult(
                success=False,
                message="Cannot advance phase: gates not passed or dependencies not met",
            )
        previous = project.current_phase
        target = self._spec.phase(previous).next_phase
        if previous == Phase.VALIDATE:
            # A non-failing VALIDATE supersedes earlier failures.
            project.failed_phase = None
            project.validation_failures = []
        if previous not in project.phases_completed:
            project.phases_completed.append(previous)
        if (
            target == Phase.AUTO_REMEDY
            and not project.validation_failures
            and self._spec.has_phase(Phase.AUTO_REMEDY)
        ):
            # Nothing to remediate: AUTO_REMEDY counts as done.
            if Phase.AUTO_REMEDY not in project.phases_completed:
                project.phases_completed.append(Phase.AUTO_REMEDY)
            target = self._spec.phase(Phase.AUTO_REMEDY).next_phase
        project.current_phase = target
        self._record_transition(project, previous, target, TransitionType.ADVANCE, actor)
        return AdvanceResult(
            success=True,
            new_phase=target,
            message=f"Advanced to {target} phase",
        )

    def rollback_phase(
        self, project: ProjectState, target_phase: str, *, actor: str | None = None
    ) -> bool:
        if not self._spec.has_phase(target_phase) or target_phase not in project.phases_completed:
            self._logger.warning(
                "phase_rollback_rejected", project_id=project.id, target_phase=target_phase
            )
            return False
        previous = project.current_phase
        index = project.phases_completed.index(target_phase)
        del project.phases_completed[index + 1 :]
        project.current_phase = target_phase
        self._record_transition(project, previous, target_phase, TransitionType.ROLLBACK, actor)
        return True

    def apply_outcome(
        self,
        project: ProjectState,
        validation: ValidationResult,
        *,
        actor: str | None = None,
    ) -> AppliedOutcome:
        """Route a validation result through the outcome state machine."""

        decision = determine_outcome(project.current_phase, validation)
        if decision.state is PhaseOutcome.FAILURES_DETECTED:
            previous = project.current_phase
            project.failed_phase = previous
            project.validation_failures = list(validation.errors)
            project.current_phase = Phase.AUTO_REMEDY
            self._record_transition(project, previous, Phase.AUTO_REMEDY, TransitionType.REMEDY, actor)
            return AppliedOutcome(decision=decision)
        if decision.state is PhaseOutcome.ALL_PASS:
            return AppliedOutcome(decision=decision, advance=self._advance(project, validation, actor=actor))
        return AppliedOutcome(decision=decision)

    def resolve_user_choice(
        self, project: ProjectState, choice: str, *, actor: str | None = None
    ) -> AdvanceResult:
        """Answer a warnings-only outcome: ``proceed`` advances, ``fix_warnings`` stays."""

        if choice == PROCEED_CHOICE:
            return self.advance_phase(project, actor=actor)
        if choice == FIX_WARNINGS_CHOICE:
            return AdvanceResult(
                success=False,
                new_phase=project.current_phase,
                message=f"Staying in {project.current_phase} to fix warnings",
            )
        raise ValueError(f"unknown choice {choice!r}; expected proceed or fix_warnings")

    def apply_remediation(self, project: ProjectState, *, actor: str | None = None) -> str:
        """Move to the phase named by the pending remediation plan."""

        plan = project.remediation_plan
        if plan is None:
            raise ManualReviewRequiredError("No remediation plan to apply")
        target = plan.remediation.phase
        if target in project.phases_completed:
            del project.phases_completed[project.phases_completed.index(target) :]
        previous = project.current_phase
        project.current_phase = target
        self._record_transition(project, previous, target, TransitionType.REMEDY, actor)
        return target

    # ------------------------------------------------------------------ phase execution

    async def run_phase_agent(
        self, project: ProjectState, input_artifacts: Mapping[str, str] | None = None
    ) -> PhaseRunResult:
        return await self.run_phase(project, project.current_phase, input_artifacts)

    async def run_phase(
        self,
        project: ProjectState,
        phase_name: str,
        input_artifacts: Mapping[str, str] | None = None,
    ) -> PhaseRunResult:
        if not self._spec.has_phase(phase_name):
            raise UnknownPhaseError(phase_name)
        phase = self._spec.phase(phase_name)
        self._check_gates(project, phase)

        if phase.name in USER_DRIVEN_PHASES:
            return PhaseRunResult(
                success=True,
                phase=phase.name,
                artifacts={},
                message="Stack selection phase requires user input",
            )
        if phase.name == Phase.DONE:
            return PhaseRunResult(
                success=True,
                phase=phase.name,
                artifacts={},
                message="Final phase - handoff is generated separately",
            )
        if phase.name == Phase.AUTO_REMEDY:
            return self._run_auto_remedy(project)

        executor = self._executors.get(phase.name)
        if executor is None:
            raise PhaseExecutionError(phase.name, f"No executor for phase: {phase.name}")

        self._logger.info("phase_agent_started", project_id=project.id, phase=phase.name)
        started = self._monotonic()
        context = PhaseRunContext(
            project_id=project.id,
            project_name=project.name,
            phase=phase,
            inputs=MappingProxyType(self._collect_inputs(project, phase, input_artifacts)),
            agent=self._spec.agents.get(phase.owner),
            instructions=self._remediation_instructions(project, phase.name),
        )
        try:
            review = await self._generate_and_review(executor, context, project)
        except OrchestratorError:
            raise
        except Exception as exc:
            self._logger.exception("phase_agent_failed", project_id=project.id, phase=phase.name)
            raise PhaseExecutionError(phase.name, exc) from exc

        artifacts = dict(review.output.artifacts)
        duration_ms = int((self._monotonic() - started) * 1000)
        if project.remediation_plan is not None and project.remediation_plan.remediation.phase == phase.name:
            self._check_remediation_scope(project, phase.name, artifacts)
        self._persist(project, phase.name, artifacts)
        project.artifact_versions[phase.name] = project.artifact_versions.get(phase.name, 0) + 1
        if project.remediation_plan is not None and project.remediation_plan.remediation.phase == phase.name:
            project.remediation_plan = None
        commit = self._commit(project, phase, artifacts, duration_ms)
        snapshot_id = self._snapshot(project, phase.name, artifacts, commit, review)

        self._logger.info(
            "phase_agent_completed",
            project_id=project.id,
            phase=phase.name,
            artifacts=sorted(artifacts),
            duration_ms=duration_ms,
            regenerations=review.regenerations,
            version=project.artifact_versions[phase.name],
        )
        return PhaseRunResult(
            success=True,
            phase=phase.name,
            artifacts={f"{phase.name}/{name}": content for name, content in artifacts.items()},
            message=f"Agent for phase {phase.name} completed successfully",
            checker=review.result,
            regenerations=review.regenerations,
            commit=commit,
            snapshot_id=snapshot_id,
        )

    async def _generate_and_review(
        self, executor: Any, context: PhaseRunContext, project: ProjectState
    ) -> _Review:
        output: PhaseOutput = await executor.execute(context)
        checker = self._checker
        phase = context.phase.name
        if checker is None or checker.critic_for_phase(phase) is None:
            return _Review(output=output)

        review_context = {"project_name": project.name, "phase": phase, "scale_tier": project.stack_choice}
        base_prompt = output.prompt
        result = await checker.execute(phase, output.artifacts, review_context)
        regenerations = 0
        budget = checker.max_regenerations(phase)
        while result.status is CheckerStatus.REGENERATE and regenerations < budget:
            regenerations += 1
            self._logger.info(
                "checker_regeneration_requested",
                project_id=project.id,
                phase=phase,
                attempt=regenerations,
                issues=len(result.feedback),
            )
            prompt = checker.build_regeneration_prompt(base_prompt, result.feedback)
            output = await executor.execute(replace(context, prompt_override=prompt))
            result = await checker.execute(phase, output.artifacts, review_context)

        if result.status is CheckerStatus.ESCALATE:
            raise CheckerEscalationError(phase=phase, result=result, artifacts=output.artifacts)
        if result.status is CheckerStatus.REGENERATE:
            self._logger.warning(
                "checker_regeneration_budget_exhausted",
                project_id=project.id,
                phase=phase,
                regenerations=regenerations,
                summary=result.summary,
            )
        return _Review(output=output, result=result, regenerations=regenerations)

    def _run_auto_remedy(self, project: ProjectState) -> PhaseRunResult:
        failed_phase = project.failed_phase or Phase.VALIDATE
        context = AutoRemedyContext(
            project_id=project.id,
            failed_phase=failed_phase,
            validation_failures=tuple(project.validation_failures),
            current_attempt=project.remedy_attempts,
            max_attempts=self._max_remedy_attempts,
            artifact_content=self._remedy_snapshots(project),
            artifact_producers=self._artifact_producers(),
            phase_order=self._spec.phase_sequence(),
        )
        result = self._auto_remedy.execute(context)
        if not result.can_proceed:
            raise ManualReviewRequiredError(result.reason, result=result)
        project.remedy_attempts += 1
        project.remediation_plan = result
        return PhaseRunResult(
            success=True,
            phase=Phase.AUTO_REMEDY,
            artifacts={},
            message=(
                f"AUTO_REMEDY resolved: re-run {result.remediation.agent_to_rerun} "
                f"for {result.remediation.phase}"
            ),
            remedy=result,
        )

    def _artifact_producers(self) -> dict[str, str]:
        return {
            name: phase.name
            for phase in reversed(tuple(self._spec.phases.values()))
            for name in phase.outputs
        }

    def _remedy_snapshots(self, project: ProjectState) -> dict[str, ArtifactContent]:
        snapshots: dict[str, ArtifactContent] = {}
        for issue in project.validation_failures:
            name = issue.artifact
            if name is None or name in snapshots:
                continue
            latest = self._store.versions.latest(project.id, name)
            producer = self._spec.producer_of(name)
            current = (
                self._store.artifacts.read(project.id, producer, name) if producer is not None else None
            )
            if latest is None or current is None:
                continue
            snapshots[name] = ArtifactContent(
                current=current, original=latest.content, original_hash=latest.content_hash
            )
        return snapshots

    def _check_remediation_scope(
        self, project: ProjectState, phase: str, artifacts: Mapping[str, str]
    ) -> None:
        for name, content in artifacts.items():
            previous = self._store.artifacts.read(project.id, phase, name)
            if previous is None:
                continue
            scope = validate_change_scope(name, previous, content)
            if not scope.approved:
                self._logger.warning(
                    "remediation_scope_rejected",
                    project_id=project.id,
                    phase=phase,
                    artifact=name,
                    lines_changed=scope.lines_changed,
                )
                raise SafeguardRejectedError(scope.reason, artifact=name, result=scope)

    def _remediation_instructions(self, project: ProjectState, phase: str) -> str:
        plan = project.remediation_plan
        if plan is None or plan.remediation.phase != phase:
            return ""
        return plan.remediation.additional_instructions

    def _check_gates(self, project: ProjectState, phase: PhaseSpec) -> None:
        gates = self._store.gates
        if gates is None:
            return
        for dependency in phase.depends_on:
            if gates.can_proceed_from_phase(project.id, dependency):
                continue
            pending = next(
                (
                    record.gate_name
                    for record in gates.get_project_gates(project.id)
                    if record.phase == dependency and record.blocking and not record.passed
                ),
                "unknown",
            )
            self._logger.warning(
                "phase_blocked_by_gate",
                project_id=project.id,
                phase=phase.name,
                gate=pending,
                gate_phase=dependency,
            )
            raise ApprovalBlockedError(gate=pending, phase=dependency, blocked_phase=phase.name)

    def _collect_inputs(
        self,
        project: ProjectState,
        phase: PhaseSpec,
        supplied: Mapping[str, str] | None,
    ) -> dict[str, str]:
        inputs: dict[str, str] = {}
        for name in phase.inputs:
            producer = self._spec.producer_of(name)
            if producer is None:
                continue
            content = self._store.artifacts.read(project.id, producer, name)
            if content is not None:
                inputs[name] = content
        inputs.update(supplied or {})
        return inputs

    # ------------------------------------------------------------------ best-effort side effects

    def _persist(self, project: ProjectState, phase: str, artifacts: Mapping[str, str]) -> None:
        for name, content in artifacts.items():
            try:
                self._store.artifacts.save(project.id, phase, name, content)
                self._store.versions.add(
                    project.id, phase, name, content, reason=f"Generated by {phase}"
                )
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    "artifact_save_failed",
                    project_id=project.id,
                    phase=phase,
                    artifact=name,
                    error=str(exc),
                )

    def _commit(
        self,
        project: ProjectState,
        phase: PhaseSpec,
        artifacts: Mapping[str, str],
        duration_ms: int,
    ) -> CommitResult | None:
        if self._store.vcs is None or not artifacts:
            return None
        try:
            return self._store.vcs.commit(
                project.slug, phase.name, sorted(artifacts), phase.owner, duration_ms
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "artifact_commit_failed", project_id=project.id, phase=phase.name, error=str(exc)
            )
            return None

    def _snapshot(
        self,
        project: ProjectState,
        phase: str,
        artifacts: Mapping[str, str],
        commit: CommitResult | None,
        review: _Review,
    ) -> str | None:
        if self._store.snapshots is None or not artifacts:
            return None
        metadata = {
            "version": project.artifact_versions.get(phase, 0),
            "regenerations": review.regenerations,
            "checker_status": str(review.result.status) if review.result is not None else None,
        }
        try:
            return self._store.snapshots.snapshot(
                project.id,
                phase,
                artifacts,
                metadata,
                commit.commit_hash if commit is not None else None,
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "artifact_snapshot_failed", project_id=project.id, phase=phase, error=str(exc)
            )
            return None

    def _record_transition(
        self,
        project: ProjectState,
        from_phase: str,
        to_phase: str,
        kind: TransitionType,
        actor: str | None,
    ) -> None:
        project.transitions.append(
            PhaseTransition(
                from_phase=from_phase,
                to_phase=to_phase,
                kind=kind,
                at=self._clock(),
                actor=actor,
            )
        )
        self._logger.info(
            "phase_transition",
            project_id=project.id,
            from_phase=from_phase,
            to_phase=to_phase,
            kind=str(kind),
            actor=actor,
        )

    # ------------------------------------------------------------------ artifact edits and impact

    def record_artifact_edit(
        self, project: ProjectState, phase: str, filename: str, content: str
    ) -> ArtifactChange | None:
        """Store a user edit and record the change against the previous content."""

        previous = self._store.artifacts.read(project.id, phase, filename)
        self._store.artifacts.save(project.id, phase, filename, content)
        if previous is None:
            return None
        change = detect_change(
            previous,
            content,
            project_id=project.id,
            artifact_name=f"{phase}/{filename}",
            clock=self._clock,
        )
        if change is not None:
            self._store.changes.record(change)
            self._logger.info(
                "artifact_change_recorded",
                project_id=project.id,
                artifact=change.artifact_name,
                impact=str(change.impact_level),
                sections=len(change.changed_sections),
            )
        return change

    def analyze_regeneration_impact(self, change: ArtifactChange) -> ImpactAnalysis:
        return self._analyzer.analyze(change)

    def regeneration_workflow(self) -> RegenerationWorkflow:
        if self._hooks.regenerator is None:
            raise OrchestratorError("No artifact regenerator configured")
        return RegenerationWorkflow(
            self._analyzer,
            self._hooks.regenerator,
            self._store,
            clock=self._clock,
            monotonic=self._monotonic,
            logger=self._logger,
        )

    async def execute_regeneration(
        self, project_id: str, options: RegenerationOptions
    ) -> RegenerationResult:
        return await self.regeneration_workflow().execute(project_id, options)

    # ------------------------------------------------------------------ parallel execution

    async def execute_parallel_group(
        self,
        project: ProjectState,
        group: ParallelGroup,
        inputs: Mapping[str, str] | None = None,
    ) -> GroupResult:
        return await self._parallel.execute_group(
            group, lambda phase: self.run_phase(project, phase, inputs)
        )

    async def execute_workflow_with_parallel(
        self,
        project: ProjectState,
        options: WorkflowOptions | None = None,
        inputs: Mapping[str, str] | None = None,
    ) -> ParallelWorkflowResult:
        return await self._parallel.execute_workflow(
            project.id,
            tuple(self._spec.phases),
            lambda phase: self.run_phase(project, phase, inputs),
            options or WorkflowOptions(),
        )


__all__ = [
    "AdvanceResult",
    "AppliedOutcome",
    "EngineHooks",
    "FIX_WARNINGS_CHOICE",
    "OrchestratorEngine",
    "PROCEED_CHOICE",
    "PhaseRunResult",
]
