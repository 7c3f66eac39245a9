"""
phase-orchestrator — collaborator interfaces and in-memory repositories

File: src/phase_orchestrator/persistence/repositories.py
Last updated: 2026-10-19

Purpose
- Interfaces for everything the engine persists or consults: artifact store,
  artifact versions, recorded changes, regeneration runs, approval gates,
  version control commits, and snapshots.

What should be included in this file
- One ``Protocol`` per collaborator.
- In-memory implementations used by the CLI, tests, and single-process runs.

Functional requirements
- A regeneration run is created before work starts and completed exactly once.
- A phase may proceed only when every blocking gate on it is approved or
  auto-approved.

Non-functional requirements
- No durability across restarts; records live for the process lifetime.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Protocol

from phase_orchestrator.config.schema import GateDefinition
from phase_orchestrator.errors import OrchestratorError
from phase_orchestrator.impact_plane.change_detection import ArtifactChange
from phase_orchestrator.impact_plane.graph import artifact_basename
from phase_orchestrator.utils.hashing import content_hash, sha256_text

ClockFn = Callable[[], datetime]
IdFactory = Callable[[], str]


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def new_id() -> str:
    return str(uuid.uuid4())


class RecordNotFoundError(OrchestratorError):
    """Lookup of a record that was never created."""


# --------------------------------------------------------------------------- artifacts


class ArtifactStore(Protocol):
    def save(self, project_id: str, phase: str, filename: str, content: str) -> None: ...

    def read(self, project_id: str, phase: str, filename: str) -> str | None: ...

    def list(self, project_id: str, phase: str) -> tuple[str, ...]: ...

    def exists(self, project_id: str, phase: str, filename: str) -> bool: ...


class InMemoryArtifactStore:
    """Artifact contents keyed by ``(project_id, phase, filename)``."""

    def __init__(self) -> None:
        self._contents: dict[tuple[str, str, str], str] = {}

    def save(self, project_id: str, phase: str, filename: str, content: str) -> None:
        self._contents[(project_id, phase, filename)] = content

    def read(self, project_id: str, phase: str, filename: str) -> str | None:
        return self._contents.get((project_id, phase, filename))

    def list(self, project_id: str, phase: str) -> tuple[str, ...]:
        return tuple(
            sorted(
                name
                for (project, owner, name) in self._contents
                if project == project_id and owner == phase
            )
        )

    def exists(self, project_id: str, phase: str, filename: str) -> bool:
        return (project_id, phase, filename) in self._contents


@dataclass(frozen=True, slots=True)
class ArtifactVersion:
    id: str
    project_id: str
    phase: str
    artifact_name: str
    version: int
    content: str
    content_hash: str
    reason: str
    created_at: datetime
    regeneration_run_id: str | None = None


class InMemoryArtifactVersionRepo:
    """Append-only version history per ``(project_id, artifact_name)``."""

    def __init__(self, *, clock: ClockFn = utc_now, id_factory: IdFactory = new_id) -> None:
        self._versions: dict[tuple[str, str], list[ArtifactVersion]] = {}
        self._clock = clock
        self._id_factory = id_factory

    def add(
        self,
        project_id: str,
        phase: str,
        artifact_name: str,
        content: str,
        *,
        reason: str,
        regeneration_run_id: str | None = None,
    ) -> ArtifactVersion:
        history = self._versions.setdefault((project_id, artifact_basename(artifact_name)), [])
        version = ArtifactVersion(
            id=self._id_factory(),
            project_id=project_id,
            phase=phase,
            artifact_name=artifact_basename(artifact_name),
            version=len(history) + 1,
            content=content,
            content_hash=content_hash(content, label=artifact_name),
            reason=reason,
            created_at=self._clock(),
            regeneration_run_id=regeneration_run_id,
        )
        history.append(version)
        return version

    def history(self, project_id: str, artifact_name: str) -> tuple[ArtifactVersion, ...]:
        return tuple(self._versions.get((project_id, artifact_basename(artifact_name)), ()))

    def latest(self, project_id: str, artifact_name: str) -> ArtifactVersion | None:
        history = self._versions.get((project_id, artifact_basename(artifact_name)))
        return history[-1] if history else None

    def for_run(self, regeneration_run_id: str) -> tuple[ArtifactVersion, ...]:
        return tuple(
            version
            for history in self._versions.values()
            for version in history
            if version.regeneration_run_id == regeneration_run_id
        )


class InMemoryArtifactChangeRepo:
    """Recorded artifact changes, newest last. ``record`` returns the change id."""

    def __init__(self, *, id_factory: IdFactory = new_id) -> None:
        self._changes: list[ArtifactChange] = []
        self._by_id: dict[str, ArtifactChange] = {}
        self._id_factory = id_factory

    def record(self, change: ArtifactChange) -> str:
        change_id = self._id_factory()
        self._changes.append(change)
        self._by_id[change_id] = change
        return change_id

    def get(self, change_id: str) -> ArtifactChange | None:
        return self._by_id.get(change_id)

    def latest_for(self, project_id: str, artifact_name: str) -> ArtifactChange | None:
        name = artifact_basename(artifact_name)
        for change in reversed(self._changes):
            if change.project_id == project_id and artifact_basename(change.artifact_name) == name:
                return change
        return None

    def list_for_project(self, project_id: str) -> tuple[ArtifactChange, ...]:
        return tuple(change for change in self._changes if change.project_id == project_id)


# --------------------------------------------------------------------------- regeneration runs


@dataclass(frozen=True, slots=True)
class RegenerationRun:
    """Audit record of one regeneration workflow execution."""

    id: str
    project_id: str
    trigger_artifact_id: str
    selected_strategy: str
    artifacts_to_regenerate: tuple[str, ...]
    started_at: datetime
    artifacts_regenerated: tuple[str, ...] = ()
    artifacts_skipped: tuple[str, ...] = ()
    completed_at: datetime | None = None
    duration_ms: int | None = None
    success: bool | None = None
    error_message: str | None = None

    @property
    def is_open(self) -> bool:
        return self.completed_at is None


class RegenerationRunRepo(Protocol):
    def create(self, run: RegenerationRun) -> RegenerationRun: ...

    def complete(
        self,
        run_id: str,
        *,
        artifacts_regenerated: Sequence[str],
        artifacts_skipped: Sequence[str],
        completed_at: datetime,
        duration_ms: int,
        success: bool,
        error_message: str | None = None,
    ) -> RegenerationRun: ...

    def get(self, run_id: str) -> RegenerationRun | None: ...


class InMemoryRegenerationRunRepo:
    def __init__(self) -> None:
        self._runs: dict[str, RegenerationRun] = {}

    def create(self, run: RegenerationRun) -> RegenerationRun:
        if run.id in self._runs:
            raise OrchestratorError(f"regeneration run {run.id} already exists")
        self._runs[run.id] = run
        return run

    def complete(
        self,
        run_id: str,
        *,
        artifacts_regenerated: Sequence[str],
        artifacts_skipped: Sequence[str],
        completed_at: datetime,
        duration_ms: int,
        success: bool,
        error_message: str | None = None,
    ) -> RegenerationRun:
        run = self._runs.get(run_id)
        if run is None:
            raise RecordNotFoundError(f"regeneration run {run_id} not found")
        if not run.is_open:
            raise OrchestratorError(f"regeneration run {run_id} is already completed")
        completed = replace(
            run,
            artifacts_regenerated=tuple(artifacts_regenerated),
            artifacts_skipped=tuple(artifacts_skipped),
            completed_at=completed_at,
            duration_ms=duration_ms,
            success=success,
            error_message=error_message,
        )
        self._runs[run_id] = completed
        return completed

    def get(self, run_id: str) -> RegenerationRun | None:
        return self._runs.get(run_id)

    def list_for_project(self, project_id: str) -> tuple[RegenerationRun, ...]:
        return tuple(run for run in self._runs.values() if run.project_id == project_id)


# --------------------------------------------------------------------------- approval gates


class GateStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    AUTO_APPROVED = "auto_approved"


PASSED_GATE_STATUSES = frozenset({GateStatus.APPROVED, GateStatus.AUTO_APPROVED})


@dataclass(frozen=True, slots=True)
class GateRecord:
    gate_name: str
    phase: str
    status: GateStatus
    blocking: bool
    approved_by: str | None = None
    approved_at: datetime | None = None
    auto_approved: bool = False
    score: float | None = None
    notes: str | None = None
    rejection_reason: str | None = None

    @property
    def passed(self) -> bool:
        return self.status in PASSED_GATE_STATUSES


class ApprovalGateService(Protocol):
    def can_proceed_from_phase(self, project_id: str, phase: str) -> bool: ...

    def get_project_gates(self, project_id: str) -> tuple[GateRecord, ...]: ...

    def approve_gate(
        self,
        project_id: str,
        gate_name: str,
        *,
        approved_by: str,
        score: float | None = None,
        notes: str | None = None,
    ) -> GateRecord: ...


class InMemoryApprovalGateService:
    """Per-project gate records created from the workflow's gate definitions."""

    def __init__(
        self,
        definitions: Iterable[GateDefinition],
        *,
        clock: ClockFn = utc_now,
    ) -> None:
        self._definitions: dict[str, GateDefinition] = {
            definition.name: definition for definition in definitions
        }
        self._gates: dict[str, dict[str, GateRecord]] = {}
        self._clock = clock

    @property
    def definitions(self) -> Mapping[str, GateDefinition]:
        return MappingProxyType(self._definitions)

    def initialize(self, project_id: str) -> tuple[GateRecord, ...]:
        records = self._gates.setdefault(project_id, {})
        for definition in self._definitions.values():
            records.setdefault(
                definition.name,
                GateRecord(
                    gate_name=definition.name,
                    phase=definition.phase,
                    status=GateStatus.PENDING,
                    blocking=definition.blocking,
                ),
            )
        return tuple(records.values())

    def get_project_gates(self, project_id: str) -> tuple[GateRecord, ...]:
        return self.initialize(project_id)

    def check_status(self, project_id: str, gate_name: str) -> GateStatus | None:
        self.initialize(project_id)
        record = self._gates[project_id].get(gate_name)
        return record.status if record is not None else None

    def should_auto_approve(self, gate_name: str, score: float) -> bool:
        definition = self._definitions.get(gate_name)
        if definition is None or definition.auto_approve_threshold is None:
            return False
        return score >= definition.auto_approve_threshold

    def approve_gate(
        self,
        project_id: str,
        gate_name: str,
        *,
        approved_by: str,
        score: float | None = None,
        notes: str | None = None,
    ) -> GateRecord:
        record = self._require(project_id, gate_name)
        auto = score is not None and self.should_auto_approve(gate_name, score)
        updated = replace(
            record,
            status=GateStatus.AUTO_APPROVED if auto else GateStatus.APPROVED,
            approved_by=approved_by,
            approved_at=self._clock(),
            auto_approved=auto,
            score=score,
            notes=notes,
            rejection_reason=None,
        )
        self._gates[project_id][gate_name] = updated
        return updated

    def reject_gate(
        self, project_id: str, gate_name: str, *, rejected_by: str, reason: str
    ) -> GateRecord:
        record = self._require(project_id, gate_name)
        updated = replace(
            record,
            status=GateStatus.REJECTED,
            approved_by=rejected_by,
            rejection_reason=reason,
        )
        self._gates[project_id][gate_name] = updated
        return updated

    def can_proceed_from_phase(self, project_id: str, phase: str) -> bool:
        blocking = [
            record
            for record in self.get_project_gates(project_id)
            if record.phase == phase and record.blocking
        ]
        return all(record.passed for record in blocking)

    def _require(self, project_id: str, gate_name: str) -> GateRecord:
        self.initialize(project_id)
        record = self._gates[project_id].get(gate_name)
        if record is None:
            raise RecordNotFoundError(f"Unknown approval gate: {gate_name}")
        return record


# --------------------------------------------------------------------------- vcs and snapshots


@dataclass(frozen=True, slots=True)
class CommitResult:
    commit_hash: str
    branch: str


class VersionControl(Protocol):
    def commit(
        self,
        project_slug: str,
        phase: str,
        artifact_names: Sequence[str],
        agent: str,
        duration_ms: int,
    ) -> CommitResult: ...


@dataclass(frozen=True, slots=True)
class CommitRecord:
    project_slug: str
    phase: str
    artifact_names: tuple[str, ...]
    agent: str
    duration_ms: int
    result: CommitResult


class InMemoryVersionControl:
    """Records commits; hashes chain over the previous commit per project."""

    def __init__(self, *, branch: str = "main") -> None:
        self._branch = branch
        self._commits: list[CommitRecord] = []

    @property
    def commits(self) -> tuple[CommitRecord, ...]:
        return tuple(self._commits)

    def commit(
        self,
        project_slug: str,
        phase: str,
        artifact_names: Sequence[str],
        agent: str,
        duration_ms: int,
    ) -> CommitResult:
        parent = next(
            (
                record.result.commit_hash
                for record in reversed(self._commits)
                if record.project_slug == project_slug
            ),
            "",
        )
        digest = sha256_text("\n".join([parent, project_slug, phase, agent, *artifact_names]))
        result = CommitResult(commit_hash=digest[:40], branch=self._branch)
        self._commits.append(
            CommitRecord(
                project_slug=project_slug,
                phase=phase,
                artifact_names=tuple(artifact_names),
                agent=agent,
                duration_ms=duration_ms,
                result=result,
            )
        )
        return result


@dataclass(frozen=True, slots=True)
class Snapshot:
    id: str
    project_id: str
    phase: str
    artifacts: Mapping[str, str]
    metadata: Mapping[str, Any]
    commit_ref: str | None
    created_at: datetime


class SnapshotService(Protocol):
    def snapshot(
        self,
        project_id: str,
        phase: str,
        artifacts: Mapping[str, str],
        metadata: Mapping[str, Any],
        commit_ref: str | None,
    ) -> str: ...


class InMemorySnapshotService:
    def __init__(self, *, clock: ClockFn = utc_now, id_factory: IdFactory = new_id) -> None:
        self._snapshots: dict[str, Snapshot] = {}
        self._clock = clock
        self._id_factory = id_factory

    def snapshot(
        self,
        project_id: str,
        phase: str,
        artifacts: Mapping[str, str],
        metadata: Mapping[str, Any],
        commit_ref: str | None,
    ) -> str:
        snapshot_id = self._id_factory()
        self._snapshots[snapshot_id] = Snapshot(
            id=snapshot_id,
            project_id=project_id,
            phase=phase,
            artifacts=MappingProxyType(dict(artifacts)),
            metadata=MappingProxyType(dict(metadata)),
            commit_ref=commit_ref,
            created_at=self._clock(),
        )
        return snapshot_id

    def get(self, snapshot_id: str) -> Snapshot | None:
        return self._snapshots.get(snapshot_id)

    def list_for_project(self, project_id: str) -> tuple[Snapshot, ...]:
        return tuple(item for item in self._snapshots.values() if item.project_id == project_id)


@dataclass(slots=True)
class Collaborators:
    """Bundle of collaborators the engine and regeneration workflow use."""

    artifacts: ArtifactStore = field(default_factory=InMemoryArtifactStore)
    versions: InMemoryArtifactVersionRepo = field(default_factory=InMemoryArtifactVersionRepo)
    changes: InMemoryArtifactChangeRepo = field(default_factory=InMemoryArtifactChangeRepo)
    runs: RegenerationRunRepo = field(default_factory=InMemoryRegenerationRunRepo)
    gates: ApprovalGateService | None = None
    vcs: VersionControl | None = None
    snapshots: SnapshotService | None = None


__all__ = [
    "ApprovalGateService",
    "ArtifactStore",
    "ArtifactVersion",
    "Collaborators",
    "CommitRecord",
    "CommitResult",
    "GateRecord",
    "GateStatus",
    "InMemoryApprovalGateService",
    "InMemoryArtifactChangeRepo",
    "InMemoryArtifactStore",
    "InMemoryArtifactVersionRepo",
    "InMemoryRegenerationRunRepo",
    "InMemorySnapshotService",
    "InMemoryVersionControl",
    "PASSED_GATE_STATUSES",
    "RecordNotFoundError",
    "RegenerationRun",
    "RegenerationRunRepo",
    "Snapshot",
    "SnapshotService",
    "VersionControl",
    "new_id",
    "utc_now",
]
