"""
phase-orchestrator — persistence collaborators

File: src/phase_orchestrator/persistence/__init__.py
Last updated: 2026-10-19

Purpose
- Artifact store, version history, change log, regeneration runs, approval
  gates, version control, and snapshots behind small interfaces.

Non-functional requirements
- In-memory by default; durability across restarts is not provided.
"""

from phase_orchestrator.persistence.repositories import (
    ApprovalGateService,
    ArtifactStore,
    ArtifactVersion,
    Collaborators,
    CommitResult,
    GateRecord,
    GateStatus,
    InMemoryApprovalGateService,
    InMemoryArtifactChangeRepo,
    InMemoryArtifactStore,
    InMemoryArtifactVersionRepo,
    InMemoryRegenerationRunRepo,
    InMemorySnapshotService,
    InMemoryVersionControl,
    RecordNotFoundError,
    RegenerationRun,
    RegenerationRunRepo,
    SnapshotService,
    VersionControl,
)

__all__ = [
    "ApprovalGateService",
    "ArtifactStore",
    "ArtifactVersion",
    "Collaborators",
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
    "RecordNotFoundError",
    "RegenerationRun",
    "RegenerationRunRepo",
    "SnapshotService",
    "VersionControl",
]
