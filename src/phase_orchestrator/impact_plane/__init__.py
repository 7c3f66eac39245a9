"""Impact plane: artifact dependency graph, change detection, and blast-radius analysis."""

from phase_orchestrator.impact_plane.analyzer import (
    AffectedArtifact,
    AttenuationPolicy,
    ImpactAnalysis,
    ImpactAnalyzer,
    ImpactSummary,
    RegenerationStrategy,
    find_affected_artifacts,
    recommend_strategy,
)
from phase_orchestrator.impact_plane.change_detection import (
    ArtifactChange,
    ChangedSection,
    ChangeType,
    ImpactLevel,
    detect_change,
)
from phase_orchestrator.impact_plane.graph import (
    ArtifactGraph,
    Dependent,
    artifact_basename,
    build_graph,
)

__all__ = [
    "AffectedArtifact",
    "ArtifactChange",
    "ArtifactGraph",
    "AttenuationPolicy",
    "ChangeType",
    "ChangedSection",
    "Dependent",
    "ImpactAnalysis",
    "ImpactAnalyzer",
    "ImpactLevel",
    "ImpactSummary",
    "RegenerationStrategy",
    "artifact_basename",
    "build_graph",
    "detect_change",
    "find_affected_artifacts",
    "recommend_strategy",
]
