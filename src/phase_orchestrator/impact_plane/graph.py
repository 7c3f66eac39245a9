"""Artifact dependency graph derived from the workflow specification."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

    from phase_orchestrator.config.schema import WorkflowSpec


@dataclass(frozen=True, slots=True)
class Dependent:
    """One artifact that consumes an upstream artifact, and the phase producing it."""

    phase: str
    artifact: str

    @property
    def artifact_id(self) -> str:
        return f"{self.phase}/{self.artifact}"


@dataclass(frozen=True, slots=True)
class ArtifactGraph:
    """Upstream artifact name -> artifacts that must change when it changes."""

    edges: Mapping[str, tuple[Dependent, ...]]
    producers: Mapping[str, str]

    def dependents_of(self, artifact: str) -> tuple[Dependent, ...]:
        return self.edges.get(artifact_basename(artifact), ())

    def producer_of(self, artifact: str) -> str | None:
        return self.producers.get(artifact_basename(artifact))

    def artifacts(self) -> tuple[str, ...]:
        return tuple(sorted(set(self.edges) | set(self.producers)))


def artifact_basename(artifact: str) -> str:
    """``"SPEC_PM/PRD.md"`` and ``"PRD.md"`` name the same artifact."""

    return artifact.rsplit("/", 1)[-1]


def build_graph(spec: WorkflowSpec) -> ArtifactGraph:
    """Each output depends on its phase's inputs and on every output of ``depends_on`` phases."""

    edges: dict[str, list[Dependent]] = defaultdict(list)
    producers: dict[str, str] = {}
    for phase in spec.phases.values():
        for output in phase.outputs:
            producers.setdefault(output, phase.name)

    for phase in spec.phases.values():
        upstream: list[str] = list(phase.inputs)
        for dependency in phase.depends_on:
            upstream.extend(spec.phase(dependency).outputs)
        for source in dict.fromkeys(upstream):
            for output in phase.outputs:
                if output == source:
                    continue
                dependent = Dependent(phase=phase.name, artifact=output)
                if dependent not in edges[source]:
                    edges[source].append(dependent)

    return ArtifactGraph(
        edges=MappingProxyType({name: tuple(items) for name, items in edges.items()}),
        producers=MappingProxyType(producers),
    )


__all__ = ["ArtifactGraph", "Dependent", "artifact_basename", "build_graph"]
