"""
phase-orchestrator — impact analysis unit tests

File: tests/unit/impact_plane/test_impact_analysis.py
Last updated: 2026-10-19

Purpose
- Validate graph construction, breadth-first blast radius, depth attenuation,
  and strategy recommendation.
"""

from __future__ import annotations

from types import MappingProxyType

import pytest
from hypothesis import given
from hypothesis import strategies as st

from phase_orchestrator.config.loader import load_default_spec
from phase_orchestrator.config.schema import WorkflowSpec, parse_workflow_spec
from phase_orchestrator.impact_plane.analyzer import (
    AffectedArtifact,
    AttenuationPolicy,
    ImpactAnalyzer,
    ImpactSummary,
    RegenerationStrategy,
    find_affected_artifacts,
    recommend_strategy,
)
from phase_orchestrator.impact_plane.change_detection import ImpactLevel, detect_change
from phase_orchestrator.impact_plane.graph import (
    ArtifactGraph,
    Dependent,
    artifact_basename,
    build_graph,
)


def _chain_spec() -> WorkflowSpec:
    return parse_workflow_spec(
        {
            "phases": {
                "A": {"outputs": ["a.md"], "next_phase": "B"},
                "B": {"outputs": ["b.md"], "depends_on": ["A"], "next_phase": "C"},
                "C": {"outputs": ["c.md"], "depends_on": ["B"], "next_phase": "D"},
                "D": {"inputs": ["a.md"], "outputs": ["d.md"]},
            }
        }
    )


def _levels(affected: tuple[AffectedArtifact, ...]) -> dict[str, ImpactLevel]:
    return {item.artifact: item.impact_level for item in affected}


def test_build_graph_links_inputs_and_phase_dependencies() -> None:
    graph = build_graph(_chain_spec())

    assert graph.dependents_of("a.md") == (Dependent("B", "b.md"), Dependent("D", "d.md"))
    assert graph.dependents_of("A/a.md") == graph.dependents_of("a.md")
    assert graph.dependents_of("c.md") == ()
    assert graph.producer_of("B/b.md") == "B"
    assert graph.artifacts() == ("a.md", "b.md", "c.md", "d.md")


def test_artifact_basename_strips_phase_prefix() -> None:
    assert artifact_basename("SPEC_PM/PRD.md") == "PRD.md"
    assert artifact_basename("PRD.md") == "PRD.md"


def test_high_trigger_attenuates_beyond_direct_dependents() -> None:
    affected = find_affected_artifacts("a.md", build_graph(_chain_spec()), ImpactLevel.HIGH)

    assert _levels(affected) == {
        "b.md": ImpactLevel.HIGH,
        "d.md": ImpactLevel.HIGH,
        "c.md": ImpactLevel.MEDIUM,
    }
    assert [item.depth for item in affected] == [0, 0, 1]
    assert affected[0].artifact_id == "B/b.md"
    assert "through b.md (2 hops)" in affected[2].reason


def test_custom_policy_bounds_medium_depth() -> None:
    policy = AttenuationPolicy(high_max_depth=0, medium_max_depth=0)

    affected = find_affected_artifacts(
        "a.md", build_graph(_chain_spec()), ImpactLevel.HIGH, policy=policy
    )

    assert _levels(affected)["c.md"] is ImpactLevel.LOW


def test_policy_rejects_negative_depths() -> None:
    with pytest.raises(ValueError):
        AttenuationPolicy(high_max_depth=-1)
    with pytest.raises(ValueError):
        AttenuationPolicy(medium_max_depth=-1)


def test_low_trigger_is_low_everywhere() -> None:
    affected = find_affected_artifacts("a.md", build_graph(_chain_spec()), ImpactLevel.LOW)

    assert set(_levels(affected).values()) == {ImpactLevel.LOW}
    assert recommend_strategy(affected) is RegenerationStrategy.MANUAL_REVIEW


def test_cyclic_graph_visits_each_artifact_once() -> None:
    graph = ArtifactGraph(
        edges=MappingProxyType(
            {"x.md": (Dependent("P", "y.md"),), "y.md": (Dependent("Q", "x.md"),)}
        ),
        producers=MappingProxyType({"x.md": "Q", "y.md": "P"}),
    )

    affected = find_affected_artifacts("x.md", graph, ImpactLevel.MEDIUM)

    assert [item.artifact for item in affected] == ["y.md"]


def test_analyzer_recommends_strategy_with_reasoning() -> None:
    analyzer = ImpactAnalyzer(build_graph(_chain_spec()))
    structural = detect_change("# A\nx", "# A\nx\n# B\ny", project_id="p", artifact_name="a.md")
    edit = detect_change("# A\nx", "# A\nz", project_id="p", artifact_name="A/a.md")
    leaf = detect_change("# C\nx", "# C\ny", project_id="p", artifact_name="c.md")
    assert structural is not None and edit is not None and leaf is not None

    high = analyzer.analyze(structural)
    medium = analyzer.analyze(edit)
    none = analyzer.analyze(leaf)

    assert high.recommended_strategy is RegenerationStrategy.REGENERATE_ALL
    assert high.impact_summary == ImpactSummary(high=2, medium=1, low=0)
    assert high.affected_artifacts[0].section == "B"
    assert "regenerate all 3 affected artifact(s)" in high.reasoning
    assert medium.recommended_strategy is RegenerationStrategy.HIGH_IMPACT_ONLY
    assert medium.artifacts_at(ImpactLevel.MEDIUM) == medium.affected_artifacts
    assert none.recommended_strategy is RegenerationStrategy.IGNORE
    assert none.reasoning == "No downstream artifacts depend on c.md; no regeneration needed."


def test_prd_change_reaches_architecture_in_packaged_workflow() -> None:
    graph = build_graph(load_default_spec())

    affected = find_affected_artifacts("PRD.md", graph, ImpactLevel.HIGH)

    names = {item.artifact for item in affected}
    assert "architecture.md" in names
    assert "data-model.md" in names
    assert "PRD.md" not in names


@given(st.lists(st.sampled_from(list(ImpactLevel)), max_size=30))
def test_summary_counts_sum_and_strategy_follows_levels(levels: list[ImpactLevel]) -> None:
    affected = tuple(
        AffectedArtifact(
            artifact_id=f"P/a{index}.md",
            artifact=f"a{index}.md",
            phase="P",
            impact_level=level,
            reason="test",
        )
        for index, level in enumerate(levels)
    )

    summary = ImpactSummary.count(affected)
    strategy = recommend_strategy(affected, summary)

    assert summary.total == len(affected)
    if not levels:
        assert strategy is RegenerationStrategy.IGNORE
    elif ImpactLevel.HIGH in levels:
        assert strategy is RegenerationStrategy.REGENERATE_ALL
    elif ImpactLevel.MEDIUM in levels:
        assert strategy is RegenerationStrategy.HIGH_IMPACT_ONLY
    else:
        assert strategy is RegenerationStrategy.MANUAL_REVIEW
