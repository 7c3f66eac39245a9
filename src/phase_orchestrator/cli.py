"""Command-line interface router for phase-orchestrator."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from phase_orchestrator.config import WorkflowSpec, WorkflowSpecLoader
from phase_orchestrator.impact_plane import (
    ArtifactChange,
    ImpactAnalyzer,
    ImpactLevel,
    build_graph,
)
from phase_orchestrator.observability import configure_logging
from phase_orchestrator.verification_plane import classify_failure, remediation_strategy


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phase-orchestrator",
        description=(
            "phase-orchestrator — phase-based artifact generation orchestrator.\n\n"
            "Common workflows:\n"
            "  phase-orchestrator phases                 Show the phase sequence\n"
            "  phase-orchestrator affected PRD.md        Show the blast radius of an edit\n"
            "  phase-orchestrator classify VALIDATE MSG Classify a validation failure\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--spec",
        dest="spec_path",
        default=None,
        help="Workflow specification YAML (default: packaged workflow).",
    )
    common.add_argument("--json", action="store_true", default=False, help="Emit JSON.")
    common.add_argument(
        "--log-level",
        default="WARNING",
        help="Minimum structured log level written to stderr (default: WARNING).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    phases_parser = subparsers.add_parser(
        "phases", parents=[common], help="List phases in execution order"
    )
    phases_parser.add_argument("--start", default=None, help="Phase to start from.")
    phases_parser.set_defaults(handler=_cmd_phases)

    affected_parser = subparsers.add_parser(
        "affected", parents=[common], help="Analyze which artifacts a change affects"
    )
    affected_parser.add_argument("artifact", help="Changed artifact, e.g. SPEC_PM/PRD.md")
    affected_parser.add_argument(
        "--impact",
        choices=[level.value for level in ImpactLevel],
        default=ImpactLevel.HIGH.value,
        help="Impact level of the change (default: HIGH).",
    )
    affected_parser.set_defaults(handler=_cmd_affected)

    classify_parser = subparsers.add_parser(
        "classify", parents=[common], help="Classify a validation failure message"
    )
    classify_parser.add_argument("phase", help="Phase that failed, e.g. VALIDATE")
    classify_parser.add_argument("message", help="Validation failure message.")
    classify_parser.set_defaults(handler=_cmd_classify)
    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    configure_logging(level=namespace.log_level, json_output=False)
    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_phases(args: argparse.Namespace) -> int:
    spec = _load_spec(args)
    if args.start is not None and not spec.has_phase(args.start):
        raise CLIError(f"Unknown phase: {args.start}", exit_code=2)
    rows = []
    for name in spec.phase_sequence(args.start):
        phase = spec.phase(name)
        rows.append(
            {
                "phase": phase.name,
                "owner": phase.owner,
                "depends_on": list(phase.depends_on),
                "outputs": list(phase.outputs),
                "gates": list(phase.gates),
            }
        )
    if args.json:
        _emit_json({"command": "phases", "phases": rows})
        return 0
    for index, row in enumerate(rows, start=1):
        outputs = ", ".join(row["outputs"]) or "-"
        print(f"{index:>2}. {row['phase']:<24} {row['owner']:<12} {outputs}")
    return 0


def _cmd_affected(args: argparse.Namespace) -> int:
    spec = _load_spec(args)
    analyzer = ImpactAnalyzer(build_graph(spec))
    change = ArtifactChange(
        project_id="cli",
        artifact_name=args.artifact,
        old_hash="",
        new_hash="",
        has_changes=True,
        impact_level=ImpactLevel(args.impact),
    )
    analysis = analyzer.analyze(change)
    if args.json:
        _emit_json(
            {
                "command": "affected",
                "artifact": args.artifact,
                "recommended_strategy": str(analysis.recommended_strategy),
                "summary": {
                    "high": analysis.impact_summary.high,
                    "medium": analysis.impact_summary.medium,
                    "low": analysis.impact_summary.low,
                },
                "affected": [
                    {
                        "artifact_id": item.artifact_id,
                        "impact_level": str(item.impact_level),
                        "depth": item.depth,
                        "reason": item.reason,
                    }
                    for item in analysis.affected_artifacts
                ],
                "reasoning": analysis.reasoning,
            }
        )
        return 0
    for item in analysis.affected_artifacts:
        print(f"{item.impact_level:<6} {item.artifact_id}")
    print(f"strategy: {analysis.recommended_strategy}")
    print(analysis.reasoning)
    return 0


def _cmd_classify(args: argparse.Namespace) -> int:
    classification = classify_failure(args.phase, args.message)
    strategy = remediation_strategy(classification.type, args.phase)
    payload = {
        "command": "classify",
        "type": str(classification.type),
        "confidence": classification.confidence,
        "reason": classification.reason,
        "agent_to_rerun": strategy.agent_to_rerun,
        "phase": strategy.phase,
        "requires_manual_review": strategy.requires_manual_review,
    }
    if args.json:
        _emit_json(payload)
        return 0
    for key, value in payload.items():
        if key != "command":
            print(f"{key}: {value}")
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_spec(args: argparse.Namespace) -> WorkflowSpec:
    return WorkflowSpecLoader(args.spec_path).spec


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, sort_keys=True, ensure_ascii=False))


__all__ = ["CLIError", "build_parser", "run_cli"]
