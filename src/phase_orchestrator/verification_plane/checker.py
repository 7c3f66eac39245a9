"""
phase-orchestrator — adversarial artifact review

File: src/phase_orchestrator/verification_plane/checker.py
Last updated: 2026-10-19

Purpose
- A critic persona reviews a phase's generated artifacts and returns one of
  approved / regenerate / escalate.

What should be included in this file
- Critic personas and the per-phase critic assignment.
- Prompt rendering, JSON feedback parsing, severity normalization.
- Decision rule: any critical item (or an explicit escalate verdict) escalates;
  any other non-empty feedback regenerates; empty feedback approves.

Functional requirements
- Fail-open: an invocation error or unparseable response is ``approved`` with
  empty feedback. A reviewer outage never blocks the pipeline.
- Phases without an enabled critic short-circuit to ``approved``.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Final

import structlog

from phase_orchestrator.config.schema import CriticAssignment
from phase_orchestrator.synthesis_plane.prompt_templates import (
    CRITIC_FEEDBACK_TEMPLATE,
    CRITIC_REVIEW_TEMPLATE,
    PromptTemplateEngine,
)

if TYPE_CHECKING:
    from phase_orchestrator.config.schema import WorkflowSpec
    from phase_orchestrator.synthesis_plane.generation import TextGenerator

ARTIFACT_PREVIEW_CHARS: Final[int] = 2000
CRITIC_MAX_RETRIES: Final[int] = 2
_DECODER: Final[json.JSONDecoder] = json.JSONDecoder()


class CriticSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    CRITICAL = "critical"


class CheckerStatus(StrEnum):
    APPROVED = "approved"
    REGENERATE = "regenerate"
    ESCALATE = "escalate"


@dataclass(frozen=True, slots=True)
class CriticPersona:
    key: str
    name: str
    perspective: str
    expertise: tuple[str, ...]
    review_criteria: tuple[str, ...]
    severity_threshold: str = "medium"


@dataclass(frozen=True, slots=True)
class CriticFeedback:
    severity: CriticSeverity
    category: str
    concern: str
    recommendation: str
    location: str | None = None


@dataclass(frozen=True, slots=True)
class CheckerResult:
    status: CheckerStatus
    artifacts: Mapping[str, str]
    feedback: tuple[CriticFeedback, ...] = ()
    confidence: float = 1.0
    summary: str = ""
    persona: str | None = None

    @property
    def approved(self) -> bool:
        return self.status is CheckerStatus.APPROVED


CRITIC_PERSONAS: Final[Mapping[str, CriticPersona]] = MappingProxyType(
    {
        "skeptical_cto": CriticPersona(
            key="skeptical_cto",
            name="Skeptical CTO",
            perspective="Technical leader who has seen stack decisions go wrong",
            expertise=("Cloud architecture", "Cost optimization", "Vendor lock-in", "Scaling patterns"),
            review_criteria=(
                "Hidden cost traps not mentioned",
                "Vendor lock-in risks",
                "Scaling limitations at current scale tier",
                "Technical debt introduced",
                "Team skill mismatch",
                "Alternative stacks not fairly evaluated",
                "Cold start issues",
                "Data transfer costs underestimated",
            ),
            severity_threshold="medium",
        ),
        "qa_lead": CriticPersona(
            key="qa_lead",
            name="QA Lead",
            perspective="Tester who must verify every requirement is testable",
            expertise=("Test design", "Acceptance criteria", "Edge cases", "Risk-based testing"),
            review_criteria=(
                "Requirements too vague to test",
                "Missing acceptance criteria",
                "Edge cases not addressed",
                "Persona traceability gaps",
                "Untestable requirements",
                "Circular dependencies in requirements",
                "Ambiguous success criteria",
                "Missing negative test cases",
            ),
            severity_threshold="low",
        ),
        "security_auditor": CriticPersona(
            key="security_auditor",
            name="Security Auditor",
            perspective="Security professional who assumes worst-case scenarios",
            expertise=(
                "OWASP Top 10",
                "Authentication",
                "Authorization",
                "Data protection",
                "Penetration testing",
            ),
            review_criteria=(
                "Authentication gaps or weaknesses",
                "Authorization/permission issues",
                "Data exposure risks",
                "Rate limiting missing or inadequate",
                "SQL/NoSQL injection vectors",
                "Sensitive data in logs",
                "Missing input validation",
                "Insecure direct object references",
                "Missing security headers",
                "Crypto usage issues",
            ),
            severity_threshold="high",
        ),
        "a11y_specialist": CriticPersona(
            key="a11y_specialist",
            name="Accessibility Specialist",
            perspective="Advocate ensuring inclusive design for all users",
            expertise=("WCAG 2.1 AA", "Screen readers", "Keyboard navigation", "Color contrast", "ARIA"),
            review_criteria=(
                "Missing reduced-motion handling for animations",
                "ARIA attributes absent or incorrect",
                "Keyboard navigation gaps",
                "Color contrast issues (WCAG AA)",
                "Focus management missing for modals",
                "Alt text missing for images",
                "Form labels absent",
                "Landmark regions not defined",
                "Error messages not announced",
                "Skip links missing",
            ),
            severity_threshold="medium",
        ),
    }
)

DEFAULT_ASSIGNMENTS: Final[tuple[CriticAssignment, ...]] = (
    CriticAssignment(phase="STACK_SELECTION", persona="skeptical_cto", max_regenerations=2),
    CriticAssignment(phase="SPEC_PM", persona="qa_lead", max_regenerations=2),
    CriticAssignment(phase="SPEC_ARCHITECT", persona="security_auditor", max_regenerations=1),
    CriticAssignment(phase="FRONTEND_BUILD", persona="a11y_specialist", max_regenerations=2),
)


@dataclass(frozen=True, slots=True)
class ParsedReview:
    feedback: tuple[CriticFeedback, ...] = ()
    verdict: str | None = None
    parsed: bool = True
    extras: Mapping[str, Any] = field(default_factory=dict)


def normalize_severity(value: object) -> CriticSeverity:
    normalized = str(value or "").strip().lower()
    if normalized in {"critical", "high"}:
        return CriticSeverity.CRITICAL
    if normalized == "medium":
        return CriticSeverity.MEDIUM
    return CriticSeverity.LOW


def parse_critic_response(content: str) -> ParsedReview:
    """Extract feedback items from the first decodable ``{...}`` block of a response."""

    payload = _first_json_object(content)
    if payload is None:
        return ParsedReview(parsed=False)

    verdict = payload.get("verdict")
    verdict_text = str(verdict).strip().lower() if isinstance(verdict, str) else None
    raw_items = payload.get("feedback")
    if not isinstance(raw_items, list):
        return ParsedReview(verdict=verdict_text)

    items: list[CriticFeedback] = []
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        location = item.get("location")
        items.append(
            CriticFeedback(
                severity=normalize_severity(item.get("severity") or "low"),
                category=str(item.get("category") or "General"),
                concern=str(item.get("concern") or "No description provided"),
                recommendation=str(item.get("recommendation") or "Review and fix"),
                location=str(location) if location else None,
            )
        )
    return ParsedReview(feedback=tuple(items), verdict=verdict_text)


def _first_json_object(content: str) -> dict[str, Any] | None:
    start = content.find("{")
    while start != -1:
        try:
            payload, _ = _DECODER.raw_decode(content, start)
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict):
            return payload
        start = content.find("{", start + 1)
    return None


def count_by_severity(feedback: Iterable[CriticFeedback]) -> dict[str, int]:
    counts = {severity.value: 0 for severity in (CriticSeverity.CRITICAL, CriticSeverity.MEDIUM, CriticSeverity.LOW)}
    for item in feedback:
        counts[item.severity.value] += 1
    return counts

def has_critical_issues(feedback: Iterable[CriticFeedback]) -> bool:
    return any(item.severity is CriticSeverity.CRITICAL for item in feedback)


def compute_confidence(feedback: tuple[CriticFeedback, ...], artifacts: Mapping[str, str]) -> float:
    counts = count_by_severity(feedback)
    total_chars = sum(len(content) for content in artifacts.values())
    density = len(feedback) / max(total_chars / 10000, 1)
    return max(
        0.5,
        1 - density * 0.1 - counts["critical"] * 0.2 - counts["medium"] * 0.05,
    )


def evaluate_decision(
    feedback: tuple[CriticFeedback, ...],
    artifacts: Mapping[str, str],
    *,
    verdict: str | None = None,
    persona: str | None = None,
) -> CheckerResult:
    counts = count_by_severity(feedback)
    confidence = compute_confidence(feedback, artifacts)

    if counts["critical"] > 0:
        status = CheckerStatus.ESCALATE
        summary = f"Found {counts['critical']} critical issue(s) requiring human review"
    elif verdict == "escalate":
        status = CheckerStatus.ESCALATE
        summary = "Critic requested escalation for human review"
    elif feedback:
        status = CheckerStatus.REGENERATE
        summary = (
            f"Found {len(feedback)} issue(s) to address "
            f"({counts['medium']} medium, {counts['low']} low)"
        )
    else:
        status = CheckerStatus.APPROVED
        summary = "No issues found - approved"

    return CheckerResult(
        status=status,
        artifacts=MappingProxyType(dict(artifacts)),
        feedback=feedback,
        confidence=confidence,
        summary=summary,
        persona=persona,
    )


class CheckerService:
    """Runs the configured critic for a phase through the shared generator."""

    def __init__(
        self,
        generator: TextGenerator,
        *,
        assignments: Iterable[CriticAssignment] | None = None,
        personas: Mapping[str, CriticPersona] | None = None,
        templates: PromptTemplateEngine | None = None,
        max_retries: int = CRITIC_MAX_RETRIES,
        logger: Any | None = None,
    ) -> None:
        self._generator = generator
        self._personas = dict(CRITIC_PERSONAS if personas is None else personas)
        self._assignments: dict[str, CriticAssignment] = {
            assignment.phase: assignment
            for assignment in (DEFAULT_ASSIGNMENTS if assignments is None else assignments)
        }
        self._templates = templates or PromptTemplateEngine()
        self._max_retries = max_retries
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @classmethod
    def from_spec(cls, generator: TextGenerator, spec: WorkflowSpec, **kwargs: Any) -> CheckerService:
        return cls(generator, assignments=spec.critics.values(), **kwargs)

    def configure_phase(self, assignment: CriticAssignment) -> None:
        self._assignments[assignment.phase] = assignment

    def configured_phases(self) -> tuple[str, ...]:
        return tuple(
            phase for phase, assignment in self._assignments.items() if assignment.enabled
        )

    def critic_for_phase(self, phase: str) -> CriticPersona | None:
        assignment = self._assignments.get(phase)
        if assignment is None or not assignment.enabled:
            return None
        return self._personas.get(assignment.persona)

    def max_regenerations(self, phase: str) -> int:
        assignment = self._assignments.get(phase)
        return assignment.max_regenerations if assignment is not None else 0

    async def execute(
        self,
        phase: str,
        artifacts: Mapping[str, str],
        context: Mapping[str, object] | None = None,
    ) -> CheckerResult:
        assignment = self._assignments.get(phase)
        if assignment is None or not assignment.enabled:
            return CheckerResult(
                status=CheckerStatus.APPROVED,
                artifacts=MappingProxyType(dict(artifacts)),
                summary="No critic configured for this phase",
            )
        persona = self._personas.get(assignment.persona)
        if persona is None:
            self._logger.error("checker_unknown_persona", phase=phase, persona=assignment.persona)
            return CheckerResult(
                status=CheckerStatus.APPROVED,
                artifacts=MappingProxyType(dict(artifacts)),
                summary="Unknown critic, skipping review",
            )

        self._logger.info("checker_review_started", phase=phase, persona=persona.key)
        prompt = self.build_review_prompt(persona, phase, artifacts, context or {})
        try:
            response = await self._generator.generate(
                prompt,
                max_retries=self._max_retries,
                phase=f"CHECKER_{persona.name.replace(' ', '_').upper()}",
            )
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "checker_review_failed_open",
                phase=phase,
                persona=persona.key,
                error=str(exc),
            )
            return self._fail_open(artifacts, persona, "Critic review unavailable - approved")

        review = parse_critic_response(response.content)
        if not review.parsed:
            self._logger.warning("checker_response_unparseable", phase=phase, persona=persona.key)
            return self._fail_open(artifacts, persona, "Critic response unparseable - approved")

        result = evaluate_decision(
            review.feedback, artifacts, verdict=review.verdict, persona=persona.key
        )
        self._logger.info(
            "checker_review_completed",
            phase=phase,
            persona=persona.key,
            status=str(result.status),
            confidence=round(result.confidence, 3),
            issues=len(result.feedback),
            critical=count_by_severity(result.feedback)["critical"],
        )
        return result

    def build_review_prompt(
        self,
        persona: CriticPersona,
        phase: str,
        artifacts: Mapping[str, str],
        context: Mapping[str, object],
    ) -> str:
        previews = [
            {
                "name": name,
                "content": content[:ARTIFACT_PREVIEW_CHARS],
                "truncated": len(content) > ARTIFACT_PREVIEW_CHARS,
            }
            for name, content in artifacts.items()
        ]
        rendered = self._templates.render(
            CRITIC_REVIEW_TEMPLATE,
            {
                "critic_name": persona.name,
                "critic_perspective": persona.perspective,
                "expertise": persona.expertise,
                "review_criteria": persona.review_criteria,
                "project_name": str(context.get("project_name") or "Unknown"),
                "scale_tier": str(context.get("scale_tier") or "Unknown"),
                "phase": str(context.get("phase") or phase),
                "artifacts": previews,
            },
        )
        return rendered.prompt

    def build_regeneration_prompt(
        self, original_prompt: str, feedback: Iterable[CriticFeedback]
    ) -> str:
        """Append critic feedback to the generator's original prompt."""

        rendered = self._templates.render(
            CRITIC_FEEDBACK_TEMPLATE,
            {"original_prompt": original_prompt, "feedback": list(feedback)},
        )
        return rendered.prompt

    def _fail_open(
        self, artifacts: Mapping[str, str], persona: CriticPersona, summary: str
    ) -> CheckerResult:
        return CheckerResult(
            status=CheckerStatus.APPROVED,
            artifacts=MappingProxyType(dict(artifacts)),
            summary=summary,
            persona=persona.key,
        )


__all__ = [
    "ARTIFACT_PREVIEW_CHARS",
    "CRITIC_PERSONAS",
    "CheckerResult",
    "CheckerService",
    "CheckerStatus",
    "CriticFeedback",
    "CriticPersona",
    "CriticSeverity",
    "DEFAULT_ASSIGNMENTS",
    "compute_confidence",
    "count_by_severity",
    "evaluate_decision",
    "has_critical_issues",
    "normalize_severity",
    "parse_critic_response",
]
