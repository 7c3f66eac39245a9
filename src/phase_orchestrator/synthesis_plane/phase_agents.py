"""
phase-orchestrator — phase generation routines

File: src/phase_orchestrator/synthesis_plane/phase_agents.py
Last updated: 2026-10-19

Purpose
- Per-phase generation routines the engine dispatches to, keyed by phase name.

What should be included in this file
- ``PhaseExecutor`` protocol and a registry keyed by phase name.
- A generic generative executor: render the role prompt, call the generator
  with the phase inputs as context documents, parse the returned artifacts.
- Fail-fast artifact parsing: JSON array first, strict ``filename:`` fenced
  blocks second, never a partial or degraded result.
- A single-artifact regenerator used by the regeneration workflow.

Functional requirements
- Every declared output must be present and non-empty; otherwise the executor
  re-asks with explicit format instructions and finally raises
  ``ArtifactParseError``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final, Protocol

import structlog

from phase_orchestrator.config.schema import AgentSpec, PhaseSpec, WorkflowSpec
from phase_orchestrator.constants import Phase
from phase_orchestrator.errors import OrchestratorError
from phase_orchestrator.synthesis_plane.generation import TextGenerator
from phase_orchestrator.synthesis_plane.prompt_templates import (
    FORMAT_RETRY_TEMPLATE,
    PHASE_AGENT_TEMPLATE,
    REGENERATION_TEMPLATE,
    PromptTemplateEngine,
)

DEFAULT_FORMAT_RETRIES: Final[int] = 2
FORMAT_RETRY_GENERATION_RETRIES: Final[int] = 1

# Phases the engine handles itself instead of dispatching to an executor.
ENGINE_HANDLED_PHASES: Final[frozenset[str]] = frozenset(
    {Phase.STACK_SELECTION, Phase.AUTO_REMEDY, Phase.DONE}
)

_STRUCTURED_START_RE = re.compile(r'\[\s*\{\s*"filename"')
_FILENAME_BLOCK_RE = re.compile(r"```(?:(\w+)[ \t]*)?\n?filename:\s*([^\n]+)\n([\s\S]*?)```")
_CODE_FENCE_RE = re.compile(r"^```[\w-]*\n([\s\S]*?)\n?```$")


class ArtifactParseError(OrchestratorError):
    """Generated output never contained every expected artifact."""

    def __init__(
        self,
        *,
        phase: str,
        expected: Sequence[str],
        errors: Sequence[str],
        retries: int,
    ) -> None:
        self.phase = phase
        self.expected = tuple(expected)
        self.errors = tuple(errors)
        self.retries = retries
        super().__init__(
            f"Artifact parsing failed after {retries} retries for phase {phase}. "
            f"Expected files: {', '.join(self.expected)}. "
            f"Errors: {'; '.join(self.errors)}. "
            "Use structured output (JSON array with filename/content) to fix."
        )


@dataclass(frozen=True, slots=True)
class ParsedArtifacts:
    success: bool
    artifacts: Mapping[str, str]
    method: str
    errors: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class PhaseRunContext:
    """Everything one phase run needs."""

    project_id: str
    project_name: str
    phase: PhaseSpec
    inputs: Mapping[str, str] = field(default_factory=dict)
    agent: AgentSpec | None = None
    instructions: str = ""
    prompt_override: str | None = None


@dataclass(frozen=True, slots=True)
class PhaseOutput:
    artifacts: Mapping[str, str]
    prompt: str
    parse_method: str = "structured"
    format_retries: int = 0


class PhaseExecutor(Protocol):
    async def execute(self, context: PhaseRunContext) -> PhaseOutput: ...


def _extract_structured(content: str) -> dict[str, str] | None:
    if _STRUCTURED_START_RE.search(content) is None:
        return None
    start = content.find("[")
    depth = 0
    end = -1
    for index in range(start, len(content)):
        char = content[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        elif char == "]" and depth == 0:
            end = index + 1
            break
    if end == -1:
        return None
    try:
        payload = json.loads(content[start:end])
    except json.JSONDecodeError:
        return None
    if not isinstance(payload, list):
        return None
    artifacts: dict[str, str] = {}
    for item in payload:
        if not isinstance(item, dict):
            continue
        filename = item.get("filename")
        body = item.get("content")
        if filename and isinstance(body, str):
            artifacts[str(filename)] = body
    return artifacts


def _extract_filename_blocks(content: str, expected: Sequence[str]) -> dict[str, str] | None:
    artifacts: dict[str, str] = {}
    for match in _FILENAME_BLOCK_RE.finditer(content):
        name = match.group(2).strip()
        if name in expected:
            artifacts[name] = match.group(3).strip()
    if all(artifacts.get(name) for name in expected):
        return artifacts
    return None


def _all_present(artifacts: Mapping[str, str], expected: Sequence[str]) -> bool:
    return all(artifacts.get(name) for name in expected)


def parse_artifacts(content: str, expected: Sequence[str]) -> ParsedArtifacts:
    """Parse generated content into ``{filename: content}``; no partial success."""

    errors: list[str] = []
    found: Mapping[str, str] = {}
    method = "failed"

    structured = _extract_structured(content)
    if structured is not None:
        found, method = structured, "structured"
        if _all_present(structured, expected):
            return ParsedArtifacts(success=True, artifacts=structured, method=method)
        errors.append("Structured output missing required files")

    blocks = _extract_filename_blocks(content, expected)
    if blocks is not None:
        return ParsedArtifacts(success=True, artifacts=blocks, method="markdown_strict")

    errors.append(
        f"Parse failed. Expected files: {', '.join(expected)}. "
        f"Found files: {', '.join(found) or 'none'}. "
        f"Parse method attempted: {method}"
    )
    return ParsedArtifacts(success=False, artifacts=found, method=method, errors=tuple(errors))


def strip_code_fence(content: str) -> str:
    """Unwrap a response that is one fenced block; otherwise return it stripped."""

    text = content.strip()
    match = _CODE_FENCE_RE.match(text)
    return match.group(1) if match else text


class GenerativePhaseExecutor:
    """Renders the role prompt, generates, and parses the declared outputs."""

    def __init__(
        self,
        generator: TextGenerator,
        *,
        templates: PromptTemplateEngine | None = None,
        format_retries: int = DEFAULT_FORMAT_RETRIES,
        logger: Any | None = None,
    ) -> None:
        self._generator = generator
        self._templates = templates or PromptTemplateEngine()
        self._format_retries = format_retries
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def build_prompt(self, context: PhaseRunContext) -> str:
        if context.prompt_override is not None:
            return context.prompt_override
        phase = context.phase
        agent = context.agent
        role = agent.role if agent is not None else phase.owner
        rendered = self._templates.render(
            PHASE_AGENT_TEMPLATE,
            {
                "agent_role": role,
                "project_name": context.project_name,
                "agent_perspective": agent.perspective if agent is not None else role,
                "responsibilities": agent.responsibilities if agent is not None else (),
                "phase": phase.name,
                "phase_description": phase.description,
                "instructions": context.instructions,
                "outputs": phase.outputs,
            },
        )
        return rendered.prompt

    async def execute(self, context: PhaseRunContext) -> PhaseOutput:
        phase = context.phase.name
        expected = context.phase.outputs
        prompt = self.build_prompt(context)
        context_docs = context_documents(context.inputs.items())

        response = await self._generator.generate(prompt, context_docs, phase=phase)
        if not expected:
            return PhaseOutput(artifacts={}, prompt=prompt, parse_method="none")

        parsed = parse_artifacts(response.content, expected)
        if parsed.success:
            return PhaseOutput(artifacts=dict(parsed.artifacts), prompt=prompt, parse_method=parsed.method)

        self._logger.warning(
            "phase_artifact_parse_failed",
            phase=phase,
            expected=list(expected),
            found=list(parsed.artifacts),
        )
        for attempt in range(1, self._format_retries + 1):
            retry_prompt = self._templates.render(
                FORMAT_RETRY_TEMPLATE,
                {
                    "original_prompt": prompt,
                    "attempt": attempt,
                    "errors": parsed.errors,
                    "expected_files": expected,
                },
            ).prompt
            try:
                retry = await self._generator.generate(
                    retry_prompt,
                    context_docs,
                    max_retries=FORMAT_RETRY_GENERATION_RETRIES,
                    phase=phase,
                )
            except OrchestratorError as exc:
                self._logger.warning(
                    "phase_format_retry_failed", phase=phase, attempt=attempt, error=exc.reason
                )
                continue
            retried = parse_artifacts(retry.content, expected)
            if retried.success:
                self._logger.info(
                    "phase_format_retry_succeeded",
                    phase=phase,
                    attempt=attempt,
                    parse_method=retried.method,
                )
                return PhaseOutput(
                    artifacts=dict(retried.artifacts),
                    prompt=prompt,
                    parse_method=retried.method,
                    format_retries=attempt,
                )

        raise ArtifactParseError(
            phase=phase, expected=expected, errors=parsed.errors, retries=self._format_retries
        )


class PhaseExecutorRegistry:
    """Phase name -> generation routine."""

    def __init__(self, executors: Mapping[str, PhaseExecutor] | None = None) -> None:
        self._executors: dict[str, PhaseExecutor] = dict(executors or {})

    @classmethod
    def generative(
        cls,
        spec: WorkflowSpec,
        generator: TextGenerator,
        *,
        templates: PromptTemplateEngine | None = None,
        logger: Any | None = None,
    ) -> PhaseExecutorRegistry:
        """One shared generative executor for every phase that generates."""

        executor = GenerativePhaseExecutor(generator, templates=templates, logger=logger)
        return cls(
            {name: executor for name in spec.phases if name not in ENGINE_HANDLED_PHASES}
        )

    def register(self, phase: str, executor: PhaseExecutor) -> None:
        self._executors[phase] = executor

    def get(self, phase: str) -> PhaseExecutor | None:
        return self._executors.get(phase)

    def phases(self) -> tuple[str, ...]:
        return tuple(sorted(self._executors))

    def __contains__(self, phase: object) -> bool:
        return phase in self._executors


@dataclass(frozen=True, slots=True)
class RegenerationRequest:
    project_id: str
    artifact_name: str
    phase: str
    trigger_artifact: str
    impact_level: str
    reason: str
    current_content: str


class ArtifactRegenerator(Protocol):
    async def regenerate(self, request: RegenerationRequest) -> str: ...


class GenerativeArtifactRegenerator:
    """Regenerates one downstream artifact after an upstream change."""

    def __init__(
        self,
        generator: TextGenerator,
        *,
        templates: PromptTemplateEngine | None = None,
    ) -> None:
        self._generator = generator
        self._templates = templates or PromptTemplateEngine()

    async def regenerate(self, request: RegenerationRequest) -> str:
        prompt = self._templates.render(
            REGENERATION_TEMPLATE,
            {
                "artifact_name": request.artifact_name,
                "phase": request.phase,
                "trigger_artifact": request.trigger_artifact,
                "impact_level": request.impact_level,
                "reason": request.reason,
                "current_content": request.current_content,
            },
        ).prompt
        response = await self._generator.generate(prompt, phase=request.phase)
        content = strip_code_fence(response.content)
        if not content:
            raise OrchestratorError(f"regeneration of {request.artifact_name} returned empty content")
        return content


def context_documents(inputs: Iterable[tuple[str, str]]) -> list[str]:
    return [f"# {name}\n\n{content}" for name, content in inputs]


__all__ = [
    "ArtifactParseError",
    "ArtifactRegenerator",
    "ENGINE_HANDLED_PHASES",
    "GenerativeArtifactRegenerator",
    "GenerativePhaseExecutor",
    "ParsedArtifacts",
    "PhaseExecutor",
    "PhaseExecutorRegistry",
    "PhaseOutput",
    "PhaseRunContext",
    "RegenerationRequest",
    "context_documents",
    "parse_artifacts",
    "strip_code_fence",
]
