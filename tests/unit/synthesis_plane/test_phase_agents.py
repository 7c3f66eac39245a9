from __future__ import annotations

import json
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field

import pytest

from phase_orchestrator.config.loader import load_default_spec
from phase_orchestrator.constants import Phase
from phase_orchestrator.errors import OrchestratorError, ProviderError
from phase_orchestrator.synthesis_plane.generation import GenerationResult
from phase_orchestrator.synthesis_plane.phase_agents import (
    ArtifactParseError,
    GenerativeArtifactRegenerator,
    GenerativePhaseExecutor,
    PhaseExecutorRegistry,
    PhaseRunContext,
    RegenerationRequest,
    context_documents,
    parse_artifacts,
    strip_code_fence,
)


@dataclass(slots=True)
class _Call:
    prompt: str
    context_docs: tuple[str, ...]
    max_retries: int | None
    phase: str | None


@dataclass(slots=True)
class _ScriptedGenerator:
    outputs: deque[str | Exception]
    calls: list[_Call] = field(default_factory=list)

    async def generate(
        self,
        prompt: str,
        context_docs: Sequence[str] = (),
        *,
        max_retries: int | None = None,
        phase: str | None = None,
    ) -> GenerationResult:
        self.calls.append(_Call(prompt, tuple(context_docs), max_retries, phase))
        outcome = self.outputs.popleft()
        if isinstance(outcome, Exception):
            raise outcome
        return GenerationResult(content=outcome, model="test-model")


def _json_artifacts(**files: str) -> str:
    payload = [{"filename": name, "content": body} for name, body in files.items()]
    return "```json\n" + json.dumps(payload) + "\n```"


def _context(phase: str = Phase.SPEC_PM, **inputs: str) -> PhaseRunContext:
    spec = load_default_spec()
    return PhaseRunContext(
        project_id="proj-1",
        project_name="Tasks App",
        phase=spec.phase(phase),
        inputs=inputs,
        agent=spec.agents.get(spec.phase(phase).owner),
    )


def test_parse_artifacts_prefers_structured_json() -> None:
    parsed = parse_artifacts(_json_artifacts(**{"PRD.md": "# PRD"}), ("PRD.md",))

    assert parsed.success
    assert parsed.method == "structured"
    assert parsed.artifacts == {"PRD.md": "# PRD"}


def test_parse_artifacts_falls_back_to_filename_blocks() -> None:
    content = (
        "Here you go\n"
        "```markdown\nfilename: data-model.md\n# Model\n```\n"
        "```json\nfilename: api-spec.json\n{\"openapi\": \"3.0.0\"}\n```\n"
    )

    parsed = parse_artifacts(content, ("data-model.md", "api-spec.json"))

    assert parsed.success
    assert parsed.method == "markdown_strict"
    assert parsed.artifacts["api-spec.json"] == '{"openapi": "3.0.0"}'


def test_parse_artifacts_never_returns_partial_success() -> None:
    content = _json_artifacts(**{"data-model.md": "# Model"})

    parsed = parse_artifacts(content, ("data-model.md", "api-spec.json"))

    assert not parsed.success
    assert parsed.artifacts == {"data-model.md": "# Model"}
    assert parsed.errors[0] == "Structured output missing required files"
    assert "Found files: data-model.md" in parsed.errors[1]


def test_parse_artifacts_rejects_empty_content() -> None:
    parsed = parse_artifacts(_json_artifacts(**{"PRD.md": ""}), ("PRD.md",))

    assert not parsed.success


def test_strip_code_fence_unwraps_single_block() -> None:
    assert strip_code_fence("```markdown\n# Title\nbody\n```") == "# Title\nbody"
    assert strip_code_fence("  plain text \n") == "plain text"


def test_context_documents_prefix_names() -> None:
    assert context_documents([("PRD.md", "body")]) == ["# PRD.md\n\nbody"]


@pytest.mark.asyncio
async def test_executor_renders_role_prompt_and_passes_inputs_as_context() -> None:
    generator = _ScriptedGenerator(deque([_json_artifacts(**{"PRD.md": "# PRD\n"})]))
    executor = GenerativePhaseExecutor(generator)

    output = await executor.execute(_context(**{"project-brief.md": "brief"}))

    assert output.artifacts == {"PRD.md": "# PRD\n"}
    assert output.format_retries == 0
    call = generator.calls[0]
    assert call.phase == Phase.SPEC_PM
    assert call.context_docs == ("# project-brief.md\n\nbrief",)
    assert "You are the Product Manager" in call.prompt
    assert "- PRD.md" in call.prompt


@pytest.mark.asyncio
async def test_executor_retries_with_format_instructions() -> None:
    generator = _ScriptedGenerator(
        deque(["I wrote the PRD in prose.", _json_artifacts(**{"PRD.md": "# PRD"})])
    )
    executor = GenerativePhaseExecutor(generator)

    output = await executor.execute(_context())

    assert output.artifacts == {"PRD.md": "# PRD"}
    assert output.format_retries == 1
    retry = generator.calls[1]
    assert "OUTPUT FORMAT REQUIREMENTS (Retry #1)" in retry.prompt
    assert retry.max_retries == 1


@pytest.mark.asyncio
async def test_executor_raises_after_format_retries_exhausted() -> None:
    generator = _ScriptedGenerator(
        deque(["prose", ProviderError("upstream down"), "still prose"])
    )
    executor = GenerativePhaseExecutor(generator, format_retries=2)

    with pytest.raises(ArtifactParseError) as excinfo:
        await executor.execute(_context())

    assert excinfo.value.phase == Phase.SPEC_PM
    assert excinfo.value.expected == ("PRD.md",)
    assert "after 2 retries" in excinfo.value.reason
    assert len(generator.calls) == 3


@pytest.mark.asyncio
async def test_prompt_override_is_used_verbatim() -> None:
    generator = _ScriptedGenerator(deque([_json_artifacts(**{"PRD.md": "# PRD"})]))
    spec = load_default_spec()
    context = PhaseRunContext(
        project_id="p",
        project_name="n",
        phase=spec.phase(Phase.SPEC_PM),
        prompt_override="CUSTOM PROMPT",
    )

    output = await GenerativePhaseExecutor(generator).execute(context)

    assert output.prompt == "CUSTOM PROMPT"
    assert generator.calls[0].prompt == "CUSTOM PROMPT"


def test_generative_registry_skips_engine_handled_phases() -> None:
    registry = PhaseExecutorRegistry.generative(load_default_spec(), _ScriptedGenerator(deque()))

    assert Phase.SPEC_PM in registry
    assert Phase.STACK_SELECTION not in registry
    assert Phase.AUTO_REMEDY not in registry
    assert Phase.DONE not in registry
    assert registry.get(Phase.DONE) is None


@pytest.mark.asyncio
async def test_regenerator_strips_fence_and_rejects_empty_output() -> None:
    request = RegenerationRequest(
        project_id="p",
        artifact_name="architecture.md",
        phase=Phase.SOLUTIONING,
        trigger_artifact="PRD.md",
        impact_level="HIGH",
        reason="Regenerated after HIGH impact change to PRD.md",
        current_content="# Old",
    )
    generator = _ScriptedGenerator(deque(["```markdown\n# New\n```", "   "]))
    regenerator = GenerativeArtifactRegenerator(generator)

    assert await regenerator.regenerate(request) == "# New"
    assert 'Regenerate the artifact "architecture.md"' in generator.calls[0].prompt
    assert "# Old" in generator.calls[0].prompt
    with pytest.raises(OrchestratorError, match="returned empty content"):
        await regenerator.regenerate(request)
