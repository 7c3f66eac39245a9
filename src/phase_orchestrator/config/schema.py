"""
phase-orchestrator — workflow specification schema.

File: src/phase_orchestrator/config/schema.py
Last updated: 2026-10-19

Purpose
- Parse the raw workflow mapping (phases, roles, validators, gates, critics,
  generation defaults) into immutable typed objects.

Functional requirements
- Every ``depends_on`` / ``next_phase`` reference resolves to a known phase.
- The ``depends_on`` graph is acyclic; a phase whose ``next_phase`` is itself
  is terminal.
- A phase entry without ``name`` takes its mapping key.

Non-functional requirements
- Parse once, never re-validate: consumers receive frozen dataclasses.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Final

from phase_orchestrator.errors import ConfigError, UnknownPhaseError
from phase_orchestrator.utils.graphs import GraphCycleError, topological_order

_EMPTY: Final[Mapping[str, Any]] = MappingProxyType({})


def _str(value: object, path: str, *, default: str | None = None) -> str:
    if value is None and default is not None:
        return default
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{path} must be a non-empty string")
    return value.strip()


def _str_tuple(value: object, path: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (_str(value, path),)
    if not isinstance(value, Sequence):
        raise ConfigError(f"{path} must be a string or list of strings")
    return tuple(_str(item, f"{path}[{index}]") for index, item in enumerate(value))


def _number(value: object, path: str, *, default: float, minimum: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{path} must be a number")
    if value < minimum:
        raise ConfigError(f"{path} must be >= {minimum:g}")
    return float(value)


def _int(value: object, path: str, *, default: int, minimum: int = 0) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{path} must be an integer")
    if value < minimum:
        raise ConfigError(f"{path} must be >= {minimum}")
    return value


def _mapping(value: object, path: str) -> Mapping[str, Any]:
    if value is None:
        return _EMPTY
    if not isinstance(value, Mapping):
        raise ConfigError(f"{path} must be a mapping")
    return value


@dataclass(frozen=True, slots=True)
class PhaseSpec:
    """Static declaration of one pipeline phase."""

    name: str
    description: str
    owners: tuple[str, ...]
    duration_minutes: int
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]
    depends_on: tuple[str, ...]
    gates: tuple[str, ...]
    validators: tuple[str, ...]
    next_phase: str

    @property
    def owner(self) -> str:
        """Primary owning role."""

        return self.owners[0]

    @property
    def is_terminal(self) -> bool:
        return self.next_phase == self.name


@dataclass(frozen=True, slots=True)
class AgentSpec:
    name: str
    role: str
    perspective: str
    responsibilities: tuple[str, ...]
    prompt_template: str


@dataclass(frozen=True, slots=True)
class ValidatorSpec:
    """Validator registry entry: implementation name plus its parameters."""

    name: str
    implementation: str
    description: str = ""
    params: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GateDefinition:
    name: str
    phase: str
    blocking: bool
    stakeholder_role: str = ""
    description: str = ""
    auto_approve_threshold: float | None = None


@dataclass(frozen=True, slots=True)
class CriticAssignment:
    """Which critic persona reviews a phase and how many reruns it may request."""

    phase: str
    persona: str
    max_regenerations: int = 2
    enabled: bool = True


@dataclass(frozen=True, slots=True)
class RateLimitConfig:
    requests_per_minute: float = 60.0
    max_concurrent: int = 4

    @property
    def min_interval_seconds(self) -> float:
        if self.requests_per_minute <= 0:
            return 0.0
        return 60.0 / self.requests_per_minute


@dataclass(frozen=True, slots=True)
class PhaseOverride:
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None


@dataclass(frozen=True, slots=True)
class GenerationSettings:
    """Effective generation parameters for one call."""

    model: str
    max_tokens: int
    temperature: float
    top_p: float | None
    timeout_seconds: float


@dataclass(frozen=True, slots=True)
class GenerationConfig:
    """Generation defaults with per-phase overrides."""

    provider: str = "gemini"
    model: str = "gemini-2.5-flash"
    max_tokens: int = 8192
    temperature: float = 0.7
    top_p: float | None = None
    timeout_seconds: float = 120.0
    max_retries: int = 3
    max_continuations: int = 3
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    phase_overrides: Mapping[str, PhaseOverride] = field(default_factory=dict)

    def for_phase(self, phase: str | None) -> GenerationSettings:
        override = self.phase_overrides.get(phase) if phase else None
        if override is None:
            override = PhaseOverride()
        return GenerationSettings(
            model=self.model,
            max_tokens=override.max_tokens if override.max_tokens is not None else self.max_tokens,
            temperature=(
                override.temperature if override.temperature is not None else self.temperature
            ),
            top_p=override.top_p if override.top_p is not None else self.top_p,
            timeout_seconds=self.timeout_seconds,
        )


@dataclass(frozen=True, slots=True)
class WorkflowSpec:
    """Immutable, fully resolved workflow specification."""

    phases: Mapping[str, PhaseSpec]
    agents: Mapping[str, AgentSpec] = field(default_factory=dict)
    validators: Mapping[str, ValidatorSpec] = field(default_factory=dict)
    gates: Mapping[str, GateDefinition] = field(default_factory=dict)
    critics: Mapping[str, CriticAssignment] = field(default_factory=dict)
    generation: GenerationConfig = field(default_factory=GenerationConfig)

    def has_phase(self, name: str) -> bool:
        return name in self.phases

    def phase(self, name: str) -> PhaseSpec:
        try:
            return self.phases[name]
        except KeyError:
            raise UnknownPhaseError(name) from None

    @property
    def first_phase(self) -> str:
        return next(iter(self.phases))

    def phase_sequence(self, start: str | None = None) -> tuple[str, ...]:
        """Follow ``next_phase`` links from ``start`` until the terminal phase."""

        current = self.phase(start or self.first_phase)
        sequence = [current.name]
        while not current.is_terminal:
            current = self.phase(current.next_phase)
            if current.name in sequence:
                break
            sequence.append(current.name)
        return tuple(sequence)

    def producer_of(self, artifact: str) -> str | None:
        """Return the phase that declares ``artifact`` as an output."""

        for phase in self.phases.values():
            if artifact in phase.outputs:
                return phase.name
        return None

    def gates_for_phase(self, phase: str) -> tuple[GateDefinition, ...]:
        return tuple(gate for gate in self.gates.values() if gate.phase == phase)


def parse_workflow_spec(raw: Mapping[str, Any]) -> WorkflowSpec:
    """Parse a raw workflow mapping into a :class:`WorkflowSpec`."""

    if not isinstance(raw, Mapping):
        raise ConfigError("workflow specification must be a mapping")
    raw_phases = _mapping(raw.get("phases"), "phases")
    if not raw_phases:
        raise ConfigError("workflow specification must declare at least one phase")

    phases: dict[str, PhaseSpec] = {}
    for key, entry in raw_phases.items():
        phases[str(key)] = _parse_phase(str(key), _mapping(entry, f"phases.{key}"))

    _check_references(phases)

    agents = {
        str(name): _parse_agent(str(name), _mapping(entry, f"agents.{name}"))
        for name, entry in _mapping(raw.get("agents"), "agents").items()
    }
    validators = {
        str(name): _parse_validator(str(name), _mapping(entry, f"validators.{name}"))
        for name, entry in _mapping(raw.get("validators"), "validators").items()
    }
    gates = {
        str(name): _parse_gate(str(name), _mapping(entry, f"gates.{name}"), phases)
        for name, entry in _mapping(raw.get("gates"), "gates").items()
    }
    critics = {
        str(phase): _parse_critic(str(phase), _mapping(entry, f"critics.{phase}"), phases)
        for phase, entry in _mapping(raw.get("critics"), "critics").items()
    }
    generation = _parse_generation(_mapping(raw.get("llm_config"), "llm_config"))

    return WorkflowSpec(
        phases=MappingProxyType(phases),
        agents=MappingProxyType(agents),
        validators=MappingProxyType(validators),
        gates=MappingProxyType(gates),
        critics=MappingProxyType(critics),
        generation=generation,
    )


def _parse_phase(key: str, entry: Mapping[str, Any]) -> PhaseSpec:
    path = f"phases.{key}"
    name = _str(entry.get("name"), f"{path}.name", default=key)
    if name != key:
        raise ConfigError(f"{path}.name must match its key, got {name!r}")
    owners = _str_tuple(entry.get("owner"), f"{path}.owner")
    return PhaseSpec(
        name=name,
        description=_str(entry.get("description"), f"{path}.description", default=name),
        owners=owners or ("orchestrator",),
        duration_minutes=_int(entry.get("duration_minutes"), f"{path}.duration_minutes", default=0),
        inputs=_str_tuple(entry.get("inputs"), f"{path}.inputs"),
        outputs=_str_tuple(entry.get("outputs"), f"{path}.outputs"),
        depends_on=_str_tuple(entry.get("depends_on"), f"{path}.depends_on"),
        gates=_str_tuple(entry.get("gates"), f"{path}.gates"),
        validators=_str_tuple(entry.get("validators"), f"{path}.validators"),
        next_phase=_str(entry.get("next_phase"), f"{path}.next_phase", default=name),
    )


def _check_references(phases: Mapping[str, PhaseSpec]) -> None:
    for phase in phases.values():
        if phase.next_phase not in phases:
            raise ConfigError(f"phases.{phase.name}.next_phase references unknown phase {phase.next_phase}")
        for dependency in phase.depends_on:
            if dependency not in phases:
                raise ConfigError(f"phases.{phase.name}.depends_on references unknown phase {dependency}")
    try:
        topological_order({name: phase.depends_on for name, phase in phases.items()})
    except GraphCycleError as exc:
        raise ConfigError(f"phases.depends_on {exc}") from exc

    # The next_phase chain may only loop through a terminal self-reference.
    for start in phases:
        seen = {start}
        current = phases[start]
        while not current.is_terminal:
            current = phases[current.next_phase]
            if current.name in seen:
                raise ConfigError(f"phases.{start}.next_phase chain contains a cycle at {current.name}")
            seen.add(current.name)


def _parse_agent(name: str, entry: Mapping[str, Any]) -> AgentSpec:
    path = f"agents.{name}"
    role = _str(entry.get("role"), f"{path}.role", default=name)
    return AgentSpec(
        name=name,
        role=role,
        perspective=_str(entry.get("perspective"), f"{path}.perspective", default=role),
        responsibilities=_str_tuple(entry.get("responsibilities"), f"{path}.responsibilities"),
        prompt_template=_str(
            entry.get("prompt_template"), f"{path}.prompt_template", default=f"You are a {role}."
        ),
    )


def _parse_validator(name: str, entry: Mapping[str, Any]) -> ValidatorSpec:
    path = f"validators.{name}"
    params = {
        str(key): value
        for key, value in entry.items()
        if key not in {"implementation", "description"}
    }
    return ValidatorSpec(
        name=name,
        implementation=_str(entry.get("implementation"), f"{path}.implementation"),
        description=str(entry.get("description") or ""),
        params=MappingProxyType(params),
    )


def _parse_gate(
    name: str, entry: Mapping[str, Any], phases: Mapping[str, PhaseSpec]
) -> GateDefinition:
    path = f"gates.{name}"
    phase = _str(entry.get("phase"), f"{path}.phase")
    if phase not in phases:
        raise ConfigError(f"{path}.phase references unknown phase {phase}")
    threshold = entry.get("auto_approve_threshold")
    return GateDefinition(
        name=name,
        phase=phase,
        blocking=bool(entry.get("blocking", False)),
        stakeholder_role=str(entry.get("stakeholder_role") or ""),
        description=str(entry.get("description") or ""),
        auto_approve_threshold=(
            None
            if threshold is None
            else _number(threshold, f"{path}.auto_approve_threshold", default=0.0)
        ),
    )


def _parse_critic(
    phase: str, entry: Mapping[str, Any], phases: Mapping[str, PhaseSpec]
) -> CriticAssignment:
    path = f"critics.{phase}"
    if phase not in phases:
        raise ConfigError(f"{path} references unknown phase {phase}")
    return CriticAssignment(
        phase=phase,
        persona=_str(entry.get("persona"), f"{path}.persona"),
        max_regenerations=_int(
            entry.get("max_regenerations"), f"{path}.max_regenerations", default=2
        ),
        enabled=bool(entry.get("enabled", True)),
    )


def _parse_generation(entry: Mapping[str, Any]) -> GenerationConfig:
    defaults = GenerationConfig()
    rate = _mapping(entry.get("rate_limit"), "llm_config.rate_limit")
    overrides: dict[str, PhaseOverride] = {}
    for phase, raw_override in _mapping(entry.get("phase_overrides"), "llm_config.phase_overrides").items():
        path = f"llm_config.phase_overrides.{phase}"
        override = _mapping(raw_override, path)
        overrides[str(phase)] = PhaseOverride(
            temperature=(
                None
                if override.get("temperature") is None
                else _number(override["temperature"], f"{path}.temperature", default=0.0)
            ),
            max_tokens=(
                None
                if override.get("max_tokens") is None
                else _int(override["max_tokens"], f"{path}.max_tokens", default=1, minimum=1)
            ),
            top_p=(
                None
                if override.get("top_p") is None
                else _number(override["top_p"], f"{path}.top_p", default=1.0)
            ),
        )
    top_p = entry.get("top_p")
    return GenerationConfig(
        provider=_str(entry.get("provider"), "llm_config.provider", default=defaults.provider),
        model=_str(entry.get("model"), "llm_config.model", default=defaults.model),
        max_tokens=_int(
            entry.get("max_tokens"), "llm_config.max_tokens", default=defaults.max_tokens, minimum=1
        ),
        temperature=_number(
            entry.get("temperature"), "llm_config.temperature", default=defaults.temperature
        ),
        top_p=None if top_p is None else _number(top_p, "llm_config.top_p", default=1.0),
        timeout_seconds=_number(
            entry.get("timeout_seconds"),
            "llm_config.timeout_seconds",
            default=defaults.timeout_seconds,
        ),
        max_retries=_int(
            entry.get("max_retries"), "llm_config.max_retries", default=defaults.max_retries
        ),
        max_continuations=_int(
            entry.get("max_continuations"),
            "llm_config.max_continuations",
            default=defaults.max_continuations,
        ),
        rate_limit=RateLimitConfig(
            requests_per_minute=_number(
                rate.get("requests_per_minute"),
                "llm_config.rate_limit.requests_per_minute",
                default=60.0,
            ),
            max_concurrent=_int(
                rate.get("max_concurrent"),
                "llm_config.rate_limit.max_concurrent",
                default=4,
                minimum=1,
            ),
        ),
        phase_overrides=MappingProxyType(overrides),
    )


__all__ = [
    "AgentSpec",
    "CriticAssignment",
    "GateDefinition",
    "GenerationConfig",
    "GenerationSettings",
    "PhaseOverride",
    "PhaseSpec",
    "RateLimitConfig",
    "ValidatorSpec",
    "WorkflowSpec",
    "parse_workflow_spec",
]
