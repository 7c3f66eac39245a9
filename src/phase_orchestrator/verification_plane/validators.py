"""
phase-orchestrator — phase validators

File: src/phase_orchestrator/verification_plane/validators.py
Last updated: 2026-10-19

Purpose
- Produce one merged ``ValidationResult`` for a phase from artifact presence
  checks and the phase's configured validator implementations.

What should be included in this file
- ``ValidationIssue`` / ``ValidationResult`` data model.
- A registry of validator implementations keyed by ``implementation`` name.
- Merge rule: fail if any error, else warn if any warning, else pass.

Functional requirements
- Unknown validator name ⇒ error "Unknown validator: X".
- A validator raising ⇒ error "Validator X failed: msg"; siblings still run.
- Validators are pure functions over an artifact snapshot; they never read
  storage themselves.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Final

import yaml

from phase_orchestrator.config.schema import PhaseSpec, WorkflowSpec
from phase_orchestrator.utils.graphs import GraphCycleError, topological_order

DEFAULT_FRONTMATTER_FIELDS: Final[tuple[str, ...]] = ("title", "owner", "version", "date", "status")
DEFAULT_MIN_CONTENT_LENGTH: Final[int] = 100
PRESENCE_CHECK: Final[str] = "presence"

_FRONTMATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)
_TASK_HEADER_RE = re.compile(
    r"^#{1,3}\s+(?:Task\s+(?P<num>\d+(?:\.\d+)*)|(?P<tag>[A-Za-z]+-\d+(?:\.\d+)*))\b",
    re.MULTILINE | re.IGNORECASE,
)
_TASK_DEPENDS_RE = re.compile(r"(?:depends\s+on|dependencies?)\s*[:\s]\s*([^\n]+)", re.IGNORECASE)
_TASK_ID_RE = re.compile(r"[A-Za-z]*-?\d+(?:\.\d+)*")
_NONE_MARKERS: Final[frozenset[str]] = frozenset({"none", "n/a", "-", ""})


class ValidationStatus(StrEnum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class IssueSeverity(StrEnum):
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """One error or warning, optionally attributed to an artifact."""

    severity: IssueSeverity
    message: str
    phase: str
    artifact: str | None = None
    validator: str | None = None


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Merged validation outcome for one phase."""

    phase: str
    status: ValidationStatus
    checks: Mapping[str, ValidationStatus] = field(default_factory=dict)
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    @property
    def error_messages(self) -> tuple[str, ...]:
        return tuple(issue.message for issue in self.errors)

    @property
    def warning_messages(self) -> tuple[str, ...]:
        return tuple(issue.message for issue in self.warnings)

    @classmethod
    def merge(
        cls,
        phase: str,
        issues: Iterable[ValidationIssue],
        checks: Mapping[str, ValidationStatus] | None = None,
    ) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        for issue in issues:
            (errors if issue.severity is IssueSeverity.ERROR else warnings).append(issue)
        if errors:
            status = ValidationStatus.FAIL
        elif warnings:
            status = ValidationStatus.WARN
        else:
            status = ValidationStatus.PASS
        return cls(
            phase=phase,
            status=status,
            checks=MappingProxyType(dict(checks or {})),
            errors=tuple(errors),
            warnings=tuple(warnings),
        )


@dataclass(frozen=True, slots=True)
class ValidationContext:
    """Snapshot a validator runs against.

    ``artifacts`` maps artifact name to content for every artifact available
    to the project so far; ``approved_gates`` holds granted gate names.
    """

    phase: PhaseSpec
    artifacts: Mapping[str, str]
    approved_gates: frozenset[str] = frozenset()

    def content(self, name: str) -> str | None:
        return self.artifacts.get(name)

    def markdown_outputs(self) -> tuple[str, ...]:
        return tuple(name for name in self.phase.outputs if name.lower().endswith(".md"))


class _IssueSink:
    def __init__(self, context: ValidationContext, validator: str) -> None:
        self._phase = context.phase.name
        self._validator = validator
        self.issues: list[ValidationIssue] = []

    def error(self, message: str, *, artifact: str | None = None) -> None:
        self.issues.append(
            ValidationIssue(IssueSeverity.ERROR, message, self._phase, artifact, self._validator)
        )

    def warning(self, message: str, *, artifact: str | None = None) -> None:
        self.issues.append(
            ValidationIssue(IssueSeverity.WARNING, message, self._phase, artifact, self._validator)
        )

    def add(self, severity: str, message: str, *, artifact: str | None = None) -> None:
        if severity == IssueSeverity.WARNING:
            self.warning(message, artifact=artifact)
        else:
            self.error(message, artifact=artifact)


ValidatorFn = Callable[[ValidationContext, Mapping[str, Any], _IssueSink], None]


def check_presence(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    for name in _names(params.get("artifacts")) or context.phase.outputs:
        content = context.content(name)
        if content is None or not content.strip():
            sink.error(f"Required file missing: {name}", artifact=name)


def check_frontmatter(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    required = _names(params.get("required_fields")) or DEFAULT_FRONTMATTER_FIELDS
    for name in _names(params.get("artifacts")) or context.markdown_outputs():
        content = context.content(name)
        if content is None:
            continue
        frontmatter = extract_frontmatter(content)
        for field_name in required:
            if not frontmatter or not frontmatter.get(field_name):
                sink.error(f"{name} missing frontmatter field: {field_name}", artifact=name)


def check_content_length(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    min_length = int(params.get("min_length", DEFAULT_MIN_CONTENT_LENGTH))
    for name in _names(params.get("artifacts")) or context.markdown_outputs():
        content = context.content(name)
        if content is None:
            continue
        length = len(re.sub(r"\s", "", content))
        if length < min_length:
            sink.error(f"{name} content too short: {length} chars (min {min_length})", artifact=name)


def check_gate(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    gate = str(params.get("gate", "")).strip()
    if not gate:
        raise ValueError("gate_check requires a 'gate' parameter")
    if gate not in context.approved_gates:
        sink.error(f"Approval gate not granted: {gate}")


def check_openapi(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    name = str(params.get("artifact", "api-spec.json"))
    content = _required_content(context, name, sink)
    if content is None:
        return
    try:
        document = json.loads(content)
    except json.JSONDecodeError as exc:
        sink.error(f"Invalid JSON in {name}: {exc}", artifact=name)
        return
    if not isinstance(document, dict):
        sink.error(f"{name} must be a JSON object", artifact=name)
        return
    version = document.get("openapi")
    if not isinstance(version, str) or not version.startswith("3."):
        sink.error("Missing or invalid OpenAPI version", artifact=name)
    if not document.get("info"):
        sink.error("Missing API info section", artifact=name)
    paths = document.get("paths")
    if not isinstance(paths, dict) or not paths:
        sink.error("No API paths defined", artifact=name)


def check_json_keys(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    name = str(params.get("artifact", ""))
    content = _required_content(context, name, sink)
    if content is None:
        return
    try:
        document = json.loads(content)
    except json.JSONDecodeError as exc:
        sink.error(f"{name} is not valid JSON: {exc}", artifact=name)
        return
    if not isinstance(document, dict):
        sink.error(f"{name} must be a JSON object", artifact=name)
        return
    for key in _names(params.get("required")):
        if key not in document:
            sink.error(f"{name} missing required field: {key}", artifact=name)


def check_task_graph(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    name = str(params.get("artifact", "tasks.md"))
    content = context.content(name)
    if content is None:
        sink.warning(f"{name} not found - skipping task dependency validation", artifact=name)
        return
    dependencies = parse_task_dependencies(content)
    if not any(dependencies.values()):
        sink.warning(f"No task dependencies found in {name}", artifact=name)
        return
    unknown = sorted(
        {dep for deps in dependencies.values() for dep in deps if dep not in dependencies}
    )
    if unknown:
        sink.warning(f"{name} references unknown tasks: {', '.join(unknown)}", artifact=name)
    known = {
        task: tuple(dep for dep in deps if dep in dependencies)
        for task, deps in dependencies.items()
    }
    try:
        topological_order(known)
    except GraphCycleError as exc:
        sink.error(f"Circular dependency detected: {' -> '.join(exc.remaining)}", artifact=name)


def check_pattern_count(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    name = str(params.get("artifact", ""))
    pattern = re.compile(str(params["pattern"]), re.MULTILINE)
    min_count = int(params.get("min_count", 1))
    content = _required_content(context, name, sink)
    if content is None:
        return
    count = len(set(pattern.findall(content))) if params.get("unique") else len(pattern.findall(content))
    if count < min_count:
        sink.add(
            str(params.get("severity", IssueSeverity.ERROR)),
            f"{name} has {count} match(es) for {pattern.pattern} (min {min_count})",
            artifact=name,
        )


def check_cross_references(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    source = str(params.get("source", ""))
    target = str(params.get("target", ""))
    pattern = re.compile(str(params["pattern"]))
    source_text = _required_content(context, source, sink)
    target_text = _required_content(context, target, sink)
    if source_text is None or target_text is None:
        return
    referenced = set(pattern.findall(target_text))
    missing = sorted(set(pattern.findall(source_text)) - referenced)
    for identifier in missing:
        sink.add(
            str(params.get("severity", IssueSeverity.WARNING)),
            f"{identifier} from {source} is not referenced in {target}",
            artifact=target,
        )


def check_handoff(context: ValidationContext, params: Mapping[str, Any], sink: _IssueSink) -> None:
    name = str(params.get("artifact", "HANDOFF.md"))
    content = _required_content(context, name, sink)
    if content is None:
        return
    headers = {header.lower() for header in extract_section_headers(content)}
    for section in _names(params.get("required_sections")):
        if section.lower() not in headers:
            sink.error(f"{name} missing section: {section}", artifact=name)


DEFAULT_VALIDATORS: Final[Mapping[str, ValidatorFn]] = MappingProxyType(
    {
        "file_exists_check": check_presence,
        "frontmatter_parser": check_frontmatter,
        "content_length_check": check_content_length,
        "gate_check": check_gate,
        "openapi_validator": check_openapi,
        "json_schema_check": check_json_keys,
        "dependency_graph_analysis": check_task_graph,
        "pattern_count_check": check_pattern_count,
        "cross_reference_check": check_cross_references,
        "handoff_validator": check_handoff,
    }
)


class ValidatorRegistry:
    """Maps validator ``implementation`` names to validator functions."""

    def __init__(self, implementations: Mapping[str, ValidatorFn] | None = None) -> None:
        self._implementations: dict[str, ValidatorFn] = dict(
            DEFAULT_VALIDATORS if implementations is None else implementations
        )

    def register(self, implementation: str, fn: ValidatorFn) -> None:
        self._implementations[implementation] = fn

    def get(self, implementation: str) -> ValidatorFn | None:
        return self._implementations.get(implementation)

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._implementations))

    def validate_phase(
        self,
        spec: WorkflowSpec,
        context: ValidationContext,
    ) -> ValidationResult:
        """Merge output presence checks with the phase's configured validators."""

        phase = context.phase
        issues: list[ValidationIssue] = []
        checks: dict[str, ValidationStatus] = {}

        presence = _IssueSink(context, PRESENCE_CHECK)
        check_presence(context, {}, presence)
        checks[PRESENCE_CHECK] = _status_of(presence.issues)
        issues.extend(presence.issues)

        for validator_name in phase.validators:
            sink = _IssueSink(context, validator_name)
            definition = spec.validators.get(validator_name)
            fn = self.get(definition.implementation) if definition is not None else None
            if definition is None or fn is None:
                sink.error(f"Unknown validator: {validator_name}")
            elif definition.implementation == "file_exists_check" and not definition.params:
                # Output presence already ran above.
                checks[validator_name] = checks[PRESENCE_CHECK]
                continue
            else:
                try:
                    fn(context, definition.params, sink)
                except Exception as exc:  # noqa: BLE001
                    sink.error(f"Validator {validator_name} failed: {exc}")
            checks[validator_name] = _status_of(sink.issues)
            issues.extend(sink.issues)

        return ValidationResult.merge(phase.name, _dedupe(issues), checks)


def extract_frontmatter(content: str) -> dict[str, Any] | None:
    """Return the leading YAML frontmatter block as a mapping, if any."""

    match = _FRONTMATTER_RE.match(content.lstrip("\ufeff"))
    if match is None:
        return None
    try:
        payload = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        return None
    return dict(payload) if isinstance(payload, Mapping) else None


def extract_section_headers(content: str) -> tuple[str, ...]:
    return tuple(
        match.group(2).strip()
        for match in re.finditer(r"^(#{1,6})\s+(.+?)\s*#*\s*$", content, re.MULTILINE)
    )


def parse_task_dependencies(content: str) -> dict[str, tuple[str, ...]]:
    """Parse ``## Task N.M`` blocks and their ``Depends on:`` lines."""

    headers = list(_TASK_HEADER_RE.finditer(content))
    dependencies: dict[str, tuple[str, ...]] = {}
    for index, header in enumerate(headers):
        task_id = header.group("num") or header.group("tag")
        end = headers[index + 1].start() if index + 1 < len(headers) else len(content)
        block = content[header.end() : end]
        depends = _TASK_DEPENDS_RE.search(block)
        deps: tuple[str, ...] = ()
        if depends is not None and depends.group(1).strip().lower() not in _NONE_MARKERS:
            deps = tuple(
                dict.fromkeys(
                    dep for dep in _TASK_ID_RE.findall(depends.group(1)) if dep != task_id
                )
            )
        dependencies[task_id] = deps
    return dependencies


def _required_content(context: ValidationContext, name: str, sink: _IssueSink) -> str | None:
    if not name:
        raise ValueError("validator requires an 'artifact' parameter")
    content = context.content(name)
    if content is None:
        sink.warning(f"{name} not available for validation", artifact=name)
    return content


def _names(value: object) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(item) for item in value)  # type: ignore[union-attr]


def _status_of(issues: Iterable[ValidationIssue]) -> ValidationStatus:
    severities = {issue.severity for issue in issues}
    if IssueSeverity.ERROR in severities:
        return ValidationStatus.FAIL
    if IssueSeverity.WARNING in severities:
        return ValidationStatus.WARN
    return ValidationStatus.PASS


def _dedupe(issues: Iterable[ValidationIssue]) -> list[ValidationIssue]:
    seen: set[tuple[IssueSeverity, str]] = set()
    unique: list[ValidationIssue] = []
    for issue in issues:
        key = (issue.severity, issue.message)
        if key in seen:
            continue
        seen.add(key)
        unique.append(issue)
    return unique


__all__ = [
    "DEFAULT_VALIDATORS",
    "IssueSeverity",
    "ValidationContext",
    "ValidationIssue",
    "ValidationResult",
    "ValidationStatus",
    "ValidatorFn",
    "ValidatorRegistry",
    "extract_frontmatter",
    "extract_section_headers",
    "parse_task_dependencies",
]
