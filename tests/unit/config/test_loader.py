from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from phase_orchestrator.config.loader import (
    WorkflowSpecLoader,
    default_spec_text,
    load_workflow_spec,
    load_yaml_mapping,
)
from phase_orchestrator.constants import DEFAULT_WORKFLOW_SPEC_ENV, ENVIRONMENT_ENV
from phase_orchestrator.errors import ConfigError

MINIMAL_SPEC = """
phases:
  ONE:
    outputs: [one.md]
    next_phase: TWO
  TWO:
    depends_on: [ONE]
"""


@dataclass(slots=True)
class FakeClock:
    current: float = 0.0

    def __call__(self) -> float:
        return self.current


def _write(tmp_path: Path, text: str, name: str = "workflow.yaml") -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_load_yaml_mapping_rejects_non_mappings() -> None:
    with pytest.raises(ConfigError, match="is empty"):
        load_yaml_mapping("", source="x.yaml")
    with pytest.raises(ConfigError, match="mapping at the top level"):
        load_yaml_mapping("- a\n- b\n", source="x.yaml")
    with pytest.raises(ConfigError, match="failed to parse YAML"):
        load_yaml_mapping("phases: [unclosed", source="x.yaml")


def test_load_workflow_spec_reads_file(tmp_path: Path) -> None:
    spec = load_workflow_spec(_write(tmp_path, MINIMAL_SPEC))

    assert tuple(spec.phases) == ("ONE", "TWO")


def test_load_workflow_spec_missing_file_is_config_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_workflow_spec(tmp_path / "missing.yaml")


def test_loader_without_path_uses_packaged_default() -> None:
    loader = WorkflowSpecLoader(environ={})

    spec = loader.spec

    assert loader.used_fallback is True
    assert spec.first_phase == "ANALYSIS"
    assert "phases:" in default_spec_text()


def test_loader_falls_back_when_file_is_invalid(tmp_path: Path) -> None:
    loader = WorkflowSpecLoader(_write(tmp_path, "phases: {}\n"), environ={})

    assert loader.spec.first_phase == "ANALYSIS"
    assert loader.used_fallback is True


def test_undecodable_file_is_config_error(tmp_path: Path) -> None:
    path = tmp_path / "workflow.yaml"
    path.write_bytes(b"\xff\xfe\x00bad")

    with pytest.raises(ConfigError, match="cannot read"):
        load_workflow_spec(path)


def test_loader_falls_back_when_file_is_not_utf8(tmp_path: Path) -> None:
    path = tmp_path / "workflow.yaml"
    path.write_bytes(b"\xff\xfe\x00bad")

    loader = WorkflowSpecLoader(path, environ={})

    assert loader.spec.first_phase == "ANALYSIS"
    assert loader.used_fallback is True


def test_loader_reads_path_from_environment(tmp_path: Path) -> None:
    path = _write(tmp_path, MINIMAL_SPEC)
    loader = WorkflowSpecLoader(environ={DEFAULT_WORKFLOW_SPEC_ENV: str(path)})

    assert loader.path == path
    assert loader.spec.first_phase == "ONE"
    assert loader.used_fallback is False


def test_reload_waits_for_interval_outside_production(tmp_path: Path) -> None:
    path = _write(tmp_path, MINIMAL_SPEC)
    clock = FakeClock()
    loader = WorkflowSpecLoader(path, reload_interval_seconds=5.0, clock=clock, environ={})
    first = loader.load()

    path.write_text(MINIMAL_SPEC.replace("ONE", "FIRST"), encoding="utf-8")
    clock.current = 4.0
    assert loader.reload() is first

    clock.current = 5.0
    reloaded = loader.reload()
    assert reloaded.first_phase == "FIRST"


def test_reload_is_disabled_in_production_unless_forced(tmp_path: Path) -> None:
    path = _write(tmp_path, MINIMAL_SPEC)
    clock = FakeClock()
    loader = WorkflowSpecLoader(path, clock=clock, environ={ENVIRONMENT_ENV: "Production"})
    first = loader.load()
    path.write_text(MINIMAL_SPEC.replace("ONE", "FIRST"), encoding="utf-8")
    clock.current = 1_000.0

    assert loader.environment == "production"
    assert loader.reload() is first
    assert loader.reload(force=True).first_phase == "FIRST"


def test_negative_reload_interval_rejected() -> None:
    with pytest.raises(ValueError):
        WorkflowSpecLoader(reload_interval_seconds=-1, environ={})
