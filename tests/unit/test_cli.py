from __future__ import annotations

import json
from collections.abc import Iterator

import pytest
import structlog

from phase_orchestrator import cli
from phase_orchestrator.errors import ConfigError, OrchestratorError, ProviderError
from phase_orchestrator.main import ExitCode, cli_entrypoint


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


def _json_out(capsys: pytest.CaptureFixture[str]) -> dict[str, object]:
    return json.loads(capsys.readouterr().out)


def test_phases_lists_sequence_from_start(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.run_cli(["phases", "--start", "VALIDATE", "--json"]) == 0

    payload = _json_out(capsys)
    phases = payload["phases"]
    assert isinstance(phases, list)
    assert [row["phase"] for row in phases] == ["VALIDATE", "AUTO_REMEDY", "DONE"]
    assert phases[0]["outputs"] == ["validation-report.md", "coverage-matrix.md"]


def test_phases_text_output_is_numbered(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.run_cli(["phases"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith(" 1. ANALYSIS")
    assert len(lines) == 12


def test_unknown_start_phase_is_a_config_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.run_cli(["phases", "--start", "NOPE"]) == 2

    assert "error: Unknown phase: NOPE" in capsys.readouterr().err


def test_affected_reports_blast_radius(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.run_cli(["affected", "SPEC_PM/PRD.md", "--json"]) == 0

    payload = _json_out(capsys)
    assert payload["recommended_strategy"] == "regenerate_all"
    affected = {item["artifact_id"]: item for item in payload["affected"]}  # type: ignore[union-attr]
    assert affected["SPEC_ARCHITECT/data-model.md"]["impact_level"] == "HIGH"
    assert affected["SPEC_ARCHITECT/data-model.md"]["depth"] == 0


def test_affected_leaf_artifact_recommends_ignore(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.run_cli(["affected", "HANDOFF.md", "--impact", "LOW"]) == 0

    out = capsys.readouterr().out
    assert "strategy: ignore" in out
    assert "no regeneration needed" in out


def test_classify_maps_failure_to_remediation(capsys: pytest.CaptureFixture[str]) -> None:
    assert (
        cli.run_cli(
            ["classify", "VALIDATE", "API references field owner_id not in data model", "--json"]
        )
        == 0
    )

    payload = _json_out(capsys)
    assert payload["type"] == "api_data_model_gap"
    assert payload["agent_to_rerun"] == "architect"
    assert payload["phase"] == "SPEC_ARCHITECT"
    assert payload["requires_manual_review"] is False


def test_entrypoint_returns_argparse_exit_code() -> None:
    assert cli_entrypoint(["no-such-command"]) == ExitCode.CONFIG_ERROR


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (ConfigError("bad spec"), ExitCode.CONFIG_ERROR),
        (ProviderError("quota exhausted"), ExitCode.PROVIDER_ERROR),
        (OrchestratorError("halted"), ExitCode.HALTED),
        (ValueError("boom"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_entrypoint_routes_exceptions_to_exit_codes(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    exc: Exception,
    expected: ExitCode,
) -> None:
    def _raise(argv: object = None) -> int:
        raise exc

    monkeypatch.setattr(cli, "run_cli", _raise)

    assert cli_entrypoint([]) == expected
    assert capsys.readouterr().err.strip()


def test_entrypoint_follows_exception_cause_chain(monkeypatch: pytest.MonkeyPatch) -> None:
    def _raise(argv: object = None) -> int:
        try:
            raise ProviderError("upstream 503", http_status=503)
        except ProviderError as inner:
            raise RuntimeError("wrapped") from inner

    monkeypatch.setattr(cli, "run_cli", _raise)

    assert cli_entrypoint([]) == ExitCode.PROVIDER_ERROR
