from __future__ import annotations

import io
import json
from collections.abc import Iterator

import pytest
import structlog

from phase_orchestrator.observability.logging import (
    configure_logging,
    correlation_scope,
    redact_event,
    redact_text,
)


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


def test_redact_event_masks_sensitive_keys_but_keeps_token_counters() -> None:
    event = {
        "event": "generation_completed",
        "api_key": "abc123",
        "Authorization": "Bearer xyz",
        "total_tokens": 42,
        "nested": {"password": "hunter2", "phase": "SPEC_PM"},
        "flag_token": True,
    }

    redacted = redact_event(None, "info", dict(event))

    assert redacted["api_key"] == "***REDACTED***"
    assert redacted["Authorization"] == "***REDACTED***"
    assert redacted["total_tokens"] == 42
    assert redacted["nested"] == {"password": "***REDACTED***", "phase": "SPEC_PM"}
    assert redacted["flag_token"] is True


def test_redact_text_masks_inline_credentials() -> None:
    text = "api_key=sk-abcdefghijklmnop and Bearer abc.def token: zzz"

    redacted = redact_text(text)

    assert "sk-abcdefghijklmnop" not in redacted
    assert "abc.def" not in redacted
    assert "zzz" not in redacted
    assert redacted.count("***REDACTED***") >= 3


def test_configure_logging_emits_json_with_correlation_ids() -> None:
    stream = io.StringIO()
    configure_logging(level="INFO", json_output=True, stream=stream)
    logger = structlog.get_logger("test")

    with correlation_scope(project_id="proj-1", run_id=""):
        logger.info("phase_advanced", phase="SPEC_PM", secret="s3cr3t")
    logger.info("after_scope")

    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert lines[0]["event"] == "phase_advanced"
    assert lines[0]["project_id"] == "proj-1"
    assert "run_id" not in lines[0]
    assert lines[0]["secret"] == "***REDACTED***"
    assert lines[0]["level"] == "info"
    assert "project_id" not in lines[1]


def test_configure_logging_filters_below_level() -> None:
    stream = io.StringIO()
    configure_logging(level="WARNING", json_output=True, stream=stream)
    logger = structlog.get_logger("test")

    logger.info("quiet")
    logger.warning("loud")

    events = [json.loads(line)["event"] for line in stream.getvalue().splitlines()]
    assert events == ["loud"]
