"""Structured logging setup on structlog with secret redaction and correlation ids."""

from __future__ import annotations

import logging
import re
import sys
from collections.abc import Iterator, Mapping, MutableMapping
from contextlib import contextmanager
from typing import Any, Final

import structlog

_REDACTED_VALUE: Final[str] = "***REDACTED***"

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
)

# Usage counters are numeric and never secret.
_SAFE_KEY_SUFFIXES: Final[tuple[str, ...]] = ("_tokens", "tokens_used", "token_count")

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_PROVIDER_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"\b(?:sk|AIza)[-_A-Za-z0-9]{12,}\b")


def _is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    if lowered.endswith(_SAFE_KEY_SUFFIXES):
        return False
    return any(term in lowered for term in _SENSITIVE_KEY_TERMS)


def redact_text(text: str) -> str:
    """Mask inline credentials in free text."""

    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", text
    )
    redacted = _BEARER_TOKEN_PATTERN.sub(f"Bearer {_REDACTED_VALUE}", redacted)
    return _PROVIDER_KEY_PATTERN.sub(_REDACTED_VALUE, redacted)


def _redact_value(key: str, value: object) -> object:
    if _is_sensitive_key(key) and value is not None and not isinstance(value, bool):
        return _REDACTED_VALUE
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, Mapping):
        return {str(k): _redact_value(str(k), v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_redact_value(key, item) for item in value]
    return value


def redact_event(
    _logger: object, _method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor that masks sensitive keys and inline secrets."""

    for key in list(event_dict):
        event_dict[key] = _redact_value(key, event_dict[key])
    return event_dict


def configure_logging(
    *,
    level: int | str = "INFO",
    json_output: bool = True,
    stream: Any = None,
) -> None:
    """Configure structlog for the whole process.

    Parameters
    ----------
    level:
        Minimum level name or number.
    json_output:
        Emit one JSON object per line; otherwise use the console renderer.
    stream:
        Output stream; defaults to ``sys.stderr``.
    """

    numeric_level = logging.getLevelName(level.upper()) if isinstance(level, str) else int(level)
    if not isinstance(numeric_level, int):
        raise ValueError(f"unknown log level: {level!r}")

    renderer: Any = (
        structlog.processors.JSONRenderer(sort_keys=True)
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_event,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        cache_logger_on_first_use=False,
    )


@contextmanager
def correlation_scope(**ids: str) -> Iterator[None]:
    """Bind correlation ids (``project_id``, ``run_id``) for the enclosed block."""

    cleaned = {key: value for key, value in ids.items() if value}
    tokens = structlog.contextvars.bind_contextvars(**cleaned)
    try:
        yield
    finally:
        structlog.contextvars.reset_contextvars(**tokens)


__all__ = [
    "configure_logging",
    "correlation_scope",
    "redact_event",
    "redact_text",
]
