"""
phase-orchestrator — workflow specification loader.

File: src/phase_orchestrator/config/loader.py
Last updated: 2026-10-19

Purpose
- Load the workflow specification from YAML with a packaged fallback, and
  support time-boxed hot reload outside production.

What should be included in this file
- Path precedence: explicit argument > env (PHASE_ORCHESTRATOR_WORKFLOW_SPEC)
  > packaged ``default_workflow.yaml``.
- YAML loading via ``yaml.safe_load``.
- Explicit ``reload()`` driven by an injectable monotonic clock.

Functional requirements
- A missing, unparseable, or invalid external file never aborts: it is logged
  and the packaged default is used instead.
- The packaged default is the single source of truth for the fallback.

Non-functional requirements
- Deterministic; no hidden process-wide singleton.
"""

from __future__ import annotations

import os
import time
from collections.abc import Callable, Mapping
from importlib import resources
from pathlib import Path
from typing import Any, Final

import structlog
import yaml

from phase_orchestrator.config.schema import WorkflowSpec, parse_workflow_spec
from phase_orchestrator.constants import (
    DEFAULT_RELOAD_INTERVAL_SECONDS,
    DEFAULT_WORKFLOW_SPEC_ENV,
    ENVIRONMENT_ENV,
)
from phase_orchestrator.errors import ConfigError

DEFAULT_SPEC_RESOURCE: Final[str] = "default_workflow.yaml"
PRODUCTION: Final[str] = "production"

ClockFn = Callable[[], float]


def load_yaml_mapping(text: str, *, source: str) -> dict[str, Any]:
    """Parse YAML text into a mapping or raise :class:`ConfigError`."""

    try:
        payload = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse YAML in {source}: {exc}") from exc
    if payload is None:
        raise ConfigError(f"{source} is empty")
    if not isinstance(payload, Mapping):
        raise ConfigError(f"{source} must contain a YAML mapping at the top level")
    return dict(payload)


def default_spec_text() -> str:
    return (
        resources.files("phase_orchestrator.config")
        .joinpath(DEFAULT_SPEC_RESOURCE)
        .read_text(encoding="utf-8")
    )


def load_default_spec() -> WorkflowSpec:
    """Parse the packaged default workflow specification."""

    return parse_workflow_spec(load_yaml_mapping(default_spec_text(), source=DEFAULT_SPEC_RESOURCE))


def load_workflow_spec(path: str | Path) -> WorkflowSpec:
    """Strictly load one YAML file; errors raise :class:`ConfigError`."""

    resolved = Path(path).expanduser()
    try:
        text = resolved.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigError(f"cannot read workflow specification {resolved}: {exc}") from exc
    return parse_workflow_spec(load_yaml_mapping(text, source=str(resolved)))


class WorkflowSpecLoader:
    """Owns the current :class:`WorkflowSpec` and its reload policy."""

    def __init__(
        self,
        path: str | Path | None = None,
        *,
        environment: str | None = None,
        reload_interval_seconds: float = DEFAULT_RELOAD_INTERVAL_SECONDS,
        clock: ClockFn = time.monotonic,
        environ: Mapping[str, str] | None = None,
        logger: Any | None = None,
    ) -> None:
        if reload_interval_seconds < 0:
            raise ValueError("reload_interval_seconds must be >= 0")
        env_map = os.environ if environ is None else environ
        self._path = _resolve_spec_path(path, env_map)
        self._environment = (environment or env_map.get(ENVIRONMENT_ENV) or "development").lower()
        self._reload_interval = reload_interval_seconds
        self._clock = clock
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._spec: WorkflowSpec | None = None
        self._loaded_at: float | None = None
        self._used_fallback = False

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def environment(self) -> str:
        return self._environment

    @property
    def used_fallback(self) -> bool:
        """True when the current spec came from the packaged default."""

        return self._used_fallback

    @property
    def spec(self) -> WorkflowSpec:
        if self._spec is None:
            return self.load()
        return self._spec

    def load(self) -> WorkflowSpec:
        """Load (or re-load) the specification now."""

        spec, used_fallback = self._read()
        self._spec = spec
        self._used_fallback = used_fallback
        self._loaded_at = self._clock()
        self._logger.info(
            "workflow_spec_loaded",
            path=str(self._path) if self._path is not None else DEFAULT_SPEC_RESOURCE,
            phases=len(spec.phases),
            fallback=used_fallback,
        )
        return spec

    def reload(self, *, force: bool = False) -> WorkflowSpec:
        """Re-read the file when allowed; always return the current spec.

        Outside production a reload happens once ``reload_interval_seconds``
        have elapsed since the last load. ``force`` bypasses both checks.
        """

        if self._spec is None or self._loaded_at is None:
            return self.load()
        if not force:
            if self._environment == PRODUCTION:
                return self._spec
            if self._clock() - self._loaded_at < self._reload_interval:
                return self._spec
        return self.load()

    def _read(self) -> tuple[WorkflowSpec, bool]:
        if self._path is None:
            return load_default_spec(), True
        try:
            return load_workflow_spec(self._path), False
        except ConfigError as exc:
            self._logger.warning(
                "workflow_spec_fallback",
                path=str(self._path),
                reason=exc.reason,
            )
            return load_default_spec(), True


def _resolve_spec_path(path: str | Path | None, environ: Mapping[str, str]) -> Path | None:
    if path is not None:
        return Path(path).expanduser()
    env_value = environ.get(DEFAULT_WORKFLOW_SPEC_ENV, "").strip()
    if env_value:
        return Path(env_value).expanduser()
    return None


__all__ = [
    "DEFAULT_SPEC_RESOURCE",
    "WorkflowSpecLoader",
    "default_spec_text",
    "load_default_spec",
    "load_workflow_spec",
    "load_yaml_mapping",
]
