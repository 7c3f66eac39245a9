"""
phase-orchestrator — process entrypoint

File: src/phase_orchestrator/main.py
Last updated: 2026-10-19

Purpose
- Run the CLI and translate its outcome into a stable process exit code.

Exit-code contract
- 0 success, 1 orchestration halted, 2 configuration or usage error,
  3 model provider failure, 4 anything unexpected (traceback printed).
- The exception chain (``__cause__`` then unsuppressed ``__context__``) is
  searched so wrapped failures keep their category.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING, Final

from phase_orchestrator import cli
from phase_orchestrator.errors import ConfigError, OrchestratorError, ProviderError

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    HALTED = 1
    CONFIG_ERROR = 2
    PROVIDER_ERROR = 3
    INTERNAL_ERROR = 4


# First match wins; ProviderError and ConfigError subclass OrchestratorError.
_ROUTES: Final[tuple[tuple[tuple[type[BaseException], ...], ExitCode], ...]] = (
    ((ConfigError, FileNotFoundError, PermissionError), ExitCode.CONFIG_ERROR),
    ((ProviderError,), ExitCode.PROVIDER_ERROR),
    ((OrchestratorError,), ExitCode.HALTED),
)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Console-script and ``python -m`` entrypoint; never raises."""

    try:
        raw = cli.run_cli(argv)
    except SystemExit as exc:
        raw = exc.code
    except Exception as exc:  # noqa: BLE001
        code = exit_code_for(exc)
        if code is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            print(str(exc).strip() or type(exc).__name__, file=sys.stderr)
        return int(code)

    if raw is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw, int) and raw in {code.value for code in ExitCode}:
        return raw
    if isinstance(raw, str) and raw.strip():
        print(raw.strip(), file=sys.stderr)
    return int(ExitCode.INTERNAL_ERROR)


def exit_code_for(exc: BaseException) -> ExitCode:
    for item in _causes(exc):
        for types, code in _ROUTES:
            if isinstance(item, types):
                return code
    return ExitCode.INTERNAL_ERROR


def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


__all__ = ["ExitCode", "cli_entrypoint", "exit_code_for"]
