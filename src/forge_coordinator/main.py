"""Process entrypoint for ``forge`` and ``python -m forge_coordinator``.

Every failure leaving the CLI is mapped onto ``ExitCode``. Known configuration and
spec failures print a one-line message; anything else prints its traceback.
"""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    SUCCESS = 0
    CONFIG_ERROR = 2
    SPEC_ERROR = 3
    INTERNAL_ERROR = 4


_EXIT_VALUES = frozenset(int(code) for code in ExitCode)


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    try:
        from forge_coordinator.ui import cli

        code: object = cli.run_cli(argv)
    except SystemExit as exit_request:
        code = exit_request.code
    except BaseException as exc:  # noqa: BLE001 - process boundary.
        routed = _route_exception(exc)
        if routed is ExitCode.INTERNAL_ERROR:
            traceback.print_exception(exc, file=sys.stderr)
        else:
            _stderr(str(exc).strip() or type(exc).__name__)
        return int(routed)
    return _as_exit_code(code)


def _as_exit_code(code: object) -> int:
    if code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(code, int) and code in _EXIT_VALUES:
        return code
    # sys.exit("message") style exits carry their message as the code.
    if isinstance(code, str) and code.strip():
        _stderr(code.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _routes() -> tuple[tuple[ExitCode, tuple[type[BaseException], ...]], ...]:
    from forge_coordinator.config import ConfigLoadError, ConfigValidationError
    from forge_coordinator.domain.registry import RegistryError
    from forge_coordinator.planning.dependency_graph import GraphValidationError
    from forge_coordinator.spec_ingestion.loader import SpecLoadError

    return (
        (ExitCode.CONFIG_ERROR, (ConfigLoadError, ConfigValidationError)),
        (ExitCode.SPEC_ERROR, (SpecLoadError, RegistryError, GraphValidationError)),
    )


def _route_exception(exc: BaseException) -> ExitCode:
    """Exit code for the first recognized exception along the cause/context chain."""

    routes = _routes()
    for link in _chain(exc):
        for code, kinds in routes:
            if isinstance(link, kinds):
                return code
    return ExitCode.INTERNAL_ERROR


def _chain(exc: BaseException) -> Iterator[BaseException]:
    visited: set[int] = set()
    link: BaseException | None = exc
    while link is not None and id(link) not in visited:
        visited.add(id(link))
        yield link
        if link.__cause__ is not None:
            link = link.__cause__
        elif link.__suppress_context__:
            link = None
        else:
            link = link.__context__


def _stderr(message: str) -> None:
    print(message.rstrip("\n"), file=sys.stderr)


__all__ = ["ExitCode", "cli_entrypoint"]
