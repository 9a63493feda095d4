"""Plain-text output for ``forge plan`` and ``forge config``.

Output is deterministic so that it can be asserted in tests and piped into
other tools. Colour is used only for warnings on a TTY, and ``NO_COLOR`` or
``--no-color`` turn it off. Live coordinator traffic goes through the rich
console transport instead.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from forge_coordinator.domain.models import BuildSnapshot
    from forge_coordinator.planning.dependency_graph import GraphDiagnostics

_YELLOW = "\033[33m"
_RESET = "\033[0m"
_INDENT = "  "


def format_table(headers: Sequence[str], rows: Iterable[Sequence[object]]) -> list[str]:
    """Left-aligned columns separated by two spaces, with a dashed rule under the header."""

    cells = [[str(value) for value in row] for row in rows]
    widths = [
        max([len(header), *(len(row[index]) for row in cells if index < len(row))])
        for index, header in enumerate(headers)
    ]

    def line(values: Sequence[str]) -> str:
        padded = (
            (values[index] if index < len(values) else "").ljust(width)
            for index, width in enumerate(widths)
        )
        return _INDENT + "  ".join(padded).rstrip()

    return [line(headers), _INDENT + "  ".join("-" * width for width in widths)] + [
        line(row) for row in cells
    ]


class CLIRenderer:
    def __init__(
        self, *, no_color: bool = False, verbose: bool = False, stream: TextIO | None = None
    ) -> None:
        self.verbose = verbose
        self._stream = stream
        self.color = not no_color and not os.environ.get("NO_COLOR") and self._isatty()

    def _isatty(self) -> bool:
        isatty = getattr(self._out, "isatty", None)
        return bool(isatty and isatty())

    @property
    def _out(self) -> TextIO:
        # Resolved per call so pytest's capsys replacement of sys.stdout is honoured.
        return self._stream if self._stream is not None else sys.stdout

    def _emit(self, *lines: str) -> None:
        for entry in lines:
            print(entry, file=self._out)

    def text(self, line: str) -> None:
        self._emit(line)

    def kv(self, key: str, value: object) -> None:
        self._emit(f"{key}: {value}")

    def section(self, title: str) -> None:
        self._emit("", title)

    def items(self, entries: Iterable[str], *, prefix: str = "- ") -> None:
        self._emit(*(f"{_INDENT}{prefix}{entry}" for entry in entries))

    def warning(self, text: str) -> None:
        message = f"{_INDENT}Warning: {text}"
        self._emit(f"{_YELLOW}{message}{_RESET}" if self.color else message)

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[object]],
        *,
        title: str | None = None,
    ) -> None:
        """Print ``rows`` under ``title``; an empty table prints nothing."""

        if not rows:
            return
        if title:
            self.section(title)
        self._emit(*format_table(headers, rows))

    def build_plan(
        self,
        snapshot: BuildSnapshot,
        diagnostics: GraphDiagnostics,
        *,
        claimable: Sequence[str],
    ) -> None:
        self.kv("Build", snapshot.build_id)
        self.kv("Components", len(snapshot.components))
        self.table(
            ("NAME", "DEPENDS ON", "STATUS"),
            [
                (item.display_name, ", ".join(item.dependencies) or "-", item.status.value)
                for item in snapshot.components
            ],
            title="Components:",
        )

        self.section("Claimable now:")
        if claimable:
            self.items(claimable)
        else:
            self.text(f"{_INDENT}(none)")

        problems = () if diagnostics.ok else diagnostics.describe()
        if problems:
            self.section("Dependency graph problems:")
            for problem in problems:
                self.warning(problem)


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer", "format_table"]
