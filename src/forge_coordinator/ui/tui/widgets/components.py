"""Component table: one row per component with live lifecycle state."""

from __future__ import annotations

from typing import TYPE_CHECKING

from textual.widgets import DataTable

if TYPE_CHECKING:
    from forge_coordinator.domain.models import BuildSnapshot, ComponentSnapshot

_COLUMNS = ("component", "status", "assignee", "progress", "retries", "depends on")


class ComponentTable(DataTable[str]):
    """DataTable keyed by component key; rows are replaced on every refresh."""

    DEFAULT_CSS = """
    ComponentTable {
        height: auto;
        max-height: 50%;
    }
    """

    def __init__(self, **kwargs: object) -> None:
        super().__init__(cursor_type="row", zebra_stripes=True, **kwargs)  # type: ignore[arg-type]

    def update_from_snapshot(self, snapshot: BuildSnapshot) -> None:
        if not self.columns:
            for column in _COLUMNS:
                self.add_column(column, key=column)
        self.clear()
        for item in snapshot.components:
            self.add_row(*_row(item), key=item.key)

    def status_of(self, key: str) -> str:
        return str(self.get_cell(key, "status"))


def _row(item: ComponentSnapshot) -> tuple[str, ...]:
    progress = f"{item.progress_percent}%" if item.progress_percent is not None else "-"
    return (
        item.display_name,
        item.status.value,
        item.assignee or "-",
        progress,
        str(item.retry_count),
        ", ".join(item.dependencies) or "-",
    )


__all__ = ["ComponentTable"]
