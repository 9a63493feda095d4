"""Component registry: the build aggregate and its dependency queries."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import UTC, datetime

from forge_coordinator.domain.models import (
    BuildSnapshot,
    Component,
    ComponentSpec,
    ComponentStatus,
    normalize_name,
)
from forge_coordinator.planning.dependency_graph import DependencyGraph, GraphDiagnostics


class RegistryError(ValueError):
    """Raised when construction input violates registry invariants."""


class ComponentRegistry:
    """Fixed set of components keyed by case-folded name, in insertion order.

    The registry never gains or loses components after construction. Queries are
    recomputed on every call so they reflect the instant they are made.
    """

    __slots__ = ("_build_id", "_started_at", "_components")

    def __init__(
        self,
        build_id: str,
        specs: Iterable[ComponentSpec],
        *,
        started_at: datetime | None = None,
    ) -> None:
        if not isinstance(build_id, str) or not build_id.strip():
            raise RegistryError("build_id must be a non-empty string")
        self._build_id = build_id.strip()
        self._started_at = started_at if started_at is not None else datetime.now(UTC)
        self._components: dict[str, Component] = {}

        for spec in specs:
            component = Component.from_spec(spec)
            if component.key in self._components:
                raise RegistryError(f"duplicate component name: {spec.name!r}")
            self._components[component.key] = component

    @property
    def build_id(self) -> str:
        return self._build_id

    @property
    def started_at(self) -> datetime:
        return self._started_at

    def __len__(self) -> int:
        return len(self._components)

    def __iter__(self) -> Iterator[Component]:
        return iter(self._components.values())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def get(self, name: str) -> Component | None:
        """Look up a component by case-insensitive name."""
        try:
            key = normalize_name(name)
        except ValueError:
            return None
        return self._components.get(key)

    def unmet_dependencies(self, name: str) -> tuple[str, ...]:
        """Dependencies that are missing or not yet merged, in declared order."""
        component = self._require(name)
        unmet: list[str] = []
        for dep_name in component.dependencies:
            dep = self._components.get(dep_name)
            if dep is None or dep.status is not ComponentStatus.MERGED:
                unmet.append(dep_name)
        return tuple(unmet)

    def dependencies_satisfied(self, name: str) -> bool:
        """True iff every dependency exists and is merged; unknown names fail closed."""
        return not self.unmet_dependencies(name)

    def claimable(self) -> tuple[Component, ...]:
        """Pending components whose dependencies are all merged, in registry order."""
        return tuple(
            component
            for component in self._components.values()
            if component.status is ComponentStatus.PENDING
            and self.dependencies_satisfied(component.key)
        )

    def is_complete(self) -> bool:
        return all(c.status is ComponentStatus.MERGED for c in self._components.values())

    def diagnose(self) -> GraphDiagnostics:
        """Report dependency references and cycles that can never be satisfied."""
        graph = DependencyGraph({key: c.dependencies for key, c in self._components.items()})
        return graph.diagnose()

    def snapshot(self) -> BuildSnapshot:
        return BuildSnapshot(
            build_id=self._build_id,
            started_at=self._started_at,
            components=tuple(c.snapshot() for c in self._components.values()),
        )

    def _require(self, name: str) -> Component:
        component = self.get(name)
        if component is None:
            raise KeyError(f"Unknown component: {name}")
        return component


__all__ = ["ComponentRegistry", "RegistryError"]
