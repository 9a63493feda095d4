"""Deterministic dependency-graph diagnostics for component builds."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class GraphDiagnostics:
    """Structural problems that leave components permanently unclaimable."""

    missing: tuple[tuple[str, str], ...] = ()
    cycles: tuple[tuple[str, ...], ...] = ()
    unreachable: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.missing and not self.cycles

    def describe(self) -> tuple[str, ...]:
        lines: list[str] = []
        for component, dependency in self.missing:
            lines.append(f"{component} depends on unknown component {dependency}")
        for cycle in self.cycles:
            lines.append("dependency cycle: " + " -> ".join(cycle))
        if self.unreachable:
            lines.append("never claimable: " + ", ".join(self.unreachable))
        return tuple(lines)


class GraphValidationError(ValueError):
    """Raised when strict validation finds missing references or cycles."""

    diagnostics: GraphDiagnostics

    def __init__(self, diagnostics: GraphDiagnostics) -> None:
        self.diagnostics = diagnostics
        problems = diagnostics.describe()
        preview = "; ".join(problems[:3])
        suffix = "..." if len(problems) > 3 else ""
        super().__init__(f"Dependency graph is invalid: {preview}{suffix}")


class DependencyGraph:
    """Flat name -> dependencies mapping with on-demand traversal."""

    __slots__ = ("_order", "_declared", "_edges")

    def __init__(self, dependencies: Mapping[str, Iterable[str]]) -> None:
        self._order: tuple[str, ...] = tuple(dependencies)
        self._declared: dict[str, tuple[str, ...]] = {
            node: tuple(deps) for node, deps in dependencies.items()
        }
        known = set(self._order)
        self._edges: dict[str, tuple[str, ...]] = {
            node: tuple(sorted({dep for dep in deps if dep in known}))
            for node, deps in self._declared.items()
        }

    @property
    def nodes(self) -> tuple[str, ...]:
        """Node IDs in insertion order."""
        return self._order

    def missing_references(self) -> tuple[tuple[str, str], ...]:
        """Return ``(component, dependency)`` pairs naming unknown components."""
        known = set(self._order)
        missing: list[tuple[str, str]] = []
        for node in self._order:
            for dep in self._declared[node]:
                if dep not in known:
                    missing.append((node, dep))
        return tuple(missing)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """
        Detect dependency cycles.

        Returns closed paths, e.g. ``("a", "b", "a")``; a self-dependency is ``("a", "a")``.
        """
        state: dict[str, int] = {}
        stack: list[str] = []
        stack_index: dict[str, int] = {}
        cycles: dict[tuple[str, ...], None] = {}

        for start in sorted(self._order):
            if state.get(start, 0) != 0:
                continue

            state[start] = 1
            stack.append(start)
            stack_index[start] = len(stack) - 1
            frames: list[tuple[str, Iterator[str]]] = [(start, iter(self._edges[start]))]

            while frames:
                node, dep_iter = frames[-1]

                try:
                    dep = next(dep_iter)
                except StopIteration:
                    frames.pop()
                    state[node] = 2
                    stack.pop()
                    del stack_index[node]
                    continue

                dep_state = state.get(dep, 0)
                if dep_state == 0:
                    state[dep] = 1
                    stack_index[dep] = len(stack)
                    stack.append(dep)
                    frames.append((dep, iter(self._edges[dep])))
                    continue

                if dep_state == 1:
                    cycle = tuple(stack[stack_index[dep] :] + [dep])
                    cycles[_canonicalize_cycle(cycle)] = None

        return tuple(sorted(cycles))

    def transitive_dependencies(self, node_id: str) -> tuple[str, ...]:
        """Return every known component ``node_id`` waits on, directly or not."""
        if node_id not in self._edges:
            raise KeyError(f"Unknown component: {node_id}")

        visited: set[str] = set()
        pending: list[str] = list(self._edges[node_id])
        while pending:
            node = pending.pop()
            if node in visited:
                continue
            visited.add(node)
            pending.extend(dep for dep in self._edges[node] if dep not in visited)
        return tuple(sorted(visited))

    def diagnose(self) -> GraphDiagnostics:
        """Collect missing references, cycles, and the components they strand."""
        missing = self.missing_references()
        cycles = self.detect_cycles()

        broken: set[str] = {node for node, _ in missing}
        for cycle in cycles:
            broken.update(cycle)

        unreachable: list[str] = []
        for node in self._order:
            if node in broken or broken.intersection(self.transitive_dependencies(node)):
                unreachable.append(node)

        return GraphDiagnostics(missing=missing, cycles=cycles, unreachable=tuple(unreachable))


def _canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
    if len(cycle) < 2:
        raise ValueError("Cycle path must contain at least two nodes.")

    core = tuple(cycle[:-1])
    if len(core) == 1:
        return (core[0], core[0])

    best = core
    for offset in range(1, len(core)):
        rotated = core[offset:] + core[:offset]
        if rotated < best:
            best = rotated

    return best + (best[0],)


__all__ = ["DependencyGraph", "GraphDiagnostics", "GraphValidationError"]
