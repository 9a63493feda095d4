"""Dependency-graph planning helpers."""

from forge_coordinator.planning.dependency_graph import (
    DependencyGraph,
    GraphDiagnostics,
    GraphValidationError,
)

__all__ = ["DependencyGraph", "GraphDiagnostics", "GraphValidationError"]
