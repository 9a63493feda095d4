"""Spec ingestion: load component definitions from disk."""

from forge_coordinator.spec_ingestion.loader import (
    ComponentManifest,
    SpecLoadError,
    load_component_specs,
    parse_component_markdown,
)

__all__ = [
    "ComponentManifest",
    "SpecLoadError",
    "load_component_specs",
    "parse_component_markdown",
]
