"""Control plane: the coordination engine and its settings."""

from forge_coordinator.control_plane.engine import (
    Clock,
    CoordinationEngine,
    Deliver,
    EngineSettings,
    utc_now,
)

__all__ = ["Clock", "CoordinationEngine", "Deliver", "EngineSettings", "utc_now"]
