"""Protocol codec public API."""

from forge_coordinator.protocol.codec import (
    GRAMMAR,
    parse_message,
    render_build_complete,
    render_message,
)

__all__ = ["GRAMMAR", "parse_message", "render_build_complete", "render_message"]
