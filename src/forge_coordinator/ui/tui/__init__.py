"""Textual dashboard for the coordinator.

Exposes ``tui_available()`` and ``run_tui()`` for the CLI.
"""

from __future__ import annotations

import sys
from importlib.util import find_spec
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from forge_coordinator.spec_ingestion.loader import ComponentManifest


def tui_available() -> bool:
    """Return whether Textual is importable in this environment."""
    return find_spec("textual") is not None


def run_tui(manifest: ComponentManifest, **options: object) -> int:
    """Run the dashboard, or exit with code 2 and an install hint if unavailable."""
    if not tui_available():
        print("The dashboard requires textual. Install: pip install textual", file=sys.stderr)
        return 2

    from forge_coordinator.ui.tui.app import run_tui_app

    return run_tui_app(manifest, **options)


__all__ = ["run_tui", "tui_available"]
