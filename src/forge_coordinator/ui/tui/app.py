"""Coordinator dashboard: a Textual App around one ``CoordinationEngine``.

Layout: component table on top, channel transcript below, command input at the
bottom. Typed ``@agent message`` lines go to the engine; outbound messages are
appended to the transcript. Timeout sweeps run on the app's own message loop via
``set_interval`` so they never interleave with inbound handling.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Footer, Header, Input

from forge_coordinator.constants import (
    DEFAULT_CHANNEL,
    DEFAULT_SENDER_PREFIX,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
)
from forge_coordinator.control_plane.engine import CoordinationEngine, EngineSettings
from forge_coordinator.transport.console import parse_sender_line
from forge_coordinator.ui.tui.widgets.components import ComponentTable
from forge_coordinator.ui.tui.widgets.transcript import LineKind, TranscriptWidget

if TYPE_CHECKING:
    from forge_coordinator.control_plane.engine import Clock
    from forge_coordinator.spec_ingestion.loader import ComponentManifest

_CSS = """
#body { height: 1fr; }
#components { border-bottom: solid $accent; }
#command-input { dock: bottom; }
"""


class CoordinatorApp(App[int]):
    """Interactive coordinator for a single build."""

    TITLE = "forge coordinator"
    CSS = _CSS
    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", show=True),
        Binding("ctrl+s", "sweep", "Sweep now", show=True),
    ]

    def __init__(
        self,
        manifest: ComponentManifest,
        *,
        settings: EngineSettings | None = None,
        channel: str = DEFAULT_CHANNEL,
        sender_prefix: str = DEFAULT_SENDER_PREFIX,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        strict_graph: bool = False,
        clock: Clock | None = None,
        no_color: bool = False,
    ) -> None:
        super().__init__()
        self._no_color = no_color or bool(os.environ.get("NO_COLOR", ""))
        self._channel = channel
        self._prefix = sender_prefix
        self._sweep_interval = sweep_interval
        self._outbox: list[str] = []
        self.engine = CoordinationEngine(
            manifest.build_id,
            manifest.components,
            self._outbox.append,
            settings=settings,
            clock=clock,
            strict_graph=strict_graph,
        )

    def compose(self) -> ComposeResult:
        yield Header()
        with Vertical(id="body"):
            yield ComponentTable(id="components")
            yield TranscriptWidget(id="transcript", channel=self._channel, no_color=self._no_color)
        yield Input(placeholder=f"{self._prefix}agent-id MESSAGE", id="command-input")
        yield Footer()

    def on_mount(self) -> None:
        self.sub_title = f"build {self.engine.build_id}"
        self.engine.broadcast_tasks()
        self._sync()
        self.set_interval(self._sweep_interval, self.action_sweep)
        self.query_one("#command-input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        line = event.value
        event.input.value = ""
        self.submit_line(line)

    def submit_line(self, line: str) -> None:
        """Feed one ``@agent message`` line to the engine."""

        if not line.strip():
            return
        transcript = self.query_one(TranscriptWidget)
        parsed = parse_sender_line(line, self._prefix)
        if parsed is None:
            transcript.append(LineKind.ERROR, f"Format: {self._prefix}agent-id message")
            return
        sender, text = parsed
        transcript.append(LineKind.INBOUND, text, sender=sender)
        if self.engine.handle_message(text, sender) is None:
            transcript.append(LineKind.SYSTEM, "not a protocol command; ignored")
        self._sync()

    def action_sweep(self) -> None:
        released = self.engine.sweep()
        if released:
            self.query_one(TranscriptWidget).append(
                LineKind.SYSTEM, "released: " + ", ".join(released)
            )
        self._sync()

    def _sync(self) -> None:
        transcript = self.query_one(TranscriptWidget)
        pending = list(self._outbox)
        self._outbox.clear()
        for message in pending:
            transcript.append(LineKind.OUTBOUND, message)
        snapshot = self.engine.snapshot()
        self.query_one(ComponentTable).update_from_snapshot(snapshot)
        if snapshot.is_complete:
            self.sub_title = f"build {self.engine.build_id} complete"


def run_tui_app(manifest: ComponentManifest, **options: object) -> int:
    """Create and run the dashboard, returning the exit code."""

    app = CoordinatorApp(manifest, **options)  # type: ignore[arg-type]
    result = app.run()
    return result if isinstance(result, int) else 0


__all__ = ["CoordinatorApp", "run_tui_app"]
