"""Transcript widget: channel traffic in a RichLog.

Outbound coordinator messages, inbound agent lines, and local notices are
styled differently. The built-in ``max_lines`` handles overflow.
"""

from __future__ import annotations

from enum import StrEnum

from rich.style import Style
from rich.text import Text
from textual.app import ComposeResult
from textual.widget import Widget
from textual.widgets import RichLog

_MAX_BUFFER_LINES = 10_000

_S_OUTBOUND = Style(color="#3fa9f5", bold=True)
_S_INBOUND = Style(color="#c8cdd8")
_S_SENDER = Style(color="#72c7ff")
_S_SYSTEM = Style(color="#7f8aa3", italic=True)
_S_ERROR = Style(color="#e05555")
_S_COMPLETE = Style(color="#4ec990", bold=True)

_COMPLETE_PREFIX = "BUILD COMPLETE"


class LineKind(StrEnum):
    OUTBOUND = "outbound"
    INBOUND = "inbound"
    SYSTEM = "system"
    ERROR = "error"


class TranscriptWidget(Widget):
    """Styled channel transcript backed by a RichLog widget."""

    DEFAULT_CSS = """
    TranscriptWidget {
        height: 1fr;
        width: 1fr;
    }
    #transcript-area {
        height: 1fr;
        width: 1fr;
    }
    """

    def __init__(
        self, *, channel: str = "#general", no_color: bool = False, **kwargs: object
    ) -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]
        self._channel = channel
        self._no_color = no_color
        self.line_count = 0

    def compose(self) -> ComposeResult:
        yield RichLog(
            max_lines=_MAX_BUFFER_LINES,
            wrap=True,
            markup=False,
            auto_scroll=True,
            id="transcript-area",
        )

    @property
    def rich_log(self) -> RichLog:
        return self.query_one("#transcript-area", RichLog)

    def append(self, kind: LineKind, text: str, *, sender: str | None = None) -> None:
        self.rich_log.write(self._format(kind, text, sender=sender))
        self.line_count += 1

    @property
    def text(self) -> str:
        """Plain-text transcript, mainly for tests and export."""
        return "\n".join(strip.text for strip in self.rich_log.lines)

    def clear(self) -> None:
        self.rich_log.clear()
        self.line_count = 0

    def _format(self, kind: LineKind, text: str, *, sender: str | None) -> Text:
        if kind is LineKind.OUTBOUND:
            label = f"[SEND {self._channel}] "
        elif kind is LineKind.INBOUND:
            label = f"{sender} " if sender else ""
        elif kind is LineKind.ERROR:
            label = "ERR: "
        else:
            label = "[system] "

        if self._no_color:
            return Text(label + text)

        rendered = Text()
        match kind:
            case LineKind.OUTBOUND:
                style = _S_COMPLETE if text.startswith(_COMPLETE_PREFIX) else _S_OUTBOUND
                rendered.append(label, style=_S_SYSTEM)
                rendered.append(text, style=style)
            case LineKind.INBOUND:
                rendered.append(label, style=_S_SENDER)
                rendered.append(text, style=_S_INBOUND)
            case LineKind.ERROR:
                rendered.append(label + text, style=_S_ERROR)
            case _:
                rendered.append(label + text, style=_S_SYSTEM)
        return rendered


__all__ = ["LineKind", "TranscriptWidget"]
