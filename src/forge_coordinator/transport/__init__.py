"""Transports that connect the coordination engine to a channel."""

from forge_coordinator.transport.console import (
    ConsoleTransport,
    SessionStats,
    parse_sender_line,
    read_stdin_lines,
    run_console_session,
)

__all__ = [
    "ConsoleTransport",
    "SessionStats",
    "parse_sender_line",
    "read_stdin_lines",
    "run_console_session",
]
