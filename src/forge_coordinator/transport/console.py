"""
forge-coordinator: console transport.

Purpose
- Deliver outbound protocol messages to a terminal channel through ``rich``.
- Parse ``@agent message`` input lines into (sender, text) pairs.
- Run an interactive session that feeds input lines and periodic timeout sweeps
  to one engine from a single asyncio loop, so transitions never interleave.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import re
import sys
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from rich.console import Console

from forge_coordinator.constants import DEFAULT_CHANNEL, DEFAULT_SENDER_PREFIX

if TYPE_CHECKING:
    from forge_coordinator.control_plane.engine import CoordinationEngine
    from forge_coordinator.domain.models import BuildSnapshot

logger = logging.getLogger(__name__)

_MAX_HISTORY: Final[int] = 1_000


class ConsoleTransport:
    """Print outbound messages as ``[SEND <channel>] <text>``."""

    def __init__(
        self,
        channel: str = DEFAULT_CHANNEL,
        console: Console | None = None,
    ) -> None:
        if not channel.strip():
            raise ValueError("channel must not be empty")
        self.channel = channel.strip()
        self.console = console if console is not None else Console(highlight=False)
        self.sent: list[str] = []

    def deliver(self, text: str) -> None:
        self.sent.append(text)
        if len(self.sent) > _MAX_HISTORY:
            del self.sent[: len(self.sent) - _MAX_HISTORY]
        self.console.print(
            f"[SEND {self.channel}] {text}", markup=False, highlight=False, soft_wrap=True
        )

    __call__ = deliver


def parse_sender_line(
    line: str, prefix: str = DEFAULT_SENDER_PREFIX
) -> tuple[str, str] | None:
    """
    Split ``@agent message`` into ``("@agent", "message")``.

    The sender keeps its prefix. Returns ``None`` for lines without a sender or
    without a message body.
    """

    if not prefix:
        raise ValueError("sender prefix must not be empty")
    pattern = re.compile(rf"^({re.escape(prefix)}\S+)\s+(\S.*)$")
    match = pattern.match(line.strip())
    if match is None:
        return None
    return match.group(1), match.group(2).strip()


@dataclass(slots=True)
class SessionStats:
    """Counters collected over one console session."""

    lines: int = 0
    events: int = 0
    ignored: int = 0
    sweeps: int = 0
    released: list[str] = field(default_factory=list)


async def run_console_session(
    engine: CoordinationEngine,
    lines: AsyncIterable[str] | Iterable[str],
    *,
    sweep_interval: float,
    prefix: str = DEFAULT_SENDER_PREFIX,
    on_invalid: Callable[[str], object] | None = None,
    stop_when_complete: bool = False,
    stats: SessionStats | None = None,
) -> BuildSnapshot:
    """
    Broadcast the initial task list, then process ``lines`` until exhausted.

    A background task sweeps every ``sweep_interval`` seconds. Both the sweep and
    the line handler run on the calling loop and never await inside a transition.
    """

    if sweep_interval <= 0:
        raise ValueError("sweep_interval must be > 0")
    collected = stats if stats is not None else SessionStats()

    engine.broadcast_tasks()
    sweeper = asyncio.create_task(_sweep_forever(engine, sweep_interval, collected))
    try:
        async for line in _aiter_lines(lines):
            collected.lines += 1
            parsed = parse_sender_line(line, prefix)
            if parsed is None:
                if line.strip() and on_invalid is not None:
                    on_invalid(line)
                continue
            sender, text = parsed
            if engine.handle_message(text, sender) is None:
                collected.ignored += 1
            else:
                collected.events += 1
            if stop_when_complete and engine.is_complete():
                break
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper

    logger.info(
        "console session finished",
        extra={"lines": collected.lines, "events": collected.events, "sweeps": collected.sweeps},
    )
    return engine.snapshot()


async def read_stdin_lines(
    prompt: Callable[[], object] | None = None,
) -> AsyncIterator[str]:
    """Yield stdin lines without blocking the loop; stops at EOF."""

    loop = asyncio.get_running_loop()
    while True:
        if prompt is not None:
            prompt()
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            return
        yield line.rstrip("\n")


async def _sweep_forever(
    engine: CoordinationEngine, interval: float, stats: SessionStats
) -> None:
    while True:
        await asyncio.sleep(interval)
        released = engine.sweep()
        stats.sweeps += 1
        stats.released.extend(released)


async def _aiter_lines(lines: AsyncIterable[str] | Iterable[str]) -> AsyncIterator[str]:
    if isinstance(lines, AsyncIterable):
        async for line in lines:
            yield line
        return
    for line in lines:
        yield line
        # Give the sweeper a chance to run between synchronous lines.
        await asyncio.sleep(0)


__all__ = [
    "ConsoleTransport",
    "SessionStats",
    "parse_sender_line",
    "read_stdin_lines",
    "run_console_session",
]
