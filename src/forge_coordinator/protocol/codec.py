"""Line-oriented protocol codec: inbound command parsing and outbound rendering.

Inbound grammar (one command per line, keyword and verdict case-insensitive)::

    CLAIM <component>
    PROGRESS <component> <percent>[%]
    READY <component> [artifact-ref]
    BLOCKED <component> <dependency>
    AUDIT <component> PASS|FAIL [note]
    ABORT <component> [reason]

Markdown emphasis (``*``, ``**``, ``__``) around the keyword or the whole command is
tolerated. Patterns are tried in the order above and the first match wins. Text that
matches nothing parses to ``None``; the codec never raises on inbound text.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from typing import Final

from forge_coordinator.domain.events import (
    AbortEvent,
    AuditEvent,
    AuditVerdict,
    BlockedEvent,
    ClaimEvent,
    CommandKind,
    OutboundKind,
    ProgressEvent,
    ProtocolEvent,
    ReadyEvent,
)

_EMPHASIS: Final[str] = r"(?:\*{1,2}|__)?"
_NAME: Final[str] = r"[^\s*]+"
# Longer digit runs are not a percentage; they also stay clear of int()'s digit limit.
_MAX_PERCENT_DIGITS: Final[int] = 9


def _command(keyword: CommandKind, tail: str) -> re.Pattern[str]:
    return re.compile(
        rf"^{_EMPHASIS}{keyword.value}{_EMPHASIS}\s+{_EMPHASIS}{tail}", re.IGNORECASE
    )


def _clean_tail(raw: str | None) -> str | None:
    if raw is None:
        return None
    cleaned = raw.strip().rstrip("*").strip()
    return cleaned or None


def _build_claim(match: re.Match[str], sender: str) -> ProtocolEvent:
    return ClaimEvent(component=match["component"].lower(), sender=sender)


def _build_progress(match: re.Match[str], sender: str) -> ProtocolEvent:
    return ProgressEvent(
        component=match["component"].lower(),
        sender=sender,
        percent=int(match["percent"]),
    )


def _build_ready(match: re.Match[str], sender: str) -> ProtocolEvent:
    return ReadyEvent(
        component=match["component"].lower(),
        sender=sender,
        artifact_ref=_clean_tail(match["artifact"]),
    )


def _build_blocked(match: re.Match[str], sender: str) -> ProtocolEvent:
    return BlockedEvent(
        component=match["component"].lower(),
        sender=sender,
        blocked_on=match["dependency"].lower(),
    )


def _build_audit(match: re.Match[str], sender: str) -> ProtocolEvent:
    return AuditEvent(
        component=match["component"].lower(),
        sender=sender,
        verdict=AuditVerdict.PASS if match["verdict"][0] in "Pp" else AuditVerdict.FAIL,
        note=_clean_tail(match["note"]),
    )


def _build_abort(match: re.Match[str], sender: str) -> ProtocolEvent:
    return AbortEvent(
        component=match["component"].lower(),
        sender=sender,
        reason=_clean_tail(match["reason"]),
    )


_Builder = Callable[[re.Match[str], str], ProtocolEvent]

GRAMMAR: Final[tuple[tuple[CommandKind, re.Pattern[str], _Builder], ...]] = (
    (
        CommandKind.CLAIM,
        _command(CommandKind.CLAIM, rf"(?P<component>{_NAME})"),
        _build_claim,
    ),
    (
        CommandKind.PROGRESS,
        _command(
            CommandKind.PROGRESS,
            rf"(?P<component>{_NAME})\s+(?P<percent>\d{{1,{_MAX_PERCENT_DIGITS}}})(?!\d)%?",
        ),
        _build_progress,
    ),
    (
        CommandKind.READY,
        _command(CommandKind.READY, rf"(?P<component>{_NAME})(?:\s+(?P<artifact>\S+))?"),
        _build_ready,
    ),
    (
        CommandKind.BLOCKED,
        _command(CommandKind.BLOCKED, rf"(?P<component>{_NAME})\s+(?P<dependency>{_NAME})"),
        _build_blocked,
    ),
    (
        CommandKind.AUDIT,
        _command(
            CommandKind.AUDIT,
            rf"(?P<component>{_NAME})\s+(?P<verdict>PASS|FAIL)\b(?:\s+(?P<note>.+))?",
        ),
        _build_audit,
    ),
    (
        CommandKind.ABORT,
        _command(CommandKind.ABORT, rf"(?P<component>{_NAME})(?:\s+(?P<reason>.+))?"),
        _build_abort,
    ),
)


def parse_message(text: str, sender: str) -> ProtocolEvent | None:
    """Parse one inbound line from ``sender`` into a protocol event, or ``None``."""

    if not isinstance(text, str):
        return None
    trimmed = text.strip()
    if not trimmed:
        return None
    # ``__CLAIM foo__``: the closing underscores belong to the emphasis, not the last field.
    if len(trimmed) > 4 and trimmed.startswith("__") and trimmed.endswith("__"):
        trimmed = trimmed[:-2].rstrip()

    for _kind, pattern, build in GRAMMAR:
        match = pattern.match(trimmed)
        if match is not None:
            return build(match, sender)
    return None


def render_message(kind: OutboundKind | str, *fields: str) -> str:
    """Render an outbound protocol message. Pure and total over ``OutboundKind``."""

    resolved = OutboundKind(kind)
    match resolved:
        case OutboundKind.TASKS:
            _require_fields(resolved, fields, minimum=1)
            build_id, *names = fields
            return f"TASKS {build_id}\nAvailable components: {', '.join(names)}"
        case OutboundKind.ACK:
            component, agent = _require_fields(resolved, fields, minimum=2, maximum=2)
            return f"ACK {component} {agent}"
        case OutboundKind.REJECT:
            component, reason = _require_fields(resolved, fields, minimum=2, maximum=2)
            return f'REJECT {component} "{reason}"'
        case OutboundKind.MERGED | OutboundKind.TIMEOUT | OutboundKind.RETRY:
            (component,) = _require_fields(resolved, fields, minimum=1, maximum=1)
            return f"{resolved.value} {component}"


def render_build_complete(build_id: str) -> str:
    """Render the free-form notice sent once every component has merged."""

    return f"BUILD COMPLETE {build_id}"


def _require_fields(
    kind: OutboundKind,
    fields: tuple[str, ...],
    *,
    minimum: int,
    maximum: int | None = None,
) -> tuple[str, ...]:
    if len(fields) < minimum or (maximum is not None and len(fields) > maximum):
        expected = str(minimum) if maximum == minimum else f">= {minimum}"
        raise ValueError(f"{kind.value} takes {expected} field(s), got {len(fields)}")
    return fields


__all__ = ["GRAMMAR", "parse_message", "render_build_complete", "render_message"]
