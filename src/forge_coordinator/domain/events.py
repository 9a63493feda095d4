"""Protocol event definitions shared by the codec and the coordination engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import ClassVar


class CommandKind(StrEnum):
    """Inbound commands, in grammar match order."""

    CLAIM = "CLAIM"
    PROGRESS = "PROGRESS"
    READY = "READY"
    BLOCKED = "BLOCKED"
    AUDIT = "AUDIT"
    ABORT = "ABORT"


class OutboundKind(StrEnum):
    """Messages the coordinator renders onto the protocol channel."""

    TASKS = "TASKS"
    ACK = "ACK"
    REJECT = "REJECT"
    MERGED = "MERGED"
    TIMEOUT = "TIMEOUT"
    RETRY = "RETRY"


class AuditVerdict(StrEnum):
    PASS = "PASS"
    FAIL = "FAIL"


@dataclass(frozen=True, slots=True)
class ClaimEvent:
    component: str
    sender: str

    kind: ClassVar[CommandKind] = CommandKind.CLAIM


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    component: str
    sender: str
    percent: int

    kind: ClassVar[CommandKind] = CommandKind.PROGRESS


@dataclass(frozen=True, slots=True)
class ReadyEvent:
    component: str
    sender: str
    artifact_ref: str | None = None

    kind: ClassVar[CommandKind] = CommandKind.READY


@dataclass(frozen=True, slots=True)
class BlockedEvent:
    component: str
    sender: str
    blocked_on: str

    kind: ClassVar[CommandKind] = CommandKind.BLOCKED


@dataclass(frozen=True, slots=True)
class AuditEvent:
    component: str
    sender: str
    verdict: AuditVerdict
    note: str | None = None

    kind: ClassVar[CommandKind] = CommandKind.AUDIT


@dataclass(frozen=True, slots=True)
class AbortEvent:
    component: str
    sender: str
    reason: str | None = None

    kind: ClassVar[CommandKind] = CommandKind.ABORT


ProtocolEvent = ClaimEvent | ProgressEvent | ReadyEvent | BlockedEvent | AuditEvent | AbortEvent


__all__ = [
    "AbortEvent",
    "AuditEvent",
    "AuditVerdict",
    "BlockedEvent",
    "ClaimEvent",
    "CommandKind",
    "OutboundKind",
    "ProgressEvent",
    "ProtocolEvent",
    "ReadyEvent",
]
