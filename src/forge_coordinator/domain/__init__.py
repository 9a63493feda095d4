"""
Domain layer: component models, protocol events, and the component registry.

Keep this package free of IO side effects.
"""

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
from forge_coordinator.domain.models import (
    ACTIVE_STATUSES,
    BuildSnapshot,
    Component,
    ComponentSnapshot,
    ComponentSpec,
    ComponentStatus,
    normalize_name,
)
from forge_coordinator.domain.registry import ComponentRegistry, RegistryError

__all__ = [
    "ACTIVE_STATUSES",
    "AbortEvent",
    "AuditEvent",
    "AuditVerdict",
    "BlockedEvent",
    "BuildSnapshot",
    "ClaimEvent",
    "CommandKind",
    "Component",
    "ComponentRegistry",
    "ComponentSnapshot",
    "ComponentSpec",
    "ComponentStatus",
    "OutboundKind",
    "ProgressEvent",
    "ProtocolEvent",
    "ReadyEvent",
    "RegistryError",
    "normalize_name",
]
