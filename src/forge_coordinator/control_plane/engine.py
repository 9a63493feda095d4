"""Coordination engine: the protocol state machine over the component registry.

The engine is single-threaded by contract. Every public method runs one synchronous,
atomic transition; callers serialize inbound messages and timeout sweeps (one event
loop, one worker queue, or a UI message loop). The engine never blocks, never
schedules itself, and never raises on protocol input. Delivery is fire-and-forget
through the ``deliver`` callable supplied by the transport.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from forge_coordinator.constants import (
    DEFAULT_CLAIM_EXPIRY_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROGRESS_TIMEOUT_SECONDS,
)
from forge_coordinator.domain.events import (
    AbortEvent,
    AuditEvent,
    AuditVerdict,
    BlockedEvent,
    ClaimEvent,
    OutboundKind,
    ProgressEvent,
    ProtocolEvent,
    ReadyEvent,
)
from forge_coordinator.domain.models import (
    BuildSnapshot,
    Component,
    ComponentSnapshot,
    ComponentSpec,
    ComponentStatus,
)
from forge_coordinator.domain.registry import ComponentRegistry, RegistryError
from forge_coordinator.observability.logging import correlation_scope
from forge_coordinator.planning.dependency_graph import GraphValidationError
from forge_coordinator.protocol.codec import (
    parse_message,
    render_build_complete,
    render_message,
)

Deliver = Callable[[str], object]
Clock = Callable[[], datetime]

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """Timing and retry policy for the protocol state machine."""

    progress_timeout: timedelta = timedelta(seconds=DEFAULT_PROGRESS_TIMEOUT_SECONDS)
    claim_expiry: timedelta = timedelta(seconds=DEFAULT_CLAIM_EXPIRY_SECONDS)
    max_retries: int = DEFAULT_MAX_RETRIES

    def __post_init__(self) -> None:
        if self.progress_timeout <= timedelta(0):
            raise ValueError("progress_timeout must be > 0")
        if self.claim_expiry <= timedelta(0):
            raise ValueError("claim_expiry must be > 0")
        if isinstance(self.max_retries, bool) or self.max_retries <= 0:
            raise ValueError("max_retries must be > 0")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> EngineSettings:
        """Build settings from a validated config mapping (``[coordinator]`` section)."""

        section = config.get("coordinator", config)
        return cls(
            progress_timeout=timedelta(
                seconds=section.get("progress_timeout_seconds", DEFAULT_PROGRESS_TIMEOUT_SECONDS)
            ),
            claim_expiry=timedelta(
                seconds=section.get("claim_expiry_seconds", DEFAULT_CLAIM_EXPIRY_SECONDS)
            ),
            max_retries=section.get("max_retries", DEFAULT_MAX_RETRIES),
        )


class CoordinationEngine:
    """Drives component lifecycles from parsed protocol events and timeout sweeps."""

    __slots__ = ("_registry", "_deliver", "_settings", "_clock")

    def __init__(
        self,
        build_id: str,
        components: Iterable[ComponentSpec | Mapping[str, object]],
        deliver: Deliver,
        *,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        strict_graph: bool = False,
    ) -> None:
        self._clock = clock if clock is not None else utc_now
        self._settings = settings if settings is not None else EngineSettings()
        self._deliver = deliver
        self._registry = ComponentRegistry(
            build_id,
            (_coerce_spec(item) for item in components),
            started_at=self._clock(),
        )

        diagnostics = self._registry.diagnose()
        if not diagnostics.ok:
            if strict_graph:
                raise GraphValidationError(diagnostics)
            with correlation_scope(build_id=self._registry.build_id):
                for problem in diagnostics.describe():
                    logger.warning("dependency graph problem: %s", problem)

    @property
    def build_id(self) -> str:
        return self._registry.build_id

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def claimable(self) -> tuple[ComponentSnapshot, ...]:
        """Components an agent could claim right now, in registry order."""
        return tuple(component.snapshot() for component in self._registry.claimable())

    def is_complete(self) -> bool:
        return self._registry.is_complete()

    def snapshot(self) -> BuildSnapshot:
        return self._registry.snapshot()

    def component(self, name: str) -> ComponentSnapshot | None:
        found = self._registry.get(name)
        return found.snapshot() if found is not None else None

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------

    def handle_message(self, text: str, sender: str) -> ProtocolEvent | None:
        """Parse one inbound line and apply it. Unrecognized text is ignored."""

        event = parse_message(text, sender)
        if event is None:
            logger.debug("ignoring non-protocol text", extra={"sender": sender})
            return None
        self.handle_event(event)
        return event

    def handle_event(self, event: ProtocolEvent) -> None:
        with correlation_scope(
            build_id=self._registry.build_id,
            component=event.component,
            agent=event.sender.strip() or None,
        ):
            match event:
                case ClaimEvent():
                    self._on_claim(event)
                case ProgressEvent():
                    self._on_progress(event)
                case ReadyEvent():
                    self._on_ready(event)
                case BlockedEvent():
                    self._on_blocked(event)
                case AbortEvent():
                    self._on_abort(event)
                case AuditEvent():
                    self._on_audit(event)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def broadcast_tasks(self) -> str:
        """Deliver the TASKS list of currently claimable components."""

        names = [component.display_name for component in self._registry.claimable()]
        return self._send(render_message(OutboundKind.TASKS, self._registry.build_id, *names))

    # ------------------------------------------------------------------
    # Timeout sweep
    # ------------------------------------------------------------------

    def sweep(self, now: datetime | None = None) -> tuple[str, ...]:
        """Release expired claims and stalled builds; return the released component keys.

        Every check in one sweep is evaluated against the same ``now``; a naive ``now``
        is taken to be UTC. A claimed component that has not reported progress yet is
        only subject to claim expiry.
        """

        instant = now if now is not None else self._clock()
        if instant.tzinfo is None or instant.utcoffset() is None:
            instant = instant.replace(tzinfo=UTC)
        released: list[str] = []

        for component in self._registry:
            if component.status is ComponentStatus.CLAIMED and component.claimed_at is not None:
                if instant - component.claimed_at > self._settings.claim_expiry:
                    self._expire(component, reason="claim expired")
                    released.append(component.key)
                    continue

            if (
                component.status is ComponentStatus.BUILDING
                and component.last_progress_at is not None
                and instant - component.last_progress_at > self._settings.progress_timeout
            ):
                self._expire(component, reason="no progress")
                released.append(component.key)

        return tuple(released)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _on_claim(self, event: ClaimEvent) -> None:
        component = self._registry.get(event.component)
        if component is None:
            self._reject(event.component, "component not found")
            return

        if component.status is not ComponentStatus.PENDING:
            holder = f" by {component.assignee}" if component.assignee else ""
            self._reject(component.display_name, f"already {component.status.value}{holder}")
            return

        unmet = self._registry.unmet_dependencies(component.key)
        if unmet:
            self._reject(component.display_name, f"dependencies not met: {', '.join(unmet)}")
            return

        component.status = ComponentStatus.CLAIMED
        component.assignee = event.sender
        component.claimed_at = self._clock()
        component.last_progress_at = None
        component.retry_count = 0
        logger.info("component claimed")
        self._send(render_message(OutboundKind.ACK, component.display_name, event.sender))

    def _on_progress(self, event: ProgressEvent) -> None:
        component = self._owned_by_sender(event.component, event.sender)
        if component is None:
            return
        component.status = ComponentStatus.BUILDING
        component.last_progress_at = self._clock()
        component.progress_percent = event.percent
        logger.debug("progress reported", extra={"percent": event.percent})

    def _on_ready(self, event: ReadyEvent) -> None:
        component = self._owned_by_sender(event.component, event.sender)
        if component is None:
            return
        component.status = ComponentStatus.READY
        component.artifact_ref = event.artifact_ref
        logger.info("component ready for audit", extra={"artifact_ref": event.artifact_ref})

    def _on_blocked(self, event: BlockedEvent) -> None:
        logger.info("agent blocked", extra={"blocked_on": event.blocked_on})

    def _on_abort(self, event: AbortEvent) -> None:
        component = self._owned_by_sender(event.component, event.sender)
        if component is None:
            return
        component.release()
        logger.info("claim aborted", extra={"reason": event.reason})
        self.broadcast_tasks()

    def _on_audit(self, event: AuditEvent) -> None:
        """PASS merges any component not yet merged; FAIL only counts against an assigned one."""

        component = self._registry.get(event.component)
        if component is None:
            logger.debug("audit for unknown component ignored")
            return
        if component.status is ComponentStatus.MERGED:
            logger.debug("audit for merged component ignored")
            return

        if event.verdict is AuditVerdict.PASS:
            component.status = ComponentStatus.MERGED
            component.assignee = None
            component.claimed_at = None
            component.last_progress_at = None
            logger.info("component merged")
            self._send(render_message(OutboundKind.MERGED, component.display_name))
            self.broadcast_tasks()
            if self._registry.is_complete():
                logger.info("build complete")
                self._send(render_build_complete(self._registry.build_id))
            return

        if not component.is_active:
            logger.debug("audit failure for unassigned component ignored")
            return

        component.retry_count += 1
        if component.retry_count >= self._settings.max_retries:
            component.release()
            logger.warning(
                "audit retries exhausted", extra={"retry_count": component.retry_count}
            )
            self._send(render_message(OutboundKind.RETRY, component.display_name))
            return

        component.status = ComponentStatus.BUILDING
        component.last_progress_at = self._clock()
        logger.info(
            "audit failed; back to building",
            extra={"retry_count": component.retry_count, "note": event.note},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _owned_by_sender(self, name: str, sender: str) -> Component | None:
        component = self._registry.get(name)
        if component is None or component.assignee != sender:
            logger.debug("ignoring command from non-assignee")
            return None
        return component

    def _expire(self, component: Component, *, reason: str) -> None:
        with correlation_scope(
            build_id=self._registry.build_id,
            component=component.key,
            agent=(component.assignee or "").strip() or None,
        ):
            logger.warning("releasing component: %s", reason)
        component.release()
        self._send(render_message(OutboundKind.TIMEOUT, component.display_name))

    def _reject(self, component: str, reason: str) -> None:
        logger.info("claim rejected: %s", reason)
        self._send(render_message(OutboundKind.REJECT, component, reason))

    def _send(self, text: str) -> str:
        self._deliver(text)
        return text


def _coerce_spec(item: ComponentSpec | Mapping[str, object]) -> ComponentSpec:
    if isinstance(item, ComponentSpec):
        return item
    if not isinstance(item, Mapping):
        raise RegistryError(f"component entry must be a mapping, got {type(item).__name__}")
    name = item.get("name")
    raw_deps = item.get("dependencies", ())
    if not isinstance(name, str):
        raise RegistryError("component entry requires a string 'name'")
    if isinstance(raw_deps, str) or not isinstance(raw_deps, Iterable):
        raise RegistryError(f"component {name!r}: 'dependencies' must be a list of names")
    try:
        return ComponentSpec(name=name, dependencies=tuple(str(dep) for dep in raw_deps))
    except ValueError as exc:
        raise RegistryError(str(exc)) from exc


__all__ = ["Clock", "CoordinationEngine", "Deliver", "EngineSettings", "utc_now"]
