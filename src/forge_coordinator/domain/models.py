"""Dataclass domain models for build components and their lifecycle state."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_MAX_NAME = 256


class ComponentStatus(StrEnum):
    PENDING = "pending"
    CLAIMED = "claimed"
    BUILDING = "building"
    READY = "ready"
    AUDITING = "auditing"
    MERGED = "merged"
    FAILED = "failed"


# Statuses during which an agent is responsible for the component.
ACTIVE_STATUSES = frozenset(
    {
        ComponentStatus.CLAIMED,
        ComponentStatus.BUILDING,
        ComponentStatus.READY,
        ComponentStatus.AUDITING,
    }
)


def normalize_name(raw: str) -> str:
    """Return the case-folded registry key for a component name."""

    if not isinstance(raw, str):
        raise ValueError(f"component name must be a string, got {type(raw).__name__}")
    normalized = raw.strip().lower()
    if not normalized:
        raise ValueError("component name must not be empty")
    if len(normalized) > _MAX_NAME:
        raise ValueError(f"component name must be <= {_MAX_NAME} characters")
    if any(char.isspace() for char in normalized):
        raise ValueError(f"component name must not contain whitespace: {raw!r}")
    return normalized


@dataclass(frozen=True, slots=True)
class ComponentSpec:
    """Construction input: a component name and the names it depends on."""

    name: str
    dependencies: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        normalize_name(self.name)
        object.__setattr__(self, "name", self.name.strip())
        deps = tuple(self.dependencies)
        for dep in deps:
            normalize_name(dep)
        object.__setattr__(self, "dependencies", deps)

    @property
    def key(self) -> str:
        return normalize_name(self.name)


@dataclass(slots=True)
class Component:
    """Mutable lifecycle state for one buildable unit."""

    key: str
    display_name: str
    dependencies: tuple[str, ...] = ()
    status: ComponentStatus = ComponentStatus.PENDING
    assignee: str | None = None
    claimed_at: datetime | None = None
    last_progress_at: datetime | None = None
    artifact_ref: str | None = None
    retry_count: int = 0
    progress_percent: int | None = None

    @classmethod
    def from_spec(cls, spec: ComponentSpec) -> Component:
        deps: list[str] = []
        for raw in spec.dependencies:
            dep = normalize_name(raw)
            if dep not in deps:
                deps.append(dep)
        return cls(key=spec.key, display_name=spec.name, dependencies=tuple(deps))

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def release(self) -> None:
        """Return to ``pending`` and drop the assignment and its timers."""

        self.status = ComponentStatus.PENDING
        self.assignee = None
        self.claimed_at = None
        self.last_progress_at = None
        self.artifact_ref = None
        self.progress_percent = None

    def snapshot(self) -> ComponentSnapshot:
        return ComponentSnapshot(
            key=self.key,
            display_name=self.display_name,
            dependencies=self.dependencies,
            status=self.status,
            assignee=self.assignee,
            claimed_at=self.claimed_at,
            last_progress_at=self.last_progress_at,
            artifact_ref=self.artifact_ref,
            retry_count=self.retry_count,
            progress_percent=self.progress_percent,
        )


@dataclass(frozen=True, slots=True)
class ComponentSnapshot:
    """Read-only copy of a component for observability."""

    key: str
    display_name: str
    dependencies: tuple[str, ...]
    status: ComponentStatus
    assignee: str | None
    claimed_at: datetime | None
    last_progress_at: datetime | None
    artifact_ref: str | None
    retry_count: int
    progress_percent: int | None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.display_name,
            "key": self.key,
            "dependencies": list(self.dependencies),
            "status": self.status.value,
            "assignee": self.assignee,
            "claimed_at": _datetime_to_iso8601z(self.claimed_at),
            "last_progress_at": _datetime_to_iso8601z(self.last_progress_at),
            "artifact_ref": self.artifact_ref,
            "retry_count": self.retry_count,
            "progress_percent": self.progress_percent,
        }


@dataclass(frozen=True, slots=True)
class BuildSnapshot:
    """Read-only copy of the whole build aggregate."""

    build_id: str
    started_at: datetime
    components: tuple[ComponentSnapshot, ...] = field(default_factory=tuple)

    @property
    def is_complete(self) -> bool:
        return all(item.status is ComponentStatus.MERGED for item in self.components)

    def status_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in ComponentStatus}
        for item in self.components:
            counts[item.status.value] += 1
        return counts

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "build_id": self.build_id,
            "started_at": _datetime_to_iso8601z(self.started_at),
            "complete": self.is_complete,
            "components": [item.to_dict() for item in self.components],
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _datetime_to_iso8601z(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None or value.utcoffset() is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


__all__ = [
    "ACTIVE_STATUSES",
    "BuildSnapshot",
    "Component",
    "ComponentSnapshot",
    "ComponentSpec",
    "ComponentStatus",
    "JSONScalar",
    "JSONValue",
    "normalize_name",
]
