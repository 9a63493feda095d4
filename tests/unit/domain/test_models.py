"""Unit tests for component domain models."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from forge_coordinator.domain.models import (
    ACTIVE_STATUSES,
    BuildSnapshot,
    Component,
    ComponentSpec,
    ComponentStatus,
    normalize_name,
)

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@pytest.mark.unit
def test_normalize_name_folds_case_and_trims() -> None:
    assert normalize_name("  Greeter ") == "greeter"


@pytest.mark.unit
@pytest.mark.parametrize("raw", ["", "   ", "two words", "x" * 257])
def test_normalize_name_rejects_invalid(raw: str) -> None:
    with pytest.raises(ValueError):
        normalize_name(raw)


@pytest.mark.unit
def test_component_spec_keeps_display_casing() -> None:
    spec = ComponentSpec(name=" Greeter ", dependencies=["Core"])  # type: ignore[arg-type]
    assert spec.name == "Greeter"
    assert spec.key == "greeter"
    assert spec.dependencies == ("Core",)


@pytest.mark.unit
def test_component_spec_rejects_blank_dependency() -> None:
    with pytest.raises(ValueError):
        ComponentSpec(name="cli", dependencies=("",))


@pytest.mark.unit
def test_from_spec_lowercases_and_dedupes_dependencies() -> None:
    component = Component.from_spec(
        ComponentSpec(name="CLI", dependencies=("Greeter", "greeter", "Formatter"))
    )
    assert component.key == "cli"
    assert component.display_name == "CLI"
    assert component.dependencies == ("greeter", "formatter")
    assert component.status is ComponentStatus.PENDING
    assert component.assignee is None
    assert component.retry_count == 0


@pytest.mark.unit
def test_release_clears_assignment_but_keeps_retry_count() -> None:
    component = Component(
        key="greeter",
        display_name="greeter",
        status=ComponentStatus.BUILDING,
        assignee="@a",
        claimed_at=T0,
        last_progress_at=T0,
        artifact_ref="pr-1",
        retry_count=2,
        progress_percent=60,
    )
    assert component.is_active

    component.release()

    assert component.status is ComponentStatus.PENDING
    assert component.assignee is None
    assert component.claimed_at is None
    assert component.last_progress_at is None
    assert component.artifact_ref is None
    assert component.progress_percent is None
    assert component.retry_count == 2
    assert not component.is_active


@pytest.mark.unit
def test_active_statuses() -> None:
    assert ACTIVE_STATUSES == {
        ComponentStatus.CLAIMED,
        ComponentStatus.BUILDING,
        ComponentStatus.READY,
        ComponentStatus.AUDITING,
    }
    assert ComponentStatus.MERGED not in ACTIVE_STATUSES
    assert ComponentStatus.FAILED not in ACTIVE_STATUSES


@pytest.mark.unit
def test_build_snapshot_serialization() -> None:
    merged = Component(key="a", display_name="A", status=ComponentStatus.MERGED)
    claimed = Component(
        key="b",
        display_name="b",
        dependencies=("a",),
        status=ComponentStatus.CLAIMED,
        assignee="@x",
        claimed_at=T0,
    )
    snapshot = BuildSnapshot(
        build_id="demo", started_at=T0, components=(merged.snapshot(), claimed.snapshot())
    )

    assert not snapshot.is_complete
    counts = snapshot.status_counts()
    assert counts["merged"] == 1
    assert counts["claimed"] == 1
    assert sum(counts.values()) == 2

    payload = json.loads(snapshot.to_json())
    assert payload["build_id"] == "demo"
    assert payload["started_at"] == "2026-01-01T12:00:00.000Z"
    assert payload["complete"] is False
    first, second = payload["components"]
    assert first["name"] == "A"
    assert first["key"] == "a"
    assert first["status"] == "merged"
    assert second["assignee"] == "@x"
    assert second["claimed_at"] == "2026-01-01T12:00:00.000Z"
    assert second["dependencies"] == ["a"]


@pytest.mark.unit
def test_snapshot_is_a_copy() -> None:
    component = Component(key="a", display_name="a")
    before = component.snapshot()
    component.status = ComponentStatus.CLAIMED
    assert before.status is ComponentStatus.PENDING
    with pytest.raises(AttributeError):
        before.status = ComponentStatus.MERGED  # type: ignore[misc]
