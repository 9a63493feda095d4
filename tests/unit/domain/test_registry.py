"""Unit tests for the component registry."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from forge_coordinator.domain.models import ComponentSpec, ComponentStatus
from forge_coordinator.domain.registry import ComponentRegistry, RegistryError


def _registry(*specs: tuple[str, tuple[str, ...]]) -> ComponentRegistry:
    return ComponentRegistry("build-1", [ComponentSpec(name, deps) for name, deps in specs])


@pytest.mark.unit
def test_lookup_is_case_insensitive_and_ordered() -> None:
    registry = _registry(("Greeter", ()), ("cli", ("greeter",)))

    assert len(registry) == 2
    assert [c.key for c in registry] == ["greeter", "cli"]
    assert "GREETER" in registry
    assert "missing" not in registry
    assert registry.get("greeter") is registry.get("GrEeTeR")
    assert registry.get("") is None
    assert registry.get("two words") is None


@pytest.mark.unit
def test_duplicate_names_are_rejected_case_insensitively() -> None:
    with pytest.raises(RegistryError, match="duplicate"):
        _registry(("greeter", ()), ("Greeter", ()))


@pytest.mark.unit
def test_empty_build_id_is_rejected() -> None:
    with pytest.raises(RegistryError):
        ComponentRegistry("  ", [])


@pytest.mark.unit
def test_claimable_follows_merged_dependencies() -> None:
    registry = _registry(("a", ()), ("b", ("a",)), ("c", ("a", "b")))

    assert [c.key for c in registry.claimable()] == ["a"]
    assert registry.unmet_dependencies("c") == ("a", "b")
    assert not registry.dependencies_satisfied("b")

    registry.get("a").status = ComponentStatus.MERGED  # type: ignore[union-attr]
    assert [c.key for c in registry.claimable()] == ["b"]
    assert registry.unmet_dependencies("c") == ("b",)

    registry.get("b").status = ComponentStatus.CLAIMED  # type: ignore[union-attr]
    assert registry.claimable() == ()


@pytest.mark.unit
def test_missing_dependency_is_never_satisfied() -> None:
    registry = _registry(("a", ("ghost",)))

    assert registry.unmet_dependencies("a") == ("ghost",)
    assert not registry.dependencies_satisfied("a")
    assert registry.claimable() == ()


@pytest.mark.unit
def test_unknown_component_query_raises_key_error() -> None:
    registry = _registry(("a", ()))
    with pytest.raises(KeyError):
        registry.unmet_dependencies("nope")


@pytest.mark.unit
def test_is_complete_and_empty_registry() -> None:
    assert ComponentRegistry("empty", []).is_complete()

    registry = _registry(("a", ()), ("b", ()))
    assert not registry.is_complete()
    for component in registry:
        component.status = ComponentStatus.MERGED
    assert registry.is_complete()
    assert registry.snapshot().is_complete


@pytest.mark.unit
def test_diagnose_reports_missing_and_cycles() -> None:
    registry = _registry(("a", ("ghost",)), ("b", ("c",)), ("c", ("b",)), ("d", ()))
    diagnostics = registry.diagnose()

    assert not diagnostics.ok
    assert diagnostics.missing == (("a", "ghost"),)
    assert diagnostics.cycles == (("b", "c", "b"),)
    assert diagnostics.unreachable == ("a", "b", "c")


_names = st.lists(
    st.from_regex(r"[a-z]{1,6}", fullmatch=True), min_size=1, max_size=8, unique=True
)


@st.composite
def _graphs(draw: st.DrawFn) -> tuple[list[ComponentSpec], list[str]]:
    names = draw(_names)
    specs = [
        ComponentSpec(name, tuple(draw(st.lists(st.sampled_from(names + ["ghost"]), max_size=3))))
        for name in names
    ]
    merged = draw(st.lists(st.sampled_from(names), unique=True))
    return specs, merged


@pytest.mark.unit
@settings(max_examples=75, deadline=None)
@given(graph=_graphs())
def test_component_with_unmet_dependency_is_never_claimable(
    graph: tuple[list[ComponentSpec], list[str]],
) -> None:
    specs, merged = graph
    registry = ComponentRegistry("prop", specs)
    for name in merged:
        registry.get(name).status = ComponentStatus.MERGED  # type: ignore[union-attr]

    claimable = {c.key for c in registry.claimable()}
    for component in registry:
        if registry.unmet_dependencies(component.key):
            assert component.key not in claimable
        elif component.status is ComponentStatus.PENDING:
            assert component.key in claimable
