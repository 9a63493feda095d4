"""
Unit tests for structured coordinator logging.

Covers JSON-lines output, correlation fields, per-build log directories, and
queue drain on shutdown.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING
from uuid import uuid4

import pytest

from forge_coordinator.control_plane.engine import CoordinationEngine
from forge_coordinator.domain.models import ComponentSpec
from forge_coordinator.observability.logging import (
    LoggingConfig,
    correlation_scope,
    get_active_logging_handle,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path


@pytest.fixture(autouse=True)
def _cleanup_logging() -> Iterator[None]:
    yield
    shutdown_logging()


def _logger_name() -> str:
    return f"forge_coordinator.tests.logging.{uuid4().hex}"


def _read_json_lines(path: Path) -> list[dict[str, object]]:
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_json_lines_carry_build_id_correlation_and_extras(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(build_id="hello-owl", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    with correlation_scope(component="greeter", agent="@builder-1"):
        logger.info("component claimed", extra={"percent": 40, "tags": ("a", "b")})
    logger.warning("outside scope")

    shutdown_logging(handle)

    assert handle.log_path == tmp_path / "hello-owl" / "coordinator.jsonl"
    first, second = _read_json_lines(handle.log_path)
    assert first["message"] == "component claimed"
    assert first["level"] == "INFO"
    assert first["logger"] == logger_name
    assert first["build_id"] == "hello-owl"
    assert first["component"] == "greeter"
    assert first["agent"] == "@builder-1"
    assert first["fields"] == {"percent": 40, "tags": ["a", "b"]}
    assert str(first["timestamp"]).endswith("Z")

    assert second["level"] == "WARNING"
    assert "component" not in second
    assert "fields" not in second


def test_correlation_scope_nests_and_resets() -> None:
    assert get_correlation_context() == {}
    with correlation_scope(build_id="b1", component="a"):
        with correlation_scope(component=None, agent="@x"):
            assert get_correlation_context() == {"build_id": "b1", "agent": "@x"}
        assert get_correlation_context() == {"build_id": "b1", "component": "a"}
    assert get_correlation_context() == {}


def test_correlation_scope_rejects_empty_values() -> None:
    with pytest.raises(ValueError):
        with correlation_scope(agent="   "):
            pass


def test_build_id_is_made_safe_for_directory_names(tmp_path: Path) -> None:
    handle = setup_structured_logging(
        LoggingConfig(
            build_id="../specs/hello owl", base_log_dir=tmp_path, logger_name=_logger_name()
        )
    )
    assert handle.build_log_dir.parent == tmp_path
    assert handle.build_log_dir.name == "_specs_hello_owl"


def test_setup_logging_from_observability_section(tmp_path: Path) -> None:
    logger_name = _logger_name()
    logger = setup_logging(
        {"log_level": "WARNING", "log_dir": str(tmp_path), "log_to_stdout": False},
        build_id="b2",
        logger_name=logger_name,
    )
    logger.info("dropped by level")
    logger.error("kept")

    handle = get_active_logging_handle()
    assert handle is not None
    shutdown_logging()

    messages = [line["message"] for line in _read_json_lines(handle.log_path)]
    assert messages == ["kept"]


def test_engine_logs_through_package_logger(tmp_path: Path) -> None:
    package_logger = setup_logging({"log_dir": str(tmp_path)}, build_id="demo")
    engine = CoordinationEngine("demo", [ComponentSpec("a", ("ghost",))], lambda _text: None)
    engine.handle_message("CLAIM a", "@x")
    shutdown_logging()

    parsed = _read_json_lines(tmp_path / "demo" / "coordinator.jsonl")
    warning = next(line for line in parsed if line["level"] == "WARNING")
    assert warning["message"] == "dependency graph problem: a depends on unknown component ghost"
    rejected = next(line for line in parsed if str(line["message"]).startswith("claim rejected"))
    assert rejected["component"] == "a"
    assert rejected["agent"] == "@x"
    assert rejected["build_id"] == "demo"
    assert package_logger.name == "forge_coordinator"
    assert logging.getLogger("forge_coordinator").propagate


def test_concurrent_logging_is_fully_drained(tmp_path: Path) -> None:
    logger_name = _logger_name()
    handle = setup_structured_logging(
        LoggingConfig(build_id="threads", base_log_dir=tmp_path, logger_name=logger_name)
    )
    logger = logging.getLogger(logger_name)

    def _worker(index: int) -> None:
        with correlation_scope(agent=f"@w{index}"):
            for n in range(25):
                logger.info("tick %d", n)

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    shutdown_logging(handle)

    parsed = _read_json_lines(handle.log_path)
    assert len(parsed) == 100 - handle.dropped_records
    assert {line["agent"] for line in parsed} <= {"@w0", "@w1", "@w2", "@w3"}


def test_invalid_configuration_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        setup_structured_logging(LoggingConfig(build_id=" ", base_log_dir=tmp_path))
    with pytest.raises(ValueError):
        setup_structured_logging(
            LoggingConfig(build_id="b", base_log_dir=tmp_path, log_filename="a/b.jsonl")
        )
    with pytest.raises(ValueError):
        setup_structured_logging(LoggingConfig(build_id="b", base_log_dir=tmp_path, level="LOUD"))
