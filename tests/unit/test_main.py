"""Exit-code contract for the ``forge`` entrypoint."""

from __future__ import annotations

from pathlib import Path

import pytest

from forge_coordinator.config import ConfigLoadError
from forge_coordinator.domain.registry import RegistryError
from forge_coordinator.main import ExitCode, cli_entrypoint
from forge_coordinator.main import _route_exception as route_exception

pytestmark = pytest.mark.unit


def test_help_exits_cleanly(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["--help"]) == ExitCode.SUCCESS
    assert "forge plan ./spec" in capsys.readouterr().out


def test_usage_error_is_config_error() -> None:
    assert cli_entrypoint(["launch"]) == ExitCode.CONFIG_ERROR


def test_missing_spec_is_spec_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(tmp_path)
    assert cli_entrypoint(["plan", "missing-spec"]) == ExitCode.SPEC_ERROR
    assert "spec path does not exist" in capsys.readouterr().err


def test_route_exception_walks_the_chain() -> None:
    try:
        try:
            raise ConfigLoadError("bad env")
        except ConfigLoadError as exc:
            raise RuntimeError("wrapped") from exc
    except RuntimeError as wrapped:
        assert route_exception(wrapped) is ExitCode.CONFIG_ERROR

    assert route_exception(RegistryError("duplicate component")) is ExitCode.SPEC_ERROR
    assert route_exception(KeyError("boom")) is ExitCode.INTERNAL_ERROR


def test_unexpected_errors_print_a_traceback(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    def _explode(_argv: object) -> int:
        raise ZeroDivisionError("kaboom")

    monkeypatch.setattr("forge_coordinator.ui.cli.run_cli", _explode)

    assert cli_entrypoint(["plan", "x"]) == ExitCode.INTERNAL_ERROR
    err = capsys.readouterr().err
    assert "Traceback" in err
    assert "ZeroDivisionError: kaboom" in err
