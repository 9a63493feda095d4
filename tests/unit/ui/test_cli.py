"""In-process tests for the forge CLI router and plain-text renderer."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from forge_coordinator.domain.models import ComponentSpec
from forge_coordinator.domain.registry import ComponentRegistry
from forge_coordinator.ui.cli import build_parser, run_cli
from forge_coordinator.ui.render import create_renderer, format_table

pytestmark = pytest.mark.unit


@pytest.fixture()
def spec_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for key in [name for name in os.environ if name.startswith("FORGE_")]:
        monkeypatch.delenv(key)
    root = tmp_path / "owl"
    (root / "components").mkdir(parents=True)
    (root / "components" / "greeter.md").write_text("# greeter\n", encoding="utf-8")
    (root / "components" / "cli.md").write_text(
        "Depends on:\n- greeter: greeting\n- ghost: missing\n", encoding="utf-8"
    )
    return root


def test_parser_requires_a_command() -> None:
    with pytest.raises(SystemExit) as excinfo:
        build_parser().parse_args([])
    assert excinfo.value.code == 2


def test_parser_collects_repeated_overrides() -> None:
    args = build_parser().parse_args(
        ["run", "spec", "--set", "a.b=1", "--set", "c.d=x", "--channel", "#ops"]
    )
    assert args.overrides == ["a.b=1", "c.d=x"]
    assert args.channel == "#ops"
    assert args.spec_path == "spec"


def test_plan_text_output(spec_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["plan", str(spec_dir), "--verbose"]) == 0

    out = capsys.readouterr().out.splitlines()
    assert out[:2] == ["Build: owl", "Components: 2"]
    assert "Components:" in out
    assert "  NAME     DEPENDS ON      STATUS" in out
    assert "  cli      greeter, ghost  pending" in out
    assert f"  greeter  {'-':<14}  pending" in out
    assert "  - greeter" in out
    assert "  Warning: cli depends on unknown component ghost" in out
    assert f"  {spec_dir}" in out


def test_plan_json_output(spec_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["plan", str(spec_dir), "--json", "--build-id", "b-1"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["build"]["build_id"] == "b-1"
    assert payload["claimable"] == ["greeter"]
    assert payload["problems"] == [
        "cli depends on unknown component ghost",
        "never claimable: cli",
    ]


def test_config_text_output(spec_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["config", "--set", "coordinator.strict_graph=true"]) == 0

    out = capsys.readouterr().out
    assert out.startswith("Active profile: (default)\n")
    config = json.loads(out.split("\n", 1)[1])
    assert config["coordinator"]["strict_graph"] is True


def test_bad_override_is_a_cli_error(spec_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["config", "--set", "oops"]) == 2
    assert "expected SECTION.KEY=VALUE" in capsys.readouterr().err


def test_renderer_table_and_empty_claimable(capsys: pytest.CaptureFixture[str]) -> None:
    registry = ComponentRegistry("loop", [ComponentSpec("a", ("b",)), ComponentSpec("b", ("a",))])
    renderer = create_renderer(no_color=True)
    renderer.build_plan(registry.snapshot(), registry.diagnose(), claimable=[])

    out = capsys.readouterr().out.splitlines()
    assert "Claimable now:" in out
    assert "  (none)" in out
    assert any(line.startswith("  Warning: dependency cycle") for line in out)


def test_format_table_pads_short_rows_and_trims_trailing_space() -> None:
    lines = format_table(("NAME", "NOTE"), [("greeter", "x"), ("cli",)])

    assert lines == [
        "  NAME     NOTE",
        "  -------  ----",
        "  greeter  x",
        "  cli",
    ]
