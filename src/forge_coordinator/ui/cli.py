"""Command-line interface router for forge-coordinator."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
import tomllib
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from rich.console import Console

from forge_coordinator.config import dump_effective_config, load_config
from forge_coordinator.control_plane import CoordinationEngine, EngineSettings
from forge_coordinator.domain.registry import ComponentRegistry
from forge_coordinator.observability import setup_logging, shutdown_logging
from forge_coordinator.planning import GraphValidationError
from forge_coordinator.spec_ingestion import ComponentManifest, load_component_specs
from forge_coordinator.transport import (
    ConsoleTransport,
    SessionStats,
    read_stdin_lines,
    run_console_session,
)
from forge_coordinator.ui.render import CLIRenderer, create_renderer


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 2

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router."""

    parser = argparse.ArgumentParser(
        prog="forge",
        description=(
            "forge-coordinator: assign build components to agents over a chat channel.\n\n"
            "Common workflows:\n"
            "  forge plan ./spec           Show components, dependencies, first tasks\n"
            "  forge run ./spec            Coordinate from stdin (@agent message lines)\n"
            "  forge tui ./spec            Interactive dashboard\n"
            "  forge config                Print the effective configuration\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to forge TOML config (default: ./forge.toml if present).",
    )
    common.add_argument(
        "--profile",
        default=None,
        help="Optional config profile overlay name (built in: strict, relaxed).",
    )
    common.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="SECTION.KEY=VALUE",
        help="Override a config value; VALUE is parsed as a TOML scalar. Repeatable.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Show detailed output.",
    )
    common.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Disable colored output (also respects NO_COLOR env var).",
    )

    spec_common = argparse.ArgumentParser(add_help=False)
    spec_common.add_argument(
        "spec_path",
        help="Spec directory (with components/*.md) or a .yaml/.yml manifest.",
    )
    spec_common.add_argument(
        "--build-id",
        default=None,
        help="Build identifier (default: spec directory name or manifest 'build').",
    )

    channel_common = argparse.ArgumentParser(add_help=False)
    channel_common.add_argument(
        "--channel",
        default=None,
        help="Channel name printed with outbound messages (overrides transport.channel).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser(
        "plan",
        parents=[common, spec_common],
        help="Load a spec and show components and dependency problems",
    )
    plan_parser.add_argument("--json", action="store_true", default=False)
    plan_parser.set_defaults(handler=_cmd_plan)

    run_parser = subparsers.add_parser(
        "run",
        parents=[common, spec_common, channel_common],
        help="Coordinate a build from '@agent message' lines on stdin",
    )
    run_parser.add_argument(
        "--exit-on-complete",
        action="store_true",
        default=False,
        help="Stop reading input once every component is merged.",
    )
    run_parser.set_defaults(handler=_cmd_run)

    tui_parser = subparsers.add_parser(
        "tui",
        parents=[common, spec_common, channel_common],
        help="Coordinate a build from the interactive dashboard",
    )
    tui_parser.set_defaults(handler=_cmd_tui)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the effective configuration",
    )
    config_parser.add_argument("--json", action="store_true", default=False)
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_plan(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    manifest = _load_manifest(args)

    registry = ComponentRegistry(manifest.build_id, manifest.components)
    diagnostics = registry.diagnose()
    if not diagnostics.ok and config["coordinator"]["strict_graph"]:
        raise GraphValidationError(diagnostics)

    snapshot = registry.snapshot()
    claimable = [component.display_name for component in registry.claimable()]

    if _flag(args, "json"):
        _emit_json(
            {
                "command": "plan",
                "build": snapshot.to_dict(),
                "claimable": claimable,
                "problems": list(diagnostics.describe()),
            }
        )
        return 0

    renderer = _get_renderer(args)
    renderer.build_plan(snapshot, diagnostics, claimable=claimable)
    if renderer.verbose:
        renderer.section("Source:")
        renderer.text(f"  {manifest.source}")
    return 0


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    manifest = _load_manifest(args)
    coordinator = config["coordinator"]
    transport_cfg = config["transport"]

    setup_logging(config["observability"], build_id=manifest.build_id)
    try:
        console = Console(no_color=_flag(args, "no_color"), highlight=False)
        transport = ConsoleTransport(transport_cfg["channel"], console)
        engine = CoordinationEngine(
            manifest.build_id,
            manifest.components,
            transport.deliver,
            settings=EngineSettings.from_config(config),
            strict_graph=coordinator["strict_graph"],
        )

        renderer = _get_renderer(args)
        renderer.kv("Build", manifest.build_id)
        renderer.kv("Components", len(manifest))
        renderer.text(f"Enter messages as: {transport_cfg['sender_prefix']}agent-id MESSAGE")

        stats = SessionStats()
        try:
            asyncio.run(
                run_console_session(
                    engine,
                    read_stdin_lines(),
                    sweep_interval=float(coordinator["sweep_interval_seconds"]),
                    prefix=transport_cfg["sender_prefix"],
                    on_invalid=lambda _line: console.print(
                        f"Format: {transport_cfg['sender_prefix']}agent-id message",
                        markup=False,
                    ),
                    stop_when_complete=_flag(args, "exit_on_complete"),
                    stats=stats,
                )
            )
        except KeyboardInterrupt:
            renderer.text("interrupted")

        counts = engine.snapshot().status_counts()
        renderer.section("Summary:")
        renderer.items([f"{status}: {count}" for status, count in counts.items() if count])
        if renderer.verbose:
            renderer.kv("Events handled", stats.events)
            renderer.kv("Sweeps", stats.sweeps)
        return 0
    finally:
        shutdown_logging()


def _cmd_tui(args: argparse.Namespace) -> int:
    from forge_coordinator.ui.tui import run_tui

    config = _load_effective_config(args)
    manifest = _load_manifest(args)
    coordinator = config["coordinator"]

    observability = dict(config["observability"])
    observability["log_to_stdout"] = False
    setup_logging(observability, build_id=manifest.build_id)
    try:
        return run_tui(
            manifest,
            settings=EngineSettings.from_config(config),
            channel=config["transport"]["channel"],
            sender_prefix=config["transport"]["sender_prefix"],
            sweep_interval=float(coordinator["sweep_interval_seconds"]),
            strict_graph=coordinator["strict_graph"],
            no_color=_flag(args, "no_color"),
        )
    finally:
        shutdown_logging()


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args)
    profile = getattr(args, "profile", None)

    if _flag(args, "json"):
        _emit_json({"command": "config", "active_profile": profile, "config": config})
        return 0

    renderer = _get_renderer(args)
    renderer.kv("Active profile", profile or "(default)")
    renderer.text(dump_effective_config(config))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))


def _get_renderer(args: argparse.Namespace) -> CLIRenderer:
    return create_renderer(no_color=_flag(args, "no_color"), verbose=_flag(args, "verbose"))


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides = _parse_overrides(getattr(args, "overrides", None) or [])
    channel = getattr(args, "channel", None)
    if channel is not None:
        overrides["transport.channel"] = channel
    return load_config(
        getattr(args, "config_path", None),
        profile=getattr(args, "profile", None),
        cli_overrides=overrides,
    )


def _load_manifest(args: argparse.Namespace) -> ComponentManifest:
    return load_component_specs(args.spec_path, build_id=getattr(args, "build_id", None))


def _parse_overrides(raw_items: Sequence[str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for item in raw_items:
        key, sep, raw_value = item.partition("=")
        key = key.strip()
        if not sep or not key or "." not in key:
            raise CLIError(f"invalid --set {item!r}; expected SECTION.KEY=VALUE")
        overrides[key] = _parse_scalar(raw_value.strip())
    return overrides


def _parse_scalar(raw: str) -> object:
    try:
        return tomllib.loads(f"value = {raw}")["value"]
    except tomllib.TOMLDecodeError:
        return raw


def _flag(args: argparse.Namespace, name: str) -> bool:
    return bool(getattr(args, name, False))


__all__ = ["CLIError", "build_parser", "run_cli"]
