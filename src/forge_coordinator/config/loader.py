"""
forge-coordinator: runtime config loader.

Layers, lowest to highest precedence:

1. built-in defaults (``schema.DEFAULT_CONFIG``)
2. ``forge.toml`` (explicit ``--config`` path, or ``./forge.toml`` if present)
3. the selected profile overlay (``--profile`` / ``FORGE_PROFILE``)
4. ``FORGE_<SECTION>_<KEY>`` environment variables
5. ``--set section.key=value`` CLI overrides

The merged result is validated after every layer that can introduce bad values,
and ``observability.log_dir`` is made absolute relative to the config file.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Iterator, Mapping
from pathlib import Path
from typing import Any, Final

from forge_coordinator.config.schema import (
    PATH_FIELDS,
    apply_profile_overlay,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "forge.toml"
ENV_PREFIX: Final[str] = "FORGE_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})
# Sections that cannot be set from the environment.
_ENV_EXCLUDED_SECTIONS: Final[frozenset[str]] = frozenset({"meta", "profiles"})


class ConfigLoadError(ValueError):
    """The config file could not be read, or an override could not be applied."""


def load_config(
    config_path: str | Path | None = None,
    *,
    profile: str | None = None,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the validated effective config."""

    env = os.environ if environ is None else environ
    overrides = dict(cli_overrides or {})
    source = (
        Path(config_path).expanduser().resolve()
        if config_path is not None
        else (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    )

    config = assert_valid_config(
        merge_config(default_config(), _read_toml(source, required=config_path is not None))
    )

    selected = _pick_profile(profile, overrides, env)
    if selected:
        config = apply_profile_overlay(config, selected)

    config = merge_config(config, _env_layer(config, env))
    config = merge_config(config, _cli_layer(overrides))
    config = assert_valid_config(config)
    return normalize_paths(config, base_dir=source.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Return a copy with every path field expanded and made absolute under ``base_dir``."""

    result = merge_config({}, config)
    for dotted in PATH_FIELDS:
        *parents, leaf = dotted
        section: Any = result
        for part in parents:
            section = section.get(part) if isinstance(section, dict) else None
        if not isinstance(section, dict) or not isinstance(section.get(leaf), str):
            continue
        path = Path(os.path.expandvars(section[leaf])).expanduser()
        if not path.is_absolute():
            path = base_dir / path
        section[leaf] = Path(os.path.normpath(path)).as_posix()
    return result


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Stable, human-readable JSON rendering of ``config``."""

    return json.dumps(config, sort_keys=True, indent=2, ensure_ascii=False)


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.is_file():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _pick_profile(
    explicit: str | None, overrides: Mapping[str, object], env: Mapping[str, str]
) -> str | None:
    candidate: object = explicit
    if candidate is None:
        candidate = overrides.get("profile")
    if candidate is None:
        candidate = env.get(f"{ENV_PREFIX}PROFILE")
    if candidate is None:
        return None
    if not isinstance(candidate, str):
        raise ConfigLoadError("profile must be a string")
    return candidate.strip() or None


def _scalar_leaves(
    payload: Mapping[str, object], prefix: tuple[str, ...] = ()
) -> Iterator[tuple[tuple[str, ...], object]]:
    for key in sorted(payload):
        value = payload[key]
        if isinstance(value, Mapping):
            yield from _scalar_leaves(value, (*prefix, key))
        else:
            yield (*prefix, key), value


def _env_layer(config: Mapping[str, object], env: Mapping[str, str]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for path, current in _scalar_leaves(config):
        if path[0] in _ENV_EXCLUDED_SECTIONS:
            continue
        name = ENV_PREFIX + "_".join(part.upper() for part in path)
        raw = env.get(name)
        if raw is not None:
            _assign(layer, path, _coerce_like(current, raw.strip(), name, ".".join(path)))
    return layer


def _coerce_like(current: object, raw: str, env_name: str, dotted: str) -> object:
    """Parse ``raw`` into the type of the value it replaces."""

    if isinstance(current, bool):
        lowered = raw.lower()
        if lowered in _TRUTHY:
            return True
        if lowered in _FALSY:
            return False
        raise ConfigLoadError(
            f"{env_name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)"
        )
    if isinstance(current, int):
        try:
            return int(raw)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be an integer") from exc
    return raw


def _cli_layer(overrides: Mapping[str, object]) -> dict[str, Any]:
    layer: dict[str, Any] = {}
    for key in sorted(overrides):
        if key == "profile":
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _assign(layer, path, overrides[key])
    return layer


def _assign(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    node = target
    for part in path[:-1]:
        child = node.get(part)
        if not isinstance(child, dict):
            child = node[part] = {}
        node = child
    node[path[-1]] = value


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
]
