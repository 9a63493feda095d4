"""
forge-coordinator: configuration schema and validation.

The schema is a table of sections, each a table of fields with a checker.
Validation never raises on bad input; it collects ``ConfigValidationIssue``
records (dotted path + message) and returns a normalized copy only when there
are none. Profiles are partial overlays validated with the same field table.
"""

from __future__ import annotations

import copy
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from forge_coordinator.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_CHANNEL,
    DEFAULT_CLAIM_EXPIRY_SECONDS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_PROGRESS_TIMEOUT_SECONDS,
    DEFAULT_SENDER_PREFIX,
    DEFAULT_SWEEP_INTERVAL_SECONDS,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
BUILTIN_PROFILE_NAMES: Final[tuple[str, ...]] = ("strict", "relaxed")
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Relative values are resolved against the config file's directory.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (("observability", "log_dir"),)

_PROFILE_NAME = re.compile(r"^[a-z][a-z0-9_-]*$")


class MetaConfig(TypedDict):
    schema_version: int


class CoordinatorSettings(TypedDict):
    progress_timeout_seconds: int
    claim_expiry_seconds: int
    max_retries: int
    sweep_interval_seconds: int
    strict_graph: bool


class TransportConfig(TypedDict):
    channel: str
    sender_prefix: str


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_dir: str
    log_to_stdout: bool


class ProfileOverlay(TypedDict, total=False):
    coordinator: dict[str, object]
    transport: dict[str, object]
    observability: dict[str, object]


class CoordinatorConfig(TypedDict):
    meta: MetaConfig
    coordinator: CoordinatorSettings
    transport: TransportConfig
    observability: ObservabilityConfig
    profiles: dict[str, ProfileOverlay]


DEFAULT_CONFIG: Final[CoordinatorConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "coordinator": {
        "progress_timeout_seconds": DEFAULT_PROGRESS_TIMEOUT_SECONDS,
        "claim_expiry_seconds": DEFAULT_CLAIM_EXPIRY_SECONDS,
        "max_retries": DEFAULT_MAX_RETRIES,
        "sweep_interval_seconds": DEFAULT_SWEEP_INTERVAL_SECONDS,
        "strict_graph": False,
    },
    "transport": {
        "channel": DEFAULT_CHANNEL,
        "sender_prefix": DEFAULT_SENDER_PREFIX,
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": "logs/",
        "log_to_stdout": False,
    },
    "profiles": {
        # CI-style: any graph problem aborts startup, fewer audit rounds.
        "strict": {"coordinator": {"strict_graph": True, "max_retries": 2}},
        # Slow or human-driven agents.
        "relaxed": {
            "coordinator": {
                "progress_timeout_seconds": 30 * 60,
                "claim_expiry_seconds": 10 * 60,
                "max_retries": 5,
            },
        },
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    """Normalized config (``None`` when invalid) plus every issue found."""

    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised by ``assert_valid_config`` and profile selection."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "unknown validation failure"))


# ---------------------------------------------------------------------------
# Field checkers: return the normalized value, or None after recording an issue.
# ---------------------------------------------------------------------------

_Issues = list[ConfigValidationIssue]
_Checker = Callable[[object, str, _Issues], object | None]


def _positive_int(value: object, path: str, issues: _Issues) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.append(ConfigValidationIssue(path, f"expected integer, got {type(value).__name__}"))
        return None
    if value < 1:
        issues.append(ConfigValidationIssue(path, "must be >= 1"))
        return None
    return value


def _boolean(value: object, path: str, issues: _Issues) -> bool | None:
    if not isinstance(value, bool):
        issues.append(ConfigValidationIssue(path, f"expected boolean, got {type(value).__name__}"))
        return None
    return value


def _text(value: object, path: str, issues: _Issues) -> str | None:
    if not isinstance(value, str):
        issues.append(ConfigValidationIssue(path, f"expected string, got {type(value).__name__}"))
        return None
    if not value.strip():
        issues.append(ConfigValidationIssue(path, "must not be empty"))
        return None
    return value.strip()


def _token(value: object, path: str, issues: _Issues) -> str | None:
    text = _text(value, path, issues)
    if text is not None and any(char.isspace() for char in text):
        issues.append(ConfigValidationIssue(path, "must not contain whitespace"))
        return None
    return text


def _log_level(value: object, path: str, issues: _Issues) -> str | None:
    text = _text(value, path, issues)
    if text is not None and text not in LOG_LEVELS:
        expected = ", ".join(sorted(LOG_LEVELS))
        issues.append(ConfigValidationIssue(path, f"invalid value {text!r}; expected one of: {expected}"))
        return None
    return text


def _directory(value: object, path: str, issues: _Issues) -> str | None:
    text = _text(value, path, issues)
    if text is not None and "\x00" in text:
        issues.append(ConfigValidationIssue(path, "must not contain NUL bytes"))
        return None
    return text


def _schema_version(value: object, path: str, issues: _Issues) -> int | None:
    version = _positive_int(value, path, issues)
    if version is not None and version != ConfigSchemaVersion:
        issues.append(ConfigValidationIssue(path, migration_guidance(version)))
    return version


_SECTIONS: Final[dict[str, dict[str, _Checker]]] = {
    "meta": {"schema_version": _schema_version},
    "coordinator": {
        "progress_timeout_seconds": _positive_int,
        "claim_expiry_seconds": _positive_int,
        "max_retries": _positive_int,
        "sweep_interval_seconds": _positive_int,
        "strict_graph": _boolean,
    },
    "transport": {"channel": _token, "sender_prefix": _token},
    "observability": {"log_level": _log_level, "log_dir": _directory, "log_to_stdout": _boolean},
}
# Sections a profile may override.
_OVERLAY_SECTIONS: Final[tuple[str, ...]] = ("coordinator", "transport", "observability")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def default_config() -> CoordinatorConfig:
    """A fresh deep copy of ``DEFAULT_CONFIG``."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade forge.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade the forge-coordinator runtime"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``; nested mappings merge, anything else replaces."""

    merged: dict[str, Any] = {
        key: merge_config(value, {}) if isinstance(value, Mapping) else copy.deepcopy(value)
        for key, value in base.items()
    }
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, Mapping):
            merged[key] = merge_config(current, value)
        elif isinstance(value, Mapping):
            merged[key] = merge_config(value, {})
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_profile_overlay(config: Mapping[str, object], profile: str | None) -> dict[str, Any]:
    """Merge the named profile over ``config`` and validate the result."""

    name = (profile or "").strip()
    if not name:
        return merge_config(config, {})

    profiles = config.get("profiles")
    if not isinstance(profiles, Mapping):
        raise ConfigValidationError(
            [ConfigValidationIssue("profiles", "profiles section is required")]
        )
    overlay = profiles.get(name)
    if overlay is None:
        raise ConfigValidationError(
            [ConfigValidationIssue("profiles", f"profile {name!r} is not defined")]
        )
    if not isinstance(overlay, Mapping):
        raise ConfigValidationError(
            [ConfigValidationIssue(f"profiles.{name}", "profile overlay must be an object")]
        )
    return assert_valid_config(merge_config(config, overlay))


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    issues: _Issues = []
    if not _is_object(config, "<root>", issues):
        return ConfigValidationResult(config=None, issues=tuple(issues))
    assert isinstance(config, Mapping)

    _unknown_keys(config, {*_SECTIONS, "profiles"}, "", issues)
    normalized: dict[str, Any] = {}
    for section, fields in _SECTIONS.items():
        if section not in config:
            issues.append(ConfigValidationIssue(section, "missing required field"))
            continue
        raw = config[section]
        if _is_object(raw, section, issues):
            assert isinstance(raw, Mapping)
            normalized[section] = _check_section(raw, fields, section, issues, partial=False)

    if config.get("profiles") is not None:
        raw_profiles = config["profiles"]
        if _is_object(raw_profiles, "profiles", issues):
            assert isinstance(raw_profiles, Mapping)
            normalized["profiles"] = _check_profiles(raw_profiles, issues)

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Return the normalized config or raise ``ConfigValidationError``."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


# ---------------------------------------------------------------------------
# Internals
# ---------------------------------------------------------------------------


def _join(parent: str, key: str) -> str:
    return f"{parent}.{key}" if parent else key


def _is_object(value: object, path: str, issues: _Issues) -> bool:
    if not isinstance(value, Mapping):
        issues.append(ConfigValidationIssue(path, f"expected object, got {type(value).__name__}"))
        return False
    bad_keys = [key for key in value if not isinstance(key, str)]
    for key in bad_keys:
        issues.append(
            ConfigValidationIssue(path, f"object key must be string, got {type(key).__name__}")
        )
    return not bad_keys


def _unknown_keys(
    payload: Mapping[str, object], allowed: set[str] | Mapping[str, object], path: str, issues: _Issues
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.append(ConfigValidationIssue(_join(path, key), "unknown field"))


def _check_section(
    payload: Mapping[str, object],
    fields: Mapping[str, _Checker],
    path: str,
    issues: _Issues,
    *,
    partial: bool,
) -> dict[str, Any]:
    _unknown_keys(payload, fields, path, issues)
    out: dict[str, Any] = {}
    for key in sorted(fields):
        if key not in payload:
            if not partial:
                issues.append(ConfigValidationIssue(_join(path, key), "missing required field"))
            continue
        value = fields[key](payload[key], _join(path, key), issues)
        if value is not None:
            out[key] = value
    return out


def _check_profiles(payload: Mapping[str, object], issues: _Issues) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in sorted(payload):
        path = _join("profiles", name)
        if not _PROFILE_NAME.fullmatch(name):
            issues.append(ConfigValidationIssue(path, "profile name must match ^[a-z][a-z0-9_-]*$"))
            continue
        overlay = payload[name]
        if not _is_object(overlay, path, issues):
            continue
        assert isinstance(overlay, Mapping)
        _unknown_keys(overlay, set(_OVERLAY_SECTIONS), path, issues)
        checked: dict[str, Any] = {}
        for section in _OVERLAY_SECTIONS:
            raw = overlay.get(section)
            if raw is None or not _is_object(raw, _join(path, section), issues):
                continue
            assert isinstance(raw, Mapping)
            checked[section] = _check_section(
                raw, _SECTIONS[section], _join(path, section), issues, partial=True
            )
        out[name] = checked
    return out


__all__ = [
    "BUILTIN_PROFILE_NAMES",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "PATH_FIELDS",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "CoordinatorConfig",
    "apply_profile_overlay",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
