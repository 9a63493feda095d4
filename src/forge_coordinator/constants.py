"""Stable constants shared across coordinator layers."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
MANIFEST_SCHEMA_VERSION: Final[int] = 1

# Protocol timing defaults (seconds).
DEFAULT_PROGRESS_TIMEOUT_SECONDS: Final[int] = 10 * 60
DEFAULT_CLAIM_EXPIRY_SECONDS: Final[int] = 2 * 60
DEFAULT_SWEEP_INTERVAL_SECONDS: Final[int] = 30
DEFAULT_MAX_RETRIES: Final[int] = 3

# Transport defaults.
DEFAULT_CHANNEL: Final[str] = "#general"
DEFAULT_SENDER_PREFIX: Final[str] = "@"

# Spec layout.
COMPONENTS_DIR: Final[str] = "components"
COMPONENT_FILE_SUFFIX: Final[str] = ".md"

__all__ = [
    "COMPONENTS_DIR",
    "COMPONENT_FILE_SUFFIX",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_CHANNEL",
    "DEFAULT_CLAIM_EXPIRY_SECONDS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_PROGRESS_TIMEOUT_SECONDS",
    "DEFAULT_SENDER_PREFIX",
    "DEFAULT_SWEEP_INTERVAL_SECONDS",
    "MANIFEST_SCHEMA_VERSION",
]
