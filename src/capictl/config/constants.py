"""Common boolean coercion helpers and constants."""

from __future__ import annotations

from typing import Final, Optional

TRUTHY_STRINGS = {"1", "true", "yes", "on"}
FALSY_STRINGS = {"0", "false", "no", "off"}


CONFIG_BASENAME = "config"
DEFAULT_CONFIG_FILENAME = f"{CONFIG_BASENAME}.toml"
LOCAL_CONFIG_FILENAME = f"{CONFIG_BASENAME}.local.toml"
DEFAULT_CONFIG_DIRNAME = ".capictl"

ENV_DEV_MODE: Final = "CAPICTL_DEV_MODE"
DEV_MODE_VALUES: Final[frozenset[str]] = frozenset({"true", "1"})

CAPABILITY_TIMEOUT_SECONDS: Final = 30.0
DISCOVERY_TIMEOUT_SECONDS: Final = 10.0

COMPATIBILITY_THRESHOLD_HIGH: Final = 0.8
COMPATIBILITY_THRESHOLD_MEDIUM: Final = 0.5

MINIMUM_MAJOR_VERSION: Final = 4
RECOMMENDED_MINOR_VERSION: Final = 30

COMPATIBILITY_RESULTS_FILENAME: Final = "uaa-compatibility-results.json"
CONFIG_FILE_MODE: Final = 0o600

OUTPUT_TABLE: Final = "table"
OUTPUT_JSON: Final = "json"
OUTPUT_YAML: Final = "yaml"
OUTPUT_FORMATS: Final[frozenset[str]] = frozenset({OUTPUT_TABLE, OUTPUT_JSON, OUTPUT_YAML})


def coerce_bool(value: Optional[object], *, default: bool = False) -> bool:
    """Convert common truthy/falsey string markers into booleans.

    Falls back to ``default`` when the value is ``None`` or ambiguous.
    Passing a non-string/non-bool value relies on Python's ``bool`` constructor.
    """

    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        if not normalized:
            return default
        if normalized in TRUTHY_STRINGS:
            return True
        if normalized in FALSY_STRINGS:
            return False
        return default
    try:
        return bool(value)
    except Exception:
        return default


__all__ = [
    "coerce_bool",
    "TRUTHY_STRINGS",
    "FALSY_STRINGS",
    "CONFIG_BASENAME",
    "DEFAULT_CONFIG_FILENAME",
    "LOCAL_CONFIG_FILENAME",
    "DEFAULT_CONFIG_DIRNAME",
    "ENV_DEV_MODE",
    "DEV_MODE_VALUES",
    "CAPABILITY_TIMEOUT_SECONDS",
    "DISCOVERY_TIMEOUT_SECONDS",
    "COMPATIBILITY_THRESHOLD_HIGH",
    "COMPATIBILITY_THRESHOLD_MEDIUM",
    "MINIMUM_MAJOR_VERSION",
    "RECOMMENDED_MINOR_VERSION",
    "COMPATIBILITY_RESULTS_FILENAME",
    "CONFIG_FILE_MODE",
    "OUTPUT_TABLE",
    "OUTPUT_JSON",
    "OUTPUT_YAML",
    "OUTPUT_FORMATS",
]
