"""Dynaconf-backed configuration helpers for capictl."""

from __future__ import annotations

import logging
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from dynaconf import Dynaconf

from capictl.config.constants import (
    CONFIG_FILE_MODE,
    DEFAULT_CONFIG_DIRNAME,
    DEFAULT_CONFIG_FILENAME,
    OUTPUT_FORMATS,
    OUTPUT_TABLE,
    coerce_bool,
)
from capictl.domain.profiles import CliConfig, LegacySettings, Profile

LOG_FORMAT_TEXT = "text"
LOG_FORMAT_JSON = "json"
DEFAULT_LOG_FORMAT = LOG_FORMAT_TEXT
DEFAULT_LOG_LEVEL = "WARNING"
DEFAULT_MAX_BYTES = 10_000_000
DEFAULT_BACKUP_COUNT = 5

ENV_CONFIG_PATH = "CAPICTL_CONFIG"

LEGACY_API_KEY = "api"
LEGACY_TOKEN_KEY = "token"
LEGACY_REFRESH_TOKEN_KEY = "refresh_token"
LEGACY_UAA_ENDPOINT_KEY = "uaa_endpoint"
LEGACY_UAA_TOKEN_KEY = "uaa_token"
LEGACY_UAA_REFRESH_TOKEN_KEY = "uaa_refresh_token"
LEGACY_SKIP_SSL_KEY = "skip_ssl_validation"
CURRENT_API_KEY = "current_api"
OUTPUT_KEY = "output"
APIS_KEY = "apis"

LOGGING_LEVEL_KEY = "logging.level"
LOGGING_FORMAT_KEY = "logging.format"
LOGGING_FILE_KEY = "logging.file"
LOGGING_MAX_BYTES_KEY = "logging.max_bytes"
LOGGING_BACKUP_COUNT_KEY = "logging.backup_count"

_ENVIRONMENT_MAP = {
    "CAPICTL_API": LEGACY_API_KEY,
    "CAPICTL_TOKEN": LEGACY_TOKEN_KEY,
    "CAPICTL_UAA_ENDPOINT": LEGACY_UAA_ENDPOINT_KEY,
    "CAPICTL_UAA_TOKEN": LEGACY_UAA_TOKEN_KEY,
    "CAPICTL_SKIP_SSL_VALIDATION": LEGACY_SKIP_SSL_KEY,
    "CAPICTL_CURRENT_API": CURRENT_API_KEY,
    "CAPICTL_OUTPUT": OUTPUT_KEY,
    "CAPICTL_LOG_LEVEL": LOGGING_LEVEL_KEY,
    "CAPICTL_LOG_FORMAT": LOGGING_FORMAT_KEY,
    "CAPICTL_LOG_FILE": LOGGING_FILE_KEY,
    "CAPICTL_LOG_MAX_BYTES": LOGGING_MAX_BYTES_KEY,
    "CAPICTL_LOG_BACKUP_COUNT": LOGGING_BACKUP_COUNT_KEY,
}

_LEGACY_KEYS = tuple(item.name for item in fields(LegacySettings))
_PROFILE_KEYS = tuple(item.name for item in fields(Profile))


@dataclass(frozen=True)
class LoggingInputs:
    level: str | None = None
    format: str | None = None
    file_path: str | None = None


@dataclass(frozen=True)
class LoggingSettings:
    level: int
    format: str
    file_path: str | None
    max_bytes: int
    backup_count: int

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)


def default_config_path() -> Path:
    override = _coerce_str(os.getenv(ENV_CONFIG_PATH))
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_CONFIG_DIRNAME / DEFAULT_CONFIG_FILENAME


def _settings_files(config_path: Path) -> list[str]:
    local_file = config_path.with_name(f"{config_path.stem}.local{config_path.suffix}")
    files: list[str] = []
    if config_path.exists():
        files.append(str(config_path))
    if local_file.exists():
        files.append(str(local_file))
    return files


def _coerce_str(value: Any | None) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        candidate = value.strip()
        return candidate or None
    return str(value)


def _coerce_int(value: Any | None) -> int | None:
    if value is None:
        return None
    try:
        coerced = int(value)
    except (TypeError, ValueError):
        return None
    return coerced


def _apply_environment_overrides(settings: Dynaconf) -> None:
    for env_var, key in _ENVIRONMENT_MAP.items():
        raw = os.getenv(env_var)
        if raw is None:
            continue
        if isinstance(raw, str) and not raw.strip():
            continue
        settings.set(key, raw)


def load_settings(config_path: str | Path | None = None) -> Dynaconf:
    """Create a Dynaconf instance layered over ``config.toml`` and its local overlay."""

    path = Path(config_path).expanduser() if config_path else default_config_path()
    settings = Dynaconf(
        settings_files=_settings_files(path),
        envvar_prefix="CAPICTL",
        environments=False,
        load_dotenv=True,
        merge_enabled=True,
    )
    _apply_environment_overrides(settings)
    return settings


def apply_cli_overrides(
    settings: Dynaconf,
    *,
    skip_ssl_validation: bool | None = None,
    output: str | None = None,
    logging_inputs: LoggingInputs | None = None,
) -> None:
    """Apply CLI overrides to the provided settings instance."""

    if skip_ssl_validation:
        settings.set(LEGACY_SKIP_SSL_KEY, True)
    if output is not None:
        settings.set(OUTPUT_KEY, output.strip())
    if logging_inputs is None:
        return
    if logging_inputs.level is not None:
        settings.set(LOGGING_LEVEL_KEY, logging_inputs.level.strip())
    if logging_inputs.format is not None:
        settings.set(LOGGING_FORMAT_KEY, logging_inputs.format.strip())
    if logging_inputs.file_path is not None:
        settings.set(LOGGING_FILE_KEY, logging_inputs.file_path.strip())


def _as_plain_mapping(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        value = to_dict()
    if not isinstance(value, Mapping):
        return {}
    return {str(key): item for key, item in value.items()}


def _lookup(mapping: Mapping[str, Any], key: str) -> Any:
    if key in mapping:
        return mapping[key]
    return mapping.get(key.upper())


def _profile_from_mapping(raw: Mapping[str, Any]) -> Profile:
    values: dict[str, Any] = {}
    for key in _PROFILE_KEYS:
        item = _lookup(raw, key)
        if key == LEGACY_SKIP_SSL_KEY:
            values[key] = coerce_bool(item)
        else:
            values[key] = _coerce_str(item) or ""
    return Profile(**values)


def _legacy_from_mapping(raw: Mapping[str, Any]) -> LegacySettings:
    values: dict[str, Any] = {}
    for key in _LEGACY_KEYS:
        item = _lookup(raw, key)
        if key == LEGACY_SKIP_SSL_KEY:
            values[key] = coerce_bool(item)
        else:
            values[key] = _coerce_str(item) or ""
    return LegacySettings(**values)


def _resolve_output(value: Any) -> str:
    candidate = (_coerce_str(value) or OUTPUT_TABLE).lower()
    if candidate not in OUTPUT_FORMATS:
        raise ValueError(f"Unsupported output format: {candidate}")
    return candidate


def config_from_mapping(raw: Mapping[str, Any]) -> CliConfig:
    apis = {
        str(name): _profile_from_mapping(_as_plain_mapping(entry))
        for name, entry in _as_plain_mapping(_lookup(raw, APIS_KEY)).items()
    }
    return CliConfig(
        legacy=_legacy_from_mapping(raw),
        apis=apis,
        current_api=_coerce_str(_lookup(raw, CURRENT_API_KEY)) or "",
        output=_resolve_output(_lookup(raw, OUTPUT_KEY)),
    )


def config_from_settings(settings: Dynaconf) -> CliConfig:
    """Build the :class:`CliConfig` view of the merged settings layers."""

    raw: dict[str, Any] = {key: settings.get(key) for key in _LEGACY_KEYS}
    raw[CURRENT_API_KEY] = settings.get(CURRENT_API_KEY)
    raw[OUTPUT_KEY] = settings.get(OUTPUT_KEY)
    raw[APIS_KEY] = settings.get(APIS_KEY)
    return config_from_mapping(raw)


def logging_from_settings(settings: Dynaconf) -> LoggingSettings:
    """Extract logging configuration from Dynaconf."""

    level_value = _coerce_str(settings.get(LOGGING_LEVEL_KEY)) or DEFAULT_LOG_LEVEL
    format_value = (
        _coerce_str(settings.get(LOGGING_FORMAT_KEY)) or DEFAULT_LOG_FORMAT
    ).lower()
    if format_value not in {LOG_FORMAT_TEXT, LOG_FORMAT_JSON}:
        raise ValueError(f"Unsupported log format: {format_value}")

    file_path = _coerce_str(settings.get(LOGGING_FILE_KEY))

    max_bytes_value = _coerce_int(settings.get(LOGGING_MAX_BYTES_KEY))
    if max_bytes_value is None or max_bytes_value <= 0:
        max_bytes_value = DEFAULT_MAX_BYTES

    backup_count_value = _coerce_int(settings.get(LOGGING_BACKUP_COUNT_KEY))
    if backup_count_value is None or backup_count_value <= 0:
        backup_count_value = DEFAULT_BACKUP_COUNT

    mapping = logging.getLevelNamesMapping()
    level_upper = level_value.upper()
    if level_upper.isdigit():
        resolved_level = int(level_upper)
    else:
        resolved_level = mapping.get(level_upper, logging.WARNING)

    return LoggingSettings(
        level=resolved_level,
        format=format_value,
        file_path=file_path,
        max_bytes=max_bytes_value,
        backup_count=backup_count_value,
    )


def load_file_config(config_path: str | Path) -> CliConfig:
    """Read only the primary TOML file, ignoring overlays and environment."""

    path = Path(config_path).expanduser()
    if not path.exists():
        return CliConfig()
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    return config_from_mapping(data)


_TOML_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def _escape_toml_char(char: str) -> str:
    if char in _TOML_ESCAPES:
        return _TOML_ESCAPES[char]
    if ord(char) < 0x20 or ord(char) == 0x7F:
        return f"\\u{ord(char):04X}"
    return char


def _format_config_value(value: Any) -> str:
    if value is None:
        return '""'
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    escaped = "".join(_escape_toml_char(char) for char in str(value))
    return f'"{escaped}"'


def _format_section(header: str | None, values: Mapping[str, Any]) -> list[str]:
    lines: list[str] = []
    for key, entry in values.items():
        if entry is None or entry is False:
            continue
        if isinstance(entry, str) and not entry.strip():
            continue
        lines.append(f"{key} = {_format_config_value(entry)}")
    if header is None or not lines:
        return lines
    return ["", f"[{header}]", *lines]


def render_config(config: CliConfig, *, logging_section: Mapping[str, Any] | None = None) -> str:
    top: dict[str, Any] = {
        key: getattr(config.legacy, key) for key in _LEGACY_KEYS
    }
    top[CURRENT_API_KEY] = config.current_api
    if config.output != OUTPUT_TABLE:
        top[OUTPUT_KEY] = config.output

    lines = ["## capictl configuration", *_format_section(None, top)]
    for name, profile in sorted(config.apis.items()):
        values = {key: getattr(profile, key) for key in _PROFILE_KEYS}
        lines.extend(_format_section(f'{APIS_KEY}."{name}"', values))
    if logging_section:
        lines.extend(_format_section("logging", logging_section))
    lines.append("")
    return "\n".join(lines)


def _read_logging_section(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("rb") as handle:
        data = tomllib.load(handle)
    section = data.get("logging")
    return dict(section) if isinstance(section, Mapping) else {}


def save_config(config: CliConfig, config_path: str | Path) -> Path:
    """Write ``config`` to ``config_path`` with owner-only permissions.

    An existing ``[logging]`` table is carried over unchanged.
    """

    path = Path(config_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    content = render_config(config, logging_section=_read_logging_section(path))
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, CONFIG_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(content)
    os.chmod(path, CONFIG_FILE_MODE)
    return path


__all__ = [
    "DEFAULT_BACKUP_COUNT",
    "DEFAULT_LOG_FORMAT",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_MAX_BYTES",
    "ENV_CONFIG_PATH",
    "LOG_FORMAT_JSON",
    "LOG_FORMAT_TEXT",
    "LoggingInputs",
    "LoggingSettings",
    "apply_cli_overrides",
    "config_from_mapping",
    "config_from_settings",
    "default_config_path",
    "load_file_config",
    "load_settings",
    "logging_from_settings",
    "render_config",
    "save_config",
]
