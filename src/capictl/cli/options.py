"""Typer option declarations and normalization helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Final

import typer

from capictl.config.constants import OUTPUT_FORMATS

LOG_FORMAT_CHOICES: Final[set[str]] = {"text", "json"}
LOG_LEVEL_CHOICES: Final[list[str]] = sorted(
    name
    for name, value in logging.getLevelNamesMapping().items()
    if isinstance(name, str) and not name.isdigit()
)
LOG_LEVEL_SET: Final[set[str]] = {choice.upper() for choice in LOG_LEVEL_CHOICES}

ConfigPathOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        help="Path to a capictl configuration TOML file to load",
        envvar="CAPICTL_CONFIG",
        show_envvar=True,
        rich_help_panel="Configuration",
    ),
]

OutputFormatOption = Annotated[
    str | None,
    typer.Option(
        "--output",
        "-o",
        help="Output format (table, json or yaml)",
        envvar="CAPICTL_OUTPUT",
        show_envvar=True,
        rich_help_panel="Output",
    ),
]

SkipSslValidationOption = Annotated[
    bool,
    typer.Option(
        "--skip-ssl-validation",
        help="Skip TLS certificate verification (requires CAPICTL_DEV_MODE=true)",
        rich_help_panel="TLS",
    ),
]

VerboseOption = Annotated[
    bool,
    typer.Option(
        "--verbose",
        "-v",
        help="Enable verbose diagnostics (DEBUG logging)",
        rich_help_panel="Diagnostics",
    ),
]

LogLevelOption = Annotated[
    str | None,
    typer.Option(
        "--log-level",
        help="Logging level (e.g. INFO, DEBUG)",
        envvar="CAPICTL_LOG_LEVEL",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]

LogFormatOption = Annotated[
    str | None,
    typer.Option(
        "--log-format",
        help="Logging format (text or json)",
        envvar="CAPICTL_LOG_FORMAT",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]

LogFileOption = Annotated[
    str | None,
    typer.Option(
        "--log-file",
        help="Path to a rotating log file",
        envvar="CAPICTL_LOG_FILE",
        show_envvar=True,
        rich_help_panel="Logging",
    ),
]

BasicFlagOption = Annotated[
    bool,
    typer.Option(
        "--basic",
        help="Only test server info, authentication and user management",
    ),
]

SaveResultsOption = Annotated[
    bool,
    typer.Option(
        "--save-results",
        help="Write the report to uaa-compatibility-results.json",
    ),
]

DeadlineOption = Annotated[
    float | None,
    typer.Option(
        "--deadline",
        min=0.1,
        help="Abort remaining checks after this many seconds",
    ),
]


def clean_string(value: str | None) -> str | None:
    """Normalize optional string input."""

    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def normalize_output_format(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip().lower()
    if not candidate:
        return None
    if candidate not in OUTPUT_FORMATS:
        raise typer.BadParameter(
            f"Output format must be one of: {', '.join(sorted(OUTPUT_FORMATS))}",
            param_hint="--output",
        )
    return candidate


def normalize_log_format(value: str | None) -> str | None:
    """Normalize the log format option."""

    if value is None:
        return None
    candidate = value.strip().lower()
    if not candidate:
        return None
    if candidate not in LOG_FORMAT_CHOICES:
        raise typer.BadParameter(
            "Log format must be either 'text' or 'json'",
            param_hint="--log-format",
        )
    return candidate


def normalize_log_level(value: str | None) -> str | None:
    """Normalize the log level option."""

    if value is None:
        return None
    candidate = value.strip().upper()
    if not candidate:
        return None
    if candidate not in LOG_LEVEL_SET:
        raise typer.BadParameter(
            f"Log level must be one of: {', '.join(LOG_LEVEL_CHOICES)}",
            param_hint="--log-level",
        )
    return candidate


__all__ = [
    "BasicFlagOption",
    "ConfigPathOption",
    "DeadlineOption",
    "LOG_FORMAT_CHOICES",
    "LOG_LEVEL_CHOICES",
    "LogFileOption",
    "LogFormatOption",
    "LogLevelOption",
    "OutputFormatOption",
    "SaveResultsOption",
    "SkipSslValidationOption",
    "VerboseOption",
    "clean_string",
    "normalize_log_format",
    "normalize_log_level",
    "normalize_output_format",
]
