"""Reusable helper utilities for the capictl CLI."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console

from capictl.cli import options as cli_options
from capictl.config.settings import (
    LoggingInputs,
    LoggingSettings,
    apply_cli_overrides,
    config_from_settings,
    default_config_path,
    load_settings,
    logging_from_settings,
)
from capictl.domain.profiles import CliConfig
from capictl.infrastructure.errors import CapictlError, OperationError
from capictl.infrastructure.logging import configure_logging, get_logger, log_event

_LOGGER = get_logger("capictl.cli")


@dataclass(frozen=True)
class CliInvocation:
    config_path: Path
    output: str | None
    skip_ssl_validation: bool
    verbose: bool
    logging: LoggingInputs


def build_invocation(
    *,
    config_path: Path | str | None,
    output: str | None,
    skip_ssl_validation: bool,
    verbose: bool,
    log_level: str | None,
    log_format: str | None,
    log_file: str | None,
) -> CliInvocation:
    resolved_path = Path(config_path).expanduser() if config_path else default_config_path()
    return CliInvocation(
        config_path=resolved_path,
        output=cli_options.normalize_output_format(output),
        skip_ssl_validation=skip_ssl_validation,
        verbose=verbose,
        logging=LoggingInputs(
            level=cli_options.normalize_log_level(log_level),
            format=cli_options.normalize_log_format(log_format),
            file_path=cli_options.clean_string(log_file),
        ),
    )


def resolve_config_and_logging(
    invocation: CliInvocation,
) -> tuple[CliConfig, LoggingSettings]:
    settings = load_settings(invocation.config_path)
    apply_cli_overrides(
        settings,
        skip_ssl_validation=invocation.skip_ssl_validation,
        output=invocation.output,
        logging_inputs=invocation.logging,
    )
    try:
        config = config_from_settings(settings)
        logging_settings = logging_from_settings(settings)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc

    if invocation.verbose and logging_settings.level > logging.DEBUG:
        logging_settings = replace(logging_settings, level=logging.DEBUG)
    return config, logging_settings


def prepare_invocation(invocation: CliInvocation) -> CliConfig:
    """Resolve layered settings, configure logging and return the config view."""

    config, logging_settings = resolve_config_and_logging(invocation)
    configure_logging(logging_settings)
    log_event(
        _LOGGER,
        "cli.invocation",
        level=logging.DEBUG,
        config_path=str(invocation.config_path),
        output=config.output,
    )
    return config


def exit_with_error(
    console: Console,
    operation: str,
    exc: CapictlError,
    *,
    endpoint: str | None = None,
) -> NoReturn:
    error = OperationError(operation, exc, endpoint=endpoint)
    log_event(
        _LOGGER,
        "cli.operation.failed",
        level=logging.DEBUG,
        **error.log_fields(),
    )
    console.print(error.render(), markup=False, highlight=False)
    raise typer.Exit(code=1)


__all__ = [
    "CliInvocation",
    "build_invocation",
    "exit_with_error",
    "prepare_invocation",
    "resolve_config_and_logging",
]
