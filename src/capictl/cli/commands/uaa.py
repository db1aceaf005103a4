"""UAA endpoint and compatibility commands for the capictl CLI."""

from __future__ import annotations

import threading
from typing import Any

import typer
from rich.console import Console

from capictl.application.compatibility import run_compatibility_check, save_snapshot
from capictl.application.integration import TROUBLESHOOTING_HINTS, check_cf_integration
from capictl.cli import options as cli_options
from capictl.cli.formatting import (
    flatten_to_dotted,
    mask_sensitive_string,
    print_key_value_table,
    render_compatibility_report,
    render_machine,
    yes_no,
)
from capictl.cli.helpers import CliInvocation, build_invocation, exit_with_error, prepare_invocation
from capictl.config.settings import load_file_config, save_config
from capictl.domain.endpoints import EndpointResolver, ResolvedEndpoint
from capictl.domain.profiles import CliConfig, ConfigResolver
from capictl.infrastructure.errors import CapictlError
from capictl.integrations.uaa.client import UaaClient, server_name, server_version
from capictl.integrations.uaa.transport import create_uaa_client

NOT_CONFIGURED = "not configured"


def normalize_target_url(url: str) -> str:
    candidate = url.strip()
    if not candidate:
        raise typer.BadParameter("UAA endpoint URL must not be empty", param_hint="URL")
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    return candidate.rstrip("/")


def _invocation(
    config_path: Any,
    output: str | None,
    skip_ssl_validation: bool,
    verbose: bool,
    log_level: str | None,
    log_format: str | None,
    log_file: str | None,
) -> CliInvocation:
    return build_invocation(
        config_path=config_path,
        output=output,
        skip_ssl_validation=skip_ssl_validation,
        verbose=verbose,
        log_level=log_level,
        log_format=log_format,
        log_file=log_file,
    )


def _resolve_endpoint(console: Console, config: CliConfig, operation: str) -> ResolvedEndpoint:
    try:
        return EndpointResolver().resolve(config)
    except CapictlError as exc:
        exit_with_error(console, operation, exc)


def _open_client(
    console: Console, config: CliConfig, resolved: ResolvedEndpoint, operation: str
) -> UaaClient:
    identity = ConfigResolver(config).resolve_identity(resolved.url)
    try:
        return create_uaa_client(identity)
    except CapictlError as exc:
        exit_with_error(console, operation, exc, endpoint=resolved.url)


def _fetch_server_info(
    console: Console, config: CliConfig, operation: str
) -> tuple[ResolvedEndpoint, dict[str, Any]]:
    resolved = _resolve_endpoint(console, config, operation)
    client = _open_client(console, config, resolved, operation)
    try:
        with client, console.status("Contacting UAA..."):
            info = client.get_server_info()
    except CapictlError as exc:
        exit_with_error(console, operation, exc, endpoint=resolved.url)
    return resolved, info


def _context_payload(config: CliConfig, invocation: CliInvocation) -> dict[str, Any]:
    resolver = ConfigResolver(config)
    payload: dict[str, Any] = {
        "config_path": str(invocation.config_path),
        "current_api": config.current_api or None,
        "platform_api": resolver.platform_endpoint() or None,
        "uaa_endpoint": None,
        "endpoint_source": None,
        "authenticated": resolver.is_authenticated(),
        "token": mask_sensitive_string(resolver.get_token()) or None,
        "skip_ssl_validation": resolver.skip_tls(),
        "connection": NOT_CONFIGURED,
        "server_name": None,
        "server_version": None,
    }
    try:
        resolved = EndpointResolver().resolve(config)
    except CapictlError as exc:
        payload["hints"] = list(exc.hints)
        return payload

    payload["uaa_endpoint"] = resolved.url
    payload["endpoint_source"] = resolved.source.value
    try:
        with create_uaa_client(resolver.resolve_identity(resolved.url)) as client:
            info = client.get_server_info()
    except CapictlError as exc:
        payload["connection"] = f"failed: {exc.user_message}"
        return payload
    payload["connection"] = "connected"
    payload["server_name"] = server_name(info) or None
    payload["server_version"] = server_version(info) or None
    return payload


def register(
    app: typer.Typer,
    *,
    stdout_console: Console,
    stderr_console: Console,
) -> None:
    uaa_app = typer.Typer(
        help="Inspect and test the UAA identity service paired with the platform API.",
        rich_markup_mode="rich",
        no_args_is_help=True,
    )

    @uaa_app.command(help="Test UAA compatibility and supported features.")
    def compatibility(
        basic: cli_options.BasicFlagOption = False,
        save_results: cli_options.SaveResultsOption = False,
        deadline: cli_options.DeadlineOption = None,
        config_path: cli_options.ConfigPathOption = None,
        output: cli_options.OutputFormatOption = None,
        skip_ssl_validation: cli_options.SkipSslValidationOption = False,
        verbose: cli_options.VerboseOption = False,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        invocation = _invocation(
            config_path, output, skip_ssl_validation, verbose, log_level, log_format, log_file
        )
        config = prepare_invocation(invocation)
        operation = "test UAA compatibility"
        resolved = _resolve_endpoint(stderr_console, config, operation)
        client = _open_client(stderr_console, config, resolved, operation)

        cancel_event = threading.Event()
        with client, stderr_console.status("Running UAA compatibility tests..."):
            report = run_compatibility_check(
                client,
                authenticated=ConfigResolver(config).is_authenticated(),
                comprehensive=not basic,
                deadline_seconds=deadline,
                cancel_event=cancel_event,
            )

        if save_results:
            try:
                path = save_snapshot(report)
            except OSError as exc:
                stderr_console.print(f"[yellow]Failed to save results: {exc}[/yellow]")
            else:
                stderr_console.print(f"Results saved to {path}")

        if not render_machine(stdout_console, report.to_payload(), config.output):
            render_compatibility_report(stdout_console, report)
        if cancel_event.is_set():
            stderr_console.print("[yellow]Interrupted: remaining stages were aborted[/yellow]")
            raise typer.Exit(code=130)

    @uaa_app.command(help="Show the resolved UAA endpoint and authentication status.")
    def context(
        config_path: cli_options.ConfigPathOption = None,
        output: cli_options.OutputFormatOption = None,
        skip_ssl_validation: cli_options.SkipSslValidationOption = False,
        verbose: cli_options.VerboseOption = False,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        invocation = _invocation(
            config_path, output, skip_ssl_validation, verbose, log_level, log_format, log_file
        )
        config = prepare_invocation(invocation)
        with stderr_console.status("Resolving UAA context..."):
            payload = _context_payload(config, invocation)
        if render_machine(stdout_console, payload, config.output):
            return

        rows = [
            ("Config File", payload["config_path"]),
            ("Platform API", payload["platform_api"] or NOT_CONFIGURED),
            ("UAA Endpoint", payload["uaa_endpoint"] or NOT_CONFIGURED),
        ]
        if payload["endpoint_source"]:
            rows.append(("Endpoint Source", payload["endpoint_source"]))
        rows.extend(
            [
                ("Authenticated", yes_no(payload["authenticated"])),
                ("Token", payload["token"] or "-"),
                ("Skip SSL Validation", yes_no(payload["skip_ssl_validation"])),
                ("Connection", payload["connection"]),
            ]
        )
        if payload["server_name"]:
            rows.append(("Server", payload["server_name"]))
        if payload["server_version"]:
            rows.append(("Version", payload["server_version"]))
        print_key_value_table(stdout_console, "UAA Context", rows)
        for hint in payload.get("hints", ()):
            stdout_console.print(f"  • {hint}", markup=False, highlight=False)

    @uaa_app.command(help="Set the UAA endpoint in the legacy configuration.")
    def target(
        url: str = typer.Argument(..., help="UAA endpoint URL; https:// is assumed"),
        config_path: cli_options.ConfigPathOption = None,
        skip_ssl_validation: cli_options.SkipSslValidationOption = False,
        verbose: cli_options.VerboseOption = False,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        invocation = _invocation(
            config_path, None, skip_ssl_validation, verbose, log_level, log_format, log_file
        )
        config = prepare_invocation(invocation)
        endpoint = normalize_target_url(url)

        identity = ConfigResolver(config).resolve_identity(endpoint)
        try:
            with create_uaa_client(identity) as client, stderr_console.status(
                "Testing connection..."
            ):
                client.get_server_info()
        except CapictlError as exc:
            stderr_console.print(
                f"[yellow]Warning: could not connect to {endpoint}: {exc.user_message}[/yellow]"
            )

        file_config = load_file_config(invocation.config_path)
        file_config.legacy.uaa_endpoint = endpoint
        try:
            save_config(file_config, invocation.config_path)
        except OSError as exc:
            stderr_console.print(f"[red]Failed to save configuration: {exc}[/red]")
            raise typer.Exit(code=1) from exc
        stdout_console.print(f"UAA endpoint set to: {endpoint}")

    @uaa_app.command(help="Show UAA server information.")
    def info(
        config_path: cli_options.ConfigPathOption = None,
        output: cli_options.OutputFormatOption = None,
        skip_ssl_validation: cli_options.SkipSslValidationOption = False,
        verbose: cli_options.VerboseOption = False,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        invocation = _invocation(
            config_path, output, skip_ssl_validation, verbose, log_level, log_format, log_file
        )
        config = prepare_invocation(invocation)
        resolved, server_info = _fetch_server_info(stderr_console, config, "get UAA server info")
        if render_machine(stdout_console, server_info, config.output):
            return
        print_key_value_table(
            stdout_console,
            f"UAA Server Info ({resolved.url})",
            flatten_to_dotted(server_info),
        )

    @uaa_app.command(name="version", help="Show the UAA server version.")
    def server_version_command(
        config_path: cli_options.ConfigPathOption = None,
        output: cli_options.OutputFormatOption = None,
        skip_ssl_validation: cli_options.SkipSslValidationOption = False,
        verbose: cli_options.VerboseOption = False,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        invocation = _invocation(
            config_path, output, skip_ssl_validation, verbose, log_level, log_format, log_file
        )
        config = prepare_invocation(invocation)
        resolved, server_info = _fetch_server_info(stderr_console, config, "get UAA version")
        payload = {
            "endpoint": resolved.url,
            "version": server_version(server_info) or "unknown",
        }
        if render_machine(stdout_console, payload, config.output):
            return
        print_key_value_table(
            stdout_console,
            "UAA Version",
            [("Endpoint", payload["endpoint"]), ("Version", payload["version"])],
        )

    @uaa_app.command(
        name="cf-integration", help="Check integration between the platform API and UAA."
    )
    def cf_integration(
        config_path: cli_options.ConfigPathOption = None,
        output: cli_options.OutputFormatOption = None,
        skip_ssl_validation: cli_options.SkipSslValidationOption = False,
        verbose: cli_options.VerboseOption = False,
        log_level: cli_options.LogLevelOption = None,
        log_format: cli_options.LogFormatOption = None,
        log_file: cli_options.LogFileOption = None,
    ) -> None:
        invocation = _invocation(
            config_path, output, skip_ssl_validation, verbose, log_level, log_format, log_file
        )
        config = prepare_invocation(invocation)
        with stderr_console.status("Checking platform integration..."):
            result = check_cf_integration(
                config,
                endpoint_resolver=EndpointResolver(),
                client_factory=create_uaa_client,
            )
        if render_machine(stdout_console, result.to_payload(), config.output):
            return

        print_key_value_table(
            stdout_console,
            "Platform Integration",
            [
                ("Platform API", result.cf_api_version),
                ("UAA Endpoint", result.uaa_endpoint or NOT_CONFIGURED),
                ("Auth Method", result.auth_method or "-"),
                ("UAA Version", result.uaa_version),
                ("Scopes Supported", yes_no(result.scopes_supported)),
                ("Token Format", result.token_format or "-"),
                ("Compatible", yes_no(result.compatible)),
            ],
        )
        for note in result.notes:
            stdout_console.print(f"  • {note}", markup=False, highlight=False)
        if not result.compatible:
            stdout_console.print()
            stdout_console.print("Troubleshooting:")
            for hint in TROUBLESHOOTING_HINTS:
                stdout_console.print(f"  • {hint}", markup=False, highlight=False)

    app.add_typer(uaa_app, name="uaa")


__all__ = ["normalize_target_url", "register"]
