"""capictl Typer CLI application."""

from __future__ import annotations

import sys
from collections.abc import Sequence
from pathlib import Path

import typer
from rich.console import Console
from typer.main import get_command

from capictl.cli.commands import uaa as uaa_command

_CLI_PROG_NAME = "capictl"
PROJECT_ROOT = Path(__file__).resolve().parents[3]

stderr_console = Console(stderr=True)
stdout_console = Console(stderr=False)

app = typer.Typer(
    help="Command-line client for a Cloud Foundry style platform API and its UAA",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

uaa_command.register(app, stdout_console=stdout_console, stderr_console=stderr_console)


@app.command(help="Show the installed capictl package version.")
def version() -> None:
    """Print the capictl version discovered from the package metadata."""
    from importlib import metadata

    try:
        resolved_version = metadata.version("capictl")
    except metadata.PackageNotFoundError:
        pyproject = PROJECT_ROOT / "pyproject.toml"
        if not pyproject.exists():
            stdout_console.print("Version information unavailable")
            return
        import tomllib

        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        resolved_version = data.get("project", {}).get("version", "unknown")
    stdout_console.print(resolved_version)


def main(argv: Sequence[str] | None = None) -> None:
    args = list(argv) if argv is not None else sys.argv[1:]
    command = get_command(app)
    command.main(args=args, prog_name=_CLI_PROG_NAME)


__all__ = ["app", "main", "stderr_console", "stdout_console"]
