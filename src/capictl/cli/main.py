"""CLI entry point wrapper.

The :func:`main` function proxies to the Typer application exported by
:mod:`capictl.cli.app`.
"""

from __future__ import annotations

from capictl.cli.app import main as _app_main


def main(argv: list[str] | None = None) -> None:
    """Invoke the capictl CLI.

    Parameters
    ----------
    argv:
        Optional list of arguments to pass to Typer. When ``None`` the
        process arguments are used.
    """

    _app_main(argv)


if __name__ == "__main__":
    main()


__all__ = ["main"]
