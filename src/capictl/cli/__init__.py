"""Typer command line interface for capictl."""
