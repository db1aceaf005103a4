"""Command groups registered on the capictl Typer app."""
