"""Rich rendering helpers for capictl CLI output."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import yaml
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from capictl.application.compatibility import CompatibilityReport, CompatibilityStatus
from capictl.config.constants import OUTPUT_JSON, OUTPUT_YAML


class RichStyles:
    ACCENT = "bold cyan"
    SECONDARY = "magenta"
    SUCCESS = "green"
    WARNING = "yellow"
    FAILURE = "red"
    EMPHASIS = "bold"
    DETAIL = "white"


_STATUS_STYLES = {
    CompatibilityStatus.COMPATIBLE: RichStyles.SUCCESS,
    CompatibilityStatus.PARTIAL: RichStyles.WARNING,
    CompatibilityStatus.INCOMPATIBLE: RichStyles.FAILURE,
    CompatibilityStatus.UNKNOWN: RichStyles.SECONDARY,
}


def mask_sensitive_string(value: str) -> str:
    if not value:
        return ""
    if len(value) <= 4:
        return "*" * len(value)
    return f"{value[:2]}{'*' * (len(value) - 4)}{value[-2:]}"


def render_machine(console: Console, payload: Any, output: str) -> bool:
    """Print ``payload`` as JSON or YAML; return ``False`` for table output."""

    if output == OUTPUT_JSON:
        text = json.dumps(payload, indent=2, default=str)
    elif output == OUTPUT_YAML:
        text = yaml.safe_dump(payload, sort_keys=False).rstrip("\n")
    else:
        return False
    console.print(text, markup=False, highlight=False, soft_wrap=True)
    return True


def _status_text(status: CompatibilityStatus) -> str:
    style = _STATUS_STYLES.get(status, RichStyles.DETAIL)
    return f"[{style}]{status.value}[/{style}]"


def _print_bullets(console: Console, title: str, entries: Iterable[str]) -> None:
    items = list(entries)
    if not items:
        return
    console.print()
    console.print(f"[{RichStyles.EMPHASIS}]{title}[/{RichStyles.EMPHASIS}]")
    for entry in items:
        console.print(f"  • {entry}", markup=False, highlight=False)


def print_key_value_table(
    console: Console, title: str, rows: Sequence[tuple[str, str]]
) -> None:
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("Property", style=RichStyles.ACCENT, no_wrap=True)
    table.add_column("Value", overflow="fold")
    for key, value in rows:
        table.add_row(key, value)
    console.print(table)


def render_compatibility_report(console: Console, report: CompatibilityReport) -> None:
    print_key_value_table(
        console,
        "UAA Compatibility",
        [
            ("Endpoint", report.endpoint),
            ("Version", report.version or "unknown"),
            ("Tested", report.tested_at.isoformat()),
            ("Overall", _status_text(report.overall)),
        ],
    )

    table = Table(title="Capabilities", box=box.SIMPLE_HEAVY)
    table.add_column("Capability", style=RichStyles.ACCENT, no_wrap=True)
    table.add_column("Status", style=RichStyles.EMPHASIS)
    table.add_column("Details", style=RichStyles.DETAIL, overflow="fold")
    for result in report.results:
        status = "skipped" if result.skipped else _status_text(result.status)
        table.add_row(result.capability.value, status, escape(result.detail or "-"))
    console.print(table)

    _print_bullets(console, "Features:", report.features)
    _print_bullets(console, "Issues:", report.issues)
    _print_bullets(console, "Recommendations:", report.recommendations)


def flatten_to_dotted(data: Mapping[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    rows: list[tuple[str, str]] = []
    for key, value in data.items():
        dotted = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            rows.extend(flatten_to_dotted(value, dotted))
        elif isinstance(value, (list, tuple)):
            rows.append((dotted, ", ".join(str(item) for item in value)))
        else:
            rows.append((dotted, "" if value is None else str(value)))
    return rows


def yes_no(value: bool) -> str:
    return "yes" if value else "no"


__all__ = [
    "RichStyles",
    "flatten_to_dotted",
    "mask_sensitive_string",
    "print_key_value_table",
    "render_compatibility_report",
    "render_machine",
    "yes_no",
]
