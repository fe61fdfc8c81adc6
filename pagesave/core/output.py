"""Terminal output for the pagesave CLI.

Status and settings are shown as aligned key/value lines or as JSON; upload
progress goes to stderr so JSON on stdout stays parseable.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

console = Console()
err_console = Console(stderr=True)


class OutputFormat(Enum):
    JSON = "json"
    TABLE = "table"

    @classmethod
    def from_string(cls, value: str) -> OutputFormat:
        return cls(value.lower())


def _display(value: Any) -> str:
    if value is None:
        return "[dim]-[/dim]"
    if isinstance(value, bool):
        return "[green]Yes[/green]" if value else "[red]No[/red]"
    if isinstance(value, datetime):
        return value.isoformat(timespec="seconds")
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value) or "[dim]-[/dim]"
    return str(value)


def print_key_value(data: dict[str, Any], *, title: str | None = None) -> None:
    """Print settings or status as aligned ``Label  value`` lines.

    Keys are shown title-cased (``webdav_url`` becomes ``Webdav Url``);
    ``None`` prints as a dash and lists are joined with spaces.
    """
    if title:
        console.print(f"[bold]{title}[/bold]")
    labels = {key: key.replace("_", " ").title() for key in data}
    width = max((len(label) for label in labels.values()), default=0)
    for key, value in data.items():
        console.print(f"  {labels[key]:<{width}}  {_display(value)}")


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Path):
        return str(value)
    return str(value)


def print_json(data: Any, *, indent: int = 2) -> None:
    print(json.dumps(data, indent=indent, default=_default))


def print_error(message: str) -> None:
    err_console.print(f"[red]Error:[/red] {message}")


def print_warning(message: str) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def create_progress() -> Progress:
    """Progress bar for an upload, drawn on stderr."""
    return Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        TimeRemainingColumn(),
        console=err_console,
        transient=True,
    )
