"""Hand the lab endpoint and credential to the student."""

from __future__ import annotations

import os
from pathlib import Path

from rich.panel import Panel
from rich.table import Table

from .constants import RESULT_FILE
from .models import LabResult
from .ui import console

__all__ = ["default_result_path", "format_result", "write_result", "show_result"]


def default_result_path(home: Path | None = None) -> Path:
    """The Desktop when there is one, so students find it; else the cwd."""
    desktop = (home or Path.home()) / "Desktop"
    if desktop.is_dir():
        return desktop / RESULT_FILE
    return Path.cwd() / RESULT_FILE


def format_result(result: LabResult) -> str:
    return (
        f"Endpoint: {result.endpoint}\n"
        f"Header: {result.header_name}\n"
        f"API Key: {result.credential.value}\n"
    )


def write_result(result: LabResult, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(format_result(result))
    return path


def show_result(result: LabResult, path: Path | None = None) -> None:
    table = Table(show_header=False, border_style="green")
    table.add_column("Field", style="dim")
    table.add_column("Value", style="cyan")
    table.add_row("Endpoint", result.endpoint)
    table.add_row("Header", result.header_name)
    table.add_row("API Key", result.credential.value)
    console.print(Panel(table, title="[bold green]✅ Lab Ready[/bold green]", border_style="green"))
    if path:
        console.print(f"[dim]Saved to {path}[/dim]")
