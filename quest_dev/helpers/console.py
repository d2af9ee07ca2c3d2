"""Shared consoles and diagnostic output for CLI commands."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape

from quest_dev.errors import QuestDevError

console = Console()
err_console = Console(stderr=True)


def warn(message: str) -> None:
    """Print a non-fatal warning."""
    console.print(f"[yellow]Warning: {escape(message)}[/yellow]")


def print_error(error: QuestDevError) -> None:
    """Print a fatal error as a blank-line-delimited block on stderr."""
    err_console.print()
    err_console.print(f"[red]Error: {escape(error.message)}[/red]")
    if error.hints:
        err_console.print()
        for hint in error.hints:
            err_console.print(escape(hint))
    err_console.print()
