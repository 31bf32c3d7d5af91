"""
Rich logging utilities for the narration sync engine.
"""

from typing import Optional

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.theme import Theme

from narration_sync.utils.config import config

# Theme for pipeline output
custom_theme = Theme(
    {
        "info": "cyan",
        "success": "green",
        "warning": "yellow",
        "error": "red bold",
        "step": "blue bold",
        "debug": "dim",
    }
)

# Global console instance; stderr keeps stdout free for piped JSON
console = Console(theme=custom_theme, stderr=True)


def info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]ℹ[/info] {message}")


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]✓[/success] {message}")


def warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[warning]⚠[/warning] {message}")


def error(message: str) -> None:
    """Print an error message."""
    console.print(f"[error]✗[/error] {message}")


def debug(message: str) -> None:
    """Print a debug message when verbose output is enabled."""
    if config.verbose:
        console.print(f"[debug]·[/debug] {message}", highlight=False)


def step(message: str, step_num: Optional[int] = None, total: Optional[int] = None) -> None:
    """Print a step message."""
    if step_num and total:
        console.print(f"[step][{step_num}/{total}][/step] {message}")
    else:
        console.print(f"[step]→[/step] {message}")


def header(message: str) -> None:
    """Print a header message."""
    console.print()
    console.rule(f"[bold]{message}[/bold]")
    console.print()


def section(title: str) -> None:
    """Print a bold section title inside a listing."""
    console.print(f"\n[bold]{title}[/bold]")


def field(label: str, value, width: int = 14) -> None:
    """Print an aligned label/value line."""
    console.print(f"  {label + ':':<{width}} {value}", highlight=False)


def create_progress() -> Progress:
    """Create a progress bar for chunk synthesis."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    )
