"""Rich console output helpers for esview."""

from __future__ import annotations

import logging
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

# Module-level verbosity flags (set by cli.py after argument parsing)
_verbose_enabled: bool = False
_debug_enabled: bool = False

# Custom theme for esview
THEME = Theme(
    {
        "info": "cyan",
        "warning": "yellow",
        "error": "bold red",
        "success": "bold green",
        "path": "blue underline",
        "field": "bold magenta",
        "health.green": "green",
        "health.yellow": "yellow",
        "health.red": "bold red",
    }
)

# Global console instances
console = Console(theme=THEME, stderr=False)
error_console = Console(theme=THEME, stderr=True)


def set_verbosity(*, verbose: bool = False, debug: bool = False) -> None:
    """Configure module-level verbosity flags.

    Called from the CLI entry point after argument parsing.
    """
    global _verbose_enabled, _debug_enabled
    _verbose_enabled = verbose or debug  # debug implies verbose
    _debug_enabled = debug


def set_color(enabled: bool) -> None:
    """Enable or disable color on both console instances."""
    console.no_color = not enabled
    error_console.no_color = not enabled


def configure_logging(*, verbose: bool = False, debug: bool = False, quiet: bool = False) -> None:
    """Route ``esview`` loggers to stderr through rich.

    ``--debug`` shows DEBUG, ``--verbose`` INFO, ``--quiet`` only ERROR
    and the default WARNING.
    """
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    elif quiet:
        level = logging.ERROR
    else:
        level = logging.WARNING

    root = logging.getLogger("esview")
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
    handler = RichHandler(console=error_console, show_path=debug, rich_tracebacks=debug)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(handler)
    root.setLevel(level)


def info(message: str) -> None:
    """Print an info message."""
    console.print(f"[info]{message}[/info]")


def warning(message: str) -> None:
    """Print a warning message to stderr."""
    error_console.print(f"[warning]Warning:[/warning] {message}")


def error(message: str, hint: str | None = None) -> None:
    """Print an error message to stderr.

    Args:
        message: The error message.
        hint: Optional hint for resolution.
    """
    error_console.print(f"[error]Error:[/error] {escape(message)}", highlight=False)
    if hint:
        error_console.print(f"  [info]Hint:[/info] {hint}")


def success(message: str) -> None:
    """Print a success message."""
    console.print(f"[success]{message}[/success]")


def verbose(message: str) -> None:
    """Print a message only when verbose mode is enabled."""
    if _verbose_enabled:
        console.print(f"[info]{message}[/info]")


def debug(message: str) -> None:
    """Print a debug message only when debug mode is enabled."""
    if _debug_enabled:
        error_console.print(f"[warning]\\[DEBUG][/warning] {message}")


def create_table(title: str | None = None, **kwargs: Any) -> Table:
    """Create a styled table.

    Args:
        title: Optional table title.
        **kwargs: Additional Table arguments.

    Returns:
        Rich Table instance.
    """
    return Table(title=title, **kwargs)
