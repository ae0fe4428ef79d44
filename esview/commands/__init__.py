"""Subcommands of the ``esview`` CLI.

Each public module in this package defines a click command named ``cli``;
:func:`discover_commands` finds them so new commands only need a module.
"""

from __future__ import annotations

import importlib
import pkgutil
from typing import TYPE_CHECKING

import click

if TYPE_CHECKING:
    from collections.abc import Iterator


def discover_commands() -> Iterator[click.Command]:
    """Yield the ``cli`` command of every public module in this package."""
    import esview.commands as commands_pkg

    for module_info in pkgutil.iter_modules(commands_pkg.__path__):
        if module_info.name.startswith("_"):
            continue
        module = importlib.import_module(f"{commands_pkg.__name__}.{module_info.name}")
        command = getattr(module, "cli", None)
        if isinstance(command, click.Command):
            yield command
