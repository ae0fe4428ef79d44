"""List indices with their health and size."""

from __future__ import annotations

import click

from esview.cli import EXIT_BACKEND_ERROR, Context, pass_context
from esview.controller import SearchController
from esview.exceptions import AdmissionTimeoutError, BackendError
from esview.utils.output import console, create_table, error, info

_HEALTH_STYLES = frozenset({"green", "yellow", "red"})


@click.command("indices")
@click.argument("pattern", default="*")
@pass_context
def cli(ctx: Context, pattern: str) -> None:
    """List indices matching PATTERN (default: all).

    Examples:

    \b
      esview indices
      esview indices 'logs-*'
    """
    config = ctx.get_config()
    controller = SearchController(ctx.create_backend(), config)

    try:
        stats = controller.list_indices(pattern)
    except (BackendError, AdmissionTimeoutError) as e:
        error(str(e), hint=f"Check that {config.backend.url} is reachable")
        raise SystemExit(EXIT_BACKEND_ERROR)

    if not stats:
        info(f"No indices match {pattern}")
        return

    table = create_table(title=f"Indices matching {pattern}")
    table.add_column("Health")
    table.add_column("Status")
    table.add_column("Index", style="field")
    table.add_column("Docs", justify="right")
    table.add_column("Deleted", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Primary size", justify="right")
    for row in stats:
        health = row.health
        if health in _HEALTH_STYLES:
            health = f"[health.{health}]{health}[/health.{health}]"
        table.add_row(
            health,
            row.status,
            row.index,
            row.docs_count,
            row.docs_deleted,
            row.store_size,
            row.pri_store_size,
        )
    console.print(table)
