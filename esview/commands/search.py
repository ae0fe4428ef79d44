"""Search an index and display one page of results."""

from __future__ import annotations

import json

import click
from rich.markup import escape
from rich.text import Text

from esview.cli import EXIT_BACKEND_ERROR, EXIT_USAGE_ERROR, Context, pass_context
from esview.controller import SearchController
from esview.exceptions import AdmissionTimeoutError, BackendError, EsviewError
from esview.utils.output import console, create_table, debug, error, info, verbose


def _apply_columns(controller: SearchController, columns: list[str]) -> None:
    active = controller.state.read_state(lambda s: list(s.data.active_fields))
    for name in active:
        if name not in columns:
            controller.state.set_field_active(name, False)
    for name in columns:
        controller.state.set_field_active(name, True)


def _render_table(controller: SearchController) -> None:
    headers, rows = controller.page_rows()
    pagination = controller.state.get_pagination()
    displayed = controller.state.read_state(lambda s: len(s.data.displayed_results))
    if not headers or headers == ["#"]:
        info("No fields selected. Use --columns to pick fields.")
        return
    if not rows:
        info("No results to display.")
        return

    table = create_table(
        title=f"Page {pagination.current_page}/{pagination.total_pages} ({displayed} documents)"
    )
    for header in headers:
        table.add_column(header, style="field" if header != "#" else "dim", overflow="fold")
    for row in rows:
        table.add_row(*(Text(cell) for cell in row))
    console.print(table)


@click.command("search")
@click.argument("filters", nargs=-1)
@click.option("--index", "-i", default=None, help="Index or pattern (default: from config)")
@click.option(
    "--timeframe",
    "-t",
    default=None,
    help="Relative time window, e.g. 24h, 7d, week; '' for none (default: from config)",
)
@click.option("--size", "-n", type=int, default=None, help="Number of hits to fetch")
@click.option("--page", "-p", type=int, default=1, show_default=True, help="Page to show")
@click.option("--page-size", type=int, default=None, help="Rows per page")
@click.option(
    "--columns",
    "-C",
    default=None,
    help="Comma-separated fields to show (default: configured auto-select fields)",
)
@click.option("--grep", "-g", default=None, help="Only show rows containing this text")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
    help="Output format",
)
@pass_context
def cli(
    ctx: Context,
    filters: tuple[str, ...],
    index: str | None,
    timeframe: str | None,
    size: int | None,
    page: int,
    page_size: int | None,
    columns: str | None,
    grep: str | None,
    output_format: str,
) -> None:
    """Search an index with FILTERS and show one page of hits.

    Examples:

    \b
      # Errors of the last day
      esview search -i 'logs-*' 'level=error' -t 24h

    \b
      # Pick columns and page through results
      esview search 'status>=500' -C @timestamp,status,url -p 2

    \b
      # Raw documents as JSON
      esview search '_id=abc123' -t '' -f json
    """
    config = ctx.get_config()
    controller = SearchController(ctx.create_backend(), config)

    try:
        if index:
            controller.state.set_current_index(index)
        if timeframe is not None:
            controller.set_timeframe(timeframe, refresh=False)
        if size is not None:
            controller.set_num_results(size)
        if page_size is not None:
            controller.state.update_pagination(1, 1, config.page_size_in_range(page_size))
        for expression in filters:
            controller.add_filter(expression, refresh=False)
    except EsviewError as e:
        error(str(e))
        raise SystemExit(EXIT_USAGE_ERROR)

    target = controller.state.get_search_state().current_index
    debug(f"Query for {target}: {escape(json.dumps(controller.build_current_query()))}")
    try:
        count = controller.refresh()
    except (BackendError, AdmissionTimeoutError) as e:
        error(str(e), hint=f"Check that {config.backend.url} is reachable")
        raise SystemExit(EXIT_BACKEND_ERROR)
    verbose(f"Fetched {count} documents from {target}")

    try:
        if columns:
            _apply_columns(controller, [c.strip() for c in columns.split(",") if c.strip()])
        if grep:
            controller.filter_displayed(grep)
        if page != 1:
            controller.state.set_current_page(page)
    except EsviewError as e:
        error(str(e))
        raise SystemExit(EXIT_USAGE_ERROR)

    if output_format == "json":
        docs = [
            {"_id": doc.id, "_index": doc.index, "_source": doc.source}
            for doc in controller.page_documents()
        ]
        click.echo(json.dumps(docs, indent=2, default=str))
        return

    _render_table(controller)
