"""Compile filters into the query that would be sent to Elasticsearch."""

from __future__ import annotations

import json

import click

from esview.cli import EXIT_USAGE_ERROR, Context, pass_context
from esview.exceptions import EsviewError
from esview.search.query import build_query
from esview.utils.output import console, error


@click.command("query")
@click.argument("filters", nargs=-1)
@click.option(
    "--timeframe",
    "-t",
    default=None,
    help="Relative time window, e.g. 24h, 7d, 2w, week (default: from config)",
)
@click.option(
    "--no-timeframe",
    is_flag=True,
    default=False,
    help="Do not restrict the query by time",
)
@click.option(
    "--size",
    "-n",
    type=int,
    default=None,
    help="Number of hits to request (default: from config)",
)
@click.option(
    "--compact",
    is_flag=True,
    default=False,
    help="Print the query on one line without highlighting",
)
@pass_context
def cli(
    ctx: Context,
    filters: tuple[str, ...],
    timeframe: str | None,
    no_timeframe: bool,
    size: int | None,
    compact: bool,
) -> None:
    """Print the Elasticsearch query for FILTERS.

    Each filter is FIELD OP VALUE. Equality values are matched as
    null, true/false, numbers, wildcards (* and ?) or free text;
    escape a literal * or ? with a backslash.

    Examples:

    \b
      esview query 'status>=400' 'service=api'
      esview query 'user.name=jo*' -t 7d -n 100
      esview query '_id=abc123' --no-timeframe
    """
    config = ctx.get_config()
    if no_timeframe:
        timeframe = ""
    elif timeframe is None:
        timeframe = config.search.default_timeframe
    if size is None:
        size = config.search.default_num_results

    try:
        query = build_query(filters, size, timeframe)
    except EsviewError as e:
        error(str(e))
        raise SystemExit(EXIT_USAGE_ERROR)

    if compact:
        click.echo(json.dumps(query, separators=(",", ":")))
    else:
        console.print_json(data=query)
