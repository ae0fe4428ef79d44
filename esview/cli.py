"""Command-line interface for esview."""

from __future__ import annotations

import os
from pathlib import Path

import click

from esview import __version__
from esview.backend.client import HttpSearchBackend
from esview.config import Config, load_config, with_backend_url
from esview.utils.output import (
    configure_logging,
    error,
    set_color,
    set_verbosity,
    warning,
)

# Exit codes shared by all commands
EXIT_USAGE_ERROR = 1
EXIT_BACKEND_ERROR = 2


class Context:
    """Shared context for all commands."""

    def __init__(self) -> None:
        self.config: Config | None = None
        self.verbose: bool = False
        self.debug: bool = False
        self.quiet: bool = False

    def get_config(self) -> Config:
        """Loaded config, or defaults when the group callback did not run."""
        if self.config is None:
            self.config = Config()
        return self.config

    def create_backend(self) -> HttpSearchBackend:
        """Build an HTTP backend from the loaded config."""
        backend = self.get_config().backend
        auth = None
        if backend.username:
            auth = (backend.username, backend.password or "")
        return HttpSearchBackend(
            backend.url,
            timeout=backend.request_timeout,
            verify=backend.verify_tls,
            auth=auth,
        )


pass_context = click.make_pass_decorator(Context, ensure=True)


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    help="Path to config file (default: ~/.config/esview/config.toml)",
)
@click.option(
    "--url",
    "-u",
    default=None,
    help="Elasticsearch URL (overrides config)",
)
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable colored output",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output",
)
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug output (implies --verbose)",
)
@click.option(
    "--quiet",
    "-q",
    is_flag=True,
    default=False,
    help="Suppress non-error output",
)
@click.version_option(version=__version__, prog_name="esview")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    url: str | None,
    no_color: bool,
    verbose: bool,
    debug: bool,
    quiet: bool,
) -> None:
    """esview: browse and filter Elasticsearch documents from the terminal.

    Filters are written as FIELD OP VALUE, where OP is one of
    =, >, >=, < or <=. Several filters are combined with AND.

    Configuration is loaded from ~/.config/esview/config.toml by default.
    Use --config to specify an alternative configuration file.

    Examples:

    \b
        # Show the query a set of filters compiles to
        esview query 'status>=400' 'host.name=web-*' -t 24h

    \b
        # Search an index and show the first page
        esview search -i 'logs-*' 'level=error' -t week
    """
    ctx.ensure_object(Context)
    app_ctx = ctx.obj
    app_ctx.verbose = verbose or debug
    app_ctx.debug = debug
    app_ctx.quiet = quiet

    set_verbosity(verbose=verbose, debug=debug)
    configure_logging(verbose=verbose, debug=debug, quiet=quiet)

    if no_color or os.environ.get("NO_COLOR") is not None:
        set_color(False)

    try:
        loaded_config, warnings = load_config(config)
    except Exception as e:
        error(str(e))
        ctx.exit(EXIT_USAGE_ERROR)
        return

    if url is not None:
        loaded_config = with_backend_url(loaded_config, url)
    app_ctx.config = loaded_config

    if not quiet:
        for warn in warnings:
            warning(warn)


@cli.command("help")
@click.argument("command", required=False, nargs=-1)
@click.pass_context
def help_cmd(ctx: click.Context, command: tuple[str, ...]) -> None:
    """Show help for a command."""
    group = cli
    for name in command:
        cmd = group.get_command(ctx, name)
        if cmd is None:
            error(f"Unknown command: {name}")
            ctx.exit(EXIT_USAGE_ERROR)
            return
        if isinstance(cmd, click.Group):
            group = cmd
        else:
            click.echo(cmd.get_help(ctx))
            return
    click.echo(group.get_help(ctx))


def register_commands() -> None:
    """Register all commands from the commands package."""
    from esview.commands import discover_commands

    for command in discover_commands():
        cli.add_command(command)


# Register commands on import
register_commands()
