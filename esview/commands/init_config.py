"""Initialize configuration file for esview."""

from __future__ import annotations

from pathlib import Path

import click

from esview.cli import EXIT_USAGE_ERROR, Context, pass_context
from esview.config import Config, get_default_config_path, save_config
from esview.utils.output import error, info, success


@click.command("init-config")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    default=False,
    help="Overwrite existing config file",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    default=None,
    help="Output path for config file (default: ~/.config/esview/config.toml)",
)
@pass_context
def cli(ctx: Context, force: bool, output: Path | None) -> None:
    """Create a new configuration file with default settings.

    Writes every available option with its default value to
    ~/.config/esview/config.toml or to the path given with --output.

    Examples:

    \b
      # Create config at default location
      esview init-config

    \b
      # Create config at custom location
      esview init-config --output ./esview.toml

    \b
      # Overwrite existing config
      esview init-config --force
    """
    config_path = output if output is not None else get_default_config_path()
    config_path = config_path.expanduser().resolve()

    if config_path.exists() and not force:
        error(
            f"Config file already exists: {config_path}",
            hint="Use --force to overwrite",
        )
        raise SystemExit(EXIT_USAGE_ERROR)

    try:
        written = save_config(Config(), config_path)
        written.chmod(0o600)
    except OSError as e:
        error(f"Failed to write config file: {e}")
        raise SystemExit(EXIT_USAGE_ERROR)

    success(f"Created config file: {written}")
    info("Edit backend.url in this file to point at your cluster.")
