"""CLI entry point for credbind."""

import sys
from pathlib import Path

import click
import structlog

from credbind.cli.credentials import credentials_group
from credbind.cli.inspect import types_command, usage_command
from credbind.cli.run import run_command
from credbind.config.settings import CredbindSettings
from credbind.exceptions import ConfigurationError
from credbind.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)

DEFAULT_CONFIG = "credbind.yaml"


@click.group()
@click.option(
    "--config",
    envvar="CREDBIND_CONFIG",
    default=None,
    help=f"Path to configuration file (default: {DEFAULT_CONFIG} if present)",
)
@click.option("--log-level", default="WARNING", help="Logging level")
@click.pass_context
def cli(ctx: click.Context, config: str | None, log_level: str) -> None:
    """credbind: bind credentials to a command's environment and mask them in its output."""
    configure_logging(log_level.upper())

    config_path = Path(config or DEFAULT_CONFIG)
    if config is None and not config_path.exists():
        ctx.obj = {"settings": CredbindSettings()}
        return

    try:
        settings = CredbindSettings.from_yaml(config_path)
    except ConfigurationError as e:
        click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
        log.debug("config_error", exc_info=True)
        sys.exit(1)

    ctx.obj = {"settings": settings}


cli.add_command(run_command)
cli.add_command(types_command)
cli.add_command(usage_command)
cli.add_command(credentials_group)


if __name__ == "__main__":
    cli()
