"""``credbind run``: execute a command inside a bound, masked scope."""

import asyncio
import sys
from pathlib import Path

import click
import structlog

from credbind.config.settings import CredbindSettings
from credbind.exceptions import ConfigurationError, CredentialError
from credbind.executor import run_in_scope
from credbind.models import Binding, ScopeContext
from credbind.scope.binder import ScopeBinder

log = structlog.get_logger(__name__)


def parse_binding_option(value: str) -> Binding:
    """Parse ``VARIABLE=CREDENTIAL_ID[:TYPE]``.

    Example:
        >>> parse_binding_option("AUTH=deploy:usernameColonPasswordBase64")
        Binding(variable='AUTH', credentials_id='deploy', type='usernameColonPasswordBase64', options={})
    """
    if "=" not in value:
        raise click.BadParameter(f"Expected VARIABLE=CREDENTIAL_ID[:TYPE], got: {value}")

    variable, _, target = value.partition("=")
    credentials_id, _, binding_type = target.partition(":")
    data = {"variable": variable, "credentials_id": credentials_id}
    if binding_type:
        data["type"] = binding_type

    try:
        return Binding(**data)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


async def _run(
    settings: CredbindSettings,
    scope: ScopeContext,
    bindings: list[Binding],
    command: tuple[str, ...],
    timeout: float | None,
) -> int:
    binder = ScopeBinder(
        settings.create_store(),
        placeholder=settings.masking.placeholder,
        default_timeout=settings.bind_timeout,
    )
    async with binder.scope(
        scope,
        bindings,
        stdout=click.get_binary_stream("stdout"),
        stderr=click.get_binary_stream("stderr"),
    ) as bound:
        for warning in bound.warnings:
            click.echo(click.style(f"Warning: {warning}", fg="yellow"), err=True)
        return await run_in_scope(bound, *command, timeout=timeout)


@click.command(name="run", context_settings={"ignore_unknown_options": True})
@click.option("--consumer", required=True, help="Name of the consuming job")
@click.option("--run-number", type=int, required=True, help="Run number of the consuming job")
@click.option("--workspace", type=click.Path(file_okay=False), help="Working directory of the scope")
@click.option(
    "--bind",
    "extra_bindings",
    multiple=True,
    help="Additional binding VARIABLE=CREDENTIAL_ID[:TYPE] (repeatable)",
)
@click.option("--timeout", type=float, help="Seconds before the command is killed")
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.pass_context
def run_command(
    ctx: click.Context,
    consumer: str,
    run_number: int,
    workspace: str | None,
    extra_bindings: tuple[str, ...],
    timeout: float | None,
    command: tuple[str, ...],
) -> None:
    """Run COMMAND with credentials bound into its environment.

    Every bound value is masked in the command's stdout and stderr.

    Examples:

        credbind run --consumer deploy --run-number 12 -- ./deploy.sh

        credbind run --consumer ci --run-number 3 --bind AUTH=registry -- sh -c 'echo $AUTH'
    """
    settings: CredbindSettings = ctx.obj["settings"]
    bindings = list(settings.bindings) + [parse_binding_option(b) for b in extra_bindings]
    scope = ScopeContext(
        consumer_id=consumer,
        run_number=run_number,
        workspace=None if workspace is None else Path(workspace),
    )

    try:
        returncode = asyncio.run(_run(settings, scope, bindings, command, timeout))
    except CredentialError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        log.debug("bind_failed", exc_info=True)
        sys.exit(1)
    except ConfigurationError as e:
        click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
        sys.exit(1)
    except FileNotFoundError as e:
        click.echo(click.style(f"Error: command not found: {e.filename}", fg="red"), err=True)
        sys.exit(127)
    except TimeoutError:
        click.echo(click.style(f"Error: command timed out after {timeout}s", fg="red"), err=True)
        sys.exit(124)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)

    sys.exit(returncode)
