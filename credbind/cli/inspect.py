"""Read-only CLI commands: registered binding types and credential usage."""

import asyncio
import sys

import click

from credbind.bindings.registry import get_default_registry
from credbind.config.settings import CredbindSettings
from credbind.exceptions import UsageTrackingError
from credbind.usage.ledger import RangeSet


def format_ranges(ranges: RangeSet) -> str:
    """Render a range set as ``3-5, 9`` (inclusive run numbers)."""
    parts = []
    for start, end in ranges.ranges:
        parts.append(str(start) if end - start == 1 else f"{start}-{end - 1}")
    return ", ".join(parts)


@click.command(name="types")
def types_command() -> None:
    """List the registered binding types."""
    for descriptor in get_default_registry().list_descriptors():
        capabilities = ", ".join(sorted(c.value for c in descriptor.accepted_capabilities))
        click.echo(click.style(descriptor.binding_type, bold=True))
        click.echo(f"  {descriptor.display_name}")
        click.echo(f"  Accepts: {capabilities}")
        click.echo(f"  Requires workspace: {'yes' if descriptor.requires_workspace else 'no'}")


@click.command(name="usage")
@click.argument("credential_id")
@click.pass_context
def usage_command(ctx: click.Context, credential_id: str) -> None:
    """Show which consumers and runs used CREDENTIAL_ID."""
    settings: CredbindSettings = ctx.obj["settings"]
    ledger = settings.create_ledger()

    try:
        fingerprint = asyncio.run(ledger.get(credential_id))
    except UsageTrackingError as e:
        click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
        sys.exit(1)

    if fingerprint is None:
        click.echo(f"Credential {credential_id} has never been used")
        return

    click.echo(f"Credential {credential_id} (first used {fingerprint.created_at.isoformat()})")
    for consumer in fingerprint.consumers:
        click.echo(f"  {consumer}: runs {format_ranges(fingerprint.usages[consumer])}")
