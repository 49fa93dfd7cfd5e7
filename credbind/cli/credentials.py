"""CLI commands for the keyring credential store.

Commands:
    - set: Store a credential in the OS keyring
    - delete: Remove a credential from the OS keyring
    - test: Check availability of credential stores

Example:
    Store a username/password credential and bind it::

        $ credbind credentials set deploy --kind username_password --username bob
        $ credbind run --consumer release --run-number 1 --bind AUTH=deploy -- ./release.sh
"""

import sys

import click

from credbind.credentials.keyring_store import KeyringCredentialStore
from credbind.credentials.models import (
    Capability,
    SecretTextCredential,
    UsernamePasswordCredential,
)
from credbind.exceptions import CredentialError


def _store(ctx: click.Context) -> KeyringCredentialStore:
    settings = ctx.obj["settings"] if ctx.obj else None
    namespace = settings.store.keyring_namespace if settings is not None else "credbind"
    return KeyringCredentialStore(namespace=namespace)


def _report(error: CredentialError) -> None:
    click.echo(click.style(f"Error: {error.message}", fg="red"), err=True)
    if error.suggestion:
        click.echo(click.style(f"Suggestion: {error.suggestion}", fg="yellow"), err=True)


@click.group(name="credentials")
def credentials_group() -> None:
    """Manage credentials in the OS keyring store.

    Examples:

        credbind credentials set deploy --kind username_password --username bob

        credbind credentials set webhook --kind secret_text

        credbind credentials delete deploy
    """
    pass


@credentials_group.command(name="set")
@click.argument("credential_id")
@click.option(
    "--kind",
    type=click.Choice([c.value for c in Capability]),
    default=Capability.USERNAME_PASSWORD.value,
    show_default=True,
    help="Credential type",
)
@click.option("--username", help="Username (username_password only)")
@click.option(
    "--secret",
    prompt="Password or secret",
    hide_input=True,
    confirmation_prompt=True,
    help="Password or secret text (will prompt if not provided)",
)
@click.option("--description", default="", help="Human-readable description")
@click.pass_context
def set_credential(
    ctx: click.Context,
    credential_id: str,
    kind: str,
    username: str | None,
    secret: str,
    description: str,
) -> None:
    """Store CREDENTIAL_ID in the keyring."""
    if not secret:
        click.echo(click.style("Error: Credential value cannot be empty", fg="red"), err=True)
        sys.exit(1)

    if Capability(kind) is Capability.USERNAME_PASSWORD:
        if not username:
            click.echo(click.style("Error: --username is required for username_password", fg="red"), err=True)
            sys.exit(1)
        credential = UsernamePasswordCredential(
            id=credential_id, description=description, username=username, password=secret
        )
    else:
        credential = SecretTextCredential(id=credential_id, description=description, secret=secret)

    try:
        _store(ctx).set(credential)
    except CredentialError as e:
        _report(e)
        sys.exit(1)

    click.echo(click.style(f"Credential {credential_id} stored successfully", fg="green"))


@credentials_group.command(name="delete")
@click.argument("credential_id")
@click.confirmation_option(prompt="Are you sure you want to delete this credential?")
@click.pass_context
def delete_credential(ctx: click.Context, credential_id: str) -> None:
    """Delete CREDENTIAL_ID from the keyring."""
    try:
        deleted = _store(ctx).delete(credential_id)
    except CredentialError as e:
        _report(e)
        sys.exit(1)

    if deleted:
        click.echo(click.style("Credential deleted successfully", fg="green"))
    else:
        click.echo(click.style("Credential not found", fg="yellow"))


@credentials_group.command(name="test")
@click.pass_context
def test_credentials(ctx: click.Context) -> None:
    """Check which credential stores are available."""
    click.echo(click.style("Testing credential stores...", bold=True))

    click.echo("Keyring store: ", nl=False)
    if _store(ctx).available:
        click.echo(click.style("Available", fg="green"))
    else:
        click.echo(click.style("Not available", fg="yellow"))
        click.echo("  Configure a keyring backend or use the environment store")

    click.echo("Environment store: ", nl=False)
    click.echo(click.style("Available", fg="green"))
