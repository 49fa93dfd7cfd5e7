"""CLI commands for credbind.

Key Commands:
    run (credbind.cli.run):
        Execute a command with credentials bound into its environment and
        masked in its output.

    types, usage (credbind.cli.inspect):
        List registered binding types; show a credential's usage history.

    credentials (credbind.cli.credentials):
        Manage credentials in the OS keyring store.
"""

from credbind.cli.credentials import credentials_group
from credbind.cli.inspect import types_command, usage_command
from credbind.cli.run import run_command

__all__ = ["credentials_group", "run_command", "types_command", "usage_command"]
