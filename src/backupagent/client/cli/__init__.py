"""Command-line interface for backupagent.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Save the backup server connection settings
- backup: Encrypt and upload files to the backup server
- status: Show the server-side status of a backup
"""

from __future__ import annotations

import click

from backupagent.client.cli.config import (
    ConfigError,
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from backupagent.client.cli.configure import configure
from backupagent.client.cli.uploads import backup, format_bytes, status


@click.group()
@click.version_option(package_name="backupagent")
def cli() -> None:
    """backupagent - Encrypted chunked file backups."""


cli.add_command(configure)
cli.add_command(backup)
cli.add_command(status)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "ConfigError",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
    # Display helpers
    "format_bytes",
]
