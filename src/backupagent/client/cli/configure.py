"""Configure command for backupagent CLI.

Commands:
- configure: Save the backup server connection settings
"""

from __future__ import annotations

import asyncio
import sys

import click

from backupagent.client.cli.config import load_config, save_config
from backupagent.core.config import ServerConfig


@click.command()
@click.option(
    "--server",
    required=True,
    help="Server URL (e.g., https://backup.example.com).",
)
@click.option(
    "--token",
    required=True,
    help="Bearer token issued by the identity provider.",
)
@click.option(
    "--user-id",
    default="",
    help="Account identifier sent with backup requests.",
)
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    default=None,
    help="Default chunk size in bytes.",
)
@click.option("--check", is_flag=True, help="Check that the server is reachable.")
def configure(
    server: str,
    token: str,
    user_id: str,
    chunk_size: int | None,
    check: bool,
) -> None:
    """Save the backup server connection settings."""
    from backupagent.client.api import BackupClient

    config = load_config()
    config["server_url"] = server.rstrip("/")
    config["auth_token"] = token
    config["user_id"] = user_id
    if chunk_size is not None:
        config["chunk_size"] = str(chunk_size)

    if check:
        async def ping() -> bool:
            async with BackupClient(ServerConfig(server_url=server, token=token)) as client:
                return await client.health_check()

        if not asyncio.run(ping()):
            click.echo(f"Error: Could not reach server at {server}", err=True)
            sys.exit(1)

    save_config(config)
    click.echo("Configuration saved.")
    click.echo(f"Server: {config['server_url']}")
    if user_id:
        click.echo(f"User: {user_id}")
