"""Backup commands for backupagent CLI.

Commands:
- backup: Upload files to the backup server
- status: Show the server-side status of a backup
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
import threading
from collections.abc import Callable, Iterator
from pathlib import Path

import click

from backupagent.client.api import APIError, BackupClient, BackupStatus, NotFoundError
from backupagent.client.backup import BackupService, UploadOutcome
from backupagent.client.cli.config import (
    ConfigError,
    get_server_config,
    get_upload_config,
    load_config,
)
from backupagent.core.config import ServerConfig, UploadConfig
from backupagent.core.types import OutcomeStatus


def format_bytes(size: int | float) -> str:
    """Format a byte count for display (e.g. 1536 -> "1.5 KB")."""
    if size < 1024:
        return f"{int(size)} B"
    value = float(size)
    for unit in ("KB", "MB", "GB", "TB"):
        value /= 1024
        if value < 1024 or unit == "TB":
            return f"{value:.1f} {unit}"
    return f"{value:.1f} TB"


class StatusLineAwareHandler(logging.Handler):
    """Logging handler that coordinates with the status line display.

    Clears the status line before printing log messages and restores it after.
    """

    def __init__(
        self,
        clear_func: Callable[[], None],
        update_func: Callable[[], None],
        lock: threading.Lock,
    ) -> None:
        super().__init__()
        self._clear_func = clear_func
        self._update_func = update_func
        self._lock = lock

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            with self._lock:
                self._clear_func()
                # Same stream as the status line to prevent interleaving
                sys.stdout.write(msg + "\n")
                sys.stdout.flush()
                self._update_func()
        except Exception:
            self.handleError(record)


@contextlib.contextmanager
def _routed_logging(handler: logging.Handler, verbose: bool) -> Iterator[None]:
    """Route backupagent logs through a single handler while active."""
    level = logging.DEBUG if verbose else logging.WARNING
    handler.setFormatter(logging.Formatter("%(message)s"))
    handler.setLevel(level)

    backupagent_logger = logging.getLogger("backupagent")
    saved = (backupagent_logger.handlers[:], backupagent_logger.level, backupagent_logger.propagate)
    backupagent_logger.handlers = [handler]
    backupagent_logger.setLevel(level)
    backupagent_logger.propagate = False
    try:
        yield
    finally:
        backupagent_logger.handlers, level, backupagent_logger.propagate = saved
        backupagent_logger.setLevel(level)


async def _run_backup(
    server_config: ServerConfig,
    upload_config: UploadConfig,
    files: list[Path],
    on_progress: Callable[[str, int], None] | None = None,
) -> list[UploadOutcome]:
    """Upload files in order, cancelling everything on Ctrl+C."""
    async with BackupClient(server_config) as client:
        service = BackupService(client, upload_config, on_progress=on_progress)
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGINT, service.cancel_all)
        try:
            return await service.upload_files(files)
        finally:
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(signal.SIGINT)


@click.command()
@click.argument(
    "files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option("--chunk-size", type=int, default=None, help="Chunk size in bytes.")
@click.option("--max-retries", type=int, default=None, help="Attempts per chunk.")
@click.option("--addon-type", default=None, help="Backup category sent to the server.")
@click.option("--no-progress", is_flag=True, help="Disable the progress line.")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def backup(
    files: tuple[Path, ...],
    chunk_size: int | None,
    max_retries: int | None,
    addon_type: str | None,
    no_progress: bool,
    verbose: bool,
) -> None:
    """Encrypt and upload FILES to the backup server, one after another."""
    config = load_config()
    try:
        server_config = get_server_config(config)
        upload_config = get_upload_config(config, chunk_size, max_retries, addon_type)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    # Currently uploading file and its progress
    current: dict[str, int] = {}
    last_status_len = 0
    progress_lock = threading.Lock()

    def clear_status_line() -> None:
        """Clear the current status line. Caller holds progress_lock."""
        nonlocal last_status_len
        if last_status_len > 0 and not no_progress:
            sys.stdout.write("\r" + " " * last_status_len + "\r")
            sys.stdout.flush()
            last_status_len = 0

    def draw_status_line() -> None:
        """Redraw the progress line. Caller holds progress_lock."""
        nonlocal last_status_len
        if no_progress or not current:
            return
        status = "  " + ", ".join(f"↑ {name} {pct}%" for name, pct in current.items())

        term_width = 80
        if len(status) > term_width - 3:
            status = status[: term_width - 6] + "..."

        clear_part = " " * max(0, last_status_len - len(status))
        sys.stdout.write(f"\r{status}{clear_part}")
        sys.stdout.flush()
        last_status_len = len(status)

    def on_progress(file_name: str, percent: int) -> None:
        with progress_lock:
            current.clear()
            if percent < 100:
                current[file_name] = percent
                draw_status_line()
            else:
                clear_status_line()

    status_handler = StatusLineAwareHandler(
        clear_func=clear_status_line,
        update_func=draw_status_line,
        lock=progress_lock,
    )

    click.echo(f"Backing up {len(files)} file(s) to {server_config.server_url}...")

    with _routed_logging(status_handler, verbose):
        outcomes = asyncio.run(
            _run_backup(server_config, upload_config, list(files), on_progress)
        )

    with progress_lock:
        current.clear()
        clear_status_line()

    for outcome in outcomes:
        if outcome.status == OutcomeStatus.COMPLETED:
            click.echo(f"  ✓ {outcome.file_name} (backup {outcome.backup_id})")
        elif outcome.status == OutcomeStatus.CANCELED:
            click.echo(click.style(f"  - {outcome.file_name} cancelled", fg="yellow"))
        else:
            click.echo(click.style(f"  ✗ {outcome.file_name}: {outcome.error}", fg="red"))

    done = sum(1 for o in outcomes if o.successful)
    total_size = sum(o.size for o in outcomes if o.successful)
    click.echo(
        f"\nBackup complete: {done}/{len(outcomes)} uploaded ({format_bytes(total_size)})"
    )

    if done < len(outcomes):
        sys.exit(1)


async def _fetch_status(server_config: ServerConfig, backup_id: str) -> BackupStatus:
    async with BackupClient(server_config) as client:
        return await client.get_backup_status(backup_id)


@click.command()
@click.argument("backup_id")
def status(backup_id: str) -> None:
    """Show the server-side status of BACKUP_ID."""
    config = load_config()
    try:
        server_config = get_server_config(config)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    try:
        result = asyncio.run(_fetch_status(server_config, backup_id))
    except NotFoundError:
        click.echo(f"Error: Backup not found: {backup_id}", err=True)
        sys.exit(1)
    except APIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Backup:   {result.backup_id}")
    click.echo(f"Status:   {result.status}")
    click.echo(f"Chunks:   {result.chunks_received}/{result.total_chunks}")
    click.echo(f"Complete: {'yes' if result.all_received else 'no'}")
    if result.error:
        click.echo(f"Error:    {result.error}")
