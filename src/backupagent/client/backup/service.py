"""Backup service running file uploads one after another.

This module provides:
- BackupService: Uploads files sequentially, tracks progress and outcomes,
  and accepts cancellation requests from any thread

Usage:
    async with BackupClient(server_config) as client:
        service = BackupService(client, UploadConfig())
        outcomes = await service.upload_files([Path("a.tar"), Path("b.tar")])

    # From a UI thread, at any time:
    service.get_all_progresses()   # {"a.tar": 100, "b.tar": 34}
    service.cancel_upload("b.tar")
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING

from backupagent.client.backup.progress import ProgressTracker
from backupagent.client.backup.types import (
    CompleteCallback,
    ErrorCallback,
    FileUploadStatus,
    ProgressCallback,
    UploadCancelledError,
    UploadOutcome,
)
from backupagent.client.backup.uploader import FileUploader
from backupagent.core.types import UploadState

if TYPE_CHECKING:
    from collections.abc import Iterable

    from backupagent.client.api import BackupTransport
    from backupagent.core.config import UploadConfig

logger = logging.getLogger(__name__)


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class BackupService:
    """Uploads files with chunking and encryption, one file at a time.

    Every upload attempt ends with exactly one UploadOutcome: COMPLETED with
    the backup id, FAILED with a readable cause, or CANCELED. Pipeline errors
    never escape upload_file/upload_files; they become FAILED outcomes.
    """

    def __init__(
        self,
        client: BackupTransport,
        config: UploadConfig | None = None,
        tracker: ProgressTracker | None = None,
        on_progress: ProgressCallback | None = None,
        on_complete: CompleteCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            client: Transport for server communication.
            config: Chunk size and retry settings.
            tracker: Progress store (a new one is created if omitted).
            on_progress: Optional callback (file_name, percent) after each chunk.
            on_complete: Optional callback (file_name, backup_id) on success.
            on_error: Optional callback (file_name, error) on failure.
        """
        self._tracker = tracker or ProgressTracker()
        self._uploader = FileUploader(
            client,
            config,
            progress_callback=self._handle_progress,
            state_callback=self._handle_state,
        )
        self._on_progress = on_progress
        self._on_complete = on_complete
        self._on_error = on_error

        # Cancel events per file name, read by cancel_upload from any thread
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def tracker(self) -> ProgressTracker:
        """Get the progress tracker."""
        return self._tracker

    @property
    def pending_uploads(self) -> list[str]:
        """Get names of files registered for upload and not finished yet."""
        with self._lock:
            return list(self._cancel_events)

    # === Uploads ===

    async def upload_file(self, local_path: Path, file_name: str | None = None) -> UploadOutcome:
        """Upload one file and record its outcome.

        Args:
            local_path: Path to the local file.
            file_name: Name used for progress and on the server
                (default: the file's name).

        Returns:
            The terminal outcome of the upload.
        """
        local_path = Path(local_path)
        file_name = file_name or local_path.name
        cancel_event = self._register(file_name)

        file_size = 0
        with contextlib.suppress(OSError):
            file_size = local_path.stat().st_size
        self._tracker.start(file_name, file_size)

        start_time = time.time()
        error: Exception | None = None
        try:
            result = await self._uploader.upload_file(local_path, file_name, cancel_event)
        except UploadCancelledError:
            logger.info(f"Upload of {file_name} cancelled after {time.time() - start_time:.2f}s")
            outcome = UploadOutcome.canceled(file_name)
        except asyncio.CancelledError:
            self._tracker.finish(UploadOutcome.canceled(file_name))
            raise
        except Exception as e:
            logger.error(f"Upload of {file_name} failed: {e}")
            outcome = UploadOutcome.failed(file_name, str(e))
            error = e
        else:
            if cancel_event.is_set():
                # Finished, but cancellation was requested
                outcome = UploadOutcome.canceled(file_name)
            else:
                outcome = UploadOutcome.completed(result)
                logger.info(
                    f"Upload of {file_name} completed in {time.time() - start_time:.2f}s"
                )
        finally:
            self._unregister(file_name, cancel_event)

        # Outcome is stored before observers run
        self._tracker.finish(outcome)
        self._notify(outcome, error)
        return outcome

    async def upload_files(self, paths: Iterable[Path]) -> list[UploadOutcome]:
        """Upload files strictly one after another.

        All files are registered before the first upload starts, so a
        file still waiting its turn can be cancelled; it then ends
        CANCELED without any network call.

        Args:
            paths: Files to upload, in order.

        Returns:
            One outcome per file, in the same order.
        """
        paths = [Path(p) for p in paths]
        for path in paths:
            self._register(path.name)

        outcomes: list[UploadOutcome] = []
        try:
            for path in paths:
                outcomes.append(await self.upload_file(path))
        finally:
            # Drop registrations of files that never finished
            for path in paths[len(outcomes):]:
                self._unregister_name(path.name)

        done = sum(1 for o in outcomes if o.successful)
        logger.info(f"Batch finished: {done}/{len(outcomes)} files uploaded")
        return outcomes

    # === Cancellation ===

    def cancel_upload(self, file_name: str) -> bool:
        """Request cancellation of an active or queued upload.

        Safe to call from any thread.

        Args:
            file_name: Name of the file.

        Returns:
            True if the upload was found, False otherwise.
        """
        with self._lock:
            event = self._cancel_events.get(file_name)
            loop = self._loop
        if event is None:
            return False

        logger.info(f"Cancellation requested for {file_name}")
        if loop is not None and not loop.is_closed() and _running_loop() is not loop:
            loop.call_soon_threadsafe(event.set)
        else:
            event.set()
        return True

    def cancel_all(self) -> int:
        """Request cancellation of every active or queued upload.

        Returns:
            Number of uploads cancelled.
        """
        return sum(1 for name in self.pending_uploads if self.cancel_upload(name))

    # === Progress surface ===

    def get_progress(self, file_name: str) -> int:
        """Get the progress of a file (0-100)."""
        return self._tracker.get_progress(file_name)

    def get_all_progresses(self) -> dict[str, int]:
        """Get a snapshot of progress for all files."""
        return self._tracker.progresses()

    def get_outcomes(self) -> dict[str, UploadOutcome]:
        """Get a snapshot of terminal outcomes for all files."""
        return self._tracker.outcomes()

    def get_statuses(self) -> dict[str, FileUploadStatus]:
        """Get a snapshot of the status records of all files."""
        return self._tracker.statuses()

    # === Internals ===

    def _register(self, file_name: str) -> asyncio.Event:
        """Get or create the cancel event of a file."""
        with self._lock:
            self._loop = _running_loop() or self._loop
            event = self._cancel_events.get(file_name)
            if event is None:
                event = asyncio.Event()
                self._cancel_events[file_name] = event
            return event

    def _unregister(self, file_name: str, event: asyncio.Event) -> None:
        with self._lock:
            if self._cancel_events.get(file_name) is event:
                del self._cancel_events[file_name]

    def _unregister_name(self, file_name: str) -> None:
        with self._lock:
            self._cancel_events.pop(file_name, None)

    def _notify(self, outcome: UploadOutcome, error: Exception | None) -> None:
        """Run the completion or error callback of a recorded outcome.

        Callback failures are logged; they never replace the outcome.
        """
        try:
            if outcome.successful and self._on_complete and outcome.backup_id:
                self._on_complete(outcome.file_name, outcome.backup_id)
            elif error is not None and self._on_error:
                self._on_error(outcome.file_name, error)
        except Exception:
            logger.exception(f"Callback for {outcome.file_name} failed")

    def _handle_progress(self, file_name: str, percent: int) -> None:
        progress = self._tracker.update(file_name, percent)
        if self._on_progress:
            self._on_progress(file_name, progress)

    def _handle_state(self, file_name: str, state: UploadState) -> None:
        # Terminal states are recorded with the outcome
        if not state.is_terminal:
            self._tracker.set_state(file_name, state)
