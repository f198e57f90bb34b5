"""File upload with chunking and hybrid encryption.

This module provides:
- FileUploader: Drives one file through the upload state machine

State machine:
    IDLE -> CHECKSUM_COMPUTED -> SESSION_INITIATED -> UPLOADING_CHUNK
    -> FINALIZING -> COMPLETED, with FAILED or CANCELED reachable from any state.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from backupagent.client.api import APIError, RequestCancelledError
from backupagent.client.backup.retry import retry_with_backoff
from backupagent.client.backup.types import (
    ChecksumIOError,
    ChunkTransmissionError,
    EmptyFileError,
    ProgressCallback,
    RetryExhaustedError,
    SessionInitiationError,
    StateCallback,
    UploadCancelledError,
    UploadResult,
)
from backupagent.core.chunking import ChunkSource
from backupagent.core.config import UploadConfig
from backupagent.core.crypto import EncryptionError, compute_file_hash, encrypt_chunk
from backupagent.core.types import UploadState

if TYPE_CHECKING:
    from backupagent.client.api import BackupSession, BackupStatus, BackupTransport

logger = logging.getLogger(__name__)

# Errors that make a chunk step (read + encrypt + transmit) eligible for retry
RETRYABLE_EXCEPTIONS: tuple[type[Exception], ...] = (
    ChunkTransmissionError,
    EncryptionError,
    OSError,
)


def chunk_progress(completed: int, total: int) -> int:
    """Compute the integer progress after `completed` of `total` chunks.

    Rounds up, but stays at 99 until the last chunk is sent.
    """
    if total <= 0:
        return 100
    percent = -(-100 * completed // total)
    if completed < total:
        percent = min(percent, 99)
    return percent


class FileUploader:
    """Uploads one file as a sequence of encrypted chunks.

    Chunks are sent strictly in index order. Each chunk step is retried
    with exponential backoff; checksum and session errors are not.
    """

    def __init__(
        self,
        client: BackupTransport,
        config: UploadConfig | None = None,
        progress_callback: ProgressCallback | None = None,
        state_callback: StateCallback | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            client: Transport for server communication.
            config: Chunk size and retry settings.
            progress_callback: Optional callback (file_name, percent) after each chunk.
            state_callback: Optional callback (file_name, state) on each transition.
        """
        self._client = client
        self._config = config or UploadConfig()
        self._progress_callback = progress_callback
        self._state_callback = state_callback

    @property
    def config(self) -> UploadConfig:
        """Get the upload configuration."""
        return self._config

    async def upload_file(
        self,
        local_path: Path,
        file_name: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> UploadResult:
        """Upload a file to the backup service.

        Args:
            local_path: Path to the local file.
            file_name: Name reported to the server (default: the file's name).
            cancel_event: Optional event requesting cancellation when set.

        Returns:
            UploadResult with the backup id.

        Raises:
            EmptyFileError: If the file is empty.
            ChecksumIOError: If the file cannot be read.
            SessionInitiationError: If the server does not open a session.
            RetryExhaustedError: If a chunk keeps failing.
            UploadCancelledError: If cancellation was requested.
        """
        local_path = Path(local_path)
        file_name = file_name or local_path.name
        cancel_event = cancel_event or asyncio.Event()

        self._set_state(file_name, UploadState.IDLE)
        try:
            return await self._run(local_path, file_name, cancel_event)
        except (UploadCancelledError, asyncio.CancelledError):
            self._set_state(file_name, UploadState.CANCELED)
            raise
        except Exception:
            self._set_state(file_name, UploadState.FAILED)
            raise

    async def _run(
        self,
        local_path: Path,
        file_name: str,
        cancel_event: asyncio.Event,
    ) -> UploadResult:
        """Run the state machine for one file."""
        self._check_cancel(cancel_event, file_name, "before start")

        try:
            source = ChunkSource(local_path, self._config.chunk_size)
        except OSError as e:
            raise ChecksumIOError(f"Cannot read {local_path}: {e}") from e

        if source.file_size == 0:
            raise EmptyFileError(f"Refusing to back up empty file: {file_name}")

        logger.info(f"Uploading {file_name} ({source.file_size} bytes)")

        # Idle -> ChecksumComputed
        try:
            checksum = await asyncio.to_thread(compute_file_hash, local_path)
        except OSError as e:
            raise ChecksumIOError(f"Cannot read {local_path}: {e}") from e
        self._set_state(file_name, UploadState.CHECKSUM_COMPUTED)
        self._check_cancel(cancel_event, file_name, "after checksum")

        # ChecksumComputed -> SessionInitiated
        num_chunks = source.total_chunks
        session = await self._initiate(file_name, source, checksum)
        self._set_state(file_name, UploadState.SESSION_INITIATED)
        logger.info(f"Backup {session.backup_id} initiated: {num_chunks} chunks")

        # SessionInitiated -> UploadingChunk(0..n-1)
        try:
            for index in range(num_chunks):
                if cancel_event.is_set():
                    logger.info(f"Upload cancelled at chunk {index + 1}/{num_chunks}")
                    raise UploadCancelledError(
                        f"Upload of {file_name} cancelled at chunk {index + 1}/{num_chunks}"
                    )
                if index == 0:
                    self._set_state(file_name, UploadState.UPLOADING_CHUNK)

                await self._upload_chunk_with_retry(source, session, index, cancel_event)

                if self._progress_callback:
                    self._progress_callback(file_name, chunk_progress(index + 1, num_chunks))
        finally:
            source.clear_cache()

        # UploadingChunk(n-1) -> Finalizing
        self._check_cancel(cancel_event, file_name, "before finalizing")
        self._set_state(file_name, UploadState.FINALIZING)
        final_status = await self._fetch_final_status(session.backup_id)

        # Finalizing -> Completed
        self._check_cancel(cancel_event, file_name, "while finalizing")
        self._set_state(file_name, UploadState.COMPLETED)
        logger.info(f"Uploaded {file_name}: {num_chunks} chunks, backup {session.backup_id}")

        return UploadResult(
            file_name=file_name,
            backup_id=session.backup_id,
            size=source.file_size,
            checksum=checksum,
            num_chunks=num_chunks,
            final_status=final_status,
        )

    async def _initiate(
        self,
        file_name: str,
        source: ChunkSource,
        checksum: str,
    ) -> BackupSession:
        """Request an upload session and validate it.

        Raises:
            SessionInitiationError: If the request fails or the session
                does not provide one destination per chunk.
        """
        try:
            session = await self._client.initiate_backup(
                filename=file_name,
                num_chunks=source.total_chunks,
                chunk_size=source.chunk_size,
                total_size=source.file_size,
                checksum=checksum,
                addon_type=self._config.addon_type,
            )
        except (APIError, OSError) as e:
            raise SessionInitiationError(f"Failed to initiate backup: {e}") from e

        if session.num_chunks != source.total_chunks:
            raise SessionInitiationError(
                f"Server issued {session.num_chunks} upload URLs "
                f"for {source.total_chunks} chunks"
            )
        return session

    async def _upload_chunk_with_retry(
        self,
        source: ChunkSource,
        session: BackupSession,
        index: int,
        cancel_event: asyncio.Event,
    ) -> None:
        """Read, encrypt and transmit one chunk, retrying the whole step.

        A fresh key and IV are generated on every attempt.

        Raises:
            RetryExhaustedError: If every attempt failed.
            UploadCancelledError: If cancellation was requested.
        """
        total = source.total_chunks

        async def do_upload() -> None:
            data = await asyncio.to_thread(source.get_chunk, index)
            envelope = encrypt_chunk(session.public_key, data)
            try:
                await self._client.upload_chunk(
                    session.presigned_urls[index], envelope, cancel_event
                )
            except RequestCancelledError as e:
                raise UploadCancelledError(
                    f"Upload of chunk {index + 1}/{total} cancelled"
                ) from e
            except (APIError, OSError) as e:
                raise ChunkTransmissionError(index, str(e)) from e
            logger.debug(f"Uploaded chunk {index + 1}/{total} ({len(envelope)} bytes)")

        try:
            await retry_with_backoff(
                do_upload,
                max_attempts=self._config.max_retries,
                base_delay=self._config.retry_base_delay,
                retryable_exceptions=RETRYABLE_EXCEPTIONS,
                cancel_event=cancel_event,
            )
        except RETRYABLE_EXCEPTIONS as e:
            raise RetryExhaustedError(index, self._config.max_retries, e) from e

    async def _fetch_final_status(self, backup_id: str) -> BackupStatus | None:
        """Poll the backup status once. Failures are logged, not raised."""
        try:
            status = await self._client.get_backup_status(backup_id)
        except (APIError, OSError) as e:
            logger.warning(f"Could not fetch final status of backup {backup_id}: {e}")
            return None

        logger.info(
            f"Backup {backup_id} status: {status.status} "
            f"({status.chunks_received}/{status.total_chunks} chunks received)"
        )
        if status.is_failed:
            logger.warning(f"Server reports backup {backup_id} failed: {status.error}")
        return status

    def _check_cancel(self, cancel_event: asyncio.Event, file_name: str, where: str) -> None:
        """Raise UploadCancelledError if cancellation was requested."""
        if cancel_event.is_set():
            logger.info(f"Upload of {file_name} cancelled {where}")
            raise UploadCancelledError(f"Upload of {file_name} cancelled {where}")

    def _set_state(self, file_name: str, state: UploadState) -> None:
        logger.debug(f"{file_name}: {state.value}")
        if self._state_callback:
            self._state_callback(file_name, state)
