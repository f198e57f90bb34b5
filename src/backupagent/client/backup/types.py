"""Shared types and dataclasses for backup uploads.

This module provides:
- BackupError and subclasses: Exception taxonomy of the upload pipeline
- UploadResult: Result of a successful file upload
- UploadOutcome: Terminal record of one file upload attempt
- FileUploadStatus: Per-file status snapshot for observers
- Type aliases for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from backupagent.core.types import OutcomeStatus, UploadState

if TYPE_CHECKING:
    from backupagent.client.api import BackupStatus


class BackupError(Exception):
    """Base exception for backup upload errors."""


class EmptyFileError(BackupError):
    """File has no content; rejected before a session is requested."""


class ChecksumIOError(BackupError):
    """File could not be read while computing its checksum."""


class SessionInitiationError(BackupError):
    """Server rejected or could not be reached for session initiation."""


class ChunkTransmissionError(BackupError):
    """Failed to transmit one chunk.

    Attributes:
        chunk_index: Index of the chunk that failed.
    """

    def __init__(self, chunk_index: int, message: str) -> None:
        self.chunk_index = chunk_index
        super().__init__(f"Chunk {chunk_index}: {message}")


class UploadCancelledError(BackupError):
    """Upload was cancelled on request. Not a failure."""


class RetryExhaustedError(BackupError):
    """A chunk step kept failing after all retry attempts.

    Attributes:
        chunk_index: Index of the chunk that failed.
        attempts: Number of attempts made.
        last_error: The error raised by the final attempt.
    """

    def __init__(self, chunk_index: int, attempts: int, last_error: Exception) -> None:
        self.chunk_index = chunk_index
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Chunk {chunk_index} failed after {attempts} attempts: {last_error}"
        )


@dataclass
class UploadResult:
    """Result of a successful file upload."""

    file_name: str
    backup_id: str
    size: int
    checksum: str
    num_chunks: int
    final_status: BackupStatus | None = None


@dataclass
class UploadOutcome:
    """Terminal record of one file upload attempt.

    Attributes:
        file_name: Name of the uploaded file.
        status: COMPLETED, FAILED or CANCELED.
        backup_id: Server session id (COMPLETED only).
        error: Human-readable cause (FAILED only).
        final_status: Advisory server status fetched after the last chunk.
        size: Bytes uploaded (COMPLETED only).
    """

    file_name: str
    status: OutcomeStatus
    backup_id: str | None = None
    error: str | None = None
    final_status: BackupStatus | None = None
    size: int = 0

    @property
    def successful(self) -> bool:
        """Check if the upload completed."""
        return self.status == OutcomeStatus.COMPLETED

    @classmethod
    def completed(cls, result: UploadResult) -> UploadOutcome:
        """Create a COMPLETED outcome from an upload result."""
        return cls(
            file_name=result.file_name,
            status=OutcomeStatus.COMPLETED,
            backup_id=result.backup_id,
            final_status=result.final_status,
            size=result.size,
        )

    @classmethod
    def failed(cls, file_name: str, error: str) -> UploadOutcome:
        """Create a FAILED outcome."""
        return cls(file_name=file_name, status=OutcomeStatus.FAILED, error=error)

    @classmethod
    def canceled(cls, file_name: str) -> UploadOutcome:
        """Create a CANCELED outcome."""
        return cls(file_name=file_name, status=OutcomeStatus.CANCELED)


@dataclass
class FileUploadStatus:
    """Status of one file upload, as seen by observers.

    Attributes:
        file_name: Name of the file.
        file_size: Size in bytes (0 until known).
        progress: Completion percentage, 0-100.
        state: Current state of the upload.
        error: Error message if failed.
        started_at: When the upload started.
        finished_at: When the upload reached a terminal state.
    """

    file_name: str
    file_size: int = 0
    progress: int = 0
    state: UploadState = UploadState.IDLE
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None


# Type aliases for callbacks
ProgressCallback = Callable[[str, int], None]
StateCallback = Callable[[str, UploadState], None]
CompleteCallback = Callable[[str, str], None]
ErrorCallback = Callable[[str, Exception], None]
