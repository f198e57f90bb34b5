"""Backup upload pipeline.

Architecture:
    BackupService → FileUploader → ChunkSource / encrypt_chunk → BackupTransport

Components:
- **BackupService**: Sequential multi-file uploads, cancellation, outcomes
- **FileUploader**: Per-file state machine (checksum, session, chunks, status)
- **ProgressTracker**: Thread-safe progress and outcome snapshots
- **retry_with_backoff**: Bounded exponential backoff with cancellation
"""

from backupagent.client.backup.progress import ProgressTracker
from backupagent.client.backup.retry import (
    DEFAULT_BASE_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY,
    retry_with_backoff,
    wait_or_cancel,
)
from backupagent.client.backup.service import BackupService
from backupagent.client.backup.types import (
    BackupError,
    ChecksumIOError,
    ChunkTransmissionError,
    CompleteCallback,
    EmptyFileError,
    ErrorCallback,
    FileUploadStatus,
    ProgressCallback,
    RetryExhaustedError,
    SessionInitiationError,
    StateCallback,
    UploadCancelledError,
    UploadOutcome,
    UploadResult,
)
from backupagent.client.backup.uploader import (
    RETRYABLE_EXCEPTIONS,
    FileUploader,
    chunk_progress,
)

__all__ = [
    # Service
    "BackupService",
    "FileUploader",
    "ProgressTracker",
    "RETRYABLE_EXCEPTIONS",
    "chunk_progress",
    # Retry
    "DEFAULT_BASE_DELAY",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_DELAY",
    "retry_with_backoff",
    "wait_or_cancel",
    # Errors
    "BackupError",
    "ChecksumIOError",
    "ChunkTransmissionError",
    "EmptyFileError",
    "RetryExhaustedError",
    "SessionInitiationError",
    "UploadCancelledError",
    # Results
    "FileUploadStatus",
    "UploadOutcome",
    "UploadResult",
    # Callbacks
    "CompleteCallback",
    "ErrorCallback",
    "ProgressCallback",
    "StateCallback",
]
