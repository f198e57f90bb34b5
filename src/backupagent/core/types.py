"""Shared types for backupagent.

This module defines the enums describing a file upload's lifecycle.
"""

from __future__ import annotations

from enum import Enum


class UploadState(str, Enum):
    """State of a single file upload.

    Transitions:
        IDLE -> CHECKSUM_COMPUTED -> SESSION_INITIATED -> UPLOADING_CHUNK
        -> FINALIZING -> COMPLETED
    Any state may move to FAILED or CANCELED.
    """

    IDLE = "idle"
    CHECKSUM_COMPUTED = "checksum_computed"
    SESSION_INITIATED = "session_initiated"
    UPLOADING_CHUNK = "uploading_chunk"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        """Check if no further transition can happen."""
        return self in (UploadState.COMPLETED, UploadState.FAILED, UploadState.CANCELED)


class OutcomeStatus(str, Enum):
    """Terminal result of a file upload attempt."""

    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"
