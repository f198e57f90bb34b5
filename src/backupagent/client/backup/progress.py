"""Thread-safe progress and outcome tracking for file uploads.

This module provides:
- ProgressTracker: Per-file progress, state and outcome store

The upload task writes to the tracker while observers (a CLI status line,
a UI polling loop in another thread) read from it. All reads return copies
taken under a lock, so an observer never sees a half-applied update.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from datetime import UTC, datetime

from backupagent.client.backup.types import FileUploadStatus, UploadOutcome
from backupagent.core.types import UploadState


class ProgressTracker:
    """Stores upload progress per file name.

    Progress for a file only moves forward while an upload is running;
    it is reset to 0 when a new upload of that file starts and keeps its
    last value when the upload fails or is cancelled.
    """

    def __init__(self) -> None:
        """Initialize an empty tracker."""
        self._lock = threading.Lock()
        self._statuses: dict[str, FileUploadStatus] = {}
        self._outcomes: dict[str, UploadOutcome] = {}

    # === Writers (upload task) ===

    def start(self, file_name: str, file_size: int = 0) -> None:
        """Register the start of an upload, resetting progress to 0.

        Args:
            file_name: Name of the file.
            file_size: Size in bytes, if known.
        """
        with self._lock:
            self._statuses[file_name] = FileUploadStatus(
                file_name=file_name,
                file_size=file_size,
                progress=0,
                state=UploadState.IDLE,
                started_at=datetime.now(UTC),
            )
            self._outcomes.pop(file_name, None)

    def set_state(self, file_name: str, state: UploadState) -> None:
        """Record a state transition."""
        with self._lock:
            status = self._statuses.get(file_name)
            if status is not None:
                status.state = state

    def update(self, file_name: str, percent: int) -> int:
        """Advance the progress of a file.

        Values are clamped to 0-100 and never lower the current progress.

        Args:
            file_name: Name of the file.
            percent: New completion percentage.

        Returns:
            The progress stored after the update.
        """
        percent = max(0, min(100, percent))
        with self._lock:
            status = self._statuses.setdefault(
                file_name, FileUploadStatus(file_name=file_name)
            )
            status.progress = max(status.progress, percent)
            return status.progress

    def finish(self, outcome: UploadOutcome) -> None:
        """Record the terminal outcome of an upload.

        Args:
            outcome: Outcome to store. Progress is left unchanged.
        """
        with self._lock:
            status = self._statuses.setdefault(
                outcome.file_name, FileUploadStatus(file_name=outcome.file_name)
            )
            status.state = UploadState(outcome.status.value)
            status.error = outcome.error
            status.finished_at = datetime.now(UTC)
            self._outcomes[outcome.file_name] = outcome

    # === Readers (any thread) ===

    def get_progress(self, file_name: str) -> int:
        """Get the progress of a file (0 if unknown)."""
        with self._lock:
            status = self._statuses.get(file_name)
            return status.progress if status is not None else 0

    def get_status(self, file_name: str) -> FileUploadStatus | None:
        """Get a copy of the status of a file."""
        with self._lock:
            status = self._statuses.get(file_name)
            return replace(status) if status is not None else None

    def get_outcome(self, file_name: str) -> UploadOutcome | None:
        """Get the terminal outcome of a file, if it has one."""
        with self._lock:
            outcome = self._outcomes.get(file_name)
            return replace(outcome) if outcome is not None else None

    def progresses(self) -> dict[str, int]:
        """Get a snapshot of progress for all files."""
        with self._lock:
            return {name: s.progress for name, s in self._statuses.items()}

    def statuses(self) -> dict[str, FileUploadStatus]:
        """Get a snapshot of the status of all files."""
        with self._lock:
            return {name: replace(s) for name, s in self._statuses.items()}

    def outcomes(self) -> dict[str, UploadOutcome]:
        """Get a snapshot of all terminal outcomes."""
        with self._lock:
            return {name: replace(o) for name, o in self._outcomes.items()}
