"""Shared configuration classes for backupagent.

This module defines configuration classes used by the HTTP client,
the upload pipeline and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass

from backupagent.core.chunking import DEFAULT_CHUNK_SIZE


@dataclass
class ServerConfig:
    """Configuration for connecting to the backup service.

    Attributes:
        server_url: Base URL of the server (e.g., "https://backup.example.com").
        token: Bearer token for the authenticated user.
        user_id: Account identifier sent with session requests.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    token: str
    user_id: str = ""
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")

    @property
    def is_secure(self) -> bool:
        """Check if using HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")


@dataclass
class UploadConfig:
    """Settings for the chunked upload pipeline.

    Attributes:
        chunk_size: Bytes per chunk, fixed for a session.
        max_retries: Attempts per chunk (fetch + encrypt + transmit).
        retry_base_delay: First backoff delay in seconds, doubled per attempt.
        addon_type: Backup type label sent when initiating a session.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_retries: int = 3
    retry_base_delay: float = 1.0
    addon_type: str = "plugin"

    def __post_init__(self) -> None:
        """Validate settings."""
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {self.max_retries}")
        if self.retry_base_delay < 0:
            raise ValueError(
                f"retry_base_delay must not be negative, got {self.retry_base_delay}"
            )
