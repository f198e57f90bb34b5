"""HTTP client for the backup service API.

This module provides:
- BackupTransport: Protocol for the three calls the upload pipeline needs
- BackupClient: Async HTTP client implementing BackupTransport
- BackupSession, BackupStatus: Response models
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from backupagent.core.config import ServerConfig

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

# Headers announcing the envelope format of uploaded chunks
ENCRYPTION_HEADERS = {
    "X-Encrypted-Chunk": "true",
    "X-Encryption-Method": "aes-256-cbc+rsa",
}

# Server-side backup states
BACKUP_STATUSES = frozenset({"pending", "completed", "failed"})


class APIError(Exception):
    """Base exception for API errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(APIError):
    """Authentication failed."""


class NotFoundError(APIError):
    """Resource not found."""


class TransportError(APIError):
    """Request could not be completed (connection, timeout, protocol)."""


class RequestCancelledError(Exception):
    """Request was aborted through its cancel event."""


@dataclass
class BackupSession:
    """Upload session returned when a backup is initiated."""

    backup_id: str
    presigned_urls: list[str]
    public_key: str
    all_received: bool | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupSession:
        """Create from API response dictionary."""
        urls = data["presigned_urls"]
        if not isinstance(urls, list):
            raise TypeError("presigned_urls must be a list")
        public_key = data["public_key"]
        if not isinstance(public_key, str) or not public_key.strip():
            raise TypeError("public_key must be a non-empty string")
        return cls(
            backup_id=str(data["backup_id"]),
            presigned_urls=[str(url) for url in urls],
            public_key=public_key,
            all_received=data.get("all_received"),
        )

    @property
    def num_chunks(self) -> int:
        """Get the number of destinations issued for this session."""
        return len(self.presigned_urls)


@dataclass
class BackupStatus:
    """Backup status reported by the server."""

    backup_id: str
    status: str  # pending, completed, failed
    chunks_received: int
    total_chunks: int
    all_received: bool
    error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BackupStatus:
        """Create from API response dictionary."""
        status = data["status"]
        if status not in BACKUP_STATUSES:
            raise ValueError(f"Unknown backup status: {status!r}")
        return cls(
            backup_id=str(data["backup_id"]),
            status=status,
            chunks_received=data["chunks_received"],
            total_chunks=data["total_chunks"],
            all_received=data["all_received"],
            error=data.get("error"),
        )

    @property
    def is_completed(self) -> bool:
        """Check if the server finished assembling the backup."""
        return self.status == "completed"

    @property
    def is_failed(self) -> bool:
        """Check if the server reported a failure."""
        return self.status == "failed"


class BackupTransport(Protocol):
    """Protocol for the network calls made by the upload pipeline."""

    async def initiate_backup(
        self,
        filename: str,
        num_chunks: int,
        chunk_size: int,
        total_size: int,
        checksum: str,
        addon_type: str,
    ) -> BackupSession:
        """Request an upload session for one file."""
        ...

    async def upload_chunk(
        self,
        url: str,
        data: bytes,
        cancel_event: asyncio.Event | None = None,
    ) -> Any:
        """Send one encrypted chunk to its destination."""
        ...

    async def get_backup_status(self, backup_id: str) -> BackupStatus:
        """Fetch the server-side status of a backup."""
        ...


def _error_detail(response: httpx.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or default
    if isinstance(data, dict):
        return str(data.get("detail", default))
    return default


class BackupClient:
    """Async HTTP client for the backup service API.

    Usage:
        async with BackupClient(ServerConfig(server_url, token, user_id)) as client:
            session = await client.initiate_backup(...)
            await client.upload_chunk(session.presigned_urls[0], envelope)
    """

    def __init__(
        self,
        config: ServerConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the backup client.

        Args:
            config: Server configuration with URL, token, and settings.
            transport: Optional httpx transport (used by tests).
        """
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.server_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers={"Authorization": f"Bearer {config.token}"},
            transport=transport,
        )

    @property
    def config(self) -> ServerConfig:
        """Get the server configuration."""
        return self._config

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> BackupClient:
        """Context manager entry."""
        return self

    async def __aexit__(self, *args: object) -> None:
        """Context manager exit."""
        await self.close()

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code == 401:
            raise AuthenticationError("Invalid or expired token", 401)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404)
        if response.status_code >= 400:
            detail = _error_detail(response, "Unknown error")
            raise APIError(detail, response.status_code)
        return response

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request, mapping network failures to TransportError."""
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e
        return self._handle_response(response)

    async def _run_cancellable(
        self,
        make_request: Callable[[], Awaitable[httpx.Response]],
        cancel_event: asyncio.Event | None,
    ) -> httpx.Response:
        """Run a request, aborting it as soon as cancel_event is set.

        A request that finishes after cancellation was requested has its
        result discarded.

        Raises:
            RequestCancelledError: If cancel_event was set.
        """
        if cancel_event is None:
            return await make_request()
        if cancel_event.is_set():
            raise RequestCancelledError("Request cancelled before it was sent")

        request = asyncio.ensure_future(make_request())
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            request.cancel()
            raise
        finally:
            waiter.cancel()

        if cancel_event.is_set():
            logger.debug("Cancel requested, aborting in-flight request")
            request.cancel()
            await asyncio.wait({request})
            if not request.cancelled():
                request.exception()  # result discarded
            raise RequestCancelledError("Request cancelled while in flight")

        return request.result()

    # === Health check ===

    async def health_check(self) -> bool:
        """Check if the server is reachable.

        Returns:
            True if server is healthy.
        """
        try:
            response = await self._client.get("/health")
            return response.status_code == 200
        except httpx.RequestError:
            return False

    # === Backup operations ===

    async def initiate_backup(
        self,
        filename: str,
        num_chunks: int,
        chunk_size: int,
        total_size: int,
        checksum: str,
        addon_type: str,
    ) -> BackupSession:
        """Initiate a backup and get one upload URL per chunk.

        Args:
            filename: Name of the file being backed up.
            num_chunks: Number of chunks that will be uploaded.
            chunk_size: Bytes per chunk.
            total_size: File size in bytes.
            checksum: SHA-1 hex digest of the whole file.
            addon_type: Backup type label.

        Returns:
            Session with backup id, upload URLs and public key.

        Raises:
            APIError: If the server rejects the request or the response
                is missing required fields.
        """
        response = await self._request(
            "POST",
            "/api/backups/initiate",
            json={
                "filename": filename,
                "num_chunks": num_chunks,
                "chunk_size": chunk_size,
                "total_size": total_size,
                "checksum": checksum,
                "addon_type": addon_type,
            },
            headers={"X-User-ID": self._config.user_id, **ENCRYPTION_HEADERS},
        )
        try:
            return BackupSession.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise APIError(
                f"Malformed initiate response: {e!r}", response.status_code
            ) from e

    async def upload_chunk(
        self,
        url: str,
        data: bytes,
        cancel_event: asyncio.Event | None = None,
    ) -> Any:
        """Upload an encrypted chunk to its presigned URL.

        Args:
            url: Destination URL from the backup session.
            data: Envelope bytes.
            cancel_event: Optional event that aborts the request when set.

        Returns:
            Decoded JSON body, or the raw text when the body is not JSON.

        Raises:
            RequestCancelledError: If cancel_event was set.
            APIError: If the upload fails.
        """
        response = await self._run_cancellable(
            lambda: self._request(
                "POST",
                url,
                content=data,
                headers={"Content-Type": "application/octet-stream", **ENCRYPTION_HEADERS},
            ),
            cancel_event,
        )
        try:
            return response.json()
        except ValueError:
            return response.text

    async def get_backup_status(self, backup_id: str) -> BackupStatus:
        """Get the server-side status of a backup.

        Args:
            backup_id: Backup identifier.

        Returns:
            Current backup status.

        Raises:
            NotFoundError: If the backup is unknown.
            APIError: If the response is missing required fields.
        """
        response = await self._request(
            "GET", f"/api/v1/storage/backup/{backup_id}/status"
        )
        try:
            return BackupStatus.from_dict(response.json())
        except (ValueError, KeyError, TypeError) as e:
            raise APIError(
                f"Malformed status response: {e!r}", response.status_code
            ) from e
