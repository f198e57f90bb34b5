"""Fixtures for upload pipeline tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from backupagent.core.config import UploadConfig
from tests.client.fakes import MIB, FakeTransport


@pytest.fixture
def transport(session_public_key: str) -> FakeTransport:
    """Create a fake transport issuing the session test key."""
    return FakeTransport(session_public_key)


@pytest.fixture
def upload_config() -> UploadConfig:
    """Upload settings with 1 MiB chunks and no backoff delay."""
    return UploadConfig(chunk_size=MIB, max_retries=3, retry_base_delay=0.0)


@pytest.fixture
def sample_file(tmp_path: Path) -> Path:
    """A 2.5 MiB file (three 1 MiB chunks)."""
    path = tmp_path / "sample.bin"
    path.write_bytes(bytes(i % 256 for i in range(256)) * (10 * 1024))
    return path
