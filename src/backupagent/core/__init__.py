"""Core module - Shared crypto, chunking, and configuration."""

from backupagent.core.chunking import (
    CACHE_THRESHOLD,
    DEFAULT_CHUNK_SIZE,
    Chunk,
    ChunkSource,
)
from backupagent.core.config import ServerConfig, UploadConfig
from backupagent.core.crypto import (
    EncryptionError,
    EnvelopeError,
    compute_file_hash,
    decrypt_envelope,
    encrypt_chunk,
    load_public_key,
    normalize_public_key_pem,
    parse_envelope,
)
from backupagent.core.types import OutcomeStatus, UploadState

__all__ = [
    # Chunking
    "CACHE_THRESHOLD",
    "Chunk",
    "ChunkSource",
    "DEFAULT_CHUNK_SIZE",
    # Config
    "ServerConfig",
    "UploadConfig",
    # Crypto
    "EncryptionError",
    "EnvelopeError",
    "compute_file_hash",
    "decrypt_envelope",
    "encrypt_chunk",
    "load_public_key",
    "normalize_public_key_pem",
    "parse_envelope",
    # Types
    "OutcomeStatus",
    "UploadState",
]
