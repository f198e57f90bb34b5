"""Fixed-size chunking for backup uploads.

This module provides:
- ChunkSource: Splits a file into fixed-size byte ranges read on demand
- Chunk: A chunk of file data with its position

Chunks are read from disk when requested, so the whole file is never held
in memory. Small chunks are cached to avoid re-reading them on retry.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CHUNK_SIZE = 1 * 1024 * 1024  # 1 MB

# Only chunks smaller than this are kept in the cache
CACHE_THRESHOLD = 5 * 1024 * 1024  # 5 MB


@dataclass
class Chunk:
    """Represents a chunk of file data with its position."""

    index: int
    offset: int
    data: bytes

    @property
    def size(self) -> int:
        """Return the size of this chunk in bytes."""
        return len(self.data)


class ChunkSource:
    """Reads a file as a sequence of fixed-size chunks.

    Chunk ``i`` covers ``[i * chunk_size, min((i + 1) * chunk_size, file_size))``.
    An empty file has zero chunks; callers must reject it or special-case it.

    Usage:
        source = ChunkSource(Path("backup.tar"), chunk_size=1024 * 1024)
        for index in range(source.total_chunks):
            data = source.get_chunk(index)
    """

    def __init__(
        self,
        path: Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        cache_threshold: int = CACHE_THRESHOLD,
    ) -> None:
        """Initialize the chunk source.

        Args:
            path: Path to the file to chunk.
            chunk_size: Bytes per chunk (must be positive).
            cache_threshold: Chunks smaller than this are cached after reading.

        Raises:
            ValueError: If chunk_size is not positive.
            FileNotFoundError: If the file does not exist.
        """
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")

        self._path = Path(path)
        if not self._path.exists():
            raise FileNotFoundError(f"File not found: {self._path}")

        self._chunk_size = chunk_size
        self._cache_threshold = cache_threshold
        self._file_size = self._path.stat().st_size
        self._cache: dict[int, bytes] = {}

    @property
    def path(self) -> Path:
        """Get the source file path."""
        return self._path

    @property
    def chunk_size(self) -> int:
        """Get the chunk size in bytes."""
        return self._chunk_size

    @property
    def file_size(self) -> int:
        """Get the file size in bytes (as seen at construction)."""
        return self._file_size

    @property
    def total_chunks(self) -> int:
        """Get the number of chunks, ceil(file_size / chunk_size)."""
        return -(-self._file_size // self._chunk_size)

    @property
    def cached_chunks(self) -> int:
        """Get the number of chunks currently cached."""
        return len(self._cache)

    def byte_range(self, index: int) -> tuple[int, int]:
        """Get the half-open byte range covered by a chunk.

        Args:
            index: Chunk index.

        Returns:
            (start, end) offsets in the file.

        Raises:
            IndexError: If index is out of range.
        """
        if not 0 <= index < self.total_chunks:
            raise IndexError(
                f"Chunk index {index} out of range (0..{self.total_chunks - 1})"
            )
        start = index * self._chunk_size
        end = min(start + self._chunk_size, self._file_size)
        return start, end

    def get_chunk(self, index: int) -> bytes:
        """Read the bytes of one chunk.

        Args:
            index: Chunk index.

        Returns:
            The chunk's bytes.

        Raises:
            IndexError: If index is out of range.
            OSError: If the file cannot be read.
        """
        cached = self._cache.get(index)
        if cached is not None:
            return cached

        start, end = self.byte_range(index)
        with open(self._path, "rb") as f:
            f.seek(start)
            data = f.read(end - start)

        if len(data) != end - start:
            raise OSError(
                f"Short read on {self._path}: expected {end - start} bytes "
                f"at offset {start}, got {len(data)}"
            )

        if len(data) < self._cache_threshold:
            self._cache[index] = data

        return data

    def iter_chunks(self) -> Iterator[Chunk]:
        """Iterate over all chunks in index order.

        Yields:
            Chunk objects with index, offset, and data.
        """
        for index in range(self.total_chunks):
            start, _ = self.byte_range(index)
            yield Chunk(index=index, offset=start, data=self.get_chunk(index))

    def clear_cache(self) -> None:
        """Drop all cached chunks."""
        self._cache.clear()
