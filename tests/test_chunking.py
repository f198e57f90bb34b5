"""Tests for chunking module - Fixed-size chunk source."""

from pathlib import Path

import pytest

from backupagent.core import CACHE_THRESHOLD, DEFAULT_CHUNK_SIZE, ChunkSource


def write_file(path: Path, size: int) -> bytes:
    """Write a file with a recognizable byte pattern and return its content."""
    data = bytes(i % 251 for i in range(size))
    path.write_bytes(data)
    return data


class TestChunkCount:
    """Tests for the number of chunks."""

    def test_default_chunk_size_is_1mb(self) -> None:
        """Default chunk size should be 1 MiB."""
        assert DEFAULT_CHUNK_SIZE == 1024 * 1024
        assert CACHE_THRESHOLD == 5 * 1024 * 1024

    @pytest.mark.parametrize(
        ("size", "chunk_size", "expected"),
        [
            (1, 4, 1),
            (4, 4, 1),
            (5, 4, 2),
            (8, 4, 2),
            (9, 4, 3),
            (2 * 1024 * 1024 + 512 * 1024, 1024 * 1024, 3),
        ],
    )
    def test_total_chunks_rounds_up(
        self, tmp_path: Path, size: int, chunk_size: int, expected: int
    ) -> None:
        """Chunk count should be ceil(size / chunk_size)."""
        path = tmp_path / "file.bin"
        write_file(path, size)
        source = ChunkSource(path, chunk_size)
        assert source.total_chunks == expected

    def test_empty_file_has_no_chunks(self, tmp_path: Path) -> None:
        """An empty file should have zero chunks."""
        path = tmp_path / "empty.bin"
        path.write_bytes(b"")
        source = ChunkSource(path, 4)
        assert source.file_size == 0
        assert source.total_chunks == 0
        assert list(source.iter_chunks()) == []


class TestChunkReading:
    """Tests for reading chunk bytes."""

    def test_chunks_cover_file_exactly(self, tmp_path: Path) -> None:
        """Concatenated chunks should equal the file content."""
        path = tmp_path / "file.bin"
        data = write_file(path, 10_000)
        source = ChunkSource(path, 3000)
        assert b"".join(source.get_chunk(i) for i in range(source.total_chunks)) == data

    def test_last_chunk_is_short(self, tmp_path: Path) -> None:
        """Only the last chunk may be shorter than chunk_size."""
        path = tmp_path / "file.bin"
        data = write_file(path, 10)
        source = ChunkSource(path, 4)
        assert source.get_chunk(0) == data[0:4]
        assert source.get_chunk(1) == data[4:8]
        assert source.get_chunk(2) == data[8:10]
        assert source.byte_range(2) == (8, 10)

    def test_index_out_of_range(self, tmp_path: Path) -> None:
        """Reading past the last chunk should raise IndexError."""
        path = tmp_path / "file.bin"
        write_file(path, 10)
        source = ChunkSource(path, 4)
        with pytest.raises(IndexError):
            source.get_chunk(3)
        with pytest.raises(IndexError):
            source.get_chunk(-1)

    def test_same_index_returns_same_bytes(self, tmp_path: Path) -> None:
        """Reading a chunk twice should return identical bytes."""
        path = tmp_path / "file.bin"
        write_file(path, 100)
        source = ChunkSource(path, 30)
        assert source.get_chunk(1) == source.get_chunk(1)

    def test_iter_chunks_offsets(self, tmp_path: Path) -> None:
        """iter_chunks should yield chunks in order with their offsets."""
        path = tmp_path / "file.bin"
        write_file(path, 10)
        chunks = list(ChunkSource(path, 4).iter_chunks())
        assert [c.index for c in chunks] == [0, 1, 2]
        assert [c.offset for c in chunks] == [0, 4, 8]
        assert [c.size for c in chunks] == [4, 4, 2]

    def test_truncated_file_raises_oserror(self, tmp_path: Path) -> None:
        """A file shrinking after construction should fail the read."""
        path = tmp_path / "file.bin"
        write_file(path, 10)
        source = ChunkSource(path, 4)
        path.write_bytes(b"abc")
        with pytest.raises(OSError, match="Short read"):
            source.get_chunk(2)


class TestChunkCache:
    """Tests for the small-chunk cache."""

    def test_small_chunks_are_cached(self, tmp_path: Path) -> None:
        """Chunks under the threshold should be served from cache."""
        path = tmp_path / "file.bin"
        data = write_file(path, 10)
        source = ChunkSource(path, 4)
        source.get_chunk(0)
        assert source.cached_chunks == 1

        # Cached bytes survive the file changing on disk
        path.write_bytes(b"x" * 10)
        assert source.get_chunk(0) == data[0:4]

    def test_large_chunks_are_not_cached(self, tmp_path: Path) -> None:
        """Chunks at or above the threshold should not be cached."""
        path = tmp_path / "file.bin"
        write_file(path, 10)
        source = ChunkSource(path, 4, cache_threshold=4)
        source.get_chunk(0)
        assert source.cached_chunks == 0
        # The short last chunk is below the threshold
        source.get_chunk(2)
        assert source.cached_chunks == 1

    def test_clear_cache(self, tmp_path: Path) -> None:
        """clear_cache should drop all cached chunks."""
        path = tmp_path / "file.bin"
        write_file(path, 10)
        source = ChunkSource(path, 4)
        list(source.iter_chunks())
        assert source.cached_chunks == 3
        source.clear_cache()
        assert source.cached_chunks == 0


class TestChunkSourceErrors:
    """Tests for invalid construction."""

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ChunkSource(tmp_path / "missing.bin")

    @pytest.mark.parametrize("chunk_size", [0, -1])
    def test_invalid_chunk_size(self, tmp_path: Path, chunk_size: int) -> None:
        """Non-positive chunk sizes should be rejected."""
        path = tmp_path / "file.bin"
        write_file(path, 10)
        with pytest.raises(ValueError, match="chunk_size"):
            ChunkSource(path, chunk_size)
