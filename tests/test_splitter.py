"""Tests for the chunk splitter."""

from __future__ import annotations

import io
import math

import pytest

from block_upload.errors import InvalidConfiguration
from block_upload.splitter import (
    ChunkDescriptor,
    chunk_count,
    descriptor_at,
    read_chunk,
    split,
)

MIB = 1024 * 1024


class TestSplit:
    @pytest.mark.parametrize(
        "source_size,chunk_size",
        [(1, 1), (7, 3), (9, 3), (10, 4), (4, 10), (1000, 7), (10 * MIB, 4 * MIB)],
    )
    def test_ranges_partition_source(self, source_size, chunk_size) -> None:
        """Ranges are contiguous, non-overlapping and cover [0, size) exactly."""
        chunks = list(split(source_size, chunk_size))

        assert len(chunks) == math.ceil(source_size / chunk_size)
        assert chunks[0].start == 0
        assert chunks[-1].end == source_size
        for prev, nxt in zip(chunks, chunks[1:]):
            assert prev.end == nxt.start
        assert [c.index for c in chunks] == list(range(len(chunks)))
        assert all(c.length == chunk_size for c in chunks[:-1])
        assert 0 < chunks[-1].length <= chunk_size
        assert sum(c.length for c in chunks) == source_size

    def test_ten_mib_in_four_mib_chunks(self) -> None:
        chunks = list(split(10 * MIB, 4 * MIB))

        assert [c.length for c in chunks] == [4 * MIB, 4 * MIB, 2 * MIB]

    def test_empty_source_yields_nothing(self) -> None:
        assert list(split(0, 4)) == []
        assert chunk_count(0, 4) == 0

    @pytest.mark.parametrize("chunk_size", [0, -1])
    def test_non_positive_chunk_size_rejected(self, chunk_size) -> None:
        with pytest.raises(InvalidConfiguration):
            split(10, chunk_size)

    def test_negative_start_index_rejected_at_call(self) -> None:
        with pytest.raises(InvalidConfiguration):
            split(10, 4, start_index=-1)

    def test_negative_source_size_rejected(self) -> None:
        with pytest.raises(InvalidConfiguration):
            chunk_count(-1, 4)

    def test_is_lazy(self) -> None:
        gen = split(10**15, 1)

        assert next(gen) == ChunkDescriptor(index=0, start=0, end=1)
        assert next(gen) == ChunkDescriptor(index=1, start=1, end=2)

    def test_restart_from_index(self) -> None:
        """Restarting from an index reproduces the tail of a full split."""
        full = list(split(23, 5))

        assert list(split(23, 5, start_index=2)) == full[2:]
        assert list(split(23, 5)) == full

    def test_descriptor_at_matches_split(self) -> None:
        full = list(split(23, 5))

        assert [descriptor_at(i, 23, 5) for i in range(len(full))] == full

    def test_descriptor_at_out_of_range(self) -> None:
        with pytest.raises(InvalidConfiguration):
            descriptor_at(5, 23, 5)


class TestReadChunk:
    def test_reads_byte_range(self) -> None:
        data = bytes(range(20))
        source = io.BytesIO(data)

        parts = [read_chunk(source, c) for c in split(len(data), 6)]

        assert parts == [data[0:6], data[6:12], data[12:18], data[18:20]]

    def test_reads_out_of_order(self) -> None:
        data = bytes(range(20))
        source = io.BytesIO(data)

        assert read_chunk(source, descriptor_at(2, 20, 6)) == data[12:18]
        assert read_chunk(source, descriptor_at(0, 20, 6)) == data[0:6]

    def test_short_read_raises(self) -> None:
        source = io.BytesIO(b"abc")

        with pytest.raises(InvalidConfiguration):
            read_chunk(source, ChunkDescriptor(index=0, start=0, end=10))
