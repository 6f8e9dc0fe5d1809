"""
Chunk splitter: partitions [0, source_size) into fixed-size byte ranges.
"""

from dataclasses import dataclass
from typing import BinaryIO, Iterator

from block_upload.errors import InvalidConfiguration


@dataclass(frozen=True)
class ChunkDescriptor:
    index: int
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def _validate(source_size: int, chunk_size: int) -> None:
    if chunk_size <= 0:
        raise InvalidConfiguration(f"Chunk size must be positive, got {chunk_size}.")
    if source_size < 0:
        raise InvalidConfiguration(f"Source size must be non-negative, got {source_size}.")


def chunk_count(source_size: int, chunk_size: int) -> int:
    _validate(source_size, chunk_size)
    return (source_size + chunk_size - 1) // chunk_size


def descriptor_at(index: int, source_size: int, chunk_size: int) -> ChunkDescriptor:
    total = chunk_count(source_size, chunk_size)
    if not 0 <= index < total:
        raise InvalidConfiguration(f"Chunk index {index} out of range (0..{total - 1}).")
    start = index * chunk_size
    return ChunkDescriptor(index=index, start=start, end=min(start + chunk_size, source_size))


def split(source_size: int, chunk_size: int, start_index: int = 0) -> Iterator[ChunkDescriptor]:
    """Lazily yield the chunk descriptors covering the source, in index order.

    Pure function of its inputs: call again (optionally from start_index) to
    restart. A zero-length source yields nothing. Bad arguments raise at the
    call, not on first iteration.
    """
    total = chunk_count(source_size, chunk_size)
    if start_index < 0:
        raise InvalidConfiguration(f"start_index must be non-negative, got {start_index}.")
    return _descriptors(source_size, chunk_size, start_index, total)


def _descriptors(
    source_size: int, chunk_size: int, start_index: int, total: int
) -> Iterator[ChunkDescriptor]:
    for index in range(start_index, total):
        start = index * chunk_size
        yield ChunkDescriptor(index=index, start=start, end=min(start + chunk_size, source_size))


def read_chunk(source: BinaryIO, descriptor: ChunkDescriptor) -> bytes:
    source.seek(descriptor.start)
    data = source.read(descriptor.length)
    if len(data) != descriptor.length:
        raise InvalidConfiguration(
            f"Chunk {descriptor.index}: expected {descriptor.length} bytes at offset "
            f"{descriptor.start}, read {len(data)}. Did the source change size?"
        )
    return data
