"""In-memory block store with the same contract as AzureBlockStore."""

import threading
from typing import Optional, Sequence

from block_upload.errors import CommitRejected, StageRejected


class InMemoryBlockStore:
    """Thread-safe in-memory backend for tests and dry runs.

    Like Azure, staging into a missing container is rejected, committing
    discards any blocks that were staged but not listed, and a commit that
    references an unstaged id leaves the object untouched.
    """

    def __init__(self, max_block_size: Optional[int] = None) -> None:
        self.max_block_size = max_block_size
        self.containers: set = set()
        self.staged: dict = {}      # (container, destination) -> {block_id: bytes}
        self.objects: dict = {}     # (container, destination) -> bytes
        self.committed: dict = {}   # (container, destination) -> [block_id, ...]
        self.metadata: dict = {}
        self.content_types: dict = {}
        self.stage_calls = 0
        self.commit_calls = 0
        self._lock = threading.Lock()

    def ensure_container(self, container_name: str) -> None:
        with self._lock:
            self.containers.add(container_name)

    def stage_block(
        self,
        container_name: str,
        destination_name: str,
        block_id: str,
        data: bytes,
    ) -> None:
        with self._lock:
            self.stage_calls += 1
            if container_name not in self.containers:
                raise StageRejected(f"Container '{container_name}' does not exist.")
            if not block_id:
                raise StageRejected("Block id must not be empty.")
            if self.max_block_size is not None and len(data) > self.max_block_size:
                raise StageRejected(
                    f"Block {block_id} is {len(data)} bytes; limit is {self.max_block_size}."
                )
            key = (container_name, destination_name)
            self.staged.setdefault(key, {})[block_id] = bytes(data)

    def commit(
        self,
        container_name: str,
        destination_name: str,
        block_ids: Sequence[str],
        *,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None,
    ) -> str:
        key = (container_name, destination_name)
        with self._lock:
            self.commit_calls += 1
            staged = self.staged.get(key, {})
            missing = [b for b in block_ids if b not in staged]
            if missing:
                raise CommitRejected(
                    f"Block list references {len(missing)} unstaged block(s).",
                    {"missing": missing},
                )
            self.objects[key] = b"".join(staged[b] for b in block_ids)
            self.committed[key] = list(block_ids)
            self.metadata[key] = dict(metadata or {})
            self.content_types[key] = content_type
            self.staged.pop(key, None)
        return self.url_for(container_name, destination_name)

    def committed_block_ids(self, container_name: str, destination_name: str) -> list[str]:
        with self._lock:
            return list(self.committed.get((container_name, destination_name), []))

    def read_object(self, container_name: str, destination_name: str) -> bytes:
        with self._lock:
            return self.objects[(container_name, destination_name)]

    @staticmethod
    def url_for(container_name: str, destination_name: str) -> str:
        return f"memory://{container_name}/{destination_name}"
