from __future__ import annotations

import base64
import io
import os

import pytest

from block_upload.config import UploadConfig
from block_upload.coordinator import UploadCoordinator
from block_upload.errors import BackendUnavailable
from block_upload.memory_store import InMemoryBlockStore

CONTAINER = "uploads"

VALID_KEY = base64.b64encode(b"k" * 64).decode("ascii")
VALID_CONN_STR = (
    f"DefaultEndpointsProtocol=https;AccountName=acct;AccountKey={VALID_KEY};"
    "EndpointSuffix=core.windows.net"
)


class FlakyStore(InMemoryBlockStore):
    """In-memory store that fails selected stage calls before succeeding.

    failures maps a chunk's block id to a list of exceptions raised, in order,
    on its first stage attempts.
    """

    def __init__(self, failures: dict | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.attempts: dict[str, int] = {}

    def stage_block(self, container_name, destination_name, block_id, data):
        self.attempts[block_id] = self.attempts.get(block_id, 0) + 1
        pending = self.failures.get(block_id)
        if pending:
            raise pending.pop(0)
        super().stage_block(container_name, destination_name, block_id, data)


def transient(times: int) -> list[BackendUnavailable]:
    return [BackendUnavailable(f"timeout {i}") for i in range(times)]


@pytest.fixture
def store() -> InMemoryBlockStore:
    return InMemoryBlockStore()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def make_coordinator(sleeps):
    def _make(store, chunk_size=4, concurrency=1, max_retries=3, retry_base_delay=2):
        config = UploadConfig(
            chunk_size=chunk_size,
            concurrency=concurrency,
            max_retries=max_retries,
            retry_base_delay=retry_base_delay,
        )
        return UploadCoordinator(store, config, sleep=sleeps.append)

    return _make


@pytest.fixture
def payload() -> bytes:
    return os.urandom(10 * 4 + 3)


@pytest.fixture
def source(payload) -> io.BytesIO:
    return io.BytesIO(payload)
