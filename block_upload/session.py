"""
Upload session state and progress reporting.
"""

import queue
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

from block_upload.errors import InvalidConfiguration, SessionStateError, UploadError
from block_upload.splitter import ChunkDescriptor, chunk_count, split


class SessionState(str, Enum):
    INIT = "init"
    STAGING = "staging"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS = {
    SessionState.INIT: {SessionState.STAGING, SessionState.FAILED},
    SessionState.STAGING: {SessionState.COMMITTING, SessionState.FAILED},
    SessionState.COMMITTING: {SessionState.DONE, SessionState.FAILED},
    SessionState.DONE: set(),
    SessionState.FAILED: set(),
}


@dataclass
class UploadSession:
    """One file's journey from first chunk to committed object.

    Owned and mutated by a single UploadCoordinator. committed_block_ids is
    append-only and always in ascending chunk-index order.
    """

    source_size: int
    chunk_size: int
    destination_name: str
    container_name: str
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    correlation_id: str = field(default_factory=lambda: new_correlation_id())
    state: SessionState = SessionState.INIT
    committed_block_ids: list = field(default_factory=list)
    final_url: Optional[str] = None
    error: Optional[UploadError] = None

    @property
    def total_chunks(self) -> int:
        return chunk_count(self.source_size, self.chunk_size)

    @property
    def sequence(self) -> Iterator[ChunkDescriptor]:
        return split(self.source_size, self.chunk_size)

    @property
    def completed_chunks(self) -> int:
        return len(self.committed_block_ids)

    @property
    def is_terminal(self) -> bool:
        return self.state in (SessionState.DONE, SessionState.FAILED)

    def transition(self, new_state: SessionState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise SessionStateError(
                f"Session {self.session_id}: illegal transition "
                f"{self.state.value} -> {new_state.value}."
            )
        self.state = new_state

    def record_staged(self, index: int, block_id: str) -> None:
        if self.state is not SessionState.STAGING:
            raise SessionStateError(
                f"Session {self.session_id}: cannot record blocks while {self.state.value}."
            )
        if index != len(self.committed_block_ids):
            raise InvalidConfiguration(
                f"Chunk {index} recorded out of order; expected chunk "
                f"{len(self.committed_block_ids)}."
            )
        self.committed_block_ids.append(block_id)

    def fail(self, error: UploadError) -> None:
        self.error = error
        self.transition(SessionState.FAILED)


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProgressEvent:
    session_id: str
    completed_chunks: int
    total_chunks: int

    @property
    def fraction(self) -> float:
        if self.total_chunks == 0:
            return 1.0
        return self.completed_chunks / self.total_chunks

    @property
    def percent(self) -> float:
        return self.fraction * 100


class ProgressChannel:
    """Queue of ProgressEvents, published only after a stage is acknowledged.

    Safe to share between sessions and threads; consumers either block on
    get() or drain() whatever has accumulated.
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[ProgressEvent]" = queue.Queue()

    def publish(self, event: ProgressEvent) -> None:
        self._queue.put(event)

    def get(self, timeout: Optional[float] = None) -> ProgressEvent:
        return self._queue.get(timeout=timeout)

    def drain(self) -> list[ProgressEvent]:
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events


# ---------------------------------------------------------------------------
# Naming
# ---------------------------------------------------------------------------

def new_correlation_id() -> str:
    return uuid.uuid4().hex


def make_destination_name(original_name: str, now: Optional[float] = None) -> str:
    """<epoch-millis>_<token>_<name>, unique across concurrent sessions."""
    if not original_name or not original_name.strip():
        raise InvalidConfiguration("Original file name must not be empty.")
    millis = int((time.time() if now is None else now) * 1000)
    return f"{millis}_{uuid.uuid4().hex[:8]}_{original_name.strip()}"
