"""
Upload coordinator: drives one session through INIT -> STAGING -> COMMITTING -> DONE.

Chunks are staged in ascending index order. A transient backend failure is
retried with exponential backoff; once the budget is spent, or on any
rejection, the session ends FAILED and nothing is committed. With
concurrency > 1 chunks are staged on a thread pool, but block ids are still
recorded and committed strictly in index order.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Callable, Optional, Sequence

from block_upload.block_ids import block_id_for, check_ascending
from block_upload.config import MIB, UploadConfig
from block_upload.errors import (
    ChunkUploadFailed,
    CommitFailed,
    InitializationFailed,
    InvalidConfiguration,
    SessionFailed,
    SessionStateError,
    UploadCancelled,
    UploadError,
)
from block_upload.log import get_logger
from block_upload.session import (
    ProgressChannel,
    ProgressEvent,
    SessionState,
    UploadSession,
    make_destination_name,
)
from block_upload.splitter import ChunkDescriptor, read_chunk
from block_upload.store import BlockStore


class UploadCoordinator:
    """Runs upload sessions against a BlockStore.

    cancel() applies to every session this coordinator is currently running;
    use one coordinator per independently cancellable upload. Starting a new
    session clears a previous cancellation.
    """

    def __init__(
        self,
        store: BlockStore,
        config: Optional[UploadConfig] = None,
        logger: Optional[logging.Logger] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store
        self.config = config or UploadConfig()
        self.logger = logger or get_logger()
        self._sleep = sleep
        self._abort = threading.Event()
        self._read_lock = threading.Lock()

    def cancel(self) -> None:
        self.logger.warning("Cancellation requested. Stopping before the next chunk...")
        self._abort.set()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def start_session(
        self,
        source_size: int,
        destination_name: str,
        container_name: str,
        correlation_id: Optional[str] = None,
    ) -> UploadSession:
        self._abort.clear()
        session = UploadSession(
            source_size=source_size,
            chunk_size=self.config.chunk_size,
            destination_name=destination_name,
            container_name=container_name,
        )
        if correlation_id:
            session.correlation_id = correlation_id
        return session

    def run(
        self,
        session: UploadSession,
        source: BinaryIO,
        *,
        original_name: Optional[str] = None,
        progress: Optional[ProgressChannel] = None,
    ) -> str:
        """Upload source end to end. Returns the committed object's URL.

        Raises a SessionFailed subclass after moving the session to FAILED.
        """
        self.initialize(session)
        self.stage_all(session, source, progress=progress)
        return self.commit(session, original_name=original_name)

    def upload_file(
        self,
        path: Path,
        container_name: str,
        destination_name: Optional[str] = None,
        progress: Optional[ProgressChannel] = None,
    ) -> UploadSession:
        path = Path(path)
        session = self.start_session(
            source_size=path.stat().st_size,
            destination_name=destination_name or make_destination_name(path.name),
            container_name=container_name,
        )
        with path.open("rb") as fh:
            self.run(session, fh, original_name=path.name, progress=progress)
        return session

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def initialize(self, session: UploadSession) -> None:
        if session.state is not SessionState.INIT:
            raise SessionStateError(
                f"Session {session.session_id} already started ({session.state.value})."
            )

        try:
            if session.chunk_size <= 0:
                raise InvalidConfiguration(f"Chunk size must be positive, got {session.chunk_size}.")
            if session.source_size <= 0:
                raise InvalidConfiguration("Source is empty; nothing to upload.")
            if not session.destination_name:
                raise InvalidConfiguration("Destination name must not be empty.")
            if not session.container_name:
                raise InvalidConfiguration("Container name must not be empty.")

            self.logger.info(
                f"Source: {session.source_size:,} bytes  |  "
                f"Chunk: {session.chunk_size:,} bytes  |  "
                f"Chunks: {session.total_chunks}  |  "
                f"Threads: {self.config.concurrency}"
            )
            self.logger.info(f"Target: {session.container_name}/{session.destination_name}")
            self.store.ensure_container(session.container_name)
        except Exception as exc:
            raise self._fail(
                session,
                InitializationFailed(
                    f"Could not initialize upload of '{session.destination_name}': {_reason(exc)}",
                    session.session_id,
                    exc,
                ),
            ) from exc

        session.transition(SessionState.STAGING)

    def stage_all(
        self,
        session: UploadSession,
        source: BinaryIO,
        progress: Optional[ProgressChannel] = None,
    ) -> None:
        if session.state is not SessionState.STAGING:
            raise SessionStateError(
                f"Session {session.session_id} is {session.state.value}, not staging."
            )

        total = session.total_chunks
        self.logger.info(f"Staging {total} chunk(s) with {self.config.concurrency} thread(s)...")
        t0 = time.monotonic()

        try:
            if self.config.concurrency == 1:
                for descriptor in session.sequence:
                    block_id = self._stage_with_retry(session, source, descriptor)
                    session.record_staged(descriptor.index, block_id)
                    self._report(session, progress, t0)
            else:
                self._stage_parallel(session, source, progress, t0)
        except SessionFailed as exc:
            raise self._fail(session, exc)
        except Exception as exc:
            raise self._fail(
                session,
                ChunkUploadFailed(session.session_id, session.completed_chunks, 0, exc),
            ) from exc

        if session.completed_chunks != total:
            raise self._fail(
                session,
                ChunkUploadFailed(session.session_id, session.completed_chunks, 0),
            )

    def commit(
        self,
        session: UploadSession,
        block_ids: Optional[Sequence[str]] = None,
        *,
        original_name: Optional[str] = None,
    ) -> str:
        """Commit the staged blocks. block_ids defaults to the session's own list.

        The list is checked to be exactly ascending chunk order before the
        backend is contacted; a bad list raises InvalidConfiguration and
        leaves the session in STAGING so the caller can commit again. A
        failed commit is never retried here; see is_committed().
        """
        if session.state is not SessionState.STAGING:
            raise SessionStateError(
                f"Session {session.session_id} is {session.state.value}, not ready to commit."
            )

        # A bad list is the caller's mistake; the session stays in STAGING
        ordered = check_ascending(session.committed_block_ids if block_ids is None else block_ids)
        if len(ordered) != session.total_chunks:
            raise InvalidConfiguration(
                f"Block list has {len(ordered)} id(s); session has {session.total_chunks} chunk(s)."
            )

        session.transition(SessionState.COMMITTING)
        name = original_name or session.destination_name

        self.logger.info("All chunks staged. Committing block list...")
        try:
            url = self.store.commit(
                session.container_name,
                session.destination_name,
                ordered,
                metadata={
                    "uploaded_by": "block_upload",
                    "uploaded_at": datetime.now(timezone.utc).isoformat(),
                    "original_filename": name,
                    "file_size_bytes": str(session.source_size),
                },
                content_type=_guess_content_type(name),
            )
        except Exception as exc:
            raise self._fail(
                session,
                CommitFailed(
                    f"Commit of '{session.destination_name}' failed: {_reason(exc)} "
                    "Staged blocks are left for the backend to expire.",
                    session.session_id,
                    exc,
                ),
            ) from exc

        session.final_url = url
        session.transition(SessionState.DONE)
        self.logger.info(
            f"Committed '{session.destination_name}' to container '{session.container_name}'."
        )
        return url

    def is_committed(self, session: UploadSession) -> bool:
        """Ask the backend whether the session's block list is already committed.

        Callers must check this before retrying a failed or interrupted commit.
        """
        if not session.committed_block_ids:
            return False
        current = self.store.committed_block_ids(session.container_name, session.destination_name)
        return current == session.committed_block_ids

    # ------------------------------------------------------------------
    # Staging helpers
    # ------------------------------------------------------------------

    def _stage_with_retry(
        self,
        session: UploadSession,
        source: BinaryIO,
        descriptor: ChunkDescriptor,
        stop: Optional[threading.Event] = None,
    ) -> str:
        """Stage one chunk with exponential-backoff retry. Returns its block id."""
        index = descriptor.index
        try:
            with self._read_lock:
                data = read_chunk(source, descriptor)
        except (InvalidConfiguration, OSError) as exc:
            raise ChunkUploadFailed(session.session_id, index, 0, exc) from exc

        block_id = block_id_for(index)
        max_attempts = self.config.max_retries + 1

        for attempt in range(1, max_attempts + 1):
            if self._abort.is_set() or (stop is not None and stop.is_set()):
                raise UploadCancelled(
                    f"Upload cancelled before chunk {index} was staged.", session.session_id
                )
            try:
                self.store.stage_block(
                    session.container_name, session.destination_name, block_id, data
                )
                return block_id
            except UploadError as exc:
                if not exc.retryable:
                    self.logger.error(f"Chunk {index}: non-retryable error: {exc}")
                    raise ChunkUploadFailed(session.session_id, index, attempt, exc) from exc
                if attempt == max_attempts:
                    self.logger.error(
                        f"Chunk {index}: failed after {self.config.max_retries} retries: {exc}"
                    )
                    raise ChunkUploadFailed(session.session_id, index, attempt, exc) from exc
                delay = self.config.retry_base_delay * 2 ** (attempt - 1)
                self.logger.warning(
                    f"Chunk {index}: transient error (attempt {attempt}/{max_attempts}), "
                    f"retrying in {delay}s: {exc}"
                )
                self._sleep(delay)
            except Exception as exc:
                self.logger.error(f"Chunk {index}: unexpected error: {exc!r}")
                raise ChunkUploadFailed(session.session_id, index, attempt, exc) from exc

        raise AssertionError("unreachable")

    def _stage_parallel(
        self,
        session: UploadSession,
        source: BinaryIO,
        progress: Optional[ProgressChannel],
        t0: float,
    ) -> None:
        stop = threading.Event()
        finished: dict = {}

        with ThreadPoolExecutor(max_workers=self.config.concurrency) as pool:
            futures = {
                pool.submit(self._stage_with_retry, session, source, d, stop): d
                for d in session.sequence
            }
            try:
                for future in as_completed(futures):
                    descriptor = futures[future]
                    finished[descriptor.index] = future.result()

                    # Completions arrive in any order; record only the contiguous prefix
                    while session.completed_chunks in finished:
                        index = session.completed_chunks
                        session.record_staged(index, finished.pop(index))
                        self._report(session, progress, t0)
            except BaseException:
                stop.set()
                for f in futures:
                    f.cancel()
                raise

    def _report(self, session: UploadSession, progress: Optional[ProgressChannel], t0: float) -> None:
        event = ProgressEvent(
            session_id=session.session_id,
            completed_chunks=session.completed_chunks,
            total_chunks=session.total_chunks,
        )
        if progress is not None:
            progress.publish(event)

        bytes_done = min(event.completed_chunks * session.chunk_size, session.source_size)
        elapsed = max(time.monotonic() - t0, 0.001)
        speed = bytes_done / elapsed
        eta_s = (session.source_size - bytes_done) / speed if bytes_done else 0
        self.logger.info(
            f"[{event.percent:5.1f}%] chunk {event.completed_chunks}/{event.total_chunks}  "
            f"speed={speed / MIB:.1f} MB/s  eta={_fmt_seconds(eta_s)}"
        )

    def _fail(self, session: UploadSession, error: SessionFailed) -> SessionFailed:
        if not session.is_terminal:
            session.fail(error)
        self.logger.error(f"Session {session.session_id} failed: {error.describe()}")
        return error


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fmt_seconds(s: float) -> str:
    if s <= 0:
        return "--:--"
    s = int(s)
    h, rem = divmod(s, 3600)
    m, sec = divmod(rem, 60)
    if h:
        return f"{h}h{m:02d}m{sec:02d}s"
    if m:
        return f"{m}m{sec:02d}s"
    return f"{sec}s"


def _reason(exc: Exception) -> str:
    """One sentence describing exc, ending in a single period."""
    text = exc.message if isinstance(exc, UploadError) else (str(exc) or type(exc).__name__)
    return text if text.endswith(".") else f"{text}."


def _guess_content_type(name: str) -> str:
    suffix = Path(name).suffix.lower()
    return {
        ".csv": "text/csv",
        ".json": "application/json",
        ".parquet": "application/octet-stream",
        ".zip": "application/zip",
        ".gz": "application/gzip",
        ".tar": "application/x-tar",
        ".txt": "text/plain",
        ".tsv": "text/tab-separated-values",
        ".mp4": "video/mp4",
        ".pdf": "application/pdf",
    }.get(suffix, "application/octet-stream")
