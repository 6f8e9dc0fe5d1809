"""
Error taxonomy for chunked block uploads.

Backend SDK errors are translated into these at the store boundary, so the
coordinator and callers only ever deal with one hierarchy.
"""

from typing import Optional


class UploadError(Exception):
    """Base exception for every upload failure."""

    retryable = False

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidConfiguration(UploadError, ValueError):
    """Bad input. Raised before any backend call is made."""


# ---------------------------------------------------------------------------
# Backend errors
# ---------------------------------------------------------------------------

class BackendError(UploadError):
    """Raised by a block store when a backend call fails."""


class BackendUnavailable(BackendError):
    """Transient transport failure or timeout. Safe to retry with backoff."""

    retryable = True


class PermissionDenied(BackendError):
    """The backend refused the credentials."""


class StageRejected(BackendError):
    """The backend refused a staged block (size limit, malformed id, ...)."""


class CommitRejected(BackendError):
    """The backend refused the block list, e.g. an id was never staged."""


# ---------------------------------------------------------------------------
# Session errors
# ---------------------------------------------------------------------------

class SessionStateError(UploadError):
    """An upload session was driven through an illegal state transition."""


class SessionFailed(UploadError):
    """Terminal failure of an upload session."""

    def __init__(
        self,
        message: str,
        session_id: str,
        cause: Optional[BaseException] = None,
        details: Optional[dict] = None,
    ) -> None:
        details = dict(details or {})
        details["session_id"] = session_id
        if cause is not None:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.session_id = session_id
        self.cause = cause

    @property
    def cause_kind(self) -> Optional[str]:
        if self.cause is None:
            return None
        if isinstance(self.cause, UploadError):
            return self.cause.kind
        return type(self.cause).__name__

    def describe(self) -> str:
        """One human-readable line for the caller, with the underlying kind."""
        if self.cause_kind:
            return f"{self.message} ({self.kind}: {self.cause_kind})"
        return f"{self.message} ({self.kind})"


class InitializationFailed(SessionFailed):
    """Input validation or container creation failed."""


class ChunkUploadFailed(SessionFailed):
    """A chunk could not be staged within the retry budget."""

    def __init__(
        self,
        session_id: str,
        index: int,
        attempts: int,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(
            f"Chunk {index} could not be staged after {attempts} attempt(s)",
            session_id,
            cause,
            {"index": index, "attempts": attempts},
        )
        self.index = index
        self.attempts = attempts


class CommitFailed(SessionFailed):
    """Every chunk was staged but the block list could not be committed."""


class UploadCancelled(SessionFailed):
    """The session was cancelled before commit started."""
