"""
block_upload: chunked uploads to block-oriented object stores.

A file is split into fixed-size chunks, each chunk is staged as a block, and
the ordered block list is committed atomically into one object.
"""

from block_upload.block_ids import block_id_for, check_ascending, index_for
from block_upload.config import Config, StoreConfig, UploadConfig
from block_upload.coordinator import UploadCoordinator
from block_upload.errors import (
    BackendError,
    BackendUnavailable,
    ChunkUploadFailed,
    CommitFailed,
    CommitRejected,
    InitializationFailed,
    InvalidConfiguration,
    PermissionDenied,
    SessionFailed,
    SessionStateError,
    StageRejected,
    UploadCancelled,
    UploadError,
)
from block_upload.memory_store import InMemoryBlockStore
from block_upload.session import (
    ProgressChannel,
    ProgressEvent,
    SessionState,
    UploadSession,
    make_destination_name,
)
from block_upload.splitter import ChunkDescriptor, chunk_count, split
from block_upload.store import AzureBlockStore, BlockStore

__all__ = [
    "AzureBlockStore",
    "BackendError",
    "BackendUnavailable",
    "BlockStore",
    "ChunkDescriptor",
    "ChunkUploadFailed",
    "CommitFailed",
    "CommitRejected",
    "Config",
    "InMemoryBlockStore",
    "InitializationFailed",
    "InvalidConfiguration",
    "PermissionDenied",
    "ProgressChannel",
    "ProgressEvent",
    "SessionFailed",
    "SessionState",
    "SessionStateError",
    "StageRejected",
    "StoreConfig",
    "UploadCancelled",
    "UploadConfig",
    "UploadCoordinator",
    "UploadError",
    "UploadSession",
    "block_id_for",
    "check_ascending",
    "chunk_count",
    "index_for",
    "make_destination_name",
    "split",
]
