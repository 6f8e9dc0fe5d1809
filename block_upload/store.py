"""
Block store clients.

BlockStore is the three-capability contract the coordinator depends on:
create the container, stage a named block under a destination object, and
commit an ordered block list into the final object. AzureBlockStore wraps
the azure-storage-blob SDK and translates its errors into block_upload.errors.
"""

import logging
from typing import Optional, Protocol, Sequence

from azure.core.exceptions import (
    AzureError,
    ClientAuthenticationError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.storage.blob import BlobBlock, BlobServiceClient, ContentSettings

from block_upload.config import StoreConfig
from block_upload.errors import (
    BackendError,
    BackendUnavailable,
    CommitRejected,
    PermissionDenied,
    StageRejected,
)
from block_upload.log import get_logger

_TRANSIENT_STATUS = {408, 429}
_AUTH_STATUS = {401, 403}


class BlockStore(Protocol):
    """Backend capabilities consumed by the upload coordinator.

    Implementations hold no per-session state.
    """

    def ensure_container(self, container_name: str) -> None:
        """Create the container if it does not exist. Idempotent.

        Raises:
            BackendUnavailable: transport failure or timeout.
            PermissionDenied: credentials refused.
        """
        ...

    def stage_block(
        self,
        container_name: str,
        destination_name: str,
        block_id: str,
        data: bytes,
    ) -> None:
        """Stage one block under destination_name without making it visible.

        Re-staging the same block id with the same bytes is safe.

        Raises:
            StageRejected: payload or id refused by the backend.
            BackendUnavailable: transport failure or timeout.
        """
        ...

    def commit(
        self,
        container_name: str,
        destination_name: str,
        block_ids: Sequence[str],
        *,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None,
    ) -> str:
        """Atomically assemble block_ids, in list order, into the final object.

        Returns:
            URL of the committed object.

        Raises:
            CommitRejected: a listed block was never staged.
            BackendUnavailable: transport failure or timeout.
        """
        ...

    def committed_block_ids(self, container_name: str, destination_name: str) -> list[str]:
        """Return the block ids the object is currently committed with, or []."""
        ...


def _translate(exc: AzureError, operation: str, rejected: type) -> BackendError:
    message = f"{operation} failed: {exc}"
    if isinstance(exc, ClientAuthenticationError):
        return PermissionDenied(message)
    if isinstance(exc, (ServiceRequestError, ServiceResponseError)):
        return BackendUnavailable(message)
    if isinstance(exc, HttpResponseError):
        status = getattr(exc, "status_code", None)
        details = {"status_code": status, "error_code": getattr(exc, "error_code", None)}
        if status in _AUTH_STATUS:
            return PermissionDenied(message, details)
        if status is None or status >= 500 or status in _TRANSIENT_STATUS:
            return BackendUnavailable(message, details)
        return rejected(message, details)
    return BackendUnavailable(message)


class AzureBlockStore:
    """Block store backed by Azure Blob Storage block blobs."""

    def __init__(
        self,
        config: StoreConfig,
        service_client: Optional[BlobServiceClient] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = config
        self.logger = logger or get_logger()
        if service_client is None:
            service_client = BlobServiceClient.from_connection_string(
                config.conn_str,
                connection_timeout=config.connection_timeout,
                read_timeout=config.read_timeout,
            )
        self._service = service_client

    def _blob_client(self, container_name: str, destination_name: str):
        return self._service.get_blob_client(container=container_name, blob=destination_name)

    def ensure_container(self, container_name: str) -> None:
        container_client = self._service.get_container_client(container_name)
        try:
            container_client.create_container(timeout=self.config.init_timeout)
            self.logger.info(f"Created container '{container_name}'.")
        except ResourceExistsError:
            self.logger.debug(f"Container '{container_name}' already exists.")
        except AzureError as exc:
            raise _translate(exc, f"Create container '{container_name}'", BackendUnavailable) from exc

    def stage_block(
        self,
        container_name: str,
        destination_name: str,
        block_id: str,
        data: bytes,
    ) -> None:
        blob_client = self._blob_client(container_name, destination_name)
        try:
            blob_client.stage_block(
                block_id=block_id,
                data=data,
                length=len(data),
                timeout=self.config.stage_timeout,
            )
        except AzureError as exc:
            raise _translate(exc, f"Stage block {block_id}", StageRejected) from exc

    def commit(
        self,
        container_name: str,
        destination_name: str,
        block_ids: Sequence[str],
        *,
        metadata: Optional[dict] = None,
        content_type: Optional[str] = None,
    ) -> str:
        blob_client = self._blob_client(container_name, destination_name)
        kwargs = {"metadata": metadata, "timeout": self.config.commit_timeout}
        if content_type:
            kwargs["content_settings"] = ContentSettings(content_type=content_type)
        try:
            blob_client.commit_block_list([BlobBlock(block_id=b) for b in block_ids], **kwargs)
        except AzureError as exc:
            raise _translate(exc, f"Commit '{destination_name}'", CommitRejected) from exc
        return blob_client.url

    def committed_block_ids(self, container_name: str, destination_name: str) -> list[str]:
        blob_client = self._blob_client(container_name, destination_name)
        try:
            committed, _ = blob_client.get_block_list(
                "committed", timeout=self.config.commit_timeout
            )
        except ResourceNotFoundError:
            return []
        except AzureError as exc:
            raise _translate(exc, f"Get block list '{destination_name}'", BackendUnavailable) from exc
        return [block.id for block in committed]
