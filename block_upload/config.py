"""
Configuration for the block store and the upload coordinator.

Nothing here is process-wide: Config.from_env() reads the environment once
and produces plain dataclasses that are passed explicitly to AzureBlockStore
and UploadCoordinator, so several sessions with different settings can share
a process.
"""

import base64
import binascii
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from block_upload.errors import InvalidConfiguration

MIB = 1024 * 1024

# Azure max block size is 4000 MiB
MAX_CHUNK_SIZE = 4000 * MIB
MIN_CHUNK_SIZE = 1 * MIB

_DEFAULTS = {
    "CONTAINER_NAME": "uploads",
    "CHUNK_SIZE_MB": 4,
    "CONCURRENCY": 1,

    "MAX_RETRIES": 5,
    "RETRY_BASE_DELAY": 2,

    "INIT_TIMEOUT": 5,
    "STAGE_TIMEOUT": 60,
    "COMMIT_TIMEOUT": 30,
}


@dataclass
class StoreConfig:
    """Connection settings for a block store backend."""

    conn_str: str
    container_name: str = _DEFAULTS["CONTAINER_NAME"]
    connection_timeout: int = 30
    read_timeout: int = 120
    init_timeout: int = _DEFAULTS["INIT_TIMEOUT"]
    stage_timeout: int = _DEFAULTS["STAGE_TIMEOUT"]
    commit_timeout: int = _DEFAULTS["COMMIT_TIMEOUT"]


@dataclass
class UploadConfig:
    """Knobs for the upload coordinator."""

    chunk_size: int = _DEFAULTS["CHUNK_SIZE_MB"] * MIB
    concurrency: int = _DEFAULTS["CONCURRENCY"]
    max_retries: int = _DEFAULTS["MAX_RETRIES"]
    retry_base_delay: float = _DEFAULTS["RETRY_BASE_DELAY"]

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise InvalidConfiguration(f"chunk_size must be positive, got {self.chunk_size}.")
        if self.concurrency < 1:
            raise InvalidConfiguration(f"concurrency must be at least 1, got {self.concurrency}.")
        if self.max_retries < 0:
            raise InvalidConfiguration(f"max_retries must be >= 0, got {self.max_retries}.")
        if self.retry_base_delay <= 0:
            raise InvalidConfiguration(
                f"retry_base_delay must be positive, got {self.retry_base_delay}."
            )


class Config:
    """Settings loaded from .env and the process environment."""

    def __init__(self, store: StoreConfig, upload: UploadConfig, log_path: Optional[str] = None) -> None:
        self.store = store
        self.upload = upload
        self.log_path = log_path

    @classmethod
    def from_env(cls) -> "Config":
        load_dotenv(find_dotenv(usecwd=True))

        try:
            conn_str = os.environ["AZURE_CONN_STR"]
        except KeyError:
            raise InvalidConfiguration(
                "AZURE_CONN_STR not set. Copy .env.template to .env and fill in your credentials."
            )
        validate_connection_string(conn_str)

        try:
            chunk_size = int(os.getenv("CHUNK_SIZE_MB", _DEFAULTS["CHUNK_SIZE_MB"])) * MIB
            store = StoreConfig(
                conn_str=conn_str,
                container_name=os.getenv("CONTAINER_NAME", _DEFAULTS["CONTAINER_NAME"]),
                init_timeout=int(os.getenv("INIT_TIMEOUT", _DEFAULTS["INIT_TIMEOUT"])),
                stage_timeout=int(os.getenv("STAGE_TIMEOUT", _DEFAULTS["STAGE_TIMEOUT"])),
                commit_timeout=int(os.getenv("COMMIT_TIMEOUT", _DEFAULTS["COMMIT_TIMEOUT"])),
            )
            upload = UploadConfig(
                chunk_size=chunk_size,
                concurrency=int(os.getenv("CONCURRENCY", _DEFAULTS["CONCURRENCY"])),
                max_retries=int(os.getenv("MAX_RETRIES", _DEFAULTS["MAX_RETRIES"])),
                retry_base_delay=float(
                    os.getenv("RETRY_BASE_DELAY", _DEFAULTS["RETRY_BASE_DELAY"])
                ),
            )
        except InvalidConfiguration:
            raise
        except ValueError as exc:
            raise InvalidConfiguration(f"Invalid numeric setting: {exc}")

        if chunk_size > MAX_CHUNK_SIZE:
            raise InvalidConfiguration(
                f"CHUNK_SIZE_MB exceeds Azure maximum (4000 MB). Got {chunk_size // MIB} MB."
            )
        if chunk_size < MIN_CHUNK_SIZE:
            raise InvalidConfiguration("CHUNK_SIZE_MB must be at least 1 MB.")

        return cls(store=store, upload=upload, log_path=os.getenv("LOG_PATH"))


_PLACEHOLDERS = {"", "your_account", "your_account_name", "your_account_key", "your_key"}
_ACCOUNT_KEY_BYTES = 64


def validate_connection_string(conn_str: str) -> None:
    """Reject connection strings that cannot possibly authenticate.

    Checks run offline, so a typo surfaces as InvalidConfiguration before the
    first request instead of as an opaque 403 from the service.
    """
    fields = {}
    for segment in filter(None, (s.strip() for s in conn_str.strip().split(";"))):
        key, sep, value = segment.partition("=")
        if not sep:
            raise InvalidConfiguration(f"AZURE_CONN_STR segment '{segment}' is not key=value.")
        fields[key.strip()] = value.strip()

    missing = [k for k in ("DefaultEndpointsProtocol", "AccountName", "AccountKey") if k not in fields]
    if missing:
        raise InvalidConfiguration(f"AZURE_CONN_STR lacks {', '.join(missing)}.")
    if fields["DefaultEndpointsProtocol"].lower() != "https":
        raise InvalidConfiguration("AZURE_CONN_STR must use DefaultEndpointsProtocol=https.")

    for name in ("AccountName", "AccountKey"):
        if fields[name] in _PLACEHOLDERS:
            raise InvalidConfiguration(f"AZURE_CONN_STR {name} is empty or a template placeholder.")

    key = fields["AccountKey"]
    try:
        decoded = base64.b64decode(key + "=" * (-len(key) % 4), validate=True)
    except (binascii.Error, ValueError):
        raise InvalidConfiguration("AZURE_CONN_STR AccountKey is not base64.")
    if len(decoded) != _ACCOUNT_KEY_BYTES:
        raise InvalidConfiguration(
            f"AZURE_CONN_STR AccountKey decodes to {len(decoded)} bytes, "
            f"expected {_ACCOUNT_KEY_BYTES}; was it truncated?"
        )
