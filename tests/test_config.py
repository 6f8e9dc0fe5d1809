"""Tests for configuration loading and validation."""

from __future__ import annotations

import os

import pytest

from block_upload.config import MIB, Config, StoreConfig, UploadConfig, validate_connection_string
from block_upload.errors import InvalidConfiguration

from tests.conftest import VALID_CONN_STR, VALID_KEY

_ENV_KEYS = (
    "AZURE_CONN_STR",
    "CONTAINER_NAME",
    "CHUNK_SIZE_MB",
    "CONCURRENCY",
    "MAX_RETRIES",
    "RETRY_BASE_DELAY",
    "INIT_TIMEOUT",
    "STAGE_TIMEOUT",
    "COMMIT_TIMEOUT",
    "LOG_PATH",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Isolate from the developer's .env and environment."""
    monkeypatch.chdir(tmp_path)
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    yield
    # load_dotenv writes straight into os.environ
    for key in _ENV_KEYS:
        os.environ.pop(key, None)


class TestValidateConnectionString:
    def test_accepts_valid(self) -> None:
        validate_connection_string(VALID_CONN_STR)

    @pytest.mark.parametrize(
        "conn_str",
        [
            "garbage",
            f"AccountName=acct;AccountKey={VALID_KEY}",
            f"DefaultEndpointsProtocol=https;AccountName=your_account;AccountKey={VALID_KEY}",
            "DefaultEndpointsProtocol=https;AccountName=acct;AccountKey=your_key",
            "DefaultEndpointsProtocol=https;AccountName=acct;AccountKey=short",
            f"DefaultEndpointsProtocol=https;AccountName=acct;AccountKey={VALID_KEY[:60]}",
            "DefaultEndpointsProtocol=https;AccountName=acct;AccountKey=" + "!" * 88,
            f"DefaultEndpointsProtocol=http;AccountName=acct;AccountKey={VALID_KEY}",
        ],
    )
    def test_rejects_invalid(self, conn_str) -> None:
        with pytest.raises(InvalidConfiguration):
            validate_connection_string(conn_str)


class TestUploadConfig:
    def test_defaults(self) -> None:
        config = UploadConfig()

        assert config.chunk_size == 4 * MIB
        assert config.concurrency == 1
        assert config.max_retries == 5

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"chunk_size": 0},
            {"concurrency": 0},
            {"max_retries": -1},
            {"retry_base_delay": -1},
            {"retry_base_delay": 0},
        ],
    )
    def test_rejects_invalid(self, kwargs) -> None:
        with pytest.raises(InvalidConfiguration):
            UploadConfig(**kwargs)


class TestConfigFromEnv:
    def test_missing_connection_string(self) -> None:
        with pytest.raises(InvalidConfiguration):
            Config.from_env()

    def test_defaults(self, monkeypatch) -> None:
        monkeypatch.setenv("AZURE_CONN_STR", VALID_CONN_STR)

        cfg = Config.from_env()

        assert isinstance(cfg.store, StoreConfig)
        assert cfg.store.container_name == "uploads"
        assert cfg.store.stage_timeout == 60
        assert cfg.store.commit_timeout == 30
        assert cfg.store.init_timeout == 5
        assert cfg.upload.chunk_size == 4 * MIB
        assert cfg.log_path is None

    def test_overrides(self, monkeypatch) -> None:
        monkeypatch.setenv("AZURE_CONN_STR", VALID_CONN_STR)
        monkeypatch.setenv("CONTAINER_NAME", "videos")
        monkeypatch.setenv("CHUNK_SIZE_MB", "2")
        monkeypatch.setenv("CONCURRENCY", "4")
        monkeypatch.setenv("RETRY_BASE_DELAY", "1.5")

        cfg = Config.from_env()

        assert cfg.store.container_name == "videos"
        assert cfg.upload.chunk_size == 2 * MIB
        assert cfg.upload.concurrency == 4
        assert cfg.upload.retry_base_delay == 1.5

    def test_reads_dotenv_file(self, tmp_path) -> None:
        (tmp_path / ".env").write_text(f"AZURE_CONN_STR={VALID_CONN_STR}\nCONTAINER_NAME=fromfile\n")

        cfg = Config.from_env()

        assert cfg.store.container_name == "fromfile"

    @pytest.mark.parametrize("chunk_mb", ["0", "4001", "abc"])
    def test_rejects_bad_chunk_size(self, monkeypatch, chunk_mb) -> None:
        monkeypatch.setenv("AZURE_CONN_STR", VALID_CONN_STR)
        monkeypatch.setenv("CHUNK_SIZE_MB", chunk_mb)

        with pytest.raises(InvalidConfiguration):
            Config.from_env()
