"""Tests for the command-line entry point."""

from __future__ import annotations

import pytest

from block_upload import __main__ as cli
from block_upload.block_ids import block_id_for
from block_upload.log import get_logger
from block_upload.memory_store import InMemoryBlockStore

from tests.conftest import VALID_CONN_STR, FlakyStore, transient


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("AZURE_CONN_STR", VALID_CONN_STR)
    monkeypatch.setenv("CHUNK_SIZE_MB", "1")
    monkeypatch.setenv("MAX_RETRIES", "0")
    monkeypatch.delenv("CONTAINER_NAME", raising=False)
    monkeypatch.delenv("LOG_PATH", raising=False)
    monkeypatch.setattr(cli.signal, "signal", lambda *args: None)
    yield
    get_logger().handlers.clear()


@pytest.fixture
def upload_file(tmp_path):
    path = tmp_path / "movie.mp4"
    path.write_bytes(b"x" * (2 * 1024 * 1024 + 5))
    return path


def _use_store(monkeypatch, store):
    monkeypatch.setattr(cli, "AzureBlockStore", lambda config, logger=None: store)


class TestMain:
    def test_dry_run(self, upload_file, monkeypatch, capsys) -> None:
        store = InMemoryBlockStore()
        _use_store(monkeypatch, store)

        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(upload_file), "--dry-run"])

        assert exc_info.value.code == 0
        assert "3 chunk(s) would be staged" in capsys.readouterr().out
        assert store.stage_calls == 0

    def test_upload(self, upload_file, monkeypatch, capsys) -> None:
        store = InMemoryBlockStore()
        _use_store(monkeypatch, store)

        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(upload_file), "media", "--destination-name", "films/movie.mp4"])

        assert exc_info.value.code == 0
        assert capsys.readouterr().out.strip().endswith("memory://media/films/movie.mp4")
        assert store.read_object("media", "films/movie.mp4") == upload_file.read_bytes()
        assert store.content_types[("media", "films/movie.mp4")] == "video/mp4"

    def test_upload_failure_exit_code(self, upload_file, monkeypatch) -> None:
        store = FlakyStore({block_id_for(1): transient(1)})
        _use_store(monkeypatch, store)

        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(upload_file)])

        assert exc_info.value.code == cli.EXIT_UPLOAD_FAILED
        assert store.commit_calls == 0

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(tmp_path / "nope.bin")])

        assert exc_info.value.code == cli.EXIT_CONFIG_ERROR

    def test_missing_connection_string(self, upload_file, monkeypatch) -> None:
        monkeypatch.delenv("AZURE_CONN_STR")

        with pytest.raises(SystemExit) as exc_info:
            cli.main([str(upload_file)])

        assert exc_info.value.code == cli.EXIT_CONFIG_ERROR
