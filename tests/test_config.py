"""Tests for configuration and the terminal entry point."""

import logging

import pytest

from deskfs import (
    MemoryStore,
    MemoryStoreConfig,
    TableStore,
    TableStoreConfig,
    VFSConfig,
    connect_store,
    open_vfs,
)
from deskfs.__main__ import main, parse_log_level


class TestConnectStore:
    """Test connect_store() factory."""

    def test_memory(self):
        assert connect_store("memory") == MemoryStoreConfig()

    def test_memory_rejects_kwargs(self):
        with pytest.raises(ValueError, match="Unexpected arguments"):
            connect_store("memory", url="sqlite://")

    def test_table_defaults(self):
        config = connect_store("table")

        assert config == TableStoreConfig(url="sqlite://", owner="", echo=False)

    def test_table_options(self):
        config = connect_store("table", url="sqlite:///fs.db", owner="alice", echo=True)

        assert config.url == "sqlite:///fs.db"
        assert config.owner == "alice"
        assert config.echo is True

    def test_table_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unexpected arguments"):
            connect_store("table", path="/tmp/x")

    def test_table_requires_url(self):
        with pytest.raises(ValueError, match="requires a 'url'"):
            connect_store("table", url="")

    def test_unsupported(self):
        with pytest.raises(ValueError, match="Unsupported store type"):
            connect_store("redis")


class TestOpenVFS:
    """Test open_vfs()."""

    def test_defaults(self):
        vfs = open_vfs()

        assert isinstance(vfs.backend, MemoryStore)
        assert vfs.is_directory("/home/user")

    def test_table_store(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'fs.db'}"
        config = VFSConfig(username="alice", store=connect_store("table", url=url))

        vfs = open_vfs(config)
        vfs.create_file("/home/alice/a.txt", "x")

        assert isinstance(vfs.backend, TableStore)
        assert vfs.backend.owner == "alice"
        assert open_vfs(config).read_file("/home/alice/a.txt") == "x"

    def test_table_owner_override(self):
        config = VFSConfig(username="alice", store=connect_store("table", owner="acct-42"))

        vfs = open_vfs(config)

        assert vfs.backend.owner == "acct-42"
        assert vfs.is_directory("/home/alice")

    def test_legacy_options(self):
        config = VFSConfig(resolve_dots=False, allow_overwrite=True)
        vfs = open_vfs(config)
        vfs.create_file("/home/user/a.txt", "one")

        assert vfs.create_file("/home/user/a.txt", "two")
        assert vfs.create_directory("/home/user/..")
        assert vfs.is_directory("/home/user/..")

    def test_no_seed(self):
        vfs = open_vfs(VFSConfig(seed=False))

        assert vfs.list_directory("/") == []


class TestMain:
    """Test the interactive entry point."""

    @pytest.mark.parametrize(
        "name, level",
        [("error", logging.ERROR), ("warning", logging.WARNING), ("info", logging.INFO), ("debug", logging.DEBUG)],
    )
    def test_parse_log_level(self, name, level):
        assert parse_log_level(name) == level

    def test_parse_log_level_invalid(self):
        with pytest.raises(ValueError):
            parse_log_level("loud")

    def test_session(self, monkeypatch, capsys):
        lines = iter(["mkdir src", "echo hi > src/a.txt", "cat src/a.txt", "exit"])
        monkeypatch.setattr("builtins.input", lambda prompt: next(lines))

        assert main(["--username", "alice"]) == 0

        assert "hi" in capsys.readouterr().out.splitlines()

    def test_eof_ends_session(self, monkeypatch):
        def no_input(prompt):
            raise EOFError

        monkeypatch.setattr("builtins.input", no_input)

        assert main([]) == 0
