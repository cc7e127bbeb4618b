"""Tests for the default-server store."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from mcpclient.state.store import DefaultServer, DefaultServerStore


class TestDefaultServer:
    """Tests for DefaultServer dataclass."""

    def test_to_dict(self):
        """Test converting DefaultServer to dictionary."""
        now = datetime.now(timezone.utc)
        record = DefaultServer(name="weather", command="java", args=["-jar", "w.jar"], saved_at=now)

        data = record.to_dict()

        assert data["name"] == "weather"
        assert data["command"] == "java"
        assert data["args"] == ["-jar", "w.jar"]
        assert data["saved_at"] == now.isoformat()

    def test_from_dict(self):
        """Test creating DefaultServer from dictionary."""
        data = {
            "name": "files",
            "command": "npx",
            "args": ["files-server"],
            "saved_at": "2026-01-02T03:04:05+00:00",
        }

        record = DefaultServer.from_dict(data)

        assert record.name == "files"
        assert record.args == ["files-server"]
        assert record.saved_at.year == 2026
        assert record.command_line == "npx files-server"

    def test_from_dict_without_args(self):
        record = DefaultServer.from_dict({"name": "x", "command": "x-server"})
        assert record.args == []


class TestDefaultServerStore:
    """Tests for DefaultServerStore class."""

    @pytest.fixture
    def temp_state_dir(self):
        """Create a temporary state directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir) / "state"

    @pytest.fixture
    def store(self, temp_state_dir):
        """Create a DefaultServerStore with temp directory."""
        return DefaultServerStore(state_dir=temp_state_dir)

    def test_save_and_load(self, store):
        """Test saving and loading the default server."""
        store.save("weather", "java", ["-jar", "weather.jar"])

        loaded = store.load()

        assert store.exists()
        assert loaded.name == "weather"
        assert loaded.command == "java"
        assert loaded.args == ["-jar", "weather.jar"]

    def test_save_overwrites(self, store):
        store.save("first", "a")
        store.save("second", "b")
        assert store.load().name == "second"

    def test_load_nothing_saved(self, store):
        assert store.load() is None
        assert not store.exists()

    def test_load_corrupt_file(self, store):
        """A corrupt record is reported as missing."""
        store.state_dir.mkdir(parents=True)
        store.path.write_text("name: [unclosed\n")

        assert store.load() is None

    def test_load_incomplete_file(self, store):
        store.state_dir.mkdir(parents=True)
        store.path.write_text("name: only-a-name\n")

        assert store.load() is None

    def test_remove(self, store):
        """Test removing the saved default."""
        store.save("weather", "java")

        assert store.remove() is True
        assert store.load() is None
        assert store.remove() is False
