"""Tests for the MCP session against the fake server."""

import time

import pytest

from mcpclient.core.errors import (
    InvalidParameterFormatError,
    NotConnectedError,
    RequestTimeoutError,
    ToolNotFoundError,
    TransportClosedError,
)
from mcpclient.core.schema import ConnectionState
from mcpclient.core.session import McpSession


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.05)
    return predicate()


class TestConnect:
    """Tests for the connection lifecycle."""

    def test_connect_discovers_tools(self, session, fake_server):
        command, args = fake_server

        assert session.connect("fake", command, args) is True

        assert session.state == ConnectionState.CONNECTED
        assert session.current.name == "fake"
        assert session.current.pid is not None
        assert session.current.server_info["name"] == "fake-server"
        assert session.current.protocol_version == "2024-11-05"
        assert [t.name for t in session.list_tools()] == [
            "echo", "add", "broken", "sleep", "crash",
        ]

    def test_connect_follows_pagination(self, session, fake_server, fake_env):
        command, args = fake_server
        assert session.connect("fake", command, args, env=fake_env("paged"))
        assert len(session.list_tools()) == 5

    def test_connect_missing_command(self, session, tmp_path):
        """A launch failure returns False and leaves the session disconnected."""
        ok = session.connect("ghost", str(tmp_path / "missing-server"))

        assert ok is False
        assert session.state == ConnectionState.DISCONNECTED
        assert session.current is None
        assert "not found" in session.last_error
        with pytest.raises(NotConnectedError):
            session.list_tools()

    def test_connect_server_exits_immediately(self, session, fake_server, fake_env):
        command, args = fake_server

        assert session.connect("fake", command, args, env=fake_env("exit")) is False
        assert session.state == ConnectionState.DISCONNECTED
        assert session.last_error

    def test_connect_handshake_error(self, session, fake_server, fake_env):
        command, args = fake_server

        assert session.connect("fake", command, args, env=fake_env("init-error")) is False
        assert "initialize refused" in session.last_error
        assert session.state == ConnectionState.DISCONNECTED

    def test_reconnect_replaces_previous_server(self, session, fake_server):
        command, args = fake_server
        assert session.connect("first", command, args)
        first_pid = session.current.pid

        assert session.connect("second", command, args)

        assert session.current.name == "second"
        assert session.current.pid != first_pid

    def test_disconnect_is_idempotent(self, session, fake_server):
        command, args = fake_server
        session.connect("fake", command, args)

        session.disconnect()
        session.disconnect()

        assert session.state == ConnectionState.DISCONNECTED
        assert session.current is None
        with pytest.raises(NotConnectedError):
            session.describe_tool("echo")

    def test_context_manager_disconnects(self, fake_server):
        command, args = fake_server
        with McpSession(shutdown_grace=2.0) as s:
            assert s.connect("fake", command, args)
        assert s.state == ConnectionState.DISCONNECTED

    def test_server_crash_disconnects(self, session, fake_server):
        """When the server dies the session drops back to DISCONNECTED."""
        command, args = fake_server
        session.connect("fake", command, args)

        with pytest.raises(TransportClosedError):
            session.invoke("crash")

        assert _wait_for(lambda: session.state == ConnectionState.DISCONNECTED)
        assert "closed its output" in session.last_error
        with pytest.raises(NotConnectedError):
            session.list_tools()


class TestTools:
    """Tests for tool lookup and invocation."""

    @pytest.fixture
    def connected(self, session, fake_server):
        command, args = fake_server
        assert session.connect("fake", command, args)
        return session

    def test_describe_by_canonical_and_raw(self, connected):
        by_canonical = connected.describe_tool("echo")
        by_raw = connected.describe_tool("fake_mcp_client_fake_echo")

        assert by_canonical is by_raw
        assert [p.name for p in by_canonical.params] == ["message", "repeat"]

    def test_describe_unknown_tool(self, connected):
        with pytest.raises(ToolNotFoundError, match="Tool not found: nope"):
            connected.describe_tool("nope")

    def test_broken_schema_tool_is_listed(self, connected):
        assert connected.describe_tool("broken").params == []

    def test_invoke_sends_raw_name(self, connected):
        """Invoking by canonical name calls the advertised name."""
        result = connected.invoke("echo", ["message=hi", "repeat=2"])
        assert result["content"][0]["text"] == "hi hi"

    def test_invoke_json_parameters(self, connected):
        result = connected.invoke("add", ['{"a": 2, "b": 3.5}'])
        assert result["content"][0]["text"] == "5.5"

    def test_invoke_unknown_tool_sends_nothing(self, connected):
        with pytest.raises(ToolNotFoundError):
            connected.invoke("missing", ["a=1"])
        assert connected.is_connected

    def test_invoke_bad_parameters(self, connected):
        with pytest.raises(InvalidParameterFormatError):
            connected.invoke("echo", ["not-a-pair"])

    def test_call_tool_with_mapping(self, connected):
        result = connected.call_tool("fake_mcp_client_fake_echo", {"message": "x"})
        assert result["content"][0]["text"] == "x"

    def test_timeout_keeps_connection(self, fake_server):
        command, args = fake_server
        s = McpSession(request_timeout=0.3, shutdown_grace=2.0)
        try:
            assert s.connect("fake", command, args)
            with pytest.raises(RequestTimeoutError):
                s.invoke("sleep")
            assert s.is_connected
            assert s.invoke("add", ["a=1", "b=1"])["content"][0]["text"] == "2"
        finally:
            s.disconnect()

    def test_refresh_tools(self, connected):
        tools = connected.refresh_tools()
        assert len(tools) == 5
        assert connected.status().tool_count == 5


class TestStatus:
    """Tests for the status snapshot."""

    def test_disconnected_status(self, session):
        status = session.status()
        assert status.state == ConnectionState.DISCONNECTED
        assert status.server_name is None
        assert status.connected is False

    def test_connected_status(self, session, fake_server):
        command, args = fake_server
        session.connect("fake", command, args)

        status = session.status()

        assert status.connected is True
        assert status.server_name == "fake"
        assert status.command_line.startswith(command)
        assert status.tool_names[0] == "echo"
        assert status.connected_at is not None
