"""Shared fixtures: a fake STDIO MCP server launched with this interpreter."""

import logging
import sys
from pathlib import Path

import pytest

from mcpclient.core.session import McpSession

FAKE_SERVER = Path(__file__).parent / "fake_mcp_server.py"


@pytest.fixture
def fake_server():
    """(command, args) that launch the fake server."""
    return sys.executable, ["-u", str(FAKE_SERVER)]


@pytest.fixture
def fake_env():
    """Select a fake-server mode, e.g. ``fake_env("paged")``."""

    def _set(mode):
        return {"FAKE_MCP_MODE": mode}

    return _set


@pytest.fixture
def session():
    """A session with short timeouts, disconnected after the test."""
    s = McpSession(request_timeout=5.0, connect_timeout=10.0, shutdown_grace=2.0)
    yield s
    s.disconnect()


@pytest.fixture(autouse=True)
def _capture_mcpclient_logs(caplog):
    """Let caplog see records from mcpclient loggers."""
    caplog.set_level(logging.DEBUG, logger="mcpclient")
    yield
