"""
MCP session: connection lifecycle, handshake, discovery and tool calls.

One session talks to at most one server at a time:

    DISCONNECTED --connect--> CONNECTING --handshake ok--> CONNECTED
         ^                        |                            |
         +------ failure ---------+---- disconnect / exit -----+
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from mcpclient import __version__
from mcpclient.core.errors import (
    McpClientError,
    NotConnectedError,
    ToolNotFoundError,
)
from mcpclient.core.index import ToolSchemaIndex
from mcpclient.core.params import ParameterCoercer
from mcpclient.core.schema import (
    ConnectionState,
    ServerHandle,
    SessionStatus,
    ToolDescriptor,
)
from mcpclient.core.transport import StdioTransport

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"
MAX_TOOL_PAGES = 100

TransportFactory = Callable[..., StdioTransport]


class McpSession:
    """
    Owns the current server connection and its tool index.

    Connect failures are reported as ``False`` with the reason in
    ``last_error``; they never raise. Once connected, tool operations raise
    typed ``McpClientError`` subclasses for the caller to render.
    """

    def __init__(
        self,
        transport_factory: TransportFactory = StdioTransport,
        request_timeout: float = 30.0,
        connect_timeout: float = 60.0,
        shutdown_grace: float = 5.0,
        client_name: str = "mcp-client",
        client_version: str = __version__,
        coercer: Optional[ParameterCoercer] = None,
    ):
        self._transport_factory = transport_factory
        self.request_timeout = request_timeout
        self.connect_timeout = connect_timeout
        self.shutdown_grace = shutdown_grace
        self.client_name = client_name
        self.client_version = client_version
        self.coercer = coercer or ParameterCoercer()

        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED
        self._handle: Optional[ServerHandle] = None
        self._transport: Optional[StdioTransport] = None
        self._index = ToolSchemaIndex()
        self.last_error: Optional[str] = None

    # ── State ─────────────────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def current(self) -> Optional[ServerHandle]:
        """The connected server, or None."""
        return self._handle

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.debug("Session state %s -> %s", self._state.value, state.value)
        self._state = state
        if self._handle is not None:
            self._handle.state = state

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def connect(
        self,
        name: str,
        command: str,
        args: Optional[Sequence[str]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> bool:
        """
        Launch a server, run the initialize handshake and discover its tools.

        Any existing connection is closed first. Returns True when the session
        ends up CONNECTED; on failure the session is DISCONNECTED and
        ``last_error`` says why.
        """
        self.disconnect()

        with self._lock:
            logger.info("Connecting to MCP server '%s': %s %s", name, command, " ".join(args or []))
            self.last_error = None
            handle = ServerHandle(name=name, command=command, args=list(args or []), env=dict(env or {}))
            transport = self._transport_factory(
                command=command,
                args=list(args or []),
                env=dict(env or {}),
                name=name,
                request_timeout=self.request_timeout,
                shutdown_grace=self.shutdown_grace,
            )
            transport.on_close = lambda reason, t=transport: self._on_transport_closed(t, reason)
            self._handle = handle
            self._transport = transport
            self._set_state(ConnectionState.CONNECTING)

        # No lock held during I/O: the reader thread may need it to report a crash
        try:
            process = transport.start()
            handle.pid = process.pid
            init_result = self._initialize(transport)
            handle.server_info = init_result.get("serverInfo") or {}
            handle.protocol_version = init_result.get("protocolVersion")
            index = self._fetch_index(transport)
        except McpClientError as exc:
            logger.error("Failed to connect to MCP server '%s': %s", name, exc)
            with self._lock:
                self.last_error = str(exc)
                if self._transport is transport:
                    self._detach()
            transport.close()
            return False

        with self._lock:
            if self._transport is transport:
                self._index = index
                handle.connected_at = datetime.now(timezone.utc)
                self._set_state(ConnectionState.CONNECTED)
                logger.info("Connected to '%s' (%d tools)", name, len(index))
                return True
            # Server exited right after discovery
            self.last_error = self.last_error or f"MCP server '{name}' exited during connect"
        transport.close()
        return False

    def disconnect(self) -> None:
        """Close the current connection. Does nothing when not connected."""
        with self._lock:
            if self._transport is None and self._state == ConnectionState.DISCONNECTED:
                return
            name = self._handle.name if self._handle else "?"
            logger.info("Disconnecting from MCP server '%s'", name)
            transport = self._detach()
        if transport is not None:
            transport.close()

    def _detach(self) -> Optional[StdioTransport]:
        """Drop the current server from the session; the caller closes it outside the lock."""
        transport = self._transport
        self._transport = None
        self._set_state(ConnectionState.DISCONNECTED)
        self._handle = None
        self._index = ToolSchemaIndex()
        return transport

    def _on_transport_closed(self, transport: StdioTransport, reason: str) -> None:
        # Runs on the reader thread; skip the lock when we already let go
        if transport is not self._transport:
            return
        with self._lock:
            if transport is not self._transport:
                return
            logger.warning("Lost connection to '%s': %s", transport.name, reason)
            self.last_error = reason
            self._detach()
        transport.close()

    def close(self) -> None:
        self.disconnect()

    def __enter__(self) -> "McpSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.disconnect()

    # ── MCP Protocol ──────────────────────────────────────────────────────

    def _initialize(self, transport: StdioTransport) -> Dict[str, Any]:
        """Perform MCP initialize handshake."""
        result = transport.send_request(
            "initialize",
            {
                "protocolVersion": PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": self.client_name, "version": self.client_version},
            },
            timeout=self.connect_timeout,
        )
        transport.send_notification("notifications/initialized")
        return result if isinstance(result, dict) else {}

    def _fetch_index(self, transport: StdioTransport) -> ToolSchemaIndex:
        """Fetch every page of ``tools/list`` and build a fresh index."""
        raw_tools: List[Any] = []
        cursor: Optional[str] = None
        for _ in range(MAX_TOOL_PAGES):
            params = {"cursor": cursor} if cursor else None
            result = transport.send_request("tools/list", params)
            tools = result.get("tools", []) if isinstance(result, dict) else []
            if isinstance(tools, list):
                raw_tools.extend(tools)
            else:
                logger.warning("Server returned a non-list 'tools' member; ignoring it")
            cursor = result.get("nextCursor") if isinstance(result, dict) else None
            if not cursor:
                break
        else:
            logger.warning("Stopped after %d tools/list pages", MAX_TOOL_PAGES)
        return ToolSchemaIndex.build(raw_tools)

    def _require_connection(self) -> StdioTransport:
        transport = self._transport
        if self._state != ConnectionState.CONNECTED or transport is None:
            raise NotConnectedError()
        return transport

    # ── Tools ─────────────────────────────────────────────────────────────

    def refresh_tools(self) -> List[ToolDescriptor]:
        """Re-fetch the tool list from the server, replacing the cached index."""
        with self._lock:
            transport = self._require_connection()
        index = self._fetch_index(transport)
        with self._lock:
            if transport is self._transport:
                self._index = index
        return index.tools()

    def list_tools(self) -> List[ToolDescriptor]:
        """Cached tool descriptors from the last discovery."""
        self._require_connection()
        return self._index.tools()

    def describe_tool(self, name: str) -> ToolDescriptor:
        """Look a tool up by canonical name, then by advertised name."""
        self._require_connection()
        tool = self._index.lookup(name)
        if tool is None:
            raise ToolNotFoundError(name)
        return tool

    def invoke(self, name: str, raw_args: Optional[Sequence[str]] = None) -> Dict[str, Any]:
        """
        Invoke a tool with command-line parameter tokens.

        The tool is resolved before anything is sent, so an unknown name
        fails with ``ToolNotFoundError`` without touching the server.
        """
        tool = self.describe_tool(name)
        arguments = self.coercer.parse(raw_args)
        return self._call(tool, arguments)

    def call_tool(self, name: str, arguments: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Invoke a tool with an already-built argument mapping."""
        tool = self.describe_tool(name)
        return self._call(tool, dict(arguments or {}))

    def _call(self, tool: ToolDescriptor, arguments: Dict[str, Any]) -> Dict[str, Any]:
        transport = self._require_connection()
        logger.info("Calling tool '%s' with %s", tool.raw_name, self.coercer.format_parameters(arguments))
        return transport.send_request("tools/call", {"name": tool.raw_name, "arguments": arguments})

    # ── Reporting ─────────────────────────────────────────────────────────

    def status(self) -> SessionStatus:
        with self._lock:
            handle = self._handle
            if handle is None:
                return SessionStatus(state=self._state, last_error=self.last_error)
            return SessionStatus(
                state=self._state,
                server_name=handle.name,
                command_line=handle.command_line,
                pid=handle.pid,
                server_info=handle.server_info,
                protocol_version=handle.protocol_version,
                connected_at=handle.connected_at,
                tool_count=len(self._index),
                tool_names=self._index.names(),
                last_error=self.last_error,
            )
