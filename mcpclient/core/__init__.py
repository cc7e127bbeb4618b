"""
MCP session core.

Launches an MCP server as a subprocess, talks newline-delimited JSON-RPC
over its stdin/stdout, discovers its tools and invokes them directly:

    StdioTransport   process, framing, request/response correlation
    ToolSchemaIndex  tool list -> descriptors (canonical + raw names)
    ParameterCoercer CLI tokens -> typed argument mapping
    McpSession       connect/disconnect state machine tying them together
"""

from mcpclient.core.errors import (
    InvalidParameterFormatError,
    McpClientError,
    NotConnectedError,
    ProcessSpawnError,
    RemoteError,
    RequestTimeoutError,
    ToolNotFoundError,
    TransportClosedError,
)
from mcpclient.core.index import ToolSchemaIndex, canonical_name
from mcpclient.core.params import ParameterCoercer
from mcpclient.core.schema import (
    ConnectionState,
    ParameterKind,
    ServerHandle,
    SessionStatus,
    ToolDescriptor,
    ToolParameter,
)
from mcpclient.core.session import McpSession
from mcpclient.core.transport import MessageFramer, StdioTransport

__all__ = [
    "ConnectionState",
    "InvalidParameterFormatError",
    "McpClientError",
    "McpSession",
    "MessageFramer",
    "NotConnectedError",
    "ParameterCoercer",
    "ParameterKind",
    "ProcessSpawnError",
    "RemoteError",
    "RequestTimeoutError",
    "ServerHandle",
    "SessionStatus",
    "StdioTransport",
    "ToolDescriptor",
    "ToolNotFoundError",
    "ToolParameter",
    "ToolSchemaIndex",
    "TransportClosedError",
    "canonical_name",
]
