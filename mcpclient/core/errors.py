"""Exception hierarchy for the MCP session core."""

from typing import Any, Optional


class McpClientError(Exception):
    """Base class for every error raised by the MCP client core."""


class ProcessSpawnError(McpClientError):
    """Raised when the server executable cannot be found or launched."""


class TransportClosedError(McpClientError):
    """Raised when the server process exited or its pipes broke."""


class RequestTimeoutError(McpClientError):
    """Raised when no response arrived before the request deadline."""

    def __init__(self, method: str, request_id: int, timeout: float):
        super().__init__(
            f"No response to '{method}' (id={request_id}) within {timeout:g}s"
        )
        self.method = method
        self.request_id = request_id
        self.timeout = timeout


class RemoteError(McpClientError):
    """Raised when the server answers a request with a JSON-RPC error object."""

    def __init__(self, code: Optional[int], message: str, data: Any = None):
        super().__init__(f"MCP error {code}: {message}")
        self.code = code
        self.message = message
        self.data = data


class NotConnectedError(McpClientError):
    """Raised when an operation needs an active server connection."""

    def __init__(self, message: str = "Not connected to any MCP server"):
        super().__init__(message)


class ToolNotFoundError(McpClientError):
    """Raised when a name matches neither a canonical nor a raw tool name."""

    def __init__(self, name: str):
        super().__init__(f"Tool not found: {name}")
        self.name = name


class InvalidParameterFormatError(McpClientError, ValueError):
    """Raised when command-line parameters cannot be coerced."""
