"""
mcpclient - Generic Model Context Protocol client.

Connects to an MCP server over STDIO, discovers the tools it exposes and
invokes them directly from an interactive shell.

Architecture:
- core/        session core: transport, tool index, parameter coercion
- validation/  YAML configuration (global + project), pydantic-validated
- state/       persisted default-server record
- cli/         click entry point and interactive shell
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

from mcpclient.core.session import McpSession
from mcpclient.core.transport import StdioTransport

__all__ = [
    "McpSession",
    "StdioTransport",
    "__version__",
]
