"""
MCP client state module.

This module provides persistence for the default-server record.
"""

from mcpclient.state.store import DefaultServer, DefaultServerStore

__all__ = ["DefaultServer", "DefaultServerStore"]
