"""
MCP client validation module.

This module provides configuration loading and schema enforcement.
"""

from mcpclient.validation.config import Config, ConfigError, McpClientConfig, ServerConfig

__all__ = ["Config", "ConfigError", "McpClientConfig", "ServerConfig"]
