"""
MCP Client Configuration - Configuration loading and validation.

This module provides the Config class for managing client configuration
from both global (~/.mcp-client/config.yaml) and local (.mcp-client/config.yaml)
sources. Configuration is read once at startup; connections themselves are
made dynamically, so nothing here needs a restart to take effect.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

# Flags that keep a Spring Boot MCP server quiet on stdout
QUIET_JAVA_ARGS = [
    "-Dlogging.level.root=OFF",
    "-Dspring.main.banner-mode=off",
    "-Dspring.main.log-startup-info=false",
]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised when there's a configuration error."""

    pass


class ServerConfig(BaseModel):
    """Configuration for a single STDIO MCP server."""

    command: str
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)
    enabled: bool = True

    @classmethod
    def from_target(cls, target: str, extra_args: Optional[List[str]] = None) -> "ServerConfig":
        """
        Build a launch command from a command or a server JAR path.

        ``server.jar`` becomes ``java <quiet flags> -jar server.jar``; anything
        else is run as given.
        """
        extra_args = list(extra_args or [])
        if target.lower().endswith(".jar"):
            return cls(command="java", args=QUIET_JAVA_ARGS + ["-jar", target] + extra_args)
        return cls(command=target, args=extra_args)

    @property
    def command_line(self) -> str:
        return " ".join([self.command] + self.args)


class ClientSettings(BaseModel):
    """Configuration for the client itself."""

    request_timeout: float = 30.0
    connect_timeout: float = 60.0
    shutdown_grace: float = 5.0
    log_level: str = "WARNING"
    log_file: Optional[str] = None
    auto_connect_default: bool = False

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @field_validator("request_timeout", "connect_timeout", "shutdown_grace")
    @classmethod
    def _check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeouts must be positive")
        return value


class McpClientConfig(BaseModel):
    """Complete client configuration schema."""

    client: ClientSettings = Field(default_factory=ClientSettings)
    servers: Dict[str, ServerConfig] = Field(default_factory=dict)


class Config:
    """
    Client configuration manager.

    Handles loading, merging, and validating configuration from:
    - Global: ~/.mcp-client/config.yaml
    - Local: .mcp-client/config.yaml (nearest one walking up from cwd),
      or an explicit file passed on the command line

    Local configuration overrides global configuration.

    Example:
        >>> config = Config.load()
        >>> server = config.get_server("weather")
        >>> config.client.request_timeout
        30.0
    """

    GLOBAL_CONFIG_DIR = Path.home() / ".mcp-client"
    LOCAL_CONFIG_DIR = Path(".mcp-client")

    def __init__(
        self,
        global_config: Optional[Dict[str, Any]] = None,
        local_config: Optional[Dict[str, Any]] = None,
    ):
        """
        Initialize Config.

        Args:
            global_config: Global configuration dictionary.
            local_config: Local (project) configuration dictionary.
        """
        self._global_config = global_config or {}
        self._local_config = local_config or {}
        self._merged: Optional[McpClientConfig] = None

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        """
        Load configuration from default locations.

        Args:
            path: Explicit config file used instead of the local lookup.

        Returns:
            Config instance with loaded configuration.
        """
        global_config = cls._load_yaml(cls.GLOBAL_CONFIG_DIR / "config.yaml")
        if path is not None:
            if not Path(path).exists():
                raise ConfigError(f"Config file not found: {path}")
            local_config = cls._load_yaml(Path(path))
        else:
            local_config = cls._load_yaml(cls._find_local_config())

        return cls(global_config=global_config, local_config=local_config)

    @classmethod
    def _load_yaml(cls, path: Optional[Path]) -> Dict[str, Any]:
        """Load YAML file if it exists."""
        if path is None or not path.exists():
            return {}

        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config from {path}: {e}")
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        return data

    @classmethod
    def _find_local_config(cls) -> Optional[Path]:
        """Find the local config file by walking up the directory tree."""
        current = Path.cwd()
        while current != current.parent:
            config_path = current / cls.LOCAL_CONFIG_DIR / "config.yaml"
            if config_path.exists():
                return config_path
            current = current.parent
        return None

    def get_merged_config(self) -> Dict[str, Any]:
        """Get the merged configuration as a dictionary."""
        return self._deep_merge(self._global_config.copy(), self._local_config)

    @property
    def merged(self) -> McpClientConfig:
        """Get the validated merged configuration."""
        if self._merged is None:
            try:
                self._merged = McpClientConfig(**self.get_merged_config())
            except (ValidationError, TypeError) as e:
                raise ConfigError(f"Invalid configuration: {e}")
        return self._merged

    @property
    def client(self) -> ClientSettings:
        return self.merged.client

    def get_server(self, name: str) -> Optional[ServerConfig]:
        """Get an enabled server by name."""
        server = self.merged.servers.get(name)
        if server is None or not server.enabled:
            return None
        return server

    def server_names(self) -> List[str]:
        """Names of all enabled servers, in file order."""
        return [name for name, server in self.merged.servers.items() if server.enabled]

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries, with override taking precedence."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @staticmethod
    def render_server_snippet(name: str, command: str, args: Optional[List[str]] = None) -> str:
        """
        Render the YAML block that declares a server in config.yaml.

        Nothing is written; the operator pastes the block where they want it.
        """
        block = {"servers": {name: {"command": command, "args": list(args or [])}}}
        return yaml.dump(block, default_flow_style=False, sort_keys=False)

