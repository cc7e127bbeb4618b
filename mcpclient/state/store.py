"""
MCP Client State - Persisted default-server record.

This module provides the DefaultServerStore class for saving and loading the
server the operator marked as default, so the next session can connect to it
without retyping the launch command.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = Path.home() / ".mcp-client"
DEFAULT_SERVER_FILE = "default-server.yaml"


@dataclass
class DefaultServer:
    """
    The saved default server: a name plus its launch command.
    """

    name: str
    command: str
    args: List[str] = field(default_factory=list)
    saved_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def command_line(self) -> str:
        return " ".join([self.command] + self.args)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the record to a dictionary for serialization."""
        return {
            "name": self.name,
            "command": self.command,
            "args": list(self.args),
            "saved_at": self.saved_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DefaultServer":
        """Create a DefaultServer from a dictionary."""
        saved_at = data.get("saved_at")
        if isinstance(saved_at, str):
            saved_at = datetime.fromisoformat(saved_at)
        elif not isinstance(saved_at, datetime):
            saved_at = datetime.now(timezone.utc)
        return cls(
            name=str(data["name"]),
            command=str(data["command"]),
            args=[str(a) for a in data.get("args") or []],
            saved_at=saved_at,
        )


class DefaultServerStore:
    """
    Reads and writes the default-server record.

    The record lives in a single YAML file:
    - ~/.mcp-client/default-server.yaml

    Example:
        >>> store = DefaultServerStore()
        >>> store.save("weather", "java", ["-jar", "weather.jar"])
        >>> store.load().name
        'weather'
    """

    def __init__(self, state_dir: Optional[Path] = None):
        """
        Initialize the DefaultServerStore.

        Args:
            state_dir: Directory for the record. If None, uses ~/.mcp-client.
        """
        self.state_dir = Path(state_dir) if state_dir else DEFAULT_STATE_DIR

    @property
    def path(self) -> Path:
        return self.state_dir / DEFAULT_SERVER_FILE

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, name: str, command: str, args: Optional[List[str]] = None) -> DefaultServer:
        """
        Save a server as the default.

        Returns:
            The saved record.
        """
        record = DefaultServer(name=name, command=command, args=list(args or []))
        self.state_dir.mkdir(parents=True, exist_ok=True)

        with open(self.path, "w") as f:
            yaml.dump(record.to_dict(), f, default_flow_style=False, sort_keys=False)

        logger.info("Saved default server: %s -> %s", name, record.command_line)
        return record

    def load(self) -> Optional[DefaultServer]:
        """
        Load the default server.

        Returns:
            DefaultServer if one is saved and readable, None otherwise.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path) as f:
                data = yaml.safe_load(f)
            return DefaultServer.from_dict(data)
        except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError) as e:
            logger.error("Failed to load default server from %s: %s", self.path, e)
            return None

    def remove(self) -> bool:
        """
        Delete the saved default.

        Returns:
            True if deleted, False if there was nothing to delete.
        """
        if self.path.exists():
            self.path.unlink()
            logger.info("Removed default server configuration")
            return True
        return False
