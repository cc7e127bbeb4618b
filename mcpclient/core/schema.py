"""Data models for tool descriptors, server handles and session status."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ConnectionState(str, Enum):
    """Lifecycle states of an MCP session."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


class ParameterKind(str, Enum):
    """Primitive kind inferred from a parameter's JSON-schema ``type``."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    UNKNOWN = "unknown"

    @classmethod
    def from_schema_type(cls, schema_type: Any) -> "ParameterKind":
        if schema_type == "string":
            return cls.STRING
        if schema_type in ("number", "integer"):
            return cls.NUMBER
        if schema_type == "boolean":
            return cls.BOOLEAN
        return cls.UNKNOWN


class ToolParameter(BaseModel):
    """A single parameter of a tool."""

    name: str
    description: str = "No description available"
    required: bool = False
    kind: ParameterKind = ParameterKind.UNKNOWN


class ToolDescriptor(BaseModel):
    """One tool as advertised by the connected server."""

    name: str  # canonical, e.g. "getHello"
    raw_name: str  # as advertised, e.g. "generic_mcp_client_generic_getHello"
    description: str = ""
    params: List[ToolParameter] = Field(default_factory=list)
    input_schema: Dict[str, Any] = Field(default_factory=dict)

    def matches(self, name: str) -> bool:
        return name == self.name or name == self.raw_name

    @property
    def short_description(self) -> str:
        """First line of the description, for tool listings."""
        if not self.description:
            return "No description available"
        return self.description.strip().split("\n")[0]

    @property
    def required_params(self) -> List[ToolParameter]:
        return [p for p in self.params if p.required]

    def full_schema_text(self) -> str:
        """Full parameter listing as text (for ``describe-tool``)."""
        lines = [f"Tool: {self.name}"]
        if self.raw_name != self.name:
            lines.append(f"  Advertised as: {self.raw_name}")
        lines.append(f"  {self.short_description}")
        lines.append("  Parameters:")
        if not self.params:
            lines.append("    (none)")
        for p in self.params:
            req = " (required)" if p.required else ""
            lines.append(f"    - {p.name}: {p.kind.value}{req}: {p.description}")
        return "\n".join(lines)

    def usage_examples(self) -> List[str]:
        """Example ``invoke-tool`` lines in both accepted parameter formats."""
        if not self.params:
            return [f"invoke-tool {self.name}"]
        sample = {p.name: _sample_value(p.kind) for p in self.params}
        pairs = " ".join(f"{k}={json.dumps(v) if isinstance(v, str) else _cli_literal(v)}"
                         for k, v in sample.items())
        return [
            f"invoke-tool {self.name} {pairs}",
            f"invoke-tool {self.name} '{json.dumps(sample)}'",
        ]


def _sample_value(kind: ParameterKind) -> Any:
    if kind == ParameterKind.NUMBER:
        return 1
    if kind == ParameterKind.BOOLEAN:
        return True
    return "value"


def _cli_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass
class ServerHandle:
    """The server the session is currently attached to."""

    name: str
    command: str
    args: List[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    pid: Optional[int] = None
    state: ConnectionState = ConnectionState.CONNECTING
    server_info: Dict[str, Any] = field(default_factory=dict)
    protocol_version: Optional[str] = None
    connected_at: Optional[datetime] = None

    @property
    def command_line(self) -> str:
        return " ".join([self.command] + list(self.args))


class SessionStatus(BaseModel):
    """Snapshot of the session, rendered by the ``status`` command."""

    state: ConnectionState = ConnectionState.DISCONNECTED
    server_name: Optional[str] = None
    command_line: Optional[str] = None
    pid: Optional[int] = None
    server_info: Dict[str, Any] = Field(default_factory=dict)
    protocol_version: Optional[str] = None
    connected_at: Optional[datetime] = None
    tool_count: int = 0
    tool_names: List[str] = Field(default_factory=list)
    last_error: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED
