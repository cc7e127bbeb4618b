"""Tool schema index: turns a server's tool list into queryable descriptors."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from mcpclient.core.schema import ParameterKind, ToolDescriptor, ToolParameter

logger = logging.getLogger(__name__)

# Minimum underscore-delimited segments before a name is treated as prefixed
PREFIX_SEGMENTS = 3


def canonical_name(raw_name: str) -> str:
    """
    Strip a generated ``<client>_<server>_<method>`` prefix from a tool name.

    Some clients advertise tools as e.g. ``generic_mcp_client_generic_getHello``;
    the operator-facing name is the final segment, ``getHello``. Names with
    fewer than three segments are returned unchanged. Trailing empty segments
    are ignored, so ``a_b_`` counts as two segments.

    This is a heuristic for one naming convention, not something the protocol
    guarantees. Lookups therefore always accept the raw name as well.
    """
    parts = raw_name.split("_")
    while parts and parts[-1] == "":
        parts.pop()
    if len(parts) >= PREFIX_SEGMENTS:
        return parts[-1]
    return raw_name


class ToolSchemaIndex:
    """
    Lookup table of the tools a server advertises.

    Built wholesale from a ``tools/list`` response via ``build()``; there is
    no incremental update. A tool whose input schema cannot be parsed is kept
    with an empty parameter list rather than failing the whole discovery.
    """

    def __init__(self, tools: Optional[Iterable[ToolDescriptor]] = None):
        self._tools: List[ToolDescriptor] = []
        self._by_canonical: Dict[str, ToolDescriptor] = {}
        self._by_raw: Dict[str, ToolDescriptor] = {}
        for tool in tools or []:
            self._add(tool)

    # ── Building ──────────────────────────────────────────────────────────

    @classmethod
    def build(cls, raw_tools: Optional[Iterable[Any]]) -> "ToolSchemaIndex":
        """
        Build an index from raw ``tools/list`` entries.

        Each entry is a mapping with ``name``, ``description`` and
        ``inputSchema``; the schema may be a mapping or JSON text.
        """
        index = cls()
        for raw in raw_tools or []:
            descriptor = cls.parse_tool(raw)
            if descriptor is not None:
                index._add(descriptor)
        logger.debug("Indexed %d tools", len(index))
        return index

    @classmethod
    def parse_tool(cls, raw: Any) -> Optional[ToolDescriptor]:
        """Parse one tool entry, or return None when it has no usable name."""
        if not isinstance(raw, dict):
            logger.warning("Skipping tool entry that is not an object: %r", raw)
            return None

        raw_name = raw.get("name")
        if not isinstance(raw_name, str) or not raw_name.strip():
            logger.warning("Skipping tool entry without a name: %r", raw)
            return None

        description = raw.get("description")
        if not isinstance(description, str):
            description = ""

        schema_source = raw.get("inputSchema", raw.get("input_schema", raw.get("schema")))
        schema = cls._load_schema(raw_name, schema_source)
        params = cls._parse_params(raw_name, schema) if schema is not None else []

        return ToolDescriptor(
            name=canonical_name(raw_name),
            raw_name=raw_name,
            description=description,
            params=params,
            input_schema=schema or {},
        )

    @staticmethod
    def _load_schema(tool_name: str, source: Any) -> Optional[Dict[str, Any]]:
        if source is None:
            return {}
        if isinstance(source, str):
            try:
                source = json.loads(source)
            except json.JSONDecodeError as exc:
                logger.warning("Unparseable input schema for tool '%s': %s", tool_name, exc)
                return None
        if not isinstance(source, dict):
            logger.warning("Input schema for tool '%s' is not an object", tool_name)
            return None
        return source

    @staticmethod
    def _parse_params(tool_name: str, schema: Dict[str, Any]) -> List[ToolParameter]:
        properties = schema.get("properties", {})
        if not isinstance(properties, dict):
            logger.warning("Tool '%s' has malformed 'properties'; ignoring parameters", tool_name)
            return []

        required = schema.get("required", [])
        required_names = set(r for r in required if isinstance(r, str)) if isinstance(required, list) else set()

        params: List[ToolParameter] = []
        for pname, pinfo in properties.items():
            if not isinstance(pinfo, dict):
                pinfo = {}
            desc = pinfo.get("description")
            params.append(ToolParameter(
                name=pname,
                description=desc if isinstance(desc, str) and desc else "No description available",
                required=pname in required_names,
                kind=ParameterKind.from_schema_type(pinfo.get("type")),
            ))
        return params

    def _add(self, tool: ToolDescriptor) -> None:
        if tool.raw_name in self._by_raw:
            logger.warning("Duplicate tool name '%s'; keeping the first entry", tool.raw_name)
            return
        self._tools.append(tool)
        self._by_raw[tool.raw_name] = tool
        existing = self._by_canonical.get(tool.name)
        if existing is None:
            self._by_canonical[tool.name] = tool
        else:
            logger.warning(
                "Tools '%s' and '%s' share canonical name '%s'; use the full name for the latter",
                existing.raw_name, tool.raw_name, tool.name,
            )

    # ── Lookup ────────────────────────────────────────────────────────────

    def lookup(self, name: str) -> Optional[ToolDescriptor]:
        """Exact, case-sensitive match on canonical name, then on raw name."""
        tool = self._by_canonical.get(name)
        if tool is not None:
            return tool
        return self._by_raw.get(name)

    def tools(self) -> List[ToolDescriptor]:
        """All descriptors in advertised order."""
        return list(self._tools)

    def names(self) -> List[str]:
        """Canonical names in advertised order."""
        return [t.name for t in self._tools]

    def __len__(self) -> int:
        return len(self._tools)

    def __iter__(self) -> Iterator[ToolDescriptor]:
        return iter(list(self._tools))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.lookup(name) is not None
