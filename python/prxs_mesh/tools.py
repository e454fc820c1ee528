"""Tool registration for agent hosts.

A host exposes prxs-mesh to an agent as a set of tools, each a
``{name, input_schema, handler}`` triple. :class:`ToolRegistry` is the map
those triples are registered into at startup; :func:`handle_tool_request`
routes MCP-style ``tools/list`` and ``tools/call`` requests against it.

Example::

    registry = ToolRegistry()

    @registry.tool("prxs_echo", description="Echo the input")
    async def echo(params: dict) -> dict:
        return text_result(params)
"""

from __future__ import annotations

import json
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from prxs_mesh.exceptions import PrxsError, ToolError
from prxs_mesh.types import ServiceCard

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]

EMPTY_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}, "additionalProperties": False}


def text_result(payload: Any) -> dict[str, Any]:
    """Wrap *payload* as a single JSON text content block."""
    return {"content": [{"type": "text", "text": json.dumps(payload, ensure_ascii=False)}]}


def sanitize_tool_suffix(service_name: str) -> str:
    """Turn a service name into a ``[a-z0-9_]`` tool-name suffix."""
    cleaned = re.sub(r"[^a-z0-9_]+", "_", service_name.lower())
    cleaned = re.sub(r"_+", "_", cleaned.strip("_"))
    if not cleaned:
        return "service"
    if cleaned[0].isdigit():
        return f"s_{cleaned}"
    return cleaned


def build_parameters_from_inputs(card: ServiceCard) -> dict[str, Any]:
    """JSON Schema for a per-service tool: one required string per input slot.

    Services without declared inputs accept arbitrary properties.
    """
    properties = {
        name: {"type": "string", "description": f"Argument '{name}' for service {card.name}"}
        for name in card.inputs
    }
    required = list(card.inputs)
    return {
        "type": "object",
        "properties": properties,
        "required": required,
        "additionalProperties": not required,
    }


@dataclass(frozen=True)
class ToolDefinition:
    """One tool exposed to the agent."""

    name: str
    description: str
    handler: ToolHandler
    input_schema: dict[str, Any] = field(default_factory=lambda: dict(EMPTY_SCHEMA))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class ToolRegistry:
    """Name-keyed map of tool definitions, populated at startup."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}

    def register(self, definition: ToolDefinition) -> ToolDefinition:
        """Add *definition*. Raises :class:`ToolError` on a duplicate name."""
        if definition.name in self._tools:
            raise ToolError(f"tool {definition.name!r} is already registered")
        self._tools[definition.name] = definition
        return definition

    def tool(
        self,
        name: str,
        *,
        description: str = "",
        input_schema: dict[str, Any] | None = None,
    ) -> Callable[[ToolHandler], ToolHandler]:
        """Decorator form of :meth:`register`."""

        def decorator(fn: ToolHandler) -> ToolHandler:
            self.register(
                ToolDefinition(
                    name=name,
                    description=description or fn.__doc__ or "",
                    handler=fn,
                    input_schema=input_schema if input_schema is not None else dict(EMPTY_SCHEMA),
                )
            )
            return fn

        return decorator

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        return [t.to_dict() for t in self._tools.values()]

    async def call(self, name: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        definition = self._tools.get(name)
        if definition is None:
            raise ToolError(f"tool {name!r} not found")
        return await definition.handler(dict(params or {}))

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def __repr__(self) -> str:
        return f"ToolRegistry({len(self._tools)} tools)"


async def handle_tool_request(registry: ToolRegistry, data: Any) -> dict[str, Any]:
    """Route an MCP-style request to *registry*.

    Handles ``tools/list`` and ``tools/call``. prxs-mesh failures become an
    ``isError`` response carrying the error message.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError:
            return {"error": "invalid tool request"}
    if not isinstance(data, Mapping):
        return {"error": "invalid tool request"}

    method = data.get("method", "")
    params = data.get("params") or {}
    if not isinstance(params, Mapping):
        return {"error": "invalid tool request"}

    if method == "tools/list":
        return {"tools": registry.definitions()}

    if method == "tools/call":
        tool_name = params.get("name", "")
        arguments = params.get("arguments") or {}
        if not isinstance(tool_name, str):
            return {"error": "invalid tool request"}
        if tool_name not in registry:
            return {"error": f"tool {tool_name!r} not found"}
        try:
            if isinstance(arguments, str):
                arguments = json.loads(arguments)
            if not isinstance(arguments, Mapping):
                return {"error": "invalid tool request"}
            return await registry.call(tool_name, arguments)
        except (PrxsError, json.JSONDecodeError) as exc:
            return {"error": str(exc), "isError": True}

    return {"error": f"unknown tool method: {method!r}"}
