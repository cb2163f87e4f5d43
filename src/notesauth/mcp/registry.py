# Tool protocol, registry and JSON-RPC dispatch for the MCP endpoint.
# Created: 2026-10-19

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from notesauth import __version__
from notesauth.mcp.policy import TOOL_POLICIES, ToolPolicy, security_schemes

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2025-06-18"
SERVER_NAME = "notesauth"

# JSON-RPC 2.0 error codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602


@dataclass
class ToolResult:
    """What a tool returns: a text line for the model plus structured content."""

    text: str
    structured: dict[str, Any] | None = None
    is_error: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"content": [{"type": "text", "text": self.text}]}
        if self.structured is not None:
            result["structuredContent"] = self.structured
        if self.is_error:
            result["isError"] = True
        return result


@dataclass
class ToolDefinition:
    """Tool definition as listed by ``tools/list``."""

    name: str
    title: str
    description: str
    parameters: dict[str, Any]  # JSON Schema
    read_only: bool = True

    def to_mcp_schema(self, policy: ToolPolicy | None = None) -> dict[str, Any]:
        schema: dict[str, Any] = {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "inputSchema": self.parameters,
            "annotations": {
                "readOnlyHint": self.read_only,
                "destructiveHint": False,
                "openWorldHint": False,
            },
        }
        if policy is not None:
            schema["_meta"] = {"securitySchemes": security_schemes(policy)}
        return schema


class ToolProtocol(Protocol):
    @property
    def name(self) -> str: ...

    @property
    def definition(self) -> ToolDefinition: ...

    async def execute(self, **params: Any) -> ToolResult: ...


class BaseTool(ABC):
    """Base class for tools with common functionality."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def description(self) -> str: ...

    @property
    def title(self) -> str:
        return self.name

    @property
    def read_only(self) -> bool:
        return True

    @property
    def parameters(self) -> dict[str, Any]:
        """Parameter schema. Override in subclass."""
        return {"type": "object", "properties": {}, "required": []}

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            title=self.title,
            description=self.description,
            parameters=self.parameters,
            read_only=self.read_only,
        )

    @abstractmethod
    async def execute(self, **params: Any) -> ToolResult: ...

    def _error(self, message: str) -> ToolResult:
        return ToolResult(text=message, is_error=True)

    def _success(self, message: str, structured: dict[str, Any] | None = None) -> ToolResult:
        return ToolResult(text=message, structured=structured)


class ToolRegistry:
    """
    Registry of MCP tools.

    Usage:
        registry = ToolRegistry()
        registry.register(NotesListTool(store))

        # tools/list payload
        definitions = registry.get_definitions()

        # tools/call
        result = await registry.execute("notes_list")
    """

    def __init__(self, policies: Mapping[str, ToolPolicy] = TOOL_POLICIES):
        self._tools: dict[str, ToolProtocol] = {}
        self.policies = policies

    def register(self, tool: ToolProtocol) -> None:
        self._tools[tool.name] = tool
        logger.debug("Registered tool: %s", tool.name)

    def get(self, name: str) -> ToolProtocol | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    def get_definitions(self) -> list[dict[str, Any]]:
        return [
            tool.definition.to_mcp_schema(self.policies.get(tool.name))
            for tool in self._tools.values()
        ]

    async def execute(self, name: str, /, **params: Any) -> ToolResult:
        """Run a tool. Failures inside the tool become an error result."""
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(text=f"Unknown tool: {name}", is_error=True)

        try:
            logger.debug("Executing %s", name)
            return await tool.execute(**params)
        except Exception as e:
            logger.error("Tool %s failed: %s", name, e, exc_info=True)
            return ToolResult(text=f"Error executing {name}", is_error=True)

    def __len__(self) -> int:
        return len(self._tools)

    # ------------------------------------------------------------------
    # JSON-RPC
    # ------------------------------------------------------------------

    async def handle_jsonrpc(self, message: Any) -> dict[str, Any] | None:
        """Dispatch one JSON-RPC message. Returns None for notifications."""
        if not isinstance(message, dict) or not isinstance(message.get("method"), str):
            request_id = message.get("id") if isinstance(message, dict) else None
            return _error(request_id, INVALID_REQUEST, "Invalid Request")

        method: str = message["method"]
        if "id" not in message:
            logger.debug("Notification %s", method)
            return None

        request_id = message["id"]
        params = message.get("params") or {}
        if not isinstance(params, dict):
            return _error(request_id, INVALID_PARAMS, "params must be an object")

        if method == "initialize":
            return _result(
                request_id,
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "capabilities": {"tools": {"listChanged": False}},
                    "serverInfo": {"name": SERVER_NAME, "version": __version__},
                },
            )

        if method == "ping":
            return _result(request_id, {})

        if method == "tools/list":
            return _result(request_id, {"tools": self.get_definitions()})

        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str) or not self.has(name):
                return _error(request_id, INVALID_PARAMS, f"Unknown tool: {name}")
            arguments = params.get("arguments") or {}
            if not isinstance(arguments, dict):
                return _error(request_id, INVALID_PARAMS, "arguments must be an object")
            result = await self.execute(name, **arguments)
            return _result(request_id, result.to_dict())

        return _error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")


def _result(request_id: Any, result: dict[str, Any]) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}
