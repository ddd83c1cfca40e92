"""
Request routing for tool servers.

``RequestRouter`` maps each request kind to one handler. ``ToolInvoker`` is
the invoke-tool handler: it resolves a tool by name from a fixed table and
turns every outcome into the uniform response envelope::

    {"content": [{"type": "text", "text": "..."}], "isError": true}

Tool failures become envelopes with ``isError: true``. Unknown kinds and tool
names raise ``MethodNotFound`` and are answered as protocol errors instead.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List

from .protocol import InvalidParams, MethodNotFound, RequestKind
from .utils import (
    DEFAULT_TOOL_RESPONSE_MAX_CHARS,
    format_tool_result_text,
    public_tool_error_message,
)

logger = logging.getLogger("MCPFleet.mcp.router")

Handler = Callable[[Dict[str, Any]], Any]


def text_envelope(text: str, is_error: bool = False) -> Dict[str, Any]:
    envelope: Dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        envelope["isError"] = True
    return envelope


@dataclass(frozen=True)
class Tool:
    """A named tool: its static descriptor plus the callable implementing it."""

    name: str
    description: str
    handler: Callable[[Dict[str, Any]], Any]
    input_schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object"})

    def descriptor(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
        }


class RequestRouter:
    """One handler per request kind; later registrations replace earlier ones."""

    def __init__(self) -> None:
        self._handlers: Dict[RequestKind, Handler] = {}

    def register(self, kind: RequestKind, handler: Handler) -> None:
        self._handlers[RequestKind(kind)] = handler

    def dispatch(self, kind: Any, request: Dict[str, Any]) -> Any:
        try:
            resolved = RequestKind(kind)
        except ValueError:
            raise MethodNotFound(f"Unknown request kind: {kind}") from None
        handler = self._handlers.get(resolved)
        if handler is None:
            raise MethodNotFound(f"No handler registered for request kind: {resolved.value}")
        return handler(request)


class ToolInvoker:
    """Second-level dispatch for invoke-tool requests."""

    def __init__(
        self,
        tools: Iterable[Tool],
        error_prefix: str = "Tool error",
        max_chars: int = DEFAULT_TOOL_RESPONSE_MAX_CHARS,
    ):
        self._tools: Dict[str, Tool] = {}
        for tool in tools:
            if tool.name in self._tools:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            self._tools[tool.name] = tool
        self.error_prefix = error_prefix
        self.max_chars = max_chars

    @property
    def tool_names(self) -> List[str]:
        return list(self._tools)

    def descriptors(self) -> List[Dict[str, Any]]:
        return [tool.descriptor() for tool in self._tools.values()]

    def enumerate_tools(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return {"tools": self.descriptors()}

    def __call__(self, request: Dict[str, Any]) -> Dict[str, Any]:
        name = request.get("tool")
        if not isinstance(name, str) or not name:
            raise InvalidParams("invoke-tool requires a non-empty string 'tool'")
        arguments = request.get("arguments")
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidParams("invoke-tool 'arguments' must be an object")

        tool = self._tools.get(name)
        if tool is None:
            raise MethodNotFound(f"Unknown tool: {name}")

        try:
            result = tool.handler(arguments)
        except Exception as exc:
            logger.warning("Tool '%s' failed: %s", name, exc, exc_info=True)
            return text_envelope(
                f"{self.error_prefix}: {public_tool_error_message(exc)}",
                is_error=True,
            )
        return text_envelope(format_tool_result_text(result, name, self.max_chars))
