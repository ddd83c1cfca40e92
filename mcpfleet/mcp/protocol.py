"""
MCP Fleet Tool-Server Protocol Constants & Errors
"""

from enum import Enum
from typing import Optional

SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2024-11-05")

# Standard JSON-RPC / MCP Error Codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
PARSE_ERROR = -32700

# Fleet Specific Error Codes
SERVER_BUSY = -32000


class RequestKind(str, Enum):
    """Closed set of request kinds a tool server answers."""
    ENUMERATE_TOOLS = "enumerate-tools"
    INVOKE_TOOL = "invoke-tool"


# JSON-RPC method names used by MCP hosts, mapped onto request kinds.
JSONRPC_METHOD_KINDS = {
    "tools/list": RequestKind.ENUMERATE_TOOLS,
    "tools/call": RequestKind.INVOKE_TOOL,
}


def negotiate_protocol_version(version: Optional[str]) -> str:
    if version in SUPPORTED_PROTOCOL_VERSIONS:
        return version
    return SUPPORTED_PROTOCOL_VERSIONS[0]


class McpError(Exception):
    """Protocol-level failure answered with an error object, not an envelope."""

    code = INTERNAL_ERROR

    def __init__(self, message: str, code: Optional[int] = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class DecodeError(McpError):
    """A wire line that is not a JSON object."""

    code = PARSE_ERROR


class MethodNotFound(McpError):
    """Unknown request kind or tool name."""

    code = METHOD_NOT_FOUND


class InvalidParams(McpError):
    """A request of a known kind with malformed parameters."""

    code = INVALID_PARAMS


class ToolExecutionError(Exception):
    """Raised by tool implementations; converted to an isError envelope."""
