"""
Line-delimited tool-server runtime shared by every MCP Fleet tool server.
"""

from .protocol import (
    DecodeError,
    InvalidParams,
    McpError,
    MethodNotFound,
    RequestKind,
    ToolExecutionError,
)
from .router import RequestRouter, Tool, ToolInvoker, text_envelope
from .server import ToolServer
from .transport import LineTransport

__all__ = [
    "DecodeError",
    "InvalidParams",
    "LineTransport",
    "McpError",
    "MethodNotFound",
    "RequestKind",
    "RequestRouter",
    "Tool",
    "ToolExecutionError",
    "ToolInvoker",
    "ToolServer",
    "text_envelope",
]
