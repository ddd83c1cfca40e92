import json
import logging
from typing import Any, Dict, List, Optional

from .protocol import ToolExecutionError

logger = logging.getLogger("MCPFleet.mcp.utils")

DEFAULT_TOOL_RESPONSE_MAX_CHARS = 32768


def truncate_tool_text(text: str, name: str, max_chars: int = DEFAULT_TOOL_RESPONSE_MAX_CHARS) -> str:
    """Apply the per-response length limit to tool output."""
    if len(text) > max_chars:
        logger.info("Truncating response for tool '%s' (%d -> %d chars)", name, len(text), max_chars)
        suffix = "\n\n[Response truncated due to size limits]"
        cutoff = max(0, max_chars - len(suffix))
        return text[:cutoff] + suffix
    return text


def format_tool_result_text(
    result: Any,
    name: str,
    max_chars: int = DEFAULT_TOOL_RESPONSE_MAX_CHARS,
) -> str:
    """Convert a tool result to the text carried by the response envelope."""
    if result is None:
        formatted = "Success"
    elif isinstance(result, str):
        formatted = result
    else:
        try:
            formatted = json.dumps(result, indent=2)
        except (TypeError, ValueError):
            formatted = str(result)
    return truncate_tool_text(formatted, name, max_chars)


def public_tool_error_message(exc: Exception) -> str:
    message = str(exc).strip()
    if message:
        return message
    return type(exc).__name__


def require_str(arguments: Dict[str, Any], key: str) -> str:
    value = arguments.get(key)
    if not isinstance(value, str) or not value:
        raise ToolExecutionError(f"'{key}' is required and must be a non-empty string")
    return value


def optional_str(arguments: Dict[str, Any], key: str, default: Optional[str] = None) -> Optional[str]:
    value = arguments.get(key, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ToolExecutionError(f"'{key}' must be a string")
    return value


def optional_str_list(arguments: Dict[str, Any], key: str) -> Optional[List[str]]:
    value = arguments.get(key)
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ToolExecutionError(f"'{key}' must be an array of strings")
    return value
