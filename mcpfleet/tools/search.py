"""
Search tool server: substring search, glob lookup and code-definition listing
over a local directory tree.

Dependency directories (``node_modules``, ``build``, ``dist``, ``.git``) are
never descended into. Paths in results are relative to the searched directory
and always use forward slashes.
"""

import os
import re
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from mcpfleet.core.config import FleetConfig
from mcpfleet.mcp.protocol import ToolExecutionError
from mcpfleet.mcp.router import Tool
from mcpfleet.mcp.server import ToolServer
from mcpfleet.mcp.utils import optional_str_list, require_str
from mcpfleet.version import __version__

from .definitions import SEARCH_TOOLS_SCHEMAS, schema_for

logger = logging.getLogger("MCPFleet.tools.search")

SERVER_NAME = "search-server"
ERROR_PREFIX = "Search error"
IGNORED_DIRS = frozenset({"node_modules", "build", "dist", ".git"})

DEFINITION_PATTERN = re.compile(
    r"^(?:export\s+)?(?:async\s+)?(?:class|function|interface|type|const|let|var|def)\s+(\w+)",
    re.MULTILINE,
)


def _resolve_directory(directory: str) -> Path:
    root = Path(directory).expanduser()
    if not root.is_dir():
        raise ToolExecutionError(f"Directory not found: {directory}")
    return root


def _normalize_extensions(file_types: Optional[Sequence[str]]) -> Optional[frozenset]:
    if not file_types:
        return None
    return frozenset(ext.lstrip(".").lower() for ext in file_types if ext.strip("."))


def iter_files(root: Path, file_types: Optional[Sequence[str]] = None) -> Iterator[str]:
    """Yield relative posix paths of files under root, skipping ignored directories."""
    extensions = _normalize_extensions(file_types)
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in IGNORED_DIRS)
        for filename in sorted(filenames):
            if extensions is not None:
                _, _, ext = filename.rpartition(".")
                if "." not in filename or ext.lower() not in extensions:
                    continue
            full = Path(dirpath) / filename
            yield full.relative_to(root).as_posix()


def _read_text(root: Path, relative: str) -> Optional[str]:
    try:
        return (root / relative).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("Error reading file %s: %s", relative, exc)
        return None


def search_in_files(directory: str, pattern: str, file_types: Optional[Sequence[str]] = None) -> str:
    root = _resolve_directory(directory)
    results: List[str] = []
    for relative in iter_files(root, file_types):
        content = _read_text(root, relative)
        if content is None:
            continue
        for i, line in enumerate(content.split("\n")):
            if pattern in line:
                results.append(f"\nFile: {relative}:{i + 1}\n{line.strip()}\n")
    return "".join(results) or "No matches found"


def find_files(directory: str, pattern: str) -> List[str]:
    root = _resolve_directory(directory)
    try:
        matches = root.glob(pattern)
        found = []
        for match in matches:
            if not match.is_file():
                continue
            relative = match.relative_to(root)
            if IGNORED_DIRS.intersection(relative.parts[:-1]):
                continue
            found.append(relative.as_posix())
    except (ValueError, NotImplementedError) as exc:
        raise ToolExecutionError(f"Invalid glob pattern '{pattern}': {exc}") from exc
    return sorted(found)


def find_code_definitions(directory: str, file_types: Sequence[str]) -> str:
    root = _resolve_directory(directory)
    definitions: List[str] = []
    for relative in iter_files(root, file_types):
        content = _read_text(root, relative)
        if content is None:
            continue
        for match in DEFINITION_PATTERN.finditer(content):
            definitions.append(f"{relative}: {match.group(1)}\n")
    return "".join(definitions) or "No definitions found"


def build_search_tools() -> List[Tool]:
    def search_handler(arguments: Dict[str, Any]) -> str:
        return search_in_files(
            require_str(arguments, "directory"),
            require_str(arguments, "pattern"),
            optional_str_list(arguments, "fileTypes"),
        )

    def find_files_handler(arguments: Dict[str, Any]) -> str:
        files = find_files(require_str(arguments, "directory"), require_str(arguments, "pattern"))
        return "\n".join(files)

    def definitions_handler(arguments: Dict[str, Any]) -> str:
        file_types = optional_str_list(arguments, "fileTypes")
        if not file_types:
            raise ToolExecutionError("'fileTypes' is required and must be a non-empty array of strings")
        return find_code_definitions(require_str(arguments, "directory"), file_types)

    handlers = {
        "search_in_files": search_handler,
        "find_files": find_files_handler,
        "find_code_definitions": definitions_handler,
    }
    return [
        Tool(
            name=name,
            description=schema_for(SEARCH_TOOLS_SCHEMAS, name)["description"],
            handler=handler,
            input_schema=schema_for(SEARCH_TOOLS_SCHEMAS, name)["inputSchema"],
        )
        for name, handler in handlers.items()
    ]


def build_search_server(config: Optional[FleetConfig] = None, **server_kwargs) -> ToolServer:
    config = config or FleetConfig.from_env()
    return ToolServer(
        SERVER_NAME,
        __version__,
        build_search_tools(),
        error_prefix=ERROR_PREFIX,
        max_workers=config.tool_server.max_workers,
        queue_limit=config.tool_server.queue_limit,
        response_max_chars=config.tool_server.response_max_chars,
        **server_kwargs,
    )
