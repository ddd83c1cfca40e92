"""
MCP Fleet Configuration
-----------------------
Centralized configuration for the manager and the tool servers.
Loads from environment variables with pydantic-validated defaults.
"""

import os
import logging
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, Field

logger = logging.getLogger("MCPFleet.Config")

DEFAULT_DATA_DIR = str(Path.home() / ".config" / "mcp")
DEFAULT_DB_NAME = "mcp.db"
DEFAULT_BACKUP_DIR_NAME = "backups"
DEFAULT_GITHUB_API_URL = "https://api.github.com"


def _parse_int_env(name: str, default: int, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
        if value < minimum:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected integer >= %d. Using %d.",
            name,
            raw,
            minimum,
            default,
        )
        return default


def _parse_float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
        if value <= 0:
            raise ValueError
        return value
    except ValueError:
        logger.warning(
            "Invalid %s value '%s'; expected positive float. Using %s.",
            name,
            raw,
            default,
        )
        return default


class RegistryConfig(BaseModel):
    """SQLite backing store and snapshot locations."""
    db_path: str = os.path.join(DEFAULT_DATA_DIR, DEFAULT_DB_NAME)
    backup_dir: str = os.path.join(DEFAULT_DATA_DIR, DEFAULT_BACKUP_DIR_NAME)


class ApiServerConfig(BaseModel):
    """FastAPI manager server configuration."""
    host: str = "127.0.0.1"
    port: int = 3500
    log_level: str = "info"


class ToolServerConfig(BaseModel):
    """Stdio tool server dispatch configuration."""
    max_workers: int = 8
    queue_limit: int = 64
    response_max_chars: int = 32768


class GitHubConfig(BaseModel):
    """GitHub REST API access for the github tool server."""
    token: Optional[str] = None
    api_url: str = DEFAULT_GITHUB_API_URL
    timeout: float = 10.0


class FleetConfig(BaseModel):
    """Root configuration for the fleet manager and tool servers."""
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    server: ApiServerConfig = Field(default_factory=ApiServerConfig)
    tool_server: ToolServerConfig = Field(default_factory=ToolServerConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    data_dir: str = DEFAULT_DATA_DIR

    @classmethod
    def from_env(cls) -> "FleetConfig":
        """
        Load configuration from environment variables.

        Environment variables override defaults:
        - MCPFLEET_DATA_DIR: Directory holding mcp.db (default ~/.config/mcp)
        - MCPFLEET_BACKUP_DIR: Snapshot directory (default <data_dir>/backups)
        - MCPFLEET_HOST / MCPFLEET_PORT / MCPFLEET_LOG_LEVEL: Manager binding
        - MCPFLEET_MCP_DISPATCH_MAX_WORKERS: Tool server worker threads
        - MCPFLEET_MCP_DISPATCH_QUEUE_LIMIT: Max queued tool server requests
        - MCPFLEET_MCP_TOOL_RESPONSE_MAX_CHARS: Tool output truncation limit
        - GITHUB_TOKEN: Token for the github tool server
        - MCPFLEET_GITHUB_API_URL / MCPFLEET_GITHUB_TIMEOUT: GitHub client
        """
        data_dir = os.path.expanduser(os.environ.get("MCPFLEET_DATA_DIR", DEFAULT_DATA_DIR))
        backup_dir = os.path.expanduser(
            os.environ.get("MCPFLEET_BACKUP_DIR", os.path.join(data_dir, DEFAULT_BACKUP_DIR_NAME))
        )
        max_workers = _parse_int_env("MCPFLEET_MCP_DISPATCH_MAX_WORKERS", 8)
        queue_limit = max(
            max_workers,
            _parse_int_env("MCPFLEET_MCP_DISPATCH_QUEUE_LIMIT", max_workers * 8),
        )

        return cls(
            data_dir=data_dir,
            registry=RegistryConfig(
                db_path=os.path.join(data_dir, DEFAULT_DB_NAME),
                backup_dir=backup_dir,
            ),
            server=ApiServerConfig(
                host=os.environ.get("MCPFLEET_HOST", "127.0.0.1"),
                port=_parse_int_env("MCPFLEET_PORT", 3500),
                log_level=os.environ.get("MCPFLEET_LOG_LEVEL", "info").lower(),
            ),
            tool_server=ToolServerConfig(
                max_workers=max_workers,
                queue_limit=queue_limit,
                response_max_chars=_parse_int_env("MCPFLEET_MCP_TOOL_RESPONSE_MAX_CHARS", 32768),
            ),
            github=GitHubConfig(
                token=os.environ.get("GITHUB_TOKEN") or None,
                api_url=os.environ.get("MCPFLEET_GITHUB_API_URL", DEFAULT_GITHUB_API_URL).rstrip("/"),
                timeout=_parse_float_env("MCPFLEET_GITHUB_TIMEOUT", 10.0),
            ),
        )

    def ensure_directories(self) -> None:
        """Create data and backup directories if they don't exist."""
        Path(self.data_dir).mkdir(parents=True, exist_ok=True)
        Path(self.registry.db_path).parent.mkdir(parents=True, exist_ok=True)
        Path(self.registry.backup_dir).mkdir(parents=True, exist_ok=True)
