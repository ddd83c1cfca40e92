"""
MCP Fleet: line-delimited MCP tool servers and a configuration registry
for the fleet that runs them.
"""

from mcpfleet.version import __version__
from mcpfleet.core.config import FleetConfig
from mcpfleet.core.errors import (
    ConflictError,
    FleetError,
    InvalidConfigError,
    InvalidSnapshotError,
    NotFoundError,
    StoreError,
)
from mcpfleet.registry import (
    BackingStore,
    BackupCoordinator,
    ConfigRegistry,
    ServerConfig,
    ServerConfigPatch,
    ServerState,
    ServerStatus,
)
from mcpfleet.sdk import AsyncFleetClient, FleetClient

__all__ = [
    "__version__",
    "FleetConfig",
    "FleetError",
    "NotFoundError",
    "ConflictError",
    "StoreError",
    "InvalidSnapshotError",
    "InvalidConfigError",
    "BackingStore",
    "BackupCoordinator",
    "ConfigRegistry",
    "ServerConfig",
    "ServerConfigPatch",
    "ServerState",
    "ServerStatus",
    "FleetClient",
    "AsyncFleetClient",
]
