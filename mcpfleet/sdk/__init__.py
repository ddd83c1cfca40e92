"""
MCP Fleet SDK public exports.
"""

from mcpfleet.sdk.client import AsyncFleetClient, FleetClient
from mcpfleet.sdk.errors import (
    ConfigRejectedError,
    ManagerAPIError,
    ManagerClientError,
    ManagerConnectionError,
    ManagerUnavailableError,
    ServerConflictError,
    ServerNotFoundError,
    SnapshotRejectedError,
)

__all__ = [
    "FleetClient",
    "AsyncFleetClient",
    "ManagerClientError",
    "ManagerConnectionError",
    "ManagerAPIError",
    "ServerNotFoundError",
    "ServerConflictError",
    "SnapshotRejectedError",
    "ConfigRejectedError",
    "ManagerUnavailableError",
]
