"""
Server configuration registry: SQLite backing store, CRUD/lifecycle
operations, snapshot backups and the HTTP router.
"""

from .backups import BackupCoordinator
from .models import (
    DEFAULT_SERVERS,
    ServerConfig,
    ServerConfigPatch,
    ServerState,
    ServerStatus,
)
from .registry import ConfigRegistry
from .store import BackingStore

__all__ = [
    "BackingStore",
    "BackupCoordinator",
    "ConfigRegistry",
    "DEFAULT_SERVERS",
    "ServerConfig",
    "ServerConfigPatch",
    "ServerState",
    "ServerStatus",
]
