"""
MCP Fleet registry exceptions.
"""

from __future__ import annotations


class FleetError(RuntimeError):
    """Base class for registry and backup errors."""


class NotFoundError(FleetError):
    """Raised when an operation names a server or backup that does not exist."""


class ConflictError(FleetError):
    """Raised on duplicate names and on attempts to delete a default entry."""


class StoreError(FleetError):
    """Raised when the underlying persistence layer fails or is closed."""


class InvalidSnapshotError(FleetError):
    """Raised when a backup snapshot cannot be parsed or validated."""


class InvalidConfigError(FleetError):
    """Raised when a server name or merged configuration is not acceptable."""
