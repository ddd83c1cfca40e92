"""
MCP Fleet SDK exceptions.

Manager error responses are raised as subclasses that also derive from the
matching ``mcpfleet.core.errors`` type, so remote callers can catch
``NotFoundError`` or ``ConflictError`` exactly as in-process registry users do.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type

from mcpfleet.core.errors import (
    ConflictError,
    InvalidConfigError,
    InvalidSnapshotError,
    NotFoundError,
)


class ManagerClientError(RuntimeError):
    """Base class for SDK errors."""


class ManagerConnectionError(ManagerClientError):
    """The manager could not be reached."""


class ManagerAPIError(ManagerClientError):
    """The manager answered with an HTTP error or ``success: false``."""

    def __init__(
        self,
        detail: str,
        *,
        status_code: Optional[int] = None,
        path: Optional[str] = None,
        payload: Optional[Any] = None,
    ) -> None:
        self.detail = detail
        self.status_code = status_code
        self.path = path
        self.payload = payload
        status_hint = f" (status={status_code})" if status_code is not None else ""
        path_hint = f" [{path}]" if path else ""
        super().__init__(f"{detail}{status_hint}{path_hint}")

    @classmethod
    def for_status(
        cls,
        detail: str,
        *,
        status_code: int,
        path: Optional[str] = None,
        payload: Optional[Any] = None,
    ) -> "ManagerAPIError":
        error_type = _STATUS_ERRORS.get(status_code, cls)
        return error_type(detail, status_code=status_code, path=path, payload=payload)


class ServerNotFoundError(ManagerAPIError, NotFoundError):
    """404: no such server or backup on the manager."""


class ServerConflictError(ManagerAPIError, ConflictError):
    """409: duplicate name, or delete of a default entry."""


class SnapshotRejectedError(ManagerAPIError, InvalidSnapshotError):
    """400: the manager could not parse or validate a backup snapshot."""


class ConfigRejectedError(ManagerAPIError, InvalidConfigError):
    """422: the request body or merged configuration failed validation."""


class ManagerUnavailableError(ManagerAPIError):
    """503: the manager is up but its registry is not initialised yet."""


_STATUS_ERRORS: Dict[int, Type[ManagerAPIError]] = {
    400: SnapshotRejectedError,
    404: ServerNotFoundError,
    409: ServerConflictError,
    422: ConfigRejectedError,
    503: ManagerUnavailableError,
}
