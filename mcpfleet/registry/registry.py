"""
MCP Fleet Config Registry
-------------------------
CRUD and lifecycle operations over the backing store.

Every operation runs under one re-entrant lock and re-reads the current row
inside it, so concurrent HTTP handlers never merge into a stale record.
"""

import logging
import threading
from typing import Dict, Mapping, Optional, Union

from pydantic import ValidationError

from mcpfleet.core.errors import (
    ConflictError,
    InvalidConfigError,
    NotFoundError,
    StoreError,
)
from mcpfleet.registry.models import (
    DEFAULT_SERVERS,
    ServerConfig,
    ServerConfigPatch,
    ServerState,
    ServerStatus,
)
from mcpfleet.registry.store import BackingStore

logger = logging.getLogger("MCPFleet.registry")


class ConfigRegistry:
    """Named server definitions plus their recorded status."""

    def __init__(
        self,
        store: BackingStore,
        seeds: Optional[Mapping[str, ServerConfig]] = None,
    ):
        self._store = store
        self._seeds: Dict[str, ServerConfig] = dict(DEFAULT_SERVERS if seeds is None else seeds)
        self.lock = threading.RLock()
        self._closed = False

    @property
    def store(self) -> BackingStore:
        return self._store

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def defaults(self) -> frozenset:
        """Names that can never be deleted."""
        return frozenset(self._seeds)

    def is_default(self, name: str) -> bool:
        return name in self._seeds

    def _active_store(self) -> BackingStore:
        if self._closed:
            raise StoreError("Registry is closed")
        return self._store

    @staticmethod
    def _load(name: str, raw: Dict) -> ServerConfig:
        try:
            return ServerConfig.model_validate(raw)
        except ValidationError as exc:
            raise StoreError(f"Stored configuration for '{name}' is invalid") from exc

    # --- Lifecycle ---

    def initialize(self) -> int:
        """Seed the default entries when the store is empty. Returns rows seeded."""
        with self.lock:
            store = self._active_store()
            if store.count() > 0:
                return 0
            seeded = store.insert_many(
                {name: config.to_wire() for name, config in self._seeds.items()},
                status=ServerState.STOPPED.value,
            )
        logger.info("Seeded %d default server(s)", seeded)
        return seeded

    def replace_store(self, store: BackingStore) -> BackingStore:
        """Swap in a new backing store; returns the previous one, unclosed."""
        with self.lock:
            previous, self._store = self._store, store
        return previous

    def close(self) -> None:
        with self.lock:
            if self._closed:
                return
            self._closed = True
            self._store.close()

    # --- CRUD ---

    def list(self) -> Dict[str, ServerConfig]:
        with self.lock:
            rows = self._active_store().list_configs()
        return {name: self._load(name, raw) for name, raw in rows.items()}

    def get(self, name: str) -> ServerConfig:
        with self.lock:
            row = self._active_store().get(name)
        if row is None:
            raise NotFoundError(f'Server "{name}" not found')
        return self._load(name, row["config"])

    def add(self, name: str, config: Union[ServerConfig, Mapping]) -> ServerConfig:
        if not isinstance(name, str) or not name.strip():
            raise InvalidConfigError("Server name must be a non-empty string")
        if "/" in name:
            raise InvalidConfigError(f'Server name "{name}" must not contain "/"')
        if not isinstance(config, ServerConfig):
            try:
                config = ServerConfig.model_validate(config)
            except ValidationError as exc:
                raise InvalidConfigError(f'Invalid configuration for "{name}": {exc}') from exc

        with self.lock:
            if not self._active_store().insert(name, config.to_wire(), ServerState.STOPPED.value):
                raise ConflictError(f'Server "{name}" already exists')
        logger.info("Added server %s", name)
        return config

    def update(self, name: str, patch: Union[ServerConfigPatch, Mapping]) -> ServerConfig:
        """Shallow-merge patch over the current record."""
        if not isinstance(patch, ServerConfigPatch):
            try:
                patch = ServerConfigPatch.model_validate(patch)
            except ValidationError as exc:
                raise InvalidConfigError(f'Invalid update for "{name}": {exc}') from exc

        with self.lock:
            store = self._active_store()
            row = store.get(name)
            if row is None:
                raise NotFoundError(f'Server "{name}" not found')
            current = self._load(name, row["config"])
            merged = current.model_dump()
            merged.update(patch.changes())
            try:
                updated = ServerConfig.model_validate(merged)
            except ValidationError as exc:
                raise InvalidConfigError(f'Invalid update for "{name}": {exc}') from exc
            if not store.update_config(name, updated.to_wire()):
                raise NotFoundError(f'Server "{name}" not found')
        logger.info("Updated server %s", name)
        return updated

    def delete(self, name: str) -> None:
        if self.is_default(name):
            raise ConflictError(f'Cannot delete default server "{name}"')
        with self.lock:
            if not self._active_store().delete(name):
                raise NotFoundError(f'Server "{name}" not found')
        logger.info("Deleted server %s", name)

    # --- Status ---

    def set_status(
        self,
        name: str,
        status: Union[ServerState, str],
        last_error: Optional[str] = None,
    ) -> ServerStatus:
        """Record a reported status. No process is inspected."""
        try:
            state = ServerState(status)
        except ValueError:
            raise InvalidConfigError(f"Unknown status: {status}") from None
        with self.lock:
            if not self._active_store().update_status(name, state.value, last_error):
                raise NotFoundError(f'Server "{name}" not found')
        logger.info("Server %s status -> %s", name, state.value)
        return ServerStatus(name=name, status=state, last_error=last_error)

    def get_status(self, name: str) -> ServerStatus:
        """Status of name; a missing record reads as ``error``."""
        with self.lock:
            row = self._active_store().get(name)
        if row is None:
            return ServerStatus(name=name, status=ServerState.ERROR)
        try:
            state = ServerState(row["status"])
        except ValueError:
            logger.warning("Server %s has unrecognized status %r", name, row["status"])
            state = ServerState.ERROR
        return ServerStatus(name=name, status=state, last_error=row["last_error"])

    def enable(self, name: str) -> ServerStatus:
        return self.set_status(name, ServerState.RUNNING)

    def disable(self, name: str) -> ServerStatus:
        return self.set_status(name, ServerState.STOPPED)
