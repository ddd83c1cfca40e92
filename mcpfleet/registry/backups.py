"""
MCP Fleet Backup Coordinator
----------------------------
Point-in-time snapshots of the registry as ``settings-<token>.json`` files.

Restore builds a complete staging database beside the live one and swaps it
in with ``os.replace`` under the registry lock. Any failure before the swap
leaves the live registry untouched.
"""

import os
import json
import uuid
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from pydantic import ValidationError

from mcpfleet.core.errors import InvalidSnapshotError, NotFoundError, StoreError
from mcpfleet.registry.models import (
    SNAPSHOT_PREFIX,
    SNAPSHOT_SUFFIX,
    ServerConfig,
    ServerState,
    is_snapshot_name,
)
from mcpfleet.registry.registry import ConfigRegistry
from mcpfleet.registry.store import BackingStore

logger = logging.getLogger("MCPFleet.registry.backups")

SQLITE_SIDECAR_SUFFIXES = ("-wal", "-shm", "-journal")


def snapshot_token() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")


def parse_snapshot(payload: Any) -> Dict[str, ServerConfig]:
    """Accept ``{"mcpServers": {...}}`` or a bare name -> config mapping."""
    if isinstance(payload, dict) and "mcpServers" in payload:
        payload = payload["mcpServers"]
    if not isinstance(payload, dict):
        raise InvalidSnapshotError("Snapshot must contain a mapping of server name to configuration")

    servers: Dict[str, ServerConfig] = {}
    for name, raw in payload.items():
        if not name.strip():
            raise InvalidSnapshotError("Snapshot contains an empty server name")
        if "/" in name:
            raise InvalidSnapshotError(f'Snapshot server name "{name}" must not contain "/"')
        try:
            servers[name] = ServerConfig.model_validate(raw)
        except ValidationError as exc:
            raise InvalidSnapshotError(f'Invalid configuration for "{name}" in snapshot: {exc}') from exc
    return servers


def _remove_sqlite_files(path: Path) -> None:
    for candidate in [path] + [path.with_name(path.name + s) for s in SQLITE_SIDECAR_SUFFIXES]:
        try:
            candidate.unlink()
        except FileNotFoundError:
            pass


class BackupCoordinator:
    def __init__(self, registry: ConfigRegistry, backup_dir):
        self.registry = registry
        self.backup_dir = Path(backup_dir)

    def list(self) -> List[str]:
        """Snapshot file names in the backup directory, sorted."""
        if not self.backup_dir.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.backup_dir.iterdir()
            if entry.is_file() and is_snapshot_name(entry.name)
        )

    def path_for(self, name: str) -> Path:
        if not is_snapshot_name(name):
            raise NotFoundError(f'Backup "{name}" not found')
        path = self.backup_dir / name
        if not path.is_file():
            raise NotFoundError(f'Backup "{name}" not found')
        return path

    def load(self, name: str) -> Dict[str, ServerConfig]:
        path = self.path_for(name)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise InvalidSnapshotError(f'Backup "{name}" is not valid JSON: {exc}') from exc
        except OSError as exc:
            raise StoreError(f'Backup "{name}" could not be read: {exc}') from exc
        return parse_snapshot(payload)

    def create(self) -> str:
        """Write the current registry contents to a new snapshot; returns its name."""
        servers = self.registry.list()
        payload = {"mcpServers": {name: config.to_wire() for name, config in servers.items()}}

        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            token = snapshot_token()
            name = f"{SNAPSHOT_PREFIX}{token}{SNAPSHOT_SUFFIX}"
            suffix = 1
            while (self.backup_dir / name).exists():
                name = f"{SNAPSHOT_PREFIX}{token}-{suffix}{SNAPSHOT_SUFFIX}"
                suffix += 1
            target = self.backup_dir / name
            tmp = self.backup_dir / f".{name}.{uuid.uuid4().hex}.tmp"
            try:
                tmp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
                os.replace(tmp, target)
            finally:
                if tmp.exists():
                    tmp.unlink()
        except OSError as exc:
            raise StoreError(f"Backup could not be written: {exc}") from exc

        logger.info("Created backup %s with %d server(s)", name, len(servers))
        return name

    def restore(self, name: str) -> int:
        """Replace the registry contents with a snapshot. Returns the entry count."""
        if self.registry.closed:
            raise StoreError("Registry is closed")
        servers = self.load(name)

        live_path = self.registry.store.path
        staging_path = live_path.with_name(f"{live_path.name}.restore-{uuid.uuid4().hex}")
        try:
            staging = BackingStore(staging_path)
            try:
                staging.insert_many(
                    {server: config.to_wire() for server, config in servers.items()},
                    status=ServerState.STOPPED.value,
                )
                if staging.count() != len(servers):
                    raise StoreError("Staging store does not match snapshot contents")
            finally:
                staging.close()
        except Exception:
            _remove_sqlite_files(staging_path)
            raise

        with self.registry.lock:
            if self.registry.closed:
                _remove_sqlite_files(staging_path)
                raise StoreError("Registry is closed")
            live = self.registry.store
            live.close()
            try:
                os.replace(staging_path, live_path)
                for sidecar in SQLITE_SIDECAR_SUFFIXES:
                    stale = live_path.with_name(live_path.name + sidecar)
                    if stale.exists():
                        stale.unlink()
            except OSError as exc:
                _remove_sqlite_files(staging_path)
                self.registry.replace_store(BackingStore(live_path))
                raise StoreError(f"Restore of {name} could not be committed: {exc}") from exc
            self.registry.replace_store(BackingStore(live_path))

        logger.info("Restored %d server(s) from backup %s", len(servers), name)
        return len(servers)
