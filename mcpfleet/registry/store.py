"""
MCP Fleet SQLite Backing Store
------------------------------
Durable name-keyed persistence for server definitions and their status.
One row per server; the configuration is stored as a JSON document.
"""

import sqlite3
import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Dict, Any, Iterator, Mapping

from mcpfleet.core.errors import StoreError

logger = logging.getLogger("MCPFleet.registry.store")

CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS servers (
    name        TEXT PRIMARY KEY,
    config      TEXT NOT NULL,
    status      TEXT NOT NULL DEFAULT 'stopped',
    last_error  TEXT
);
"""


class BackingStore:
    """
    SQLite-backed server table.

    Methods return plain dicts and booleans; interpretation of missing rows
    is left to the registry. Every sqlite failure surfaces as StoreError.
    """

    def __init__(self, db_path):
        self.path = Path(db_path) if not isinstance(db_path, Path) else db_path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._closed = False
        with self._guard("open"):
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_conn()
            conn.execute(CREATE_TABLE)
            conn.commit()
        logger.info("Backing store opened at %s", self.path)

    @property
    def closed(self) -> bool:
        return self._closed

    def _get_conn(self) -> sqlite3.Connection:
        if self._closed:
            raise StoreError(f"Backing store at {self.path} is closed")
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
        return self._conn

    @contextmanager
    def _guard(self, operation: str) -> Iterator[None]:
        with self._lock:
            try:
                yield
            except (sqlite3.Error, OSError) as exc:
                if self._conn is not None:
                    try:
                        self._conn.rollback()
                    except sqlite3.Error:
                        pass
                logger.error("Backing store %s failed: %s", operation, exc)
                raise StoreError(f"Backing store {operation} failed: {exc}") from exc

    @staticmethod
    def _decode_config(name: str, raw: str) -> Dict[str, Any]:
        try:
            config = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise StoreError(f"Stored configuration for '{name}' is corrupt") from exc
        if not isinstance(config, dict):
            raise StoreError(f"Stored configuration for '{name}' is not an object")
        return config

    # --- Queries ---

    def count(self) -> int:
        with self._guard("count"):
            row = self._get_conn().execute("SELECT COUNT(*) FROM servers").fetchone()
        return row[0] if row else 0

    def list_configs(self) -> Dict[str, Dict[str, Any]]:
        with self._guard("list"):
            rows = self._get_conn().execute(
                "SELECT name, config FROM servers ORDER BY name"
            ).fetchall()
        return {row["name"]: self._decode_config(row["name"], row["config"]) for row in rows}

    def get(self, name: str) -> Optional[Dict[str, Any]]:
        """Return ``{"config", "status", "last_error"}`` for name, or None."""
        with self._guard("get"):
            row = self._get_conn().execute(
                "SELECT config, status, last_error FROM servers WHERE name = ?", (name,)
            ).fetchone()
        if row is None:
            return None
        return {
            "config": self._decode_config(name, row["config"]),
            "status": row["status"],
            "last_error": row["last_error"],
        }

    # --- Mutations ---

    def insert(self, name: str, config: Dict[str, Any], status: str = "stopped") -> bool:
        """Insert a new row; returns False when the name already exists."""
        with self._guard("insert"):
            conn = self._get_conn()
            cursor = conn.execute(
                "INSERT OR IGNORE INTO servers (name, config, status) VALUES (?, ?, ?)",
                (name, json.dumps(config), status),
            )
            conn.commit()
        return cursor.rowcount > 0

    def insert_many(self, entries: Mapping[str, Dict[str, Any]], status: str = "stopped") -> int:
        """Insert several rows in one transaction, skipping existing names."""
        with self._guard("insert_many"):
            conn = self._get_conn()
            inserted = 0
            for name, config in entries.items():
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO servers (name, config, status) VALUES (?, ?, ?)",
                    (name, json.dumps(config), status),
                )
                inserted += cursor.rowcount
            conn.commit()
        return inserted

    def update_config(self, name: str, config: Dict[str, Any]) -> bool:
        with self._guard("update"):
            conn = self._get_conn()
            cursor = conn.execute(
                "UPDATE servers SET config = ? WHERE name = ?", (json.dumps(config), name)
            )
            conn.commit()
        return cursor.rowcount > 0

    def update_status(self, name: str, status: str, last_error: Optional[str] = None) -> bool:
        with self._guard("update_status"):
            conn = self._get_conn()
            cursor = conn.execute(
                "UPDATE servers SET status = ?, last_error = ? WHERE name = ?",
                (status, last_error, name),
            )
            conn.commit()
        return cursor.rowcount > 0

    def delete(self, name: str) -> bool:
        with self._guard("delete"):
            conn = self._get_conn()
            cursor = conn.execute("DELETE FROM servers WHERE name = ?", (name,))
            conn.commit()
        return cursor.rowcount > 0

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._conn is not None:
                try:
                    self._conn.close()
                except sqlite3.Error as exc:
                    logger.warning("Error closing backing store %s: %s", self.path, exc)
                self._conn = None
        logger.info("Backing store at %s closed", self.path)
