"""
MCP Fleet manager server: FastAPI application serving the config registry.
"""

import os
import sys
import logging
import argparse
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, Optional

import portalocker
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mcpfleet.core.config import FleetConfig
from mcpfleet.registry.api import init_registry, register_exception_handlers, registry_router
from mcpfleet.registry.backups import BackupCoordinator
from mcpfleet.registry.registry import ConfigRegistry
from mcpfleet.registry.store import BackingStore
from mcpfleet.version import __version__

logger = logging.getLogger("MCPFleet")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
MANAGER_LOG_NAME = "mcpfleet_manager.log"
INSTANCE_LOCK_NAME = ".mcpfleet_manager.instance.lock"

# --- Global State ---
_registry: Optional[ConfigRegistry] = None
_backups: Optional[BackupCoordinator] = None
_SERVER_INSTANCE_LOCK_HANDLE: Optional[portalocker.Lock] = None
_SERVER_INSTANCE_LOCK_PATH: Optional[Path] = None


def configure_logging(config: FleetConfig) -> Path:
    """Log to a file in the data directory plus stderr."""
    log_path = Path(config.data_dir) / MANAGER_LOG_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=getattr(logging, config.server.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_path, mode="a"),
            logging.StreamHandler(),
        ],
    )
    return log_path


def _server_instance_lock_timeout_seconds() -> float:
    raw = os.environ.get("MCPFLEET_INSTANCE_LOCK_TIMEOUT_SEC", "0.25").strip()
    try:
        return max(0.0, float(raw))
    except ValueError:
        logger.warning(
            "Invalid MCPFLEET_INSTANCE_LOCK_TIMEOUT_SEC='%s'; using default 0.25s",
            raw,
        )
        return 0.25


def _acquire_server_instance_lock(config: FleetConfig) -> None:
    """
    Acquire an exclusive process-wide lease for the configured data dir.

    Only one manager may own a given mcp.db.
    """
    global _SERVER_INSTANCE_LOCK_HANDLE, _SERVER_INSTANCE_LOCK_PATH

    data_dir = Path(config.data_dir)
    lock_path = data_dir / INSTANCE_LOCK_NAME
    lock_path.parent.mkdir(parents=True, exist_ok=True)

    lock_handle = portalocker.Lock(
        str(lock_path),
        mode="a",
        timeout=_server_instance_lock_timeout_seconds(),
        flags=portalocker.LOCK_EX | portalocker.LOCK_NB,
        fail_when_locked=True,
    )

    try:
        lock_handle.acquire()
    except portalocker.exceptions.LockException as exc:
        raise RuntimeError(
            "MCP Fleet manager instance lock is already held for data directory "
            f"'{data_dir}'. Stop the running manager before starting another."
        ) from exc

    _SERVER_INSTANCE_LOCK_HANDLE = lock_handle
    _SERVER_INSTANCE_LOCK_PATH = lock_path
    logger.info("Acquired server instance lock: %s", lock_path)


def _release_server_instance_lock() -> None:
    """Release the process-wide lease if held."""
    global _SERVER_INSTANCE_LOCK_HANDLE, _SERVER_INSTANCE_LOCK_PATH
    lock_handle = _SERVER_INSTANCE_LOCK_HANDLE
    lock_path = _SERVER_INSTANCE_LOCK_PATH
    _SERVER_INSTANCE_LOCK_HANDLE = None
    _SERVER_INSTANCE_LOCK_PATH = None
    if lock_handle is None:
        return

    try:
        lock_handle.release()
    except (portalocker.exceptions.LockException, OSError) as exc:
        logger.warning("Failed to release server instance lock: %s", exc)
    if lock_path is not None:
        logger.info("Released server instance lock: %s", lock_path)


# --- Application Lifecycle ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    global _registry, _backups

    logger.info("MCP Fleet manager starting...")

    try:
        config = FleetConfig.from_env()
        config.ensure_directories()

        _acquire_server_instance_lock(config)

        # Opening the store is fatal on failure; no partial startup.
        store = BackingStore(config.registry.db_path)
        _registry = ConfigRegistry(store)
        seeded = _registry.initialize()
        if seeded:
            logger.info("Initialized new registry at %s", config.registry.db_path)

        _backups = BackupCoordinator(_registry, config.registry.backup_dir)
        init_registry(_registry, _backups)

        yield
    finally:
        logger.info("Shutting down MCP Fleet manager...")
        init_registry(None, None)
        if _registry is not None:
            _registry.close()
            _registry = None
        _backups = None
        _release_server_instance_lock()
        logger.info("MCP Fleet manager stopped.")


app = FastAPI(
    title="MCP Fleet Manager",
    description="Configuration registry for a fleet of MCP tool servers",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(registry_router)
register_exception_handlers(app)

# The admin UI is served from another local origin.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type"],
)


@app.get("/health")
async def health_check() -> Dict[str, Any]:
    """Health check endpoint."""
    if _registry is None:
        return {"status": "initializing", "version": __version__}
    return {
        "status": "ok",
        "version": __version__,
        "db_path": str(_registry.store.path),
    }


# --- Main ---

def main(argv=None) -> int:
    config = FleetConfig.from_env()

    parser = argparse.ArgumentParser(description="MCP Fleet Manager Server")
    parser.add_argument("--host", default=config.server.host, help="Host to bind to")
    parser.add_argument("--port", type=int, default=config.server.port, help="Port to bind to")
    args = parser.parse_args(argv)
    return serve(config, host=args.host, port=args.port)


def serve(config: FleetConfig, host: Optional[str] = None, port: Optional[int] = None) -> int:
    config.ensure_directories()
    log_path = configure_logging(config)
    host = host or config.server.host
    port = port or config.server.port
    logger.info("Starting MCP Fleet manager on %s:%d", host, port)

    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
            log_level=config.server.log_level,
        )
    except OSError as e:
        if e.errno in (98, 10048):
            logger.error("Failed to start manager on port %d. Port is likely in use.", port)
            print(f"\n[ERROR] Port {port} is already in use.", file=sys.stderr)
            print(f"Please check the manager log at: {log_path}", file=sys.stderr)
            return 1
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())
