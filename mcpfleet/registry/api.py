"""
Config Registry: FastAPI Router
===============================
HTTP surface over the registry and its backups:

  GET    /servers                  all server configurations
  GET    /servers/{name}           one server configuration
  POST   /servers                  add ``{name, config}``
  PUT    /servers/{name}           shallow-merge ``{config}``
  DELETE /servers/{name}           delete (default entries are protected)
  GET    /servers/{name}/status    recorded status
  POST   /servers/{name}/enable    record ``running``
  POST   /servers/{name}/disable   record ``stopped``
  GET    /backups                  snapshot names
  POST   /backups                  write a new snapshot
  POST   /backups/{name}/restore   replace the registry from a snapshot

Every response uses the ``{"success": bool, "data"?, "error"?}`` envelope.
Synchronous registry operations are dispatched via asyncio.to_thread()
so they never block the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException

from mcpfleet.core.errors import (
    ConflictError,
    FleetError,
    InvalidConfigError,
    InvalidSnapshotError,
    NotFoundError,
    StoreError,
)
from .backups import BackupCoordinator
from .models import ServerConfig, ServerConfigPatch
from .registry import ConfigRegistry

logger = logging.getLogger("MCPFleet.registry.api")

# ---------------------------------------------------------------------------
# Module-level singletons: injected by mcpfleet.server during lifespan startup
# ---------------------------------------------------------------------------

_registry: Optional[ConfigRegistry] = None
_backups: Optional[BackupCoordinator] = None


def init_registry(registry: Optional[ConfigRegistry], backups: Optional[BackupCoordinator]) -> None:
    """Bind the router to its registry and backup singletons (None to unbind)."""
    global _registry, _backups
    _registry = registry
    _backups = backups
    if registry is not None:
        logger.info("Registry API bound (db=%s)", registry.store.path)


def _get_registry() -> ConfigRegistry:
    if _registry is None:
        raise _fail("Registry is not initialised.", status_code=503)
    return _registry


def _get_backups() -> BackupCoordinator:
    if _backups is None:
        raise _fail("Backup coordinator is not initialised.", status_code=503)
    return _backups


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------


def _ok(data: Any = None) -> Dict[str, Any]:
    """Wrap payload in the standard success envelope."""
    if data is None:
        return {"success": True}
    return {"success": True, "data": data}


def _fail(message: str, status_code: int = 500) -> HTTPException:
    """Build an HTTPException whose detail is the error envelope."""
    return HTTPException(
        status_code=status_code,
        detail={"success": False, "error": message},
    )


_ERROR_STATUS = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidSnapshotError, 400),
    (InvalidConfigError, 422),
)


async def _run(description: str, fn: Callable[..., Any], *args: Any) -> Any:
    """Run a blocking registry call off the loop and map domain errors to HTTP."""
    try:
        return await asyncio.to_thread(fn, *args)
    except StoreError as exc:
        logger.exception("Storage failure in %s: %s", description, exc)
        raise _fail("Registry storage error.", status_code=500)
    except FleetError as exc:
        for error_type, status_code in _ERROR_STATUS:
            if isinstance(exc, error_type):
                raise _fail(str(exc), status_code=status_code)
        logger.exception("Unhandled registry error in %s: %s", description, exc)
        raise _fail("Internal registry error.", status_code=500)
    except Exception as exc:
        logger.exception("Unexpected error in %s: %s", description, exc)
        raise _fail("Internal registry error.", status_code=500)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Serve error envelopes at the top level of the body instead of under ``detail``.

    Registered on Starlette's base class so unmatched routes (404) and
    wrong methods (405) get the same envelope as router errors.
    """

    @app.exception_handler(StarletteHTTPException)
    async def _envelope_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail
        if not (isinstance(detail, dict) and "success" in detail):
            detail = {"success": False, "error": str(detail)}
        return JSONResponse(status_code=exc.status_code, content=detail, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def _envelope_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
        return JSONResponse(
            status_code=422,
            content={"success": False, "error": f"Invalid request: {problems}"},
        )


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------


class AddServerRequest(BaseModel):
    """Request body for ``POST /servers``."""
    name: str = Field(min_length=1, pattern=r"^[^/]+$", description="Unique registry name, usable as a path segment")
    config: ServerConfig


class UpdateServerRequest(BaseModel):
    """Request body for ``PUT /servers/{name}``."""
    config: ServerConfigPatch


# ---------------------------------------------------------------------------
# Router definition
# ---------------------------------------------------------------------------

registry_router = APIRouter(tags=["registry"])


@registry_router.get("/servers", summary="List all server configurations")
async def list_servers() -> Dict[str, Any]:
    registry = _get_registry()
    servers = await _run("GET /servers", registry.list)
    return _ok({name: config.to_wire() for name, config in servers.items()})


@registry_router.get("/servers/{name}", summary="Get one server configuration")
async def get_server(name: str) -> Dict[str, Any]:
    registry = _get_registry()
    config = await _run(f"GET /servers/{name}", registry.get, name)
    return _ok(config.to_wire())


@registry_router.post("/servers", summary="Add a server configuration")
async def add_server(request: AddServerRequest) -> Dict[str, Any]:
    registry = _get_registry()
    config = await _run("POST /servers", registry.add, request.name, request.config)
    return _ok({"name": request.name, "config": config.to_wire()})


@registry_router.put("/servers/{name}", summary="Partially update a server configuration")
async def update_server(name: str, request: UpdateServerRequest) -> Dict[str, Any]:
    """
    Shallow merge: every field present in ``config`` overwrites the stored
    value, omitted fields are preserved.
    """
    registry = _get_registry()
    config = await _run(f"PUT /servers/{name}", registry.update, name, request.config)
    return _ok(config.to_wire())


@registry_router.delete("/servers/{name}", summary="Delete a server configuration")
async def delete_server(name: str) -> Dict[str, Any]:
    registry = _get_registry()
    await _run(f"DELETE /servers/{name}", registry.delete, name)
    return _ok()


@registry_router.get("/servers/{name}/status", summary="Get recorded server status")
async def get_server_status(name: str) -> Dict[str, Any]:
    registry = _get_registry()
    status = await _run(f"GET /servers/{name}/status", registry.get_status, name)
    return _ok(status.to_wire())


@registry_router.post("/servers/{name}/enable", summary="Record a server as running")
async def enable_server(name: str) -> Dict[str, Any]:
    registry = _get_registry()
    status = await _run(f"POST /servers/{name}/enable", registry.enable, name)
    return _ok(status.to_wire())


@registry_router.post("/servers/{name}/disable", summary="Record a server as stopped")
async def disable_server(name: str) -> Dict[str, Any]:
    registry = _get_registry()
    status = await _run(f"POST /servers/{name}/disable", registry.disable, name)
    return _ok(status.to_wire())


@registry_router.get("/backups", summary="List snapshot names")
async def list_backups() -> Dict[str, Any]:
    backups = _get_backups()
    names = await _run("GET /backups", backups.list)
    return _ok(names)


@registry_router.post("/backups", summary="Create a snapshot of the registry")
async def create_backup() -> Dict[str, Any]:
    backups = _get_backups()
    name = await _run("POST /backups", backups.create)
    return _ok({"name": name})


@registry_router.post("/backups/{name}/restore", summary="Restore the registry from a snapshot")
async def restore_backup(name: str) -> Dict[str, Any]:
    """Atomic: on failure the registry keeps its previous contents."""
    backups = _get_backups()
    restored = await _run(f"POST /backups/{name}/restore", backups.restore, name)
    return _ok({"name": name, "restored": restored})
