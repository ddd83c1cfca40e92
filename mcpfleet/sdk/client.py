"""
MCP Fleet manager SDK clients (sync + async).
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Union
from urllib.parse import quote, urlparse

import httpx
import requests

from mcpfleet.registry.models import ServerConfig, ServerConfigPatch
from mcpfleet.sdk.errors import ManagerAPIError, ManagerConnectionError

DEFAULT_BASE_URL = os.environ.get("MCPFLEET_MANAGER_URL", "http://localhost:3500")

ConfigInput = Union[ServerConfig, Dict[str, Any]]
PatchInput = Union[ServerConfigPatch, Dict[str, Any]]


def _normalize_base_url(base_url: str) -> str:
    value = base_url.rstrip("/")
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"Invalid manager base URL: {base_url!r}")
    return value


def _coerce_error_detail(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("error", "detail"):
            detail = payload.get(key)
            if isinstance(detail, str):
                return detail
            if isinstance(detail, dict) and isinstance(detail.get("error"), str):
                return detail["error"]
            if detail is not None:
                try:
                    return json.dumps(detail, sort_keys=True)
                except (TypeError, ValueError):
                    return str(detail)
    if isinstance(payload, str) and payload:
        return payload
    return fallback


def _config_body(config: ConfigInput) -> Dict[str, Any]:
    if isinstance(config, ServerConfig):
        return config.to_wire()
    return dict(config)


def _patch_body(patch: PatchInput) -> Dict[str, Any]:
    if isinstance(patch, ServerConfigPatch):
        return patch.model_dump(by_alias=True, exclude_unset=True)
    return dict(patch)


def _server_path(name: str, suffix: str = "") -> str:
    return f"/servers/{quote(name, safe='')}{suffix}"


class _BaseManagerClient:
    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 10.0):
        self.base_url = _normalize_base_url(base_url)
        self.timeout = timeout

    def _url(self, path: str) -> str:
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def _unwrap_api_payload(self, response: Any, *, path: str, status_code: int) -> Any:
        if status_code >= 400:
            detail = _coerce_error_detail(response, f"HTTP {status_code} error")
            raise ManagerAPIError.for_status(detail, status_code=status_code, path=path, payload=response)

        if path == "/health":
            if isinstance(response, dict):
                return response
            raise ManagerAPIError(
                "Invalid health response payload",
                status_code=status_code,
                path=path,
                payload=response,
            )

        if isinstance(response, dict) and "success" in response:
            if response.get("success") is False:
                detail = _coerce_error_detail(response, "Manager API returned success=false")
                raise ManagerAPIError(detail, status_code=status_code, path=path, payload=response)
            return response.get("data")

        return response


class FleetClient(_BaseManagerClient):
    """
    Synchronous SDK for the manager's registry API.

    Usage:
        from mcpfleet.sdk import FleetClient
        with FleetClient() as client:
            client.add_server("demo", {"command": "echo", "args": ["hi"]})
            client.disable_server("demo")
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout)
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> "FleetClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = self._url(path)
        try:
            response = self._session.request(
                method=method,
                url=url,
                json=json_body,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ManagerConnectionError(f"Failed to connect to manager at {self.base_url}: {exc}") from exc

        payload: Any
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
        else:
            payload = {}

        return self._unwrap_api_payload(payload, path=path, status_code=response.status_code)

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def list_servers(self) -> Dict[str, Dict[str, Any]]:
        return self._request("GET", "/servers")

    def get_server(self, name: str) -> Dict[str, Any]:
        return self._request("GET", _server_path(name))

    def add_server(self, name: str, config: ConfigInput) -> Dict[str, Any]:
        return self._request("POST", "/servers", json_body={"name": name, "config": _config_body(config)})

    def update_server(self, name: str, patch: PatchInput) -> Dict[str, Any]:
        return self._request("PUT", _server_path(name), json_body={"config": _patch_body(patch)})

    def delete_server(self, name: str) -> None:
        self._request("DELETE", _server_path(name))

    def get_server_status(self, name: str) -> Dict[str, Any]:
        return self._request("GET", _server_path(name, "/status"))

    def enable_server(self, name: str) -> Dict[str, Any]:
        return self._request("POST", _server_path(name, "/enable"))

    def disable_server(self, name: str) -> Dict[str, Any]:
        return self._request("POST", _server_path(name, "/disable"))

    def list_backups(self) -> List[str]:
        return self._request("GET", "/backups")

    def create_backup(self) -> str:
        return self._request("POST", "/backups")["name"]

    def restore_backup(self, name: str) -> int:
        return self._request("POST", f"/backups/{quote(name, safe='')}/restore")["restored"]


class AsyncFleetClient(_BaseManagerClient):
    """
    Async SDK for the manager's registry API.

    Usage:
        from mcpfleet.sdk import AsyncFleetClient
        async with AsyncFleetClient() as client:
            servers = await client.list_servers()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(base_url=base_url, timeout=timeout)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(headers={"Accept": "application/json"})

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "AsyncFleetClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = self._url(path)
        try:
            response = await self._client.request(
                method=method,
                url=url,
                json=json_body,
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            raise ManagerConnectionError(f"Failed to connect to manager at {self.base_url}: {exc}") from exc

        if response.content:
            try:
                payload: Any = response.json()
            except ValueError:
                payload = response.text
        else:
            payload = {}
        return self._unwrap_api_payload(payload, path=path, status_code=response.status_code)

    async def health(self) -> Dict[str, Any]:
        return await self._request("GET", "/health")

    async def list_servers(self) -> Dict[str, Dict[str, Any]]:
        return await self._request("GET", "/servers")

    async def get_server(self, name: str) -> Dict[str, Any]:
        return await self._request("GET", _server_path(name))

    async def add_server(self, name: str, config: ConfigInput) -> Dict[str, Any]:
        return await self._request("POST", "/servers", json_body={"name": name, "config": _config_body(config)})

    async def update_server(self, name: str, patch: PatchInput) -> Dict[str, Any]:
        return await self._request("PUT", _server_path(name), json_body={"config": _patch_body(patch)})

    async def delete_server(self, name: str) -> None:
        await self._request("DELETE", _server_path(name))

    async def get_server_status(self, name: str) -> Dict[str, Any]:
        return await self._request("GET", _server_path(name, "/status"))

    async def enable_server(self, name: str) -> Dict[str, Any]:
        return await self._request("POST", _server_path(name, "/enable"))

    async def disable_server(self, name: str) -> Dict[str, Any]:
        return await self._request("POST", _server_path(name, "/disable"))

    async def list_backups(self) -> List[str]:
        return await self._request("GET", "/backups")

    async def create_backup(self) -> str:
        return (await self._request("POST", "/backups"))["name"]

    async def restore_backup(self, name: str) -> int:
        return (await self._request("POST", f"/backups/{quote(name, safe='')}/restore"))["restored"]
