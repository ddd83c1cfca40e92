"""
Tests for mcpfleet.registry.api: the FastAPI registry router.

Drives the router in-process through httpx.ASGITransport against a real
registry on a temporary SQLite file.
"""

import json

import httpx
import pytest
from fastapi import FastAPI

from mcpfleet.registry import api as registry_api
from mcpfleet.registry.api import init_registry, register_exception_handlers, registry_router
from mcpfleet.registry.backups import BackupCoordinator
from mcpfleet.registry.registry import ConfigRegistry
from mcpfleet.registry.store import BackingStore

_app = FastAPI()
_app.include_router(registry_router)
register_exception_handlers(_app)


def _make_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=_app), base_url="http://test")


@pytest.fixture(autouse=True)
def _reset_singletons():
    init_registry(None, None)
    yield
    init_registry(None, None)


@pytest.fixture
def registry(tmp_path):
    reg = ConfigRegistry(BackingStore(tmp_path / "mcp.db"))
    reg.initialize()
    backups = BackupCoordinator(reg, tmp_path / "backups")
    init_registry(reg, backups)
    yield reg
    reg.close()


class TestUninitialised:
    pytestmark = pytest.mark.asyncio

    async def test_servers_returns_503(self):
        async with _make_client() as client:
            resp = await client.get("/servers")
        assert resp.status_code == 503
        assert resp.json() == {"success": False, "error": "Registry is not initialised."}

    async def test_backups_returns_503(self):
        async with _make_client() as client:
            resp = await client.post("/backups")
        assert resp.status_code == 503
        assert resp.json()["success"] is False


class TestServers:
    pytestmark = pytest.mark.asyncio

    async def test_list_seeded_defaults(self, registry):
        async with _make_client() as client:
            resp = await client.get("/servers")
        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert set(body["data"]) == {"search-server", "git-server"}
        assert body["data"]["git-server"]["autoApprove"] == ["git_create_branch", "git_diff_staged"]

    async def test_add_get_update_delete(self, registry):
        async with _make_client() as client:
            created = await client.post(
                "/servers", json={"name": "demo", "config": {"command": "echo", "args": ["hi"]}}
            )
            fetched = await client.get("/servers/demo")
            updated = await client.put("/servers/demo", json={"config": {"env": {"A": "1"}}})
            deleted = await client.delete("/servers/demo")
            missing = await client.get("/servers/demo")

        assert created.status_code == 200
        assert created.json()["data"] == {
            "name": "demo",
            "config": {"command": "echo", "args": ["hi"], "disabled": False},
        }
        assert fetched.json()["data"]["command"] == "echo"
        assert updated.json()["data"] == {
            "command": "echo", "args": ["hi"], "env": {"A": "1"}, "disabled": False,
        }
        assert deleted.json() == {"success": True}
        assert missing.status_code == 404
        assert missing.json() == {"success": False, "error": 'Server "demo" not found'}

    async def test_duplicate_add_is_409(self, registry):
        async with _make_client() as client:
            resp = await client.post(
                "/servers", json={"name": "search-server", "config": {"command": "x"}}
            )
        assert resp.status_code == 409
        assert resp.json()["success"] is False

    async def test_delete_default_is_409_and_entry_remains(self, registry):
        async with _make_client() as client:
            resp = await client.delete("/servers/search-server")
            listed = await client.get("/servers")
        assert resp.status_code == 409
        assert "search-server" in listed.json()["data"]

    async def test_delete_missing_is_404(self, registry):
        async with _make_client() as client:
            resp = await client.delete("/servers/ghost")
        assert resp.status_code == 404

    async def test_invalid_body_is_422_envelope(self, registry):
        async with _make_client() as client:
            no_command = await client.post("/servers", json={"name": "bad", "config": {"args": []}})
            extra_field = await client.put("/servers/search-server", json={"config": {"bogus": 1}})
            null_command = await client.put("/servers/search-server", json={"config": {"command": None}})
        for resp in (no_command, extra_field, null_command):
            assert resp.status_code == 422
            body = resp.json()
            assert body["success"] is False
            assert body["error"].startswith("Invalid request:")

    async def test_unknown_config_keys_pass_through(self, registry):
        config = {"command": "x", "args": [], "alwaysAllow": ["read"], "timeout": 60}
        async with _make_client() as client:
            created = await client.post("/servers", json={"name": "tool", "config": config})
            fetched = await client.get("/servers/tool")
        assert created.status_code == 200
        assert created.json()["data"]["config"]["alwaysAllow"] == ["read"]
        assert fetched.json()["data"]["timeout"] == 60

    async def test_name_with_slash_is_422(self, registry):
        async with _make_client() as client:
            resp = await client.post("/servers", json={"name": "team/demo", "config": {"command": "x"}})
            listed = await client.get("/servers")
        assert resp.status_code == 422
        assert resp.json()["success"] is False
        assert "team/demo" not in listed.json()["data"]

    async def test_update_missing_is_404(self, registry):
        async with _make_client() as client:
            resp = await client.put("/servers/ghost", json={"config": {"disabled": True}})
        assert resp.status_code == 404


class TestStatus:
    pytestmark = pytest.mark.asyncio

    async def test_enable_disable_round_trip(self, registry):
        async with _make_client() as client:
            enabled = await client.post("/servers/search-server/enable")
            status = await client.get("/servers/search-server/status")
            disabled = await client.post("/servers/search-server/disable")
        assert enabled.json()["data"] == {"name": "search-server", "status": "running", "tools": []}
        assert status.json()["data"]["status"] == "running"
        assert disabled.json()["data"]["status"] == "stopped"

    async def test_status_of_missing_server_is_error(self, registry):
        async with _make_client() as client:
            resp = await client.get("/servers/ghost/status")
        assert resp.status_code == 200
        assert resp.json()["data"]["status"] == "error"

    async def test_enable_missing_is_404(self, registry):
        async with _make_client() as client:
            resp = await client.post("/servers/ghost/enable")
        assert resp.status_code == 404


class TestBackups:
    pytestmark = pytest.mark.asyncio

    async def test_create_list_restore(self, registry):
        async with _make_client() as client:
            created = await client.post("/backups")
            name = created.json()["data"]["name"]
            await client.post("/servers", json={"name": "demo", "config": {"command": "echo"}})
            listed = await client.get("/backups")
            restored = await client.post(f"/backups/{name}/restore")
            servers = await client.get("/servers")

        assert listed.json()["data"] == [name]
        assert restored.json()["data"] == {"name": name, "restored": 2}
        assert set(servers.json()["data"]) == {"search-server", "git-server"}

    async def test_restore_unknown_is_404(self, registry):
        async with _make_client() as client:
            resp = await client.post("/backups/settings-nope.json/restore")
        assert resp.status_code == 404

    async def test_restore_invalid_snapshot_is_400(self, registry, tmp_path):
        backup_dir = tmp_path / "backups"
        backup_dir.mkdir()
        (backup_dir / "settings-bad.json").write_text(
            json.dumps({"mcpServers": {"x": {"args": []}}}), encoding="utf-8"
        )
        async with _make_client() as client:
            resp = await client.post("/backups/settings-bad.json/restore")
            servers = await client.get("/servers")
        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert set(servers.json()["data"]) == {"search-server", "git-server"}


class TestStorageFailure:
    pytestmark = pytest.mark.asyncio

    async def test_store_error_is_generic_500(self, registry):
        registry.store.close()
        async with _make_client() as client:
            resp = await client.get("/servers")
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Registry storage error."}

    async def test_unexpected_error_is_generic_500(self, registry, monkeypatch):
        def _boom():
            raise ValueError("secret internals")

        monkeypatch.setattr(registry_api._registry, "list", _boom)
        async with _make_client() as client:
            resp = await client.get("/servers")
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "error": "Internal registry error."}


class TestRoutingErrors:
    pytestmark = pytest.mark.asyncio

    async def test_unknown_path_is_404_envelope(self, registry):
        async with _make_client() as client:
            resp = await client.get("/nope")
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "error": "Not Found"}

    async def test_wrong_method_is_405_envelope(self, registry):
        async with _make_client() as client:
            resp = await client.get("/backups/settings-x.json/restore")
        assert resp.status_code == 405
        assert resp.json() == {"success": False, "error": "Method Not Allowed"}
        assert resp.headers["allow"] == "POST"
