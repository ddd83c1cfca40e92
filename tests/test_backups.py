"""Tests for mcpfleet.registry.backups: snapshot create/list/restore."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mcpfleet.core.errors import InvalidSnapshotError, NotFoundError, StoreError
from mcpfleet.registry.backups import BackupCoordinator, parse_snapshot
from mcpfleet.registry.models import ServerConfig, ServerState
from mcpfleet.registry.registry import ConfigRegistry
from mcpfleet.registry.store import BackingStore


@pytest.fixture
def registry(tmp_path: Path):
    reg = ConfigRegistry(BackingStore(tmp_path / "data" / "mcp.db"))
    reg.initialize()
    yield reg
    reg.close()


@pytest.fixture
def backups(registry: ConfigRegistry, tmp_path: Path) -> BackupCoordinator:
    return BackupCoordinator(registry, tmp_path / "backups")


def _write_snapshot(backups: BackupCoordinator, name: str, payload) -> str:
    backups.backup_dir.mkdir(parents=True, exist_ok=True)
    text = payload if isinstance(payload, str) else json.dumps(payload)
    (backups.backup_dir / name).write_text(text, encoding="utf-8")
    return name


class TestParseSnapshot:
    def test_wrapped_form(self):
        servers = parse_snapshot({"mcpServers": {"a": {"command": "x"}}})
        assert servers == {"a": ServerConfig(command="x")}

    def test_bare_mapping(self):
        servers = parse_snapshot({"a": {"command": "x", "autoApprove": ["t"]}})
        assert servers["a"].auto_approve == ["t"]

    def test_rejects_non_mapping(self):
        with pytest.raises(InvalidSnapshotError):
            parse_snapshot(["a", "b"])

    def test_rejects_invalid_entry(self):
        with pytest.raises(InvalidSnapshotError, match='"a"'):
            parse_snapshot({"mcpServers": {"a": {"args": []}}})


class TestCreateAndList:
    def test_list_empty_when_directory_missing(self, backups: BackupCoordinator):
        assert backups.list() == []

    def test_create_writes_current_contents(self, registry: ConfigRegistry, backups: BackupCoordinator):
        registry.add("demo", ServerConfig(command="echo", args=["hi"]))
        name = backups.create()

        assert name.startswith("settings-") and name.endswith(".json")
        assert backups.list() == [name]
        payload = json.loads((backups.backup_dir / name).read_text(encoding="utf-8"))
        assert set(payload["mcpServers"]) == {"search-server", "git-server", "demo"}
        assert payload["mcpServers"]["demo"] == {"command": "echo", "args": ["hi"], "disabled": False}
        assert not any(p.name.endswith(".tmp") for p in backups.backup_dir.iterdir())

    def test_create_twice_gives_distinct_names(self, backups: BackupCoordinator):
        first = backups.create()
        second = backups.create()
        assert first != second
        assert backups.list() == sorted([first, second])

    def test_list_ignores_unrelated_files(self, backups: BackupCoordinator):
        _write_snapshot(backups, "notes.txt", "hello")
        _write_snapshot(backups, "settings-a.json", {"mcpServers": {}})
        assert backups.list() == ["settings-a.json"]


class TestRestore:
    def test_restore_replaces_contents_exactly(self, registry: ConfigRegistry, backups: BackupCoordinator):
        name = _write_snapshot(backups, "settings-fixture.json", {
            "mcpServers": {
                "alpha": {"command": "a", "args": ["1"]},
                "beta": {"command": "b", "disabled": True},
            }
        })
        registry.add("demo", ServerConfig(command="echo"))

        assert backups.restore(name) == 2
        servers = registry.list()
        assert set(servers) == {"alpha", "beta"}
        assert servers["beta"].disabled is True
        assert registry.get_status("alpha").status == ServerState.STOPPED
        assert registry.get_status("demo").status == ServerState.ERROR

    def test_registry_usable_after_restore(self, registry: ConfigRegistry, backups: BackupCoordinator):
        name = _write_snapshot(backups, "settings-one.json", {"one": {"command": "1"}})
        backups.restore(name)
        registry.add("two", ServerConfig(command="2"))
        assert set(registry.list()) == {"one", "two"}
        assert not registry.store.closed

    def test_create_then_restore_returns_to_snapshot(self, registry: ConfigRegistry, backups: BackupCoordinator):
        registry.add("demo", ServerConfig(command="echo"))
        name = backups.create()
        registry.delete("demo")
        registry.update("search-server", {"disabled": True})

        backups.restore(name)
        assert "demo" in registry.list()
        assert registry.get("search-server").disabled is False

    def test_invalid_snapshot_leaves_registry_untouched(self, registry: ConfigRegistry, backups: BackupCoordinator):
        registry.add("demo", ServerConfig(command="echo"))
        before = registry.list()
        bad_json = _write_snapshot(backups, "settings-broken.json", "{not json")
        bad_entry = _write_snapshot(backups, "settings-bad.json", {"mcpServers": {"x": {"args": []}}})

        with pytest.raises(InvalidSnapshotError):
            backups.restore(bad_json)
        with pytest.raises(InvalidSnapshotError):
            backups.restore(bad_entry)
        assert registry.list() == before
        assert not [p for p in registry.store.path.parent.iterdir() if ".restore-" in p.name]

    def test_unknown_backup(self, backups: BackupCoordinator):
        with pytest.raises(NotFoundError):
            backups.restore("settings-missing.json")
        with pytest.raises(NotFoundError):
            backups.restore("../mcp.db")

    def test_restore_on_closed_registry(self, registry: ConfigRegistry, backups: BackupCoordinator):
        name = _write_snapshot(backups, "settings-x.json", {"x": {"command": "x"}})
        registry.close()
        with pytest.raises(StoreError):
            backups.restore(name)


class TestRestoreFailures:
    def _staging_files(self, registry: ConfigRegistry):
        return [p for p in registry.store.path.parent.iterdir() if ".restore-" in p.name]

    def test_staging_build_failure_leaves_registry_untouched(
        self, registry: ConfigRegistry, backups: BackupCoordinator, monkeypatch
    ):
        registry.add("demo", ServerConfig(command="echo"))
        before = registry.list()
        name = _write_snapshot(backups, "settings-good.json", {"one": {"command": "1"}})

        def _fail_insert(self, entries, status="stopped"):
            raise StoreError("disk full")

        monkeypatch.setattr(BackingStore, "insert_many", _fail_insert)
        with pytest.raises(StoreError, match="disk full"):
            backups.restore(name)
        monkeypatch.undo()

        assert registry.list() == before
        assert not registry.store.closed
        registry.add("after", ServerConfig(command="x"))
        assert "after" in registry.list()
        assert self._staging_files(registry) == []

    def test_commit_failure_reopens_live_store(
        self, registry: ConfigRegistry, backups: BackupCoordinator, monkeypatch
    ):
        registry.add("demo", ServerConfig(command="echo"))
        before = registry.list()
        name = _write_snapshot(backups, "settings-good.json", {"one": {"command": "1"}})

        def _fail_replace(src, dst):
            raise OSError("cross-device link")

        monkeypatch.setattr("mcpfleet.registry.backups.os.replace", _fail_replace)
        with pytest.raises(StoreError, match="could not be committed"):
            backups.restore(name)
        monkeypatch.undo()

        assert registry.list() == before
        assert not registry.store.closed
        registry.add("after", ServerConfig(command="x"))
        assert "after" in registry.list()
        assert self._staging_files(registry) == []

    def test_registry_closed_during_staging_is_not_reopened(
        self, registry: ConfigRegistry, backups: BackupCoordinator, monkeypatch
    ):
        name = _write_snapshot(backups, "settings-good.json", {"one": {"command": "1"}})
        original_insert_many = BackingStore.insert_many

        def _insert_then_close(self, entries, status="stopped"):
            inserted = original_insert_many(self, entries, status=status)
            registry.close()
            return inserted

        monkeypatch.setattr(BackingStore, "insert_many", _insert_then_close)
        with pytest.raises(StoreError, match="closed"):
            backups.restore(name)

        assert registry.closed
        assert registry.store.closed
        assert [p for p in registry.store.path.parent.iterdir() if ".restore-" in p.name] == []


class TestHostSettingsSnapshots:
    def test_restore_keeps_unknown_host_keys(self, registry: ConfigRegistry, backups: BackupCoordinator):
        name = _write_snapshot(backups, "settings-host.json", {
            "mcpServers": {
                "tool": {"command": "x", "args": [], "alwaysAllow": ["a"], "timeout": 60},
            }
        })

        assert backups.restore(name) == 1
        assert registry.get("tool").to_wire() == {
            "command": "x", "args": [], "disabled": False, "alwaysAllow": ["a"], "timeout": 60,
        }

        created = backups.create()
        payload = json.loads((backups.backup_dir / created).read_text(encoding="utf-8"))
        assert payload["mcpServers"]["tool"]["alwaysAllow"] == ["a"]
        assert payload["mcpServers"]["tool"]["timeout"] == 60

    def test_snapshot_name_with_slash_rejected(self, registry: ConfigRegistry, backups: BackupCoordinator):
        before = registry.list()
        name = _write_snapshot(backups, "settings-slash.json", {"team/demo": {"command": "x"}})
        with pytest.raises(InvalidSnapshotError, match="must not contain"):
            backups.restore(name)
        assert registry.list() == before
