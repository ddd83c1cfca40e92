"""Tests for mcpfleet.tools.search: file search tools."""

from __future__ import annotations

from pathlib import Path

import pytest

from mcpfleet.core.config import FleetConfig
from mcpfleet.mcp.protocol import ToolExecutionError
from mcpfleet.tools.search import (
    build_search_server,
    build_search_tools,
    find_code_definitions,
    find_files,
    iter_files,
    search_in_files,
)


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.ts").write_text(
        "export class App {}\nexport function start() {}\nconst TODO_LIMIT = 3;\n",
        encoding="utf-8",
    )
    (tmp_path / "src" / "util.py").write_text(
        "def helper():\n    return 'needle'\n\nclass Widget:\n    pass\n\nasync def fetch():\n    pass\n",
        encoding="utf-8",
    )
    (tmp_path / "README.md").write_text("A needle in a haystack\n", encoding="utf-8")
    for ignored in ("node_modules", "dist", "build", ".git"):
        (tmp_path / ignored).mkdir()
        (tmp_path / ignored / "hidden.ts").write_text("export class Hidden {} // needle\n", encoding="utf-8")
    (tmp_path / "blob.bin").write_bytes(b"\xff\xfe\x00needle")
    return tmp_path


def test_iter_files_skips_ignored_dirs(tree: Path):
    files = list(iter_files(tree))
    assert "src/app.ts" in files
    assert not any(part in f.split("/") for f in files for part in ("node_modules", "dist", "build", ".git"))


def test_iter_files_filters_extensions(tree: Path):
    assert list(iter_files(tree, ["py"])) == ["src/util.py"]
    assert list(iter_files(tree, [".ts"])) == ["src/app.ts"]


def test_search_in_files_reports_file_and_line(tree: Path):
    result = search_in_files(str(tree), "needle")
    assert "\nFile: README.md:1\nA needle in a haystack\n" in result
    assert "\nFile: src/util.py:2\nreturn 'needle'\n" in result
    assert "hidden.ts" not in result


def test_search_in_files_respects_file_types(tree: Path):
    result = search_in_files(str(tree), "needle", ["md"])
    assert "README.md" in result
    assert "util.py" not in result


def test_search_in_files_no_matches(tree: Path):
    assert search_in_files(str(tree), "zebra") == "No matches found"


def test_search_in_files_matches_pattern_literally(tree: Path):
    assert search_in_files(str(tree), "ne.dle") == "No matches found"
    result = search_in_files(str(tree), "App {}")
    assert "\nFile: src/app.ts:1\nexport class App {}\n" in result


def test_find_files_glob(tree: Path):
    assert find_files(str(tree), "**/*.ts") == ["src/app.ts"]
    assert find_files(str(tree), "*.md") == ["README.md"]


def test_find_code_definitions(tree: Path):
    result = find_code_definitions(str(tree), ["ts", "py"])
    lines = result.splitlines()
    assert "src/app.ts: App" in lines
    assert "src/app.ts: start" in lines
    assert "src/app.ts: TODO_LIMIT" in lines
    assert "src/util.py: helper" in lines
    assert "src/util.py: Widget" in lines
    assert "src/util.py: fetch" in lines
    assert not any("Hidden" in line for line in lines)


def test_find_code_definitions_none(tree: Path):
    assert find_code_definitions(str(tree), ["md"]) == "No definitions found"


def test_missing_directory_raises(tmp_path: Path):
    with pytest.raises(ToolExecutionError, match="Directory not found"):
        search_in_files(str(tmp_path / "nope"), "x")


class TestSearchServer:
    def _server(self):
        return build_search_server(FleetConfig())

    def test_enumerates_three_tools(self):
        names = [tool.name for tool in build_search_tools()]
        assert names == ["search_in_files", "find_files", "find_code_definitions"]

    def test_invoke_find_files(self, tree: Path):
        response = self._server().handle_message({
            "kind": "invoke-tool",
            "tool": "find_files",
            "arguments": {"directory": str(tree), "pattern": "src/*"},
        })
        assert response["content"][0]["text"].splitlines() == ["src/app.ts", "src/util.py"]

    def test_failure_uses_search_error_prefix(self, tmp_path: Path):
        response = self._server().handle_message({
            "kind": "invoke-tool",
            "tool": "search_in_files",
            "arguments": {"directory": str(tmp_path / "missing"), "pattern": "x"},
        })
        assert response["isError"] is True
        assert response["content"][0]["text"].startswith("Search error: Directory not found")

    def test_missing_required_argument(self, tree: Path):
        response = self._server().handle_message({
            "kind": "invoke-tool",
            "tool": "find_code_definitions",
            "arguments": {"directory": str(tree)},
        })
        assert response["isError"] is True
        assert "fileTypes" in response["content"][0]["text"]
