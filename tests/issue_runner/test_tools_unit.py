"""Unit tests for the agent file tools.

Covers request parsing, each tool's effect and output text, and the
refusal of paths that escape the workspace root.
"""

import os
from pathlib import Path

import pytest

from src.issue_runner.agent.tools import (
    TOOL_DEFINITIONS,
    CreateDirectory,
    ListDirectory,
    ReadFile,
    ToolExecutor,
    ToolInputError,
    UnknownToolError,
    WriteFile,
    parse_tool_request,
)


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def executor(workspace):
    return ToolExecutor(workspace)


# ---------------------------------------------------------------------------
# Catalog and parsing
# ---------------------------------------------------------------------------


class TestCatalog:
    def test_catalog_lists_four_tools(self):
        names = [d["function"]["name"] for d in TOOL_DEFINITIONS]
        assert names == ["read_file", "write_file", "list_directory", "create_directory"]

    def test_catalog_uses_function_format(self):
        for definition in TOOL_DEFINITIONS:
            assert definition["type"] == "function"
            params = definition["function"]["parameters"]
            assert params["type"] == "object"
            assert "path" in params["required"]

    def test_write_file_requires_content(self):
        write = next(d for d in TOOL_DEFINITIONS if d["function"]["name"] == "write_file")
        assert write["function"]["parameters"]["required"] == ["path", "content"]


class TestParseToolRequest:
    def test_parses_each_variant(self):
        assert parse_tool_request("read_file", {"path": "a.py"}) == ReadFile(path="a.py")
        assert parse_tool_request("write_file", {"path": "a.py", "content": "x"}) == WriteFile(
            path="a.py", content="x"
        )
        assert parse_tool_request("list_directory", {"path": "."}) == ListDirectory(path=".")
        assert parse_tool_request("create_directory", {"path": "src"}) == CreateDirectory(
            path="src"
        )

    def test_unknown_tool(self):
        with pytest.raises(UnknownToolError) as exc_info:
            parse_tool_request("delete_file", {"path": "a.py"})
        assert str(exc_info.value) == "Unknown tool: delete_file"

    def test_missing_field(self):
        with pytest.raises(ToolInputError) as exc_info:
            parse_tool_request("write_file", {"path": "a.py"})
        assert exc_info.value.field == "content"

    def test_wrong_type(self):
        with pytest.raises(ToolInputError, match="must be a string"):
            parse_tool_request("read_file", {"path": 42})

    def test_non_mapping_input(self):
        with pytest.raises(ToolInputError, match="must be an object"):
            parse_tool_request("read_file", "a.py")


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class TestReadFile:
    def test_reads_existing_file(self, executor, workspace):
        (workspace / "hello.txt").write_text("hello world", encoding="utf-8")
        output = executor.execute(ReadFile(path="hello.txt"))
        assert output.is_error is False
        assert output.text == "hello world"

    def test_missing_file_is_error_output(self, executor):
        output = executor.execute(ReadFile(path="missing.txt"))
        assert output.is_error is True
        assert output.text.startswith("Failed to read file:")


class TestWriteFile:
    def test_writes_and_reports_utf8_byte_count(self, executor, workspace):
        output = executor.execute(WriteFile(path="src/app/util.py", content="héllo"))
        assert output.is_error is False
        assert output.text == "Successfully wrote 6 bytes to src/app/util.py"
        assert (workspace / "src" / "app" / "util.py").read_text(encoding="utf-8") == "héllo"

    def test_overwrites_existing_file(self, executor, workspace):
        (workspace / "a.txt").write_text("old", encoding="utf-8")
        executor.execute(WriteFile(path="a.txt", content="new"))
        assert (workspace / "a.txt").read_text(encoding="utf-8") == "new"


class TestListDirectory:
    def test_lists_sorted_entries(self, executor, workspace):
        (workspace / "b.txt").write_text("", encoding="utf-8")
        (workspace / "a_dir").mkdir()
        (workspace / "c.txt").write_text("", encoding="utf-8")
        output = executor.execute(ListDirectory(path="."))
        assert output.text == "[DIR] a_dir\n[FILE] b.txt\n[FILE] c.txt"

    def test_empty_directory(self, executor):
        assert executor.execute(ListDirectory(path=".")).text == "(empty directory)"

    def test_missing_directory_is_error_output(self, executor):
        output = executor.execute(ListDirectory(path="nope"))
        assert output.is_error is True


class TestCreateDirectory:
    def test_creates_nested_directories(self, executor, workspace):
        output = executor.execute(CreateDirectory(path="a/b/c"))
        assert output.text == "Successfully created directory: a/b/c"
        assert (workspace / "a" / "b" / "c").is_dir()

    def test_existing_directory_succeeds(self, executor, workspace):
        (workspace / "src").mkdir()
        assert executor.execute(CreateDirectory(path="src")).is_error is False


class TestConfinement:
    def test_parent_traversal_refused_without_effect(self, executor, tmp_path):
        output = executor.execute(WriteFile(path="../escape.txt", content="x"))
        assert output.is_error is True
        assert "outside the workspace" in output.text
        assert not (tmp_path / "escape.txt").exists()

    def test_absolute_path_refused(self, executor):
        output = executor.execute(ReadFile(path="/etc/passwd"))
        assert output.is_error is True
        assert "outside the workspace" in output.text

    def test_nested_traversal_refused(self, executor, tmp_path):
        output = executor.execute(CreateDirectory(path="src/../../outside"))
        assert output.is_error is True
        assert not (tmp_path / "outside").exists()

    def test_traversal_that_stays_inside_is_allowed(self, executor, workspace):
        output = executor.execute(WriteFile(path="src/../inside.txt", content="ok"))
        assert output.is_error is False
        assert (workspace / "inside.txt").exists()

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlink_escape_refused(self, executor, workspace, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        (workspace / "link").symlink_to(outside, target_is_directory=True)

        output = executor.execute(WriteFile(path="link/secret.txt", content="x"))

        assert output.is_error is True
        assert not (outside / "secret.txt").exists()

    def test_root_itself_is_listable(self, executor):
        assert executor.execute(ListDirectory(path=".")).is_error is False

    def test_root_resolved(self, workspace):
        assert ToolExecutor(str(workspace)).root == Path(workspace).resolve()
