"""Tests for the built-in tool handlers."""

import sys

import pytest

from conductor.models import ExecutionContext


@pytest.fixture
def context(tmp_path):
    return ExecutionContext(agent_id="a1", working_directory=str(tmp_path))


class TestBashCommand:
    """Tests for bash_command."""

    @pytest.mark.asyncio
    async def test_success(self, tool_executor, context):
        """Exit code 0 is success with captured stdout."""
        result = await tool_executor.execute(
            "bash_command", {"command": "echo hello"}, context
        )

        assert result.success
        assert result.output.strip() == "hello"
        assert result.metadata["exit_code"] == 0

    @pytest.mark.asyncio
    async def test_nonzero_exit(self, tool_executor, context):
        """Non-zero exit is a failure carrying stderr."""
        command = f'"{sys.executable}" -c "import sys; sys.stderr.write(\'bad\'); sys.exit(3)"'
        result = await tool_executor.execute("bash_command", {"command": command}, context)

        assert not result.success
        assert result.metadata["exit_code"] == 3
        assert result.error == "bad"

    @pytest.mark.asyncio
    async def test_runs_in_working_directory(self, tool_executor, context, tmp_path):
        """Commands run in the context working directory."""
        (tmp_path / "marker.txt").write_text("x")
        result = await tool_executor.execute("bash_command", {"command": "ls"}, context)

        assert "marker.txt" in result.output

    @pytest.mark.asyncio
    async def test_missing_directory(self, tool_executor, tmp_path):
        """A missing working directory is reported."""
        context = ExecutionContext(working_directory=str(tmp_path / "nope"))
        result = await tool_executor.execute("bash_command", {"command": "ls"}, context)

        assert not result.success
        assert result.error.startswith("Working directory does not exist")

    @pytest.mark.asyncio
    async def test_requires_command(self, tool_executor, context):
        """An empty command fails validation."""
        result = await tool_executor.execute("bash_command", {"command": ""}, context)

        assert result.error.startswith("Parameter validation failed")


class TestFileTools:
    """Tests for file_read, file_write and list_files."""

    @pytest.mark.asyncio
    async def test_write_then_read_lines(self, tool_executor, context):
        """Written files can be read back by line range."""
        write = await tool_executor.execute(
            "file_write", {"path": "sub/notes.txt", "content": "one\ntwo\nthree\n"}, context
        )
        assert write.success

        result = await tool_executor.execute(
            "file_read", {"path": "sub/notes.txt", "start_line": 2, "end_line": 3}, context
        )
        assert result.output == "two\nthree\n"
        assert result.metadata["total_lines"] == 3

    @pytest.mark.asyncio
    async def test_append(self, tool_executor, context, tmp_path):
        """append=True keeps existing content."""
        (tmp_path / "log.txt").write_text("a")
        await tool_executor.execute(
            "file_write", {"path": "log.txt", "content": "b", "append": True}, context
        )

        assert (tmp_path / "log.txt").read_text() == "ab"

    @pytest.mark.asyncio
    async def test_read_missing(self, tool_executor, context):
        """Missing files are reported by path."""
        result = await tool_executor.execute("file_read", {"path": "missing.txt"}, context)

        assert result.error == "File not found: missing.txt"

    @pytest.mark.asyncio
    async def test_path_escape_denied(self, tool_executor, context):
        """Paths outside the working directory are refused."""
        result = await tool_executor.execute("file_read", {"path": "../../etc/passwd"}, context)

        assert not result.success
        assert result.error == "Access denied: File path is outside the working directory"

    @pytest.mark.asyncio
    async def test_list_files(self, tool_executor, context, tmp_path):
        """Directories get a trailing slash; patterns filter."""
        (tmp_path / "a.py").write_text("")
        (tmp_path / "b.txt").write_text("")
        (tmp_path / "pkg").mkdir()

        everything = await tool_executor.execute("list_files", {}, context)
        python = await tool_executor.execute("list_files", {"pattern": "*.py"}, context)

        assert everything.output.splitlines() == ["a.py", "b.txt", "pkg/"]
        assert python.output == "a.py"
        assert python.metadata["count"] == 1
