"""Built-in tool handlers: shell commands and working-directory file access."""

import asyncio
import os
from pathlib import Path
from typing import Any

from ..errors import ToolExecutionError
from ..logging_config import get_logger
from ..models import ExecutionContext, ToolExecutionResult, ValidationResult

logger = get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 30
MAX_OUTPUT_CHARS = 100_000


def resolve_inside(working_directory: str, path: str) -> Path:
    """Resolve path relative to working_directory, refusing escapes."""
    root = Path(working_directory).resolve()
    candidate = (root / path).resolve()
    if candidate != root and root not in candidate.parents:
        raise ToolExecutionError("Access denied: File path is outside the working directory")
    return candidate


def _require_str(parameters: dict, key: str, errors: list[str]) -> None:
    value = parameters.get(key)
    if not isinstance(value, str) or not value.strip():
        errors.append(f"'{key}' is required and must be a non-empty string")


def _truncate(text: str) -> str:
    if len(text) <= MAX_OUTPUT_CHARS:
        return text
    return text[:MAX_OUTPUT_CHARS] + "\n... [output truncated]"


class BashCommandHandler:
    """Runs a shell command in the working directory."""

    name = "bash_command"
    description = "Execute a shell command and return its output."
    parameters_schema = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "Command line to run"},
            "working_directory": {"type": "string"},
            "timeout_seconds": {"type": "integer", "minimum": 1},
        },
        "required": ["command"],
    }

    def validate(self, parameters: dict[str, Any]) -> ValidationResult:
        errors: list[str] = []
        _require_str(parameters, "command", errors)
        timeout = parameters.get("timeout_seconds")
        if timeout is not None and (not isinstance(timeout, (int, float)) or timeout <= 0):
            errors.append("'timeout_seconds' must be a positive number")
        return ValidationResult(is_valid=not errors, errors=errors)

    async def execute(
        self, parameters: dict[str, Any], context: ExecutionContext
    ) -> ToolExecutionResult:
        command = parameters["command"]
        cwd = parameters.get("working_directory") or context.working_directory
        timeout = parameters.get("timeout_seconds") or DEFAULT_COMMAND_TIMEOUT

        if not os.path.isdir(cwd):
            raise ToolExecutionError(f"Working directory does not exist: {cwd}")

        logger.info("Running command for agent %s: %s", context.agent_id, command)
        proc = await asyncio.create_subprocess_shell(
            command,
            cwd=cwd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ToolExecutionError(f"Command timed out after {timeout} seconds")
        except asyncio.CancelledError:
            proc.kill()
            await proc.wait()
            raise

        out = _truncate(stdout.decode("utf-8", errors="replace"))
        err = _truncate(stderr.decode("utf-8", errors="replace"))
        metadata = {"exit_code": proc.returncode, "stdout": out, "stderr": err}

        if proc.returncode == 0:
            return ToolExecutionResult(success=True, output=out, metadata=metadata)
        return ToolExecutionResult(
            success=False,
            output=out,
            error=err or f"Command exited with code {proc.returncode}",
            metadata=metadata,
        )


class FileReadHandler:
    """Reads a text file inside the working directory."""

    name = "file_read"
    description = "Read a text file, optionally a 1-based inclusive line range."
    parameters_schema = {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "start_line": {"type": "integer", "minimum": 1},
            "end_line": {"type": "integer", "minimum": 1},
        },
        "required": ["path"],
    }

    def validate(self, parameters: dict[str, Any]) -> ValidationResult:
        errors: list[str] = []
        _require_str(parameters, "path", errors)
        start = parameters.get("start_line")
        end = parameters.get("end_line")
        for key, value in (("start_line", start), ("end_line", end)):
            if value is not None and (not isinstance(value, int) or value < 1):
                errors.append(f"'{key}' must be a positive integer")
        if isinstance(start, int) and isinstance(end, int) and end < start:
            errors.append("'end_line' must not be before 'start_line'")
        return ValidationResult(is_valid=not errors, errors=errors)

    async def execute(
        self, parameters: dict[str, Any], context: ExecutionContext
    ) -> ToolExecutionResult:
        path = parameters["path"]
        target = resolve_inside(context.working_directory, path)
        if not target.is_file():
            raise ToolExecutionError(f"File not found: {path}")

        text = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")
        lines = text.splitlines(keepends=True)
        start = parameters.get("start_line") or 1
        end = parameters.get("end_line") or len(lines)
        selected = "".join(lines[start - 1 : end])

        return ToolExecutionResult.ok(
            _truncate(selected), path=str(target), total_lines=len(lines)
        )


class FileWriteHandler:
    """Writes or appends a text file inside the working directory."""

    name = "file_write"
    description = "Write text to a file, creating parent directories."
    parameters_schema = {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "content": {"type": "string"},
            "append": {"type": "boolean"},
        },
        "required": ["path", "content"],
    }

    def validate(self, parameters: dict[str, Any]) -> ValidationResult:
        errors: list[str] = []
        _require_str(parameters, "path", errors)
        if not isinstance(parameters.get("content"), str):
            errors.append("'content' is required and must be a string")
        return ValidationResult(is_valid=not errors, errors=errors)

    async def execute(
        self, parameters: dict[str, Any], context: ExecutionContext
    ) -> ToolExecutionResult:
        target = resolve_inside(context.working_directory, parameters["path"])
        content = parameters["content"]
        mode = "a" if parameters.get("append") else "w"

        def write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(target, mode, encoding="utf-8") as f:
                f.write(content)

        await asyncio.to_thread(write)
        return ToolExecutionResult.ok(
            f"Wrote {len(content)} characters to {parameters['path']}",
            path=str(target),
            bytes_written=len(content.encode("utf-8")),
        )


class ListFilesHandler:
    """Lists entries of a directory inside the working directory."""

    name = "list_files"
    description = "List files in a directory, optionally filtered by a glob pattern."
    parameters_schema = {
        "type": "object",
        "properties": {
            "path": {"type": "string"},
            "pattern": {"type": "string"},
        },
    }

    def validate(self, parameters: dict[str, Any]) -> ValidationResult:
        for key in ("path", "pattern"):
            value = parameters.get(key)
            if value is not None and not isinstance(value, str):
                return ValidationResult.failure(f"'{key}' must be a string")
        return ValidationResult.success()

    async def execute(
        self, parameters: dict[str, Any], context: ExecutionContext
    ) -> ToolExecutionResult:
        path = parameters.get("path") or "."
        directory = resolve_inside(context.working_directory, path)
        if not directory.is_dir():
            raise ToolExecutionError(f"Directory not found: {path}")

        pattern = parameters.get("pattern") or "*"
        entries = sorted(
            (p.name + "/" if p.is_dir() else p.name) for p in directory.glob(pattern)
        )
        return ToolExecutionResult.ok("\n".join(entries), count=len(entries))


def default_handlers() -> list:
    """Handlers registered by the application at startup."""
    return [BashCommandHandler(), FileReadHandler(), FileWriteHandler(), ListFilesHandler()]
