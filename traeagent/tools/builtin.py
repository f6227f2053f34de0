"""
Built-in tools, available with or without an MCP server.

Every tool takes and returns plain text and reports its own I/O failures as
an error string instead of raising.
"""

from __future__ import annotations

import functools
import subprocess
from pathlib import Path
from typing import Callable, List, Tuple

from traeagent.tools.schema import ToolDef, ToolParam


def read_file(path: str) -> str:
    """Read contents of a file."""
    target = Path(path)
    if not target.is_file():
        return f"Error: File not found - {path}"
    try:
        return target.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        return f"Error reading file: {exc}"


def write_file(path: str, content: str) -> str:
    """Write content to a file, creating parent directories."""
    target = Path(path)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as exc:
        return f"Error writing file: {exc}"
    return f"Successfully wrote to file: {path}"


def list_files(path: str = ".") -> str:
    target = Path(path)
    if not target.is_dir():
        return f"Error: Directory not found - {path}"
    try:
        entries = sorted(entry.name for entry in target.iterdir())
    except OSError as exc:
        return f"Error listing directory: {exc}"
    return f"Files in {path}:\n" + "\n".join(entries)


def execute_shell(command: str, timeout: float = 60.0) -> str:
    """Run ``command`` with bash and return its combined output."""
    try:
        completed = subprocess.run(
            ["bash", "-c", command],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return f"Command failed: timed out after {timeout}s"
    except OSError as exc:
        return f"Command failed: {exc}"

    output = completed.stdout + completed.stderr
    if completed.returncode != 0:
        return f"Command failed (exit status {completed.returncode}):\n{output}"
    return f"Command output:\n{output}"


def builtin_tools(shell_timeout: float = 60.0) -> List[Tuple[ToolDef, Callable[..., str]]]:
    """Tool definitions paired with their handlers, in export order."""
    return [
        (
            ToolDef(
                name="read_file",
                description="Read the contents of a file",
                params=[ToolParam(name="path", description="Path to the file to read", required=True)],
            ),
            read_file,
        ),
        (
            ToolDef(
                name="write_file",
                description="Write content to a file",
                params=[
                    ToolParam(name="path", description="Path to the file to write", required=True),
                    ToolParam(name="content", description="Content to write to the file", required=True),
                ],
            ),
            write_file,
        ),
        (
            ToolDef(
                name="list_files",
                description="List files in a directory",
                params=[
                    ToolParam(
                        name="path",
                        description="Directory path (default: current directory)",
                        default=".",
                    )
                ],
            ),
            list_files,
        ),
        (
            ToolDef(
                name="execute_shell",
                description="Execute a shell command",
                params=[ToolParam(name="command", description="Shell command to execute", required=True)],
            ),
            functools.partial(execute_shell, timeout=shell_timeout),
        ),
    ]
