"""Child process lifecycle for stdio MCP servers."""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from contextlib import contextmanager
from typing import IO, Dict, Iterator, List, Optional, Sequence

from traeagent.mcp.transport import MCPTransportError

logger = logging.getLogger(__name__)


class ChildProcess:
    """
    Handle to a spawned MCP server subprocess.

    Owns the OS process and its stdin/stdout pipes. Only the transport built
    on top of it reads or writes those pipes. ``stop()`` may be called any
    number of times, including after the child already exited on its own.
    """

    def __init__(
        self,
        command: str,
        args: Optional[Sequence[str]] = None,
        env: Optional[Dict[str, str]] = None,
        cwd: Optional[str] = None,
    ):
        self.command = command
        self.args: List[str] = list(args or [])
        self.env = env or {}
        self.cwd = cwd
        self._process: Optional[subprocess.Popen] = None

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self, grace_period: float = 2.0) -> "ChildProcess":
        """
        Spawn the subprocess and wait ``grace_period`` seconds for it to boot.

        Liveness is not checked here; the transport's ``initialize`` call is
        the real readiness probe.
        """
        if self.is_running:
            return self

        merged_env = {**os.environ, **self.env}
        try:
            self._process = subprocess.Popen(
                [self.command] + self.args,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=merged_env,
                cwd=self.cwd,
            )
        except FileNotFoundError:
            raise MCPTransportError(f"MCP server command not found: {self.command}")
        except OSError as exc:
            raise MCPTransportError(f"Failed to start MCP server {self.command}: {exc}")

        logger.info("Started MCP server pid=%s: %s", self._process.pid, self.command_line)

        threading.Thread(
            target=self._drain_stderr,
            args=(self._process.stderr,),
            name=f"mcp-stderr-{self._process.pid}",
            daemon=True,
        ).start()

        if grace_period > 0:
            time.sleep(grace_period)
        return self

    def stop(self, timeout: float = 5.0) -> None:
        """Terminate the subprocess. Safe to call repeatedly."""
        process = self._process
        if process is None:
            return
        self._process = None

        if process.poll() is None:
            logger.info("Stopping MCP server pid=%s", process.pid)
            try:
                process.terminate()
                process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
            except ProcessLookupError:
                pass  # already gone

        for stream in (process.stdin, process.stdout, process.stderr):
            if stream is None:
                continue
            try:
                stream.close()
            except OSError:
                pass

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll() if self._process else None

    @property
    def command_line(self) -> str:
        return " ".join([self.command] + self.args)

    # ── Streams ───────────────────────────────────────────────────────────

    @property
    def stdin(self) -> IO[bytes]:
        if self._process is None or self._process.stdin is None:
            raise MCPTransportError("MCP server is not running")
        return self._process.stdin

    @property
    def stdout(self) -> IO[bytes]:
        if self._process is None or self._process.stdout is None:
            raise MCPTransportError("MCP server is not running")
        return self._process.stdout

    @staticmethod
    def _drain_stderr(stream: IO[bytes]) -> None:
        try:
            for raw in iter(stream.readline, b""):
                logger.debug("[mcp stderr] %s", raw.decode(errors="replace").rstrip())
        except (OSError, ValueError):
            pass  # pipe closed during stop()


@contextmanager
def spawn_child(
    command: str,
    args: Optional[Sequence[str]] = None,
    env: Optional[Dict[str, str]] = None,
    grace_period: float = 2.0,
) -> Iterator[ChildProcess]:
    """Start a child process and guarantee it is stopped when the block exits."""
    child = ChildProcess(command, args=args, env=env)
    try:
        child.start(grace_period=grace_period)
        yield child
    finally:
        child.stop()
