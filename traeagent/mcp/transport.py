"""MCP server communication via stdio subprocess transport."""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:
    from traeagent.mcp.process import ChildProcess

logger = logging.getLogger(__name__)

PROTOCOL_VERSION = "2024-11-05"


class MCPTransportError(Exception):
    """Raised when MCP transport communication fails."""


class HandshakeError(MCPTransportError):
    """The server did not complete the ``initialize`` handshake."""


class DiscoveryError(MCPTransportError):
    """The tool list could not be retrieved from the server."""


class RPCTimeoutError(MCPTransportError):
    """No response arrived before the read deadline."""


class ToolInvocationError(MCPTransportError):
    """The server answered a ``tools/call`` request with an error."""

    def __init__(self, message: str, payload: Any = None):
        super().__init__(message)
        self.payload = payload


class Transport(ABC):
    """
    Discovery and invocation of tools hosted outside the agent process.

    The conversation loop only ever sees this interface, so a pipe, a unix
    socket or a local HTTP server can sit behind it.
    """

    @abstractmethod
    def initialize(self, client_info: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Perform the handshake and return the server's ``serverInfo``."""

    @abstractmethod
    def list_tools(self) -> List[Dict[str, Any]]:
        """Return the raw tool definitions advertised by the server."""

    @abstractmethod
    def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
        """Invoke ``name`` and return its text output."""


class StdioTransport(Transport):
    """
    Communicate with an MCP server over stdin/stdout (JSON-RPC 2.0).

    Requests are strictly synchronous: one line out, then lines are read
    until the response with the matching id arrives. A daemon thread reads
    stdout into a queue so that reads can be bounded by a timeout.

    ``call_timeout=None`` blocks forever on an unresponsive server.
    """

    def __init__(
        self,
        child: "ChildProcess",
        handshake_timeout: Optional[float] = 10.0,
        call_timeout: Optional[float] = None,
        protocol_version: str = PROTOCOL_VERSION,
    ):
        self.child = child
        self.handshake_timeout = handshake_timeout
        self.call_timeout = call_timeout
        self.protocol_version = protocol_version
        self.server_info: Dict[str, Any] = {}
        self._request_id = 0
        self._lock = threading.Lock()
        self._lines: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._closed = False
        self._reader: Optional[threading.Thread] = None

    # ── Reading ───────────────────────────────────────────────────────────

    def _ensure_reader(self) -> None:
        if self._reader is not None:
            return
        stdout = self.child.stdout
        self._reader = threading.Thread(
            target=self._read_loop,
            args=(stdout,),
            name=f"mcp-stdout-{self.child.pid}",
            daemon=True,
        )
        self._reader.start()

    def _read_loop(self, stdout) -> None:
        try:
            for raw in iter(stdout.readline, b""):
                self._lines.put(raw)
        except (OSError, ValueError):
            pass  # pipe closed during stop()
        finally:
            self._lines.put(None)

    def _read_response(self, request_id: int, timeout: Optional[float]) -> Dict[str, Any]:
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if self._closed:
                raise MCPTransportError("MCP server closed connection (empty response)")

            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise RPCTimeoutError(f"No response to request {request_id} within {timeout}s")

            try:
                raw = self._lines.get(timeout=remaining)
            except queue.Empty:
                raise RPCTimeoutError(f"No response to request {request_id} within {timeout}s")

            if raw is None:
                self._closed = True
                continue

            try:
                message = json.loads(raw.decode())
            except ValueError:
                logger.debug("Skipping non-JSON line from MCP server: %r", raw[:200])
                continue

            if not isinstance(message, dict) or message.get("id") != request_id:
                logger.debug("Skipping unrelated MCP message: %s", message)
                continue
            return message

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    def _write(self, payload: Dict[str, Any]) -> None:
        line = json.dumps(payload) + "\n"
        try:
            stdin = self.child.stdin
            stdin.write(line.encode())
            stdin.flush()
        except (BrokenPipeError, OSError, ValueError) as exc:
            raise MCPTransportError(f"MCP transport error: {exc}")

    def request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Send a JSON-RPC request and return the full response envelope."""
        with self._lock:
            self._ensure_reader()
            self._request_id += 1
            request_id = self._request_id
            request: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
            if params is not None:
                request["params"] = params

            logger.debug("MCP -> %s (id=%s)", method, request_id)
            self._write(request)
            response = self._read_response(request_id, timeout)
            logger.debug("MCP <- id=%s %s", request_id, "error" if "error" in response else "ok")
            return response

    def notify(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a JSON-RPC notification (no id, no response)."""
        notification: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            notification["params"] = params
        with self._lock:
            self._write(notification)

    # ── MCP Protocol ──────────────────────────────────────────────────────

    def initialize(self, client_info: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Perform MCP initialize handshake."""
        params = {
            "protocolVersion": self.protocol_version,
            "capabilities": {},
            "clientInfo": client_info or {"name": "trae-agent", "version": "0.0.0"},
        }
        try:
            response = self.request("initialize", params, timeout=self.handshake_timeout)
        except MCPTransportError as exc:
            raise HandshakeError(f"MCP initialize failed: {exc}") from exc

        result = response.get("result")
        if not isinstance(result, dict):
            raise HandshakeError(f"Failed to initialize MCP server: {response}")

        self.server_info = result.get("serverInfo") or {}
        self.notify("notifications/initialized")
        return self.server_info

    def list_tools(self) -> List[Dict[str, Any]]:
        """Fetch the tool list from the MCP server."""
        try:
            response = self.request("tools/list", timeout=self.handshake_timeout)
        except MCPTransportError as exc:
            raise DiscoveryError(f"MCP tools/list failed: {exc}") from exc

        result = response.get("result")
        tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(tools, list):
            raise DiscoveryError(f"Failed to discover tools: {response}")
        for tool in tools:
            if not isinstance(tool, dict) or not isinstance(tool.get("name"), str):
                raise DiscoveryError(f"Malformed tool definition: {tool!r}")
        return tools

    def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> str:
        """Call a tool on the MCP server and return its first text block."""
        response = self.request(
            "tools/call",
            {"name": name, "arguments": arguments or {}},
            timeout=self.call_timeout,
        )

        if "error" in response:
            err = response["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise ToolInvocationError(f"MCP error: {message}", payload=err)

        result = response.get("result")
        if not isinstance(result, dict):
            raise ToolInvocationError(f"Malformed tools/call response: {response}", payload=response)

        text = self.extract_text(result.get("content", []))
        if result.get("isError"):
            raise ToolInvocationError(text, payload=result)
        return text

    @staticmethod
    def extract_text(content: Any) -> str:
        """First text block of an MCP ``content`` list, else its JSON form."""
        if isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and isinstance(part.get("text"), str):
                    return part["text"]
        return json.dumps(content)
