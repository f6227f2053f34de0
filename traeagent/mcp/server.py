"""
Minimal stdio MCP server hosting the demo weather and tip tools.

Run it as ``python -m traeagent.mcp.server``. It speaks just enough of the
Model Context Protocol for the agent: ``initialize``, ``tools/list`` and
``tools/call``. Notifications are accepted and ignored. Everything it logs
goes to stderr so stdout stays a clean JSON-RPC channel.
"""

from __future__ import annotations

import json
import logging
import sys
from dataclasses import dataclass, field
from typing import IO, Any, Callable, Dict, List, Optional

from traeagent import __version__
from traeagent.mcp.transport import PROTOCOL_VERSION

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

SERVER_NAME = "weather-calculator-server"


@dataclass
class ServerTool:
    """A tool hosted by the server: metadata plus a handler returning text."""

    name: str
    description: str
    handler: Callable[..., str]
    properties: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)

    def definition(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": {
                "type": "object",
                "properties": self.properties,
                "required": self.required,
            },
        }


# ── Demo tools ────────────────────────────────────────────────────────────


def get_current_weather(location: str, unit: str = "fahrenheit") -> str:
    """Mock weather lookup."""
    celsius = unit == "celsius"
    return (
        f"Weather for {location}:\n"
        f"- Temperature: {'22' if celsius else '72'}°{'C' if celsius else 'F'}\n"
        "- Conditions: sunny, windy\n"
        "- Humidity: 65%\n"
    )


def calculate_tip(bill_amount: float, tip_percentage: float = 15.0) -> str:
    bill_amount = float(bill_amount)
    tip_percentage = float(tip_percentage)
    tip_amount = bill_amount * (tip_percentage / 100)
    total_amount = bill_amount + tip_amount
    return (
        "Tip Calculation:\n"
        f"- Bill Amount: ${bill_amount:.2f}\n"
        f"- Tip Percentage: {tip_percentage}%\n"
        f"- Tip Amount: ${tip_amount:.2f}\n"
        f"- Total Amount: ${total_amount:.2f}\n"
    )


DEFAULT_TOOLS: List[ServerTool] = [
    ServerTool(
        name="get_current_weather",
        description="Get the current weather in a given location",
        handler=get_current_weather,
        properties={
            "location": {
                "type": "string",
                "description": "The city and state, e.g. San Francisco, CA",
            },
            "unit": {
                "type": "string",
                "description": "The temperature unit to use",
                "enum": ["celsius", "fahrenheit"],
                "default": "fahrenheit",
            },
        },
        required=["location"],
    ),
    ServerTool(
        name="calculate_tip",
        description="Calculate tip amount and total bill",
        handler=calculate_tip,
        properties={
            "bill_amount": {"type": "number", "description": "The bill amount in dollars"},
            "tip_percentage": {
                "type": "number",
                "description": "The tip percentage (default: 15.0)",
                "default": 15.0,
            },
        },
        required=["bill_amount"],
    ),
]


class MCPServer:
    """Line-delimited JSON-RPC dispatcher over a pair of text streams."""

    def __init__(self, tools: Optional[List[ServerTool]] = None, name: str = SERVER_NAME):
        self.name = name
        self.tools: Dict[str, ServerTool] = {t.name: t for t in (tools or DEFAULT_TOOLS)}

    def handle(self, message: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return the response envelope for ``message``, or None for notifications."""
        if "id" not in message:
            logger.debug("Ignoring notification %s", message.get("method"))
            return None

        request_id = message["id"]
        method = message.get("method")
        params = message.get("params") or {}

        if method == "initialize":
            return self._result(request_id, {
                "protocolVersion": params.get("protocolVersion", PROTOCOL_VERSION),
                "capabilities": {"tools": {}},
                "serverInfo": {"name": self.name, "version": __version__},
            })
        if method == "tools/list":
            return self._result(request_id, {"tools": [t.definition() for t in self.tools.values()]})
        if method == "tools/call":
            return self._call(request_id, params)
        if method == "ping":
            return self._result(request_id, {})
        return self._error(request_id, METHOD_NOT_FOUND, f"Method not found: {method}")

    def _call(self, request_id: Any, params: Dict[str, Any]) -> Dict[str, Any]:
        tool = self.tools.get(params.get("name", ""))
        if tool is None:
            return self._error(request_id, INVALID_PARAMS, f"Unknown tool: {params.get('name')}")

        arguments = params.get("arguments") or {}
        missing = [p for p in tool.required if p not in arguments]
        if missing:
            return self._error(
                request_id, INVALID_PARAMS, f"Missing required arguments: {', '.join(missing)}"
            )

        try:
            text = tool.handler(**arguments)
        except (TypeError, ValueError) as exc:
            return self._error(request_id, INVALID_PARAMS, f"Invalid arguments for {tool.name}: {exc}")
        except Exception as exc:  # noqa: BLE001
            logger.exception("Tool %s failed", tool.name)
            return self._error(request_id, INTERNAL_ERROR, f"Tool {tool.name} failed: {exc}")

        return self._result(request_id, {"content": [{"type": "text", "text": text}], "isError": False})

    @staticmethod
    def _result(request_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    @staticmethod
    def _error(request_id: Any, code: int, message: str) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}

    def serve(self, stdin: IO[str], stdout: IO[str]) -> None:
        """Answer requests line by line until ``stdin`` is closed."""
        for line in stdin:
            line = line.strip()
            if not line:
                continue
            try:
                message = json.loads(line)
            except ValueError as exc:
                response: Optional[Dict[str, Any]] = self._error(None, PARSE_ERROR, f"Parse error: {exc}")
            else:
                if not isinstance(message, dict):
                    response = self._error(None, PARSE_ERROR, "Request must be a JSON object")
                else:
                    response = self.handle(message)

            if response is not None:
                stdout.write(json.dumps(response) + "\n")
                stdout.flush()


def main() -> None:
    logging.basicConfig(stream=sys.stderr, level=logging.INFO, format="%(name)s: %(message)s")
    logger.info("%s listening on stdio", SERVER_NAME)
    MCPServer().serve(sys.stdin, sys.stdout)


if __name__ == "__main__":
    main()
