"""Shared fakes: a scripted chat provider and an in-memory transport."""

import json
import sys
import textwrap
from typing import Any, Dict, List, Optional

import pytest

from traeagent.mcp.transport import ToolInvocationError, Transport
from traeagent.providers.base import ChatProvider, ChatResponse
from traeagent.tools.schema import Message, ToolCallRequest
from traeagent.validation.config import Config


class ScriptedProvider(ChatProvider):
    """Returns queued responses in order and records every request."""

    def __init__(self, responses: List[ChatResponse]):
        super().__init__(model="scripted", config=Config())
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    @property
    def provider_name(self) -> str:
        return "scripted"

    def complete(self, messages: List[Message], tools=None, tool_choice=None) -> ChatResponse:
        self.requests.append(
            {"messages": list(messages), "tools": tools, "tool_choice": tool_choice}
        )
        if not self.responses:
            raise AssertionError("ScriptedProvider ran out of responses")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class FakeTransport(Transport):
    """In-memory MCP server."""

    def __init__(self, tools: Optional[List[Dict[str, Any]]] = None, outputs: Optional[Dict[str, str]] = None):
        self.tools = tools or []
        self.outputs = outputs or {}
        self.calls: List[tuple] = []

    def initialize(self, client_info=None):
        return {"name": "fake", "version": "0"}

    def list_tools(self):
        return list(self.tools)

    def call_tool(self, name, arguments=None):
        self.calls.append((name, arguments))
        if name not in self.outputs:
            raise ToolInvocationError(f"MCP error: Unknown tool: {name}", payload={"code": -32602})
        return self.outputs[name]


def text_response(content: str) -> ChatResponse:
    return ChatResponse(content=content)


def tool_response(*calls: ToolCallRequest, content: str = "") -> ChatResponse:
    return ChatResponse(content=content, tool_calls=list(calls), finish_reason="tool_calls")


def call(call_id: str, name: str, **arguments) -> ToolCallRequest:
    return ToolCallRequest.from_mapping(call_id, name, arguments)


WEATHER_TOOL = {
    "name": "get_current_weather",
    "description": "Get the current weather in a given location",
    "inputSchema": {
        "type": "object",
        "properties": {
            "location": {"type": "string", "description": "The city and state"},
            "unit": {"type": "string", "enum": ["celsius", "fahrenheit"], "default": "fahrenheit"},
        },
        "required": ["location"],
    },
}


# A server that completes the handshake but never answers tools/list.
SILENT_DISCOVERY_SERVER = textwrap.dedent(
    """
    import json, sys
    for line in sys.stdin:
        msg = json.loads(line)
        if msg.get("method") == "initialize":
            reply = {"jsonrpc": "2.0", "id": msg["id"],
                     "result": {"serverInfo": {"name": "silent", "version": "0"}}}
            sys.stdout.write(json.dumps(reply) + "\\n")
            sys.stdout.flush()
    """
)


_STATIC_TOOLS_SERVER = textwrap.dedent(
    """
    import json, sys
    TOOLS = json.loads(%r)
    for line in sys.stdin:
        msg = json.loads(line)
        if "id" not in msg:
            continue
        if msg.get("method") == "initialize":
            result = {"serverInfo": {"name": "static", "version": "0"}}
        elif msg.get("method") == "tools/list":
            result = {"tools": TOOLS}
        else:
            result = {"content": [{"type": "text", "text": "ok"}]}
        sys.stdout.write(json.dumps({"jsonrpc": "2.0", "id": msg["id"], "result": result}) + "\\n")
        sys.stdout.flush()
    """
)


def static_tools_server(tools: List[Dict[str, Any]]) -> str:
    """Script for a server that advertises ``tools`` verbatim."""
    return _STATIC_TOOLS_SERVER % json.dumps(tools)


@pytest.fixture
def server_command():
    """Command line for the bundled demo MCP server."""
    return sys.executable, ["-m", "traeagent.mcp.server"]
