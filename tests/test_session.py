"""Tests for session wiring: MCP startup, fallback and guaranteed cleanup."""

import sys

import pytest

from conftest import (
    SILENT_DISCOVERY_SERVER,
    WEATHER_TOOL,
    ScriptedProvider,
    call,
    static_tools_server,
    text_response,
    tool_response,
)
from traeagent.core.session import AgentSession, build_task_message, load_instructions
from traeagent.providers.base import ModelCallError
from traeagent.validation.config import Config


def make_config(**mcp):
    mcp.setdefault("startup_grace", 0)
    mcp.setdefault("handshake_timeout", 20)
    return Config(global_config={"mcp": mcp, "provider": {"api_key": "test-key"}})


class TestAgentSession:
    def test_demo_server_tools_are_merged(self):
        provider = ScriptedProvider([
            tool_response(call("c1", "calculate_tip", bill_amount=85, tip_percentage=20)),
            text_response("Tip is $17"),
        ])

        with AgentSession(make_config(), provider=provider) as session:
            assert session.registry.names()[4:] == ["get_current_weather", "calculate_tip"]
            assert session.server_info["name"] == "weather-calculator-server"
            child = session.child
            assert child.is_running

            result = session.run_turn("Calculate a 20% tip for $85")

        assert result.output == "Tip is $17"
        assert not child.is_running
        tool_message = provider.requests[1]["messages"][-1]
        assert "Total Amount: $102.00" in tool_message.content

    def test_silent_discovery_falls_back_to_builtins(self):
        """A server that never answers tools/list leaves only built-ins."""
        config = make_config(command=sys.executable, args=["-c", SILENT_DISCOVERY_SERVER], handshake_timeout=1)
        provider = ScriptedProvider([text_response("Hello without MCP")])

        with AgentSession(config, provider=provider) as session:
            assert session.registry.names() == ["read_file", "write_file", "list_files", "execute_shell"]
            assert session.child is None
            assert session.chat("hi") == "Hello without MCP"

    def test_nullable_parameter_type_is_accepted(self):
        """A JSON-schema type list such as ["string", "null"] is valid."""
        search = {
            "name": "search",
            "description": "Search the web",
            "inputSchema": {
                "type": "object",
                "properties": {"q": {"type": ["string", "null"], "description": None}},
            },
        }
        config = make_config(command=sys.executable, args=["-c", static_tools_server([search])])

        with AgentSession(config, provider=ScriptedProvider([text_response("ok")])) as session:
            assert session.registry.names()[-1] == "search"
            assert session.child.is_running
            exported = session.registry.export_schemas()[-1]["function"]["parameters"]
            assert exported["properties"] == {"q": {"type": ["string", "null"]}}
            assert session.chat("find things") == "ok"

    def test_unusable_tool_schema_falls_back(self):
        broken = {"name": "broken", "inputSchema": {"type": "object", "properties": {"q": "string"}}}
        config = make_config(command=sys.executable, args=["-c", static_tools_server([WEATHER_TOOL, broken])])

        with AgentSession(config, provider=ScriptedProvider([text_response("still here")])) as session:
            assert session.registry.names() == ["read_file", "write_file", "list_files", "execute_shell"]
            assert session.child is None
            assert session.server_info == {}
            assert session.chat("hi") == "still here"

    def test_missing_server_command_falls_back(self):
        config = make_config(command="no-such-mcp-server-binary", args=[])
        with AgentSession(config, provider=ScriptedProvider([])) as session:
            assert session.registry.mcp_count == 0

    def test_mcp_disabled(self):
        with AgentSession(make_config(enabled=False), provider=ScriptedProvider([])) as session:
            assert session.child is None
            assert len(session.registry) == 4

    def test_child_stopped_when_turn_fails(self):
        provider = ScriptedProvider([ModelCallError("endpoint down")])

        with pytest.raises(ModelCallError):
            with AgentSession(make_config(), provider=provider) as session:
                child = session.child
                session.chat("hi")

        assert not child.is_running
        assert session.child is None

    def test_requires_start(self):
        with pytest.raises(RuntimeError):
            AgentSession(make_config(enabled=False)).chat("hi")


class TestInstructions:
    def test_load_instructions(self, tmp_path):
        path = tmp_path / "TRAE.md"
        path.write_text("Be concise.")
        assert load_instructions(path) == "Be concise."
        assert load_instructions(tmp_path / "missing.md") is None

    def test_build_task_message(self):
        assert build_task_message("TRAE.md", "Be concise.", "Say hi") == (
            "Instructions from TRAE.md:\n\nBe concise.\n\nTask: Say hi"
        )
        assert build_task_message("TRAE.md", "Be concise.").endswith("Please follow these instructions.")
