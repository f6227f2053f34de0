"""Tests for the tool-calling conversation loop."""

import pytest

from conftest import ScriptedProvider, call, text_response, tool_response
from traeagent.core.agent import Agent, LoopState
from traeagent.providers.base import ModelCallError
from traeagent.tools.builtin import builtin_tools
from traeagent.tools.registry import ToolRegistry
from traeagent.validation.config import AgentConfig


def make_agent(responses, max_tool_iterations=5, registry=None):
    provider = ScriptedProvider(responses)
    registry = registry if registry is not None else ToolRegistry.build(builtin_tools())
    agent = Agent(
        provider,
        registry,
        config=AgentConfig(max_tool_iterations=max_tool_iterations),
        system_prompt="You are a test agent.",
    )
    return agent, provider


class TestTermination:
    def test_no_tool_calls_single_model_call(self):
        """A tool-less response ends the turn after exactly one call."""
        agent, provider = make_agent([text_response("Hi there")])

        result = agent.run_turn("Hello")

        assert result.output == "Hi there"
        assert result.model_calls == 1
        assert result.iterations == 0
        assert len(provider.requests) == 1
        assert agent.state is LoopState.DONE

    def test_fewer_tool_rounds_than_bound(self):
        """N < bound tool rounds then text: N + 1 model calls."""
        responses = [
            tool_response(call(f"c{i}", "list_files", path=".")) for i in range(3)
        ] + [text_response("done")]
        agent, provider = make_agent(responses, max_tool_iterations=5)

        result = agent.run_turn("Look around")

        assert result.output == "done"
        assert len(provider.requests) == 4
        assert result.iterations == 3
        assert result.forced_final is False
        assert all(req["tools"] for req in provider.requests)

    def test_bound_forces_toolless_final_call(self):
        """N == bound tool rounds: one extra call without tools."""
        responses = [
            tool_response(call(f"c{i}", "list_files")) for i in range(2)
        ] + [tool_response(call("c-extra", "list_files"), content="final words")]
        agent, provider = make_agent(responses, max_tool_iterations=2)

        result = agent.run_turn("Loop forever")

        assert len(provider.requests) == 3
        assert provider.requests[-1]["tools"] is None
        assert provider.requests[-1]["tool_choice"] is None
        assert provider.requests[0]["tool_choice"] == "auto"
        assert result.forced_final is True
        assert result.output == "final words"
        # The ignored tool request of the forced call is not in the history.
        assert agent.history[-1].tool_calls is None
        assert agent.history[-1].content == "final words"

    def test_empty_registry_offers_no_tools(self):
        agent, provider = make_agent([text_response("ok")], registry=ToolRegistry())
        agent.chat("hi")
        assert provider.requests[0]["tools"] is None


class TestHistory:
    def test_tool_messages_follow_assistant_in_order(self):
        """k tool calls are answered by k tool messages with matching ids."""
        responses = [
            tool_response(
                call("a", "list_files"),
                call("b", "no_such_tool"),
                call("c", "read_file", path="missing.txt"),
                content="checking",
            ),
            text_response("all done"),
        ]
        agent, provider = make_agent(responses)

        agent.run_turn("go")

        second = provider.requests[1]["messages"]
        roles = [m.role for m in second]
        assert roles == ["system", "user", "assistant", "tool", "tool", "tool"]
        assistant = second[2]
        assert assistant.content == "checking"
        assert [tc.id for tc in assistant.tool_calls] == ["a", "b", "c"]
        assert [m.tool_call_id for m in second[3:]] == ["a", "b", "c"]
        assert "unknown tool" in second[4].content

    def test_read_file_result_reaches_next_model_call(self, tmp_path):
        notes = tmp_path / "notes.txt"
        notes.write_text("hello")
        responses = [
            tool_response(call("call_1", "read_file", path=str(notes))),
            text_response("The file says hello"),
        ]
        agent, provider = make_agent(responses)

        assert agent.chat("What's in notes.txt?") == "The file says hello"

        tool_messages = [m for m in provider.requests[1]["messages"] if m.role == "tool"]
        assert len(tool_messages) == 1
        assert tool_messages[0].content == "hello"
        assert tool_messages[0].tool_call_id == "call_1"

    def test_history_spans_turns(self):
        agent, provider = make_agent([text_response("first"), text_response("second")])

        agent.chat("one")
        agent.chat("two")

        contents = [m.content for m in provider.requests[1]["messages"]]
        assert contents == ["You are a test agent.", "one", "first", "two"]
        assert len(agent.history) == 4

    def test_reset_clears_history(self):
        agent, _ = make_agent([text_response("x")])
        agent.chat("hi")
        agent.reset()
        assert agent.history == []

    def test_history_is_a_copy(self):
        agent, _ = make_agent([text_response("x")])
        agent.chat("hi")
        agent.history.clear()
        assert len(agent.history) == 2

    def test_malformed_arguments_do_not_abort_turn(self):
        from traeagent.tools.schema import ToolCallRequest

        bad = ToolCallRequest(id="bad", name="read_file", arguments="{not json")
        agent, provider = make_agent([tool_response(bad), text_response("recovered")])

        assert agent.chat("go") == "recovered"
        tool_message = provider.requests[1]["messages"][-1]
        assert tool_message.tool_call_id == "bad"
        assert tool_message.content.startswith("Error:")


class TestModelFailure:
    def test_model_error_propagates(self):
        agent, _ = make_agent([ModelCallError("boom")])

        with pytest.raises(ModelCallError):
            agent.run_turn("hi")

        assert agent.state is LoopState.DONE
        assert [m.role for m in agent.history] == ["user"]

    def test_failure_after_tools_keeps_history_consistent(self):
        responses = [tool_response(call("a", "list_files")), ModelCallError("down")]
        agent, _ = make_agent(responses)

        with pytest.raises(ModelCallError):
            agent.run_turn("hi")

        history = agent.history
        assert [m.role for m in history] == ["user", "assistant", "tool"]
        assert history[2].tool_call_id == history[1].tool_calls[0].id

    def test_token_usage_accumulates(self):
        from traeagent.providers.base import ChatResponse

        responses = [
            ChatResponse(content="", tool_calls=[call("a", "list_files")], token_usage=10),
            ChatResponse(content="ok", token_usage=5),
        ]
        agent, _ = make_agent(responses)
        result = agent.run_turn("hi")
        assert result.tokens_used == 15
        assert result.tool_calls == ["list_files"]
