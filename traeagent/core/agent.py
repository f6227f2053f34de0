"""
trae-agent Agent - bounded tool-calling conversation loop.

Each user turn:
1. Append the user message
2. Ask the model (with tool schemas)
3. If it requests tools, execute the whole batch and loop back to 2
4. Otherwise return its text
5. After ``max_tool_iterations`` tool batches, ask once more without tools
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from traeagent.providers.base import ChatProvider, ChatResponse
from traeagent.tools.executor import ToolExecutor
from traeagent.tools.registry import ToolRegistry
from traeagent.tools.schema import Message
from traeagent.validation.config import AgentConfig

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_PROMPT = """\
You are TRAE (Task-Reasoning-Action-Execution), a helpful agent.

You can:
- Read and analyze files and instructions
- Use various tools to accomplish tasks
- Write and execute code
- Reason through problems step by step
- Provide clear explanations of your actions

When given a task:
1. Break it down into steps
2. Use available tools to gather information
3. Execute actions systematically
4. Provide clear updates on progress
5. Verify results when possible

Always be helpful, accurate, and explain your reasoning.
"""


class LoopState(enum.Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    DONE = "done"


@dataclass
class TurnResult:
    """Result of one user turn."""

    output: str
    iterations: int = 0
    model_calls: int = 0
    tool_calls: List[str] = field(default_factory=list)
    forced_final: bool = False
    tokens_used: int = 0


class Agent:
    """
    Tool-calling agent over one chat provider and one tool registry.

    The agent owns the conversation history; tools and the MCP child never
    see it. A :class:`~traeagent.providers.base.ModelCallError` aborts the
    turn and propagates to the caller, leaving only fully committed messages
    in the history: an assistant message that requested tools is appended
    together with all of its tool results, never alone.
    """

    def __init__(
        self,
        provider: ChatProvider,
        registry: ToolRegistry,
        executor: Optional[ToolExecutor] = None,
        config: Optional[AgentConfig] = None,
        system_prompt: Optional[str] = None,
    ):
        self.provider = provider
        self.registry = registry
        self.executor = executor or ToolExecutor(registry)
        self.config = config or AgentConfig()
        self.system_prompt = system_prompt or self.config.system_prompt or DEFAULT_SYSTEM_PROMPT
        self.state = LoopState.DONE
        self._history: List[Message] = []

    @property
    def history(self) -> List[Message]:
        """Committed conversation messages (a copy), without the system prompt."""
        return list(self._history)

    def reset(self) -> None:
        """Forget all previous turns."""
        self._history.clear()
        self.state = LoopState.DONE

    def chat(self, message: str) -> str:
        """Send a message to the agent and get its final response."""
        return self.run_turn(message).output

    # ── Turn ──────────────────────────────────────────────────────────────

    def run_turn(self, message: str) -> TurnResult:
        """Drive one user turn to a final answer."""
        self._history.append(Message.user(message))
        result = TurnResult(output="")
        tools = self.registry.export_schemas() or None
        max_iterations = self.config.max_tool_iterations

        self.state = LoopState.AWAITING_MODEL
        while result.iterations < max_iterations:
            response = self._call_model(result, tools)

            if not response.wants_tools:
                return self._finish(result, response.content)

            result.iterations += 1
            self.state = LoopState.EXECUTING_TOOLS
            logger.info(
                "Agent wants to use %d tool(s) (iteration %d)",
                len(response.tool_calls),
                result.iterations,
            )

            tool_messages = self.executor.execute_all(response.tool_calls)
            result.tool_calls.extend(call.name for call in response.tool_calls)

            self._history.append(Message.assistant(response.content, response.tool_calls))
            self._history.extend(tool_messages)
            self.state = LoopState.AWAITING_MODEL

        logger.warning(
            "Max tool call iterations reached (%d), forcing final response", max_iterations
        )
        result.forced_final = True
        response = self._call_model(result, tools=None)
        if response.wants_tools:
            logger.warning("Ignoring %d tool call(s) in forced final response", len(response.tool_calls))
        return self._finish(result, response.content)

    def _call_model(self, result: TurnResult, tools) -> ChatResponse:
        messages = [Message.system(self.system_prompt)] + self._history
        logger.debug(
            "Model call %d with %d messages, tools %s",
            result.model_calls + 1,
            len(messages),
            "offered" if tools else "withdrawn",
        )
        try:
            response = self.provider.complete(
                messages,
                tools=tools,
                tool_choice="auto" if tools else None,
            )
        except Exception:
            self.state = LoopState.DONE
            raise
        result.model_calls += 1
        result.tokens_used += response.token_usage
        return response

    def _finish(self, result: TurnResult, content: str) -> TurnResult:
        self._history.append(Message.assistant(content))
        self.state = LoopState.DONE
        result.output = content
        return result
