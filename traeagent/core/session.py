"""
Agent session: one scoped acquisition of every runtime resource.

    with AgentSession(Config.load()) as session:
        print(session.chat("What's the weather in Boston?"))

Entering the session starts the MCP child (if enabled), performs the
handshake, discovers tools, builds the registry and creates the agent.
Leaving it always terminates the child, whatever happened in between.
"""

import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from traeagent.core.agent import Agent, TurnResult
from traeagent.mcp.process import ChildProcess, spawn_child
from traeagent.mcp.transport import DiscoveryError, MCPTransportError, StdioTransport, Transport
from traeagent.providers.base import ChatProvider, ProviderFactory
from traeagent.tools.builtin import builtin_tools
from traeagent.tools.executor import ToolExecutor
from traeagent.tools.registry import ToolRegistry
from traeagent.tools.schema import ToolDef
from traeagent.validation.config import Config

logger = logging.getLogger(__name__)


class AgentSession:
    """Owns the child process, transport, registry and agent for one run."""

    def __init__(self, config: Config, provider: Optional[ChatProvider] = None):
        self.config = config
        self._provider = provider
        self.child: Optional[ChildProcess] = None
        self.transport: Optional[Transport] = None
        self.server_info: Dict[str, Any] = {}
        self.registry: Optional[ToolRegistry] = None
        self.agent: Optional[Agent] = None
        self._resources = ExitStack()

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self) -> "AgentSession":
        settings = self.config.merged
        try:
            discovered, transport = self._connect_mcp()
            self.registry = ToolRegistry.build(
                builtin_tools(shell_timeout=settings.agent.shell_timeout),
                discovered,
                transport,
            )
            logger.info(
                "Available tools: %d total (%d built-in, %d MCP)",
                len(self.registry),
                self.registry.builtin_count,
                self.registry.mcp_count,
            )
            provider = self._provider or ProviderFactory.create(self.config)
            self.agent = Agent(
                provider,
                self.registry,
                executor=ToolExecutor(self.registry),
                config=settings.agent,
            )
        except BaseException:
            self.close()
            raise
        return self

    def close(self) -> None:
        """Terminate the MCP child. Idempotent."""
        self._resources.close()
        self.child = None
        self.transport = None

    def __enter__(self) -> "AgentSession":
        return self.start()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _connect_mcp(self) -> Tuple[List[ToolDef], Optional[Transport]]:
        """
        Start the MCP server and discover its tools.

        Any transport failure (spawn, handshake, discovery) or a tool list
        that cannot be converted downgrades the session to built-in tools
        only. The child stays alive only when discovery succeeded.
        """
        mcp = self.config.merged.mcp
        if not mcp.enabled:
            return [], None

        with ExitStack() as stack:
            try:
                child = stack.enter_context(
                    spawn_child(mcp.command, args=mcp.args, env=mcp.env, grace_period=mcp.startup_grace)
                )
                transport = StdioTransport(
                    child,
                    handshake_timeout=mcp.handshake_timeout,
                    call_timeout=mcp.call_timeout,
                    protocol_version=mcp.protocol_version,
                )
                self.server_info = transport.initialize(
                    {"name": mcp.client_name, "version": mcp.client_version}
                )
                logger.info(
                    "MCP server initialized: %s %s",
                    self.server_info.get("name", "?"),
                    self.server_info.get("version", ""),
                )
                tools = self._convert_tools(transport.list_tools())
            except MCPTransportError as exc:
                logger.warning("MCP server unavailable, using built-in tools only: %s", exc)
                self.server_info = {}
                return [], None

            self._resources.enter_context(stack.pop_all())

        logger.info("Discovered %d MCP tools", len(tools))
        self.child = child
        self.transport = transport
        return tools, transport

    @staticmethod
    def _convert_tools(raw_tools: List[Dict[str, Any]]) -> List[ToolDef]:
        try:
            return [ToolDef.from_mcp(raw) for raw in raw_tools]
        except ValueError as exc:
            raise DiscoveryError(f"Unusable tool definition: {exc}") from exc

    # ── Conversation ──────────────────────────────────────────────────────

    def _require_agent(self) -> Agent:
        if self.agent is None:
            raise RuntimeError("AgentSession is not started; use it as a context manager")
        return self.agent

    def run_turn(self, message: str) -> TurnResult:
        return self._require_agent().run_turn(message)

    def chat(self, message: str) -> str:
        return self._require_agent().chat(message)


def load_instructions(file_path: Path) -> Optional[str]:
    """Load instructions from a file like TRAE.md, or None if it is missing."""
    path = Path(file_path)
    if not path.is_file():
        return None
    return path.read_text(encoding="utf-8")


def build_task_message(file_path: Path, instructions: str, task: Optional[str] = None) -> str:
    """User message combining an instruction file with an optional task."""
    header = f"Instructions from {file_path}:\n\n{instructions}\n\n"
    if task:
        return f"{header}Task: {task}"
    return f"{header}Please follow these instructions."
