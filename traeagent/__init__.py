"""
trae-agent - tool-calling agent for OpenAI-compatible chat APIs.

The agent merges built-in file/shell tools with tools discovered from an MCP
server running as a child process, then drives a bounded tool-calling loop
against the configured model.

Architecture:
- MCP server spawned per session, spoken to over stdin/stdout JSON-RPC
- One registry per session: built-ins first, discovered tools after
- Tool failures become tool messages; only model failures abort a turn
- The child process is terminated on every exit path
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

from traeagent.core.agent import Agent, TurnResult
from traeagent.core.session import AgentSession

__all__ = [
    "Agent",
    "AgentSession",
    "TurnResult",
    "__version__",
]
