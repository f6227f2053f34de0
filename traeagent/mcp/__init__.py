"""
MCP client side for trae-agent.

Tools hosted by an external MCP server are discovered and invoked over a
child process's stdin/stdout using line-delimited JSON-RPC 2.0:

    ChildProcess  --pipes-->  StdioTransport  --tools-->  ToolRegistry
"""

from traeagent.mcp.transport import (
    DiscoveryError,
    HandshakeError,
    MCPTransportError,
    RPCTimeoutError,
    StdioTransport,
    ToolInvocationError,
    Transport,
)
from traeagent.mcp.process import ChildProcess, spawn_child

__all__ = [
    "ChildProcess",
    "DiscoveryError",
    "HandshakeError",
    "MCPTransportError",
    "RPCTimeoutError",
    "StdioTransport",
    "ToolInvocationError",
    "Transport",
    "spawn_child",
]
