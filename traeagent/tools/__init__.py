"""Tool descriptors, the per-session registry and the executor."""

from traeagent.tools.schema import ArgumentParseError, Message, ToolCallRequest, ToolDef, ToolParam, parse_arguments
from traeagent.tools.registry import LocalHandler, RemoteHandler, ToolRegistry
from traeagent.tools.executor import ToolExecutor
from traeagent.tools.builtin import builtin_tools

__all__ = [
    "ArgumentParseError",
    "LocalHandler",
    "Message",
    "RemoteHandler",
    "ToolCallRequest",
    "ToolDef",
    "ToolExecutor",
    "ToolParam",
    "ToolRegistry",
    "builtin_tools",
    "parse_arguments",
]
