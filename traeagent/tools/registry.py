"""Tool registry - merges built-in and MCP-discovered tools into one set."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from traeagent.mcp.transport import Transport
from traeagent.tools.schema import ToolDef

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalHandler:
    """Dispatches to a Python callable in the agent process."""

    func: Callable[..., Any]

    def invoke(self, name: str, arguments: Dict[str, Any]) -> Any:
        return self.func(**arguments)


@dataclass(frozen=True)
class RemoteHandler:
    """Dispatches to a tool hosted behind a transport."""

    transport: Transport

    def invoke(self, name: str, arguments: Dict[str, Any]) -> Any:
        return self.transport.call_tool(name, arguments)


Handler = Union[LocalHandler, RemoteHandler]


@dataclass(frozen=True)
class RegistryEntry:
    tool: ToolDef
    handler: Handler


class ToolRegistry:
    """
    Immutable name → (descriptor, handler) mapping for one session.

    Ordering is stable: built-ins first in registration order, then
    discovered tools in discovery order. When a discovered tool has the same
    name as a built-in, the built-in wins so file and shell tools are always
    available.
    """

    def __init__(self, entries: Sequence[RegistryEntry] = ()):
        self._entries: Dict[str, RegistryEntry] = {}
        for entry in entries:
            if entry.tool.name in self._entries:
                raise ValueError(f"Tool '{entry.tool.name}' is already registered.")
            self._entries[entry.tool.name] = entry

    @classmethod
    def build(
        cls,
        builtins: Iterable[Tuple[ToolDef, Callable[..., Any]]] = (),
        discovered: Iterable[Union[ToolDef, Dict[str, Any]]] = (),
        transport: Optional[Transport] = None,
    ) -> "ToolRegistry":
        """
        Build a registry from built-in (tool, handler) pairs and MCP tools.

        Parameters
        ----------
        builtins : pairs as returned by :func:`traeagent.tools.builtin.builtin_tools`
        discovered : converted ToolDefs or raw ``tools/list`` entries
        transport : transport the discovered tools are invoked through
        """
        entries: List[RegistryEntry] = []
        seen = set()

        for tool, func in builtins:
            if tool.name in seen:
                raise ValueError(f"Duplicate built-in tool: {tool.name}")
            seen.add(tool.name)
            entries.append(RegistryEntry(tool=tool, handler=LocalHandler(func)))

        discovered = list(discovered)
        if discovered and transport is None:
            raise ValueError("Discovered tools need a transport to dispatch through")

        for raw in discovered:
            tool = raw if isinstance(raw, ToolDef) else ToolDef.from_mcp(raw)
            if tool.name in seen:
                logger.warning("MCP tool '%s' collides with a built-in tool; keeping the built-in", tool.name)
                continue
            seen.add(tool.name)
            entries.append(RegistryEntry(tool=tool, handler=RemoteHandler(transport)))

        return cls(entries)

    # ── Lookup ────────────────────────────────────────────────────────────

    def get(self, name: str) -> Optional[RegistryEntry]:
        return self._entries.get(name)

    def names(self) -> List[str]:
        return list(self._entries)

    def tools(self) -> List[ToolDef]:
        return [entry.tool for entry in self._entries.values()]

    @property
    def builtin_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.tool.source == "builtin")

    @property
    def mcp_count(self) -> int:
        return sum(1 for e in self._entries.values() if e.tool.source == "mcp")

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RegistryEntry]:
        return iter(self._entries.values())

    # ── Export ────────────────────────────────────────────────────────────

    def export_schemas(self) -> List[Dict[str, Any]]:
        """Tool schema list for the chat-completion ``tools`` parameter."""
        return [entry.tool.to_openai() for entry in self._entries.values()]
