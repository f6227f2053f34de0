"""Tool executor - dispatches tool calls and turns every outcome into a tool message."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Iterable, List

from traeagent.tools.registry import ToolRegistry
from traeagent.tools.schema import ArgumentParseError, Message, ToolCallRequest, parse_arguments

logger = logging.getLogger(__name__)


def serialize_arguments(arguments: Dict[str, Any]) -> str:
    return json.dumps(arguments)


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value)
    except (TypeError, ValueError):
        return str(value)


class ToolExecutor:
    """
    Executes tool calls against a :class:`ToolRegistry`.

    ``execute`` never raises for tool-level failures: bad arguments, unknown
    tools and handler exceptions all come back as a tool message whose
    content starts with ``Error:`` and names the tool. One bad call can
    therefore never abort a multi-tool turn.
    """

    def __init__(self, registry: ToolRegistry):
        self._registry = registry

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    # ── Execution ─────────────────────────────────────────────────────────

    def execute(self, call: ToolCallRequest) -> Message:
        """Run one tool call and return its ``tool`` role message."""
        return Message.tool(call.id, self._run(call))

    def execute_all(self, calls: Iterable[ToolCallRequest]) -> List[Message]:
        """Run a batch sequentially, in request order."""
        return [self.execute(call) for call in calls]

    def _run(self, call: ToolCallRequest) -> str:
        try:
            arguments = parse_arguments(call.arguments)
        except ArgumentParseError as exc:
            logger.warning("Bad arguments for tool '%s': %s", call.name, exc)
            return f"Error: invalid arguments for tool '{call.name}': {exc}"

        entry = self._registry.get(call.name)
        if entry is None:
            logger.warning("Model requested unknown tool '%s'", call.name)
            return f"Error: unknown tool '{call.name}'"

        logger.info("Calling %s tool %s with %s", entry.tool.source, call.name, arguments)
        t0 = time.perf_counter()
        try:
            output = _to_text(entry.handler.invoke(call.name, arguments))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool '%s' failed: %s", call.name, exc)
            return f"Error: tool '{call.name}' failed: {exc}"

        elapsed_ms = int((time.perf_counter() - t0) * 1000)
        logger.debug("Tool %s returned %d chars in %dms", call.name, len(output), elapsed_ms)
        return output
