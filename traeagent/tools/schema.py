"""Data models for tool definitions, tool calls and conversation messages."""

from __future__ import annotations

import json
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field

Role = Literal["system", "user", "assistant", "tool"]

# JSON-schema keys that map onto ToolParam fields; everything else is ``extra``.
_PARAM_KEYS = {"type", "description", "default"}


class ArgumentParseError(ValueError):
    """Raised when tool-call arguments are not a JSON object."""


def parse_arguments(raw: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    """
    Decode tool-call arguments as transmitted by the model.

    Empty text means no arguments. Some endpoints send an already-decoded
    object, which is accepted as is.
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not raw.strip():
        return {}
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise ArgumentParseError(f"arguments are not valid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise ArgumentParseError(f"arguments must be a JSON object, got {type(value).__name__}")
    return value


class ToolParam(BaseModel):
    """A single parameter for a tool."""

    name: str
    # None when the property is typed through anyOf/oneOf/$ref instead.
    type: Optional[Union[str, List[str]]] = "string"
    description: str = ""
    required: bool = False
    default: Any = None
    extra: Dict[str, Any] = Field(default_factory=dict)  # enum, items, anyOf, ...

    def json_schema(self) -> Dict[str, Any]:
        schema: Dict[str, Any] = {}
        if self.type is not None:
            schema["type"] = self.type
        if self.description:
            schema["description"] = self.description
        if self.default is not None:
            schema["default"] = self.default
        schema.update(self.extra)
        return schema

    @classmethod
    def from_json_schema(cls, name: str, schema: Any, required: bool = False) -> "ToolParam":
        """
        Build a parameter from one JSON-schema property.

        Raises ValueError for a property schema that is not an object. The
        boolean schemas ``true``/``false`` are read as an untyped property.
        """
        if isinstance(schema, bool) or schema is None:
            schema = {}
        if not isinstance(schema, dict):
            raise ValueError(f"schema for parameter '{name}' must be an object, got {type(schema).__name__}")
        return cls(
            name=name,
            type=schema.get("type"),
            description=schema.get("description") or "",
            required=required,
            default=schema.get("default"),
            extra={k: v for k, v in schema.items() if k not in _PARAM_KEYS},
        )


class ToolDef(BaseModel):
    """Tool descriptor shared by built-in and MCP-discovered tools."""

    name: str
    description: str = ""
    params: List[ToolParam] = Field(default_factory=list)
    source: Literal["builtin", "mcp"] = "builtin"

    @property
    def required_params(self) -> List[str]:
        return [p.name for p in self.params if p.required]

    # ── Conversions ───────────────────────────────────────────────────────

    @classmethod
    def from_mcp(cls, raw: Dict[str, Any]) -> "ToolDef":
        """
        Convert an MCP ``tools/list`` entry (``inputSchema``) into a ToolDef.

        Raises ValueError (pydantic's ValidationError included) when the
        entry cannot be represented.
        """
        if not isinstance(raw, dict) or not isinstance(raw.get("name"), str):
            raise ValueError(f"malformed tool definition: {raw!r}")
        input_schema = raw.get("inputSchema") or {}
        if not isinstance(input_schema, dict):
            raise ValueError(f"inputSchema of tool '{raw['name']}' must be an object")
        properties = input_schema.get("properties") or {}
        if not isinstance(properties, dict):
            raise ValueError(f"properties of tool '{raw['name']}' must be an object")
        required = input_schema.get("required") or []
        if not isinstance(required, list):
            raise ValueError(f"required of tool '{raw['name']}' must be a list")
        required = set(map(str, required))
        return cls(
            name=raw["name"],
            description=raw.get("description") or "",
            params=[
                ToolParam.from_json_schema(pname, pinfo, required=pname in required)
                for pname, pinfo in properties.items()
            ],
            source="mcp",
        )

    def to_openai(self) -> Dict[str, Any]:
        """Chat-completion ``tools`` entry for this tool."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {p.name: p.json_schema() for p in self.params},
                    "required": self.required_params,
                },
            },
        }

    @classmethod
    def from_openai(cls, schema: Dict[str, Any], source: Literal["builtin", "mcp"] = "builtin") -> "ToolDef":
        """Inverse of :meth:`to_openai`."""
        function = schema.get("function", schema)
        parameters = function.get("parameters") or {}
        required = set(parameters.get("required") or [])
        return cls(
            name=function["name"],
            description=function.get("description", ""),
            params=[
                ToolParam.from_json_schema(pname, pinfo, required=pname in required)
                for pname, pinfo in (parameters.get("properties") or {}).items()
            ],
            source=source,
        )


class ToolCallRequest(BaseModel):
    """A tool invocation requested by the model; ``arguments`` is the raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"

    @classmethod
    def from_mapping(cls, id: str, name: str, arguments: Optional[Dict[str, Any]] = None) -> "ToolCallRequest":
        return cls(id=id, name=name, arguments=json.dumps(arguments or {}))

    def parse_arguments(self) -> Dict[str, Any]:
        """Decode ``arguments``; raises ArgumentParseError when it is not a JSON object."""
        return parse_arguments(self.arguments)

    def to_openai(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class Message(BaseModel):
    """One entry of the conversation history."""

    role: Role
    content: str = ""
    tool_calls: Optional[List[ToolCallRequest]] = None
    tool_call_id: Optional[str] = None

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: Optional[str] = "", tool_calls: Optional[List[ToolCallRequest]] = None) -> "Message":
        return cls(role="assistant", content=content or "", tool_calls=tool_calls or None)

    @classmethod
    def tool(cls, tool_call_id: str, content: str) -> "Message":
        return cls(role="tool", content=content, tool_call_id=tool_call_id)

    def to_openai(self) -> Dict[str, Any]:
        """Render as a chat-completion ``messages`` entry."""
        data: Dict[str, Any] = {"role": self.role, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [call.to_openai() for call in self.tool_calls]
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        return data
