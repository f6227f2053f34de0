"""
trae-agent Provider Base - Chat-completion endpoints with tool calling.

This module defines the interface the conversation loop talks to, two
implementations for OpenAI-compatible endpoints, and a factory choosing
between them from configuration.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

import httpx

from traeagent.tools.schema import Message, ToolCallRequest
from traeagent.validation.config import Config

logger = logging.getLogger(__name__)


class ModelCallError(Exception):
    """Raised when the chat-completion endpoint cannot produce a response."""


@dataclass
class ChatResponse:
    """One assistant message returned by the endpoint."""

    content: str
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    model: str = ""
    token_usage: int = 0
    finish_reason: str = "stop"

    @property
    def wants_tools(self) -> bool:
        return bool(self.tool_calls)


class ChatProvider(ABC):
    """
    Abstract base class for chat-completion providers.

    Implementations send the ordered conversation plus optional tool schemas
    and return either final text or the requested tool invocations. Every
    failure is raised as :class:`ModelCallError`; nothing is retried.
    """

    def __init__(self, model: str, config: Config):
        """
        Initialize the provider.

        Args:
            model: The model identifier.
            config: trae-agent configuration.
        """
        self.model = model
        self.config = config

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""

    @abstractmethod
    def complete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
    ) -> ChatResponse:
        """
        Generate the next assistant message.

        Args:
            messages: Full conversation, system message first.
            tools: Chat-completion tool schemas; None withdraws tool offering.
            tool_choice: ``"auto"``, ``"none"`` or ``"required"``.

        Returns:
            ChatResponse with text and/or tool calls.
        """

    def _request_options(self) -> Dict[str, Any]:
        agent = self.config.merged.agent
        options: Dict[str, Any] = {"temperature": agent.temperature}
        if agent.max_tokens:
            options["max_tokens"] = agent.max_tokens
        return options

    @staticmethod
    def _payload_tools(
        tools: Optional[List[Dict[str, Any]]], tool_choice: Optional[str]
    ) -> Dict[str, Any]:
        if not tools:
            return {}
        payload: Dict[str, Any] = {"tools": tools}
        if tool_choice:
            payload["tool_choice"] = tool_choice
        return payload


class OpenAIChatProvider(ChatProvider):
    """OpenAI SDK provider; ``base_url`` may point at any compatible server."""

    @property
    def provider_name(self) -> str:
        return "openai"

    def _client(self):
        try:
            import openai
        except ImportError:
            raise ImportError("openai package required. Install with: pip install trae-agent")

        provider = self.config.merged.provider
        return openai.OpenAI(
            api_key=self.config.get_api_key(),
            base_url=provider.base_url,
            timeout=self.config.merged.agent.timeout,
            max_retries=0,
        )

    def complete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
    ) -> ChatResponse:
        """Generate completion using the OpenAI SDK."""
        client = self._client()

        import openai

        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=[m.to_openai() for m in messages],
                **self._payload_tools(tools, tool_choice),
                **self._request_options(),
            )
        except openai.OpenAIError as exc:
            raise ModelCallError(f"{self.provider_name} request failed: {exc}") from exc

        if not response.choices:
            raise ModelCallError("Endpoint returned no choices")

        choice = response.choices[0]
        calls = [
            ToolCallRequest(
                id=tc.id,
                name=tc.function.name,
                arguments=tc.function.arguments or "{}",
            )
            for tc in (choice.message.tool_calls or [])
        ]
        return ChatResponse(
            content=choice.message.content or "",
            tool_calls=calls,
            model=response.model or self.model,
            token_usage=response.usage.total_tokens if response.usage else 0,
            finish_reason=choice.finish_reason or "stop",
        )


class HTTPChatProvider(ChatProvider):
    """
    Plain-HTTP client for an OpenAI-compatible ``/chat/completions`` API.

    Uses httpx directly, so self-hosted servers work without the SDK.
    """

    def __init__(self, model: str, config: Config, client: Optional[httpx.Client] = None):
        super().__init__(model, config)
        self._http = client

    @property
    def provider_name(self) -> str:
        return "http"

    def complete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: Optional[str] = None,
    ) -> ChatResponse:
        provider = self.config.merged.provider
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [m.to_openai() for m in messages],
            **self._payload_tools(tools, tool_choice),
            **self._request_options(),
        }
        headers = {
            "Authorization": f"Bearer {self.config.get_api_key()}",
            "Content-Type": "application/json",
        }
        url = f"{provider.base_url.rstrip('/')}/chat/completions"

        try:
            if self._http is not None:
                response = self._http.post(url, headers=headers, json=payload)
            else:
                response = httpx.post(
                    url, headers=headers, json=payload, timeout=self.config.merged.agent.timeout
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as exc:
            raise ModelCallError(f"{self.provider_name} request failed: {exc}") from exc
        except ValueError as exc:
            raise ModelCallError(f"Endpoint returned invalid JSON: {exc}") from exc

        return self._parse(data)

    def _parse(self, data: Dict[str, Any]) -> ChatResponse:
        try:
            choice = data["choices"][0]
            message = choice["message"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ModelCallError(f"Malformed chat completion response: {data}") from exc

        calls: List[ToolCallRequest] = []
        for tc in message.get("tool_calls") or []:
            function = tc.get("function") or {}
            arguments = function.get("arguments")
            if not isinstance(arguments, str):
                arguments = json.dumps(arguments or {})
            calls.append(ToolCallRequest(id=tc.get("id", ""), name=function.get("name", ""), arguments=arguments))

        usage = data.get("usage") or {}
        return ChatResponse(
            content=message.get("content") or "",
            tool_calls=calls,
            model=data.get("model", self.model),
            token_usage=usage.get("total_tokens", 0),
            finish_reason=choice.get("finish_reason") or "stop",
        )


class ProviderFactory:
    """Factory for creating provider instances."""

    _providers: Dict[str, Type[ChatProvider]] = {
        "openai": OpenAIChatProvider,
        "http": HTTPChatProvider,
    }

    @classmethod
    def register(cls, name: str, provider_class: Type[ChatProvider]) -> None:
        """Register a new provider."""
        cls._providers[name] = provider_class

    @classmethod
    def create(cls, config: Config) -> ChatProvider:
        """
        Create the provider selected by ``provider.kind``.

        Raises:
            ValueError: If the provider kind is not registered.
        """
        provider = config.merged.provider
        provider_class = cls._providers.get(provider.kind)
        if provider_class is None:
            raise ValueError(f"Unknown provider: {provider.kind}")
        if not provider.is_official:
            logger.info("Using custom OpenAI base URL: %s", provider.base_url)
        return provider_class(model=provider.model, config=config)

    @classmethod
    def available_providers(cls) -> List[str]:
        """Get list of available provider names."""
        return list(cls._providers.keys())
