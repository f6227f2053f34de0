"""
trae-agent providers module.

This module provides the chat-completion endpoints the agent talks to.
"""

from traeagent.providers.base import (
    ChatProvider,
    ChatResponse,
    HTTPChatProvider,
    ModelCallError,
    OpenAIChatProvider,
    ProviderFactory,
)

__all__ = [
    "ChatProvider",
    "ChatResponse",
    "HTTPChatProvider",
    "ModelCallError",
    "OpenAIChatProvider",
    "ProviderFactory",
]
