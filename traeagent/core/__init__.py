"""
trae-agent core module.

Provides the conversation loop and the session wiring it to its tools.
"""

from traeagent.core.agent import Agent, LoopState, TurnResult
from traeagent.core.session import AgentSession

__all__ = ["Agent", "AgentSession", "LoopState", "TurnResult"]
