"""Reasoning-service client and tool-calling protocol types."""

from news_digest.reasoning.client import ReasoningClient
from news_digest.reasoning.tools import ConversationTurn, ServiceResponse, ToolInvocation

__all__ = ["ConversationTurn", "ReasoningClient", "ServiceResponse", "ToolInvocation"]
