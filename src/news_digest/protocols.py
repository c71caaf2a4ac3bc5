"""Structural protocols for the orchestrator's collaborators.

The live implementations (:class:`ReasoningClient`, :class:`FeedAggregator`,
:class:`WebhookPublisher`) satisfy these via structural typing, and tests
substitute fakes without subclassing.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from news_digest.models import PublishAck
    from news_digest.news.models import FeedSource, NewsItem
    from news_digest.reasoning.tools import ConversationTurn, ServiceResponse, ToolSchema


class ReasoningService(Protocol):
    def converse(self, history: Sequence[ConversationTurn], tools: Sequence[ToolSchema]) -> ServiceResponse: ...


class FeedFetcher(Protocol):
    def fetch_all(self, sources: list[FeedSource]) -> list[NewsItem]: ...


class Publisher(Protocol):
    def publish(self, message: str) -> PublishAck: ...
