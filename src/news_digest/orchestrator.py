"""ETL orchestrator: drives the two-turn tool-calling pipeline.

A run walks an explicit state machine::

    IDLE -> EXTRACT_REQUESTED -> EXTRACTING -> TRANSFORM_REQUESTED
         -> AWAITING_PUBLISH_DECISION -> PUBLISHING -> DONE

with ``FAILED`` reachable from every non-terminal state. The first model
turn must be a single call to the fetch tool; the aggregator then runs
locally against the persisted source list (the model never reaches the
store); the second turn must be a single call to the publish tool with a
non-empty message. Interactive callers stop at the publish checkpoint,
scheduled runs publish the candidate message verbatim.

Every public call builds its own :class:`_PipelineRun`, so concurrent
calls (a manual run overlapping a scheduled tick) share no mutable state.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from pathlib import Path
from typing import Any, Literal

from news_digest.config import AppConfig
from news_digest.db import Database
from news_digest.errors import MissingPublishArgument, PipelineError
from news_digest.models import PipelineResult, PublishAck, SummaryDraft, TransformResult
from news_digest.news.aggregator import FeedAggregator
from news_digest.news.models import NewsItem
from news_digest.protocols import FeedFetcher, Publisher, ReasoningService
from news_digest.publisher import WebhookPublisher
from news_digest.reasoning.client import ReasoningClient
from news_digest.reasoning.tools import (
    PIPELINE_TOOLS,
    ConversationTurn,
    parse_fetch_request,
    parse_publish_request,
)

logger = logging.getLogger(__name__)

RunMode = Literal["interactive", "scheduled", "manual"]


class PipelineState(str, Enum):
    IDLE = "idle"
    EXTRACT_REQUESTED = "extract_requested"
    EXTRACTING = "extracting"
    TRANSFORM_REQUESTED = "transform_requested"
    AWAITING_PUBLISH_DECISION = "awaiting_publish_decision"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


_TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.EXTRACT_REQUESTED, PipelineState.FAILED}),
    PipelineState.EXTRACT_REQUESTED: frozenset({PipelineState.EXTRACTING, PipelineState.FAILED}),
    PipelineState.EXTRACTING: frozenset({PipelineState.TRANSFORM_REQUESTED, PipelineState.FAILED}),
    PipelineState.TRANSFORM_REQUESTED: frozenset({PipelineState.AWAITING_PUBLISH_DECISION, PipelineState.FAILED}),
    PipelineState.AWAITING_PUBLISH_DECISION: frozenset({PipelineState.PUBLISHING, PipelineState.FAILED}),
    PipelineState.PUBLISHING: frozenset({PipelineState.DONE, PipelineState.FAILED}),
    PipelineState.DONE: frozenset(),
    PipelineState.FAILED: frozenset(),
}


class _PipelineRun:
    """State machine and conversation history for a single pipeline run."""

    def __init__(
        self,
        *,
        reasoning: ReasoningService,
        aggregator: FeedFetcher,
        publisher: Publisher,
        database: Database,
        user_prompt: str,
    ) -> None:
        self.run_id = uuid.uuid4().hex[:8]
        self.state = PipelineState.IDLE
        self.trail: list[PipelineState] = [PipelineState.IDLE]
        self.history: list[ConversationTurn] = []
        self.extracted: list[NewsItem] = []
        self.transformed: TransformResult | None = None
        self._reasoning = reasoning
        self._aggregator = aggregator
        self._publisher = publisher
        self._db = database
        self._user_prompt = user_prompt

    def _advance(self, new_state: PipelineState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal pipeline transition {self.state.value} -> {new_state.value}")
        logger.debug(
            "[run %s] %s -> %s",
            self.run_id,
            self.state.value,
            new_state.value,
            extra={"extra_data": {"run_id": self.run_id, "from": self.state.value, "to": new_state.value}},
        )
        self.state = new_state
        self.trail.append(new_state)

    def _fail(self) -> None:
        if self.state not in (PipelineState.DONE, PipelineState.FAILED):
            self._advance(PipelineState.FAILED)

    @property
    def draft(self) -> SummaryDraft | None:
        if self.transformed is None:
            return None
        return SummaryDraft(extract=list(self.extracted), transform=self.transformed)

    def extract_and_transform(self) -> SummaryDraft:
        """Run the protocol up to the publish checkpoint."""
        try:
            self._advance(PipelineState.EXTRACT_REQUESTED)
            self.history.append(ConversationTurn.user(self._user_prompt))
            fetch = parse_fetch_request(self._reasoning.converse(self.history, PIPELINE_TOOLS))
            logger.info(
                "[run %s] Model requested %s (category=%s, limit=%s)",
                self.run_id,
                fetch.invocation.name,
                fetch.category,
                fetch.limit,
            )

            # The declared arguments are hints; the persisted sources are authoritative.
            self._advance(PipelineState.EXTRACTING)
            sources = self._db.list_sources()
            self.extracted = self._aggregator.fetch_all(sources)
            logger.info(
                "[run %s] Extracted %d items from %d sources",
                self.run_id,
                len(self.extracted),
                len(sources),
                extra={"extra_data": {"run_id": self.run_id, "items": len(self.extracted), "sources": len(sources)}},
            )

            self._advance(PipelineState.TRANSFORM_REQUESTED)
            self.history.append(ConversationTurn.tool_call(fetch.invocation))
            self.history.append(
                ConversationTurn.tool_result(
                    fetch.invocation, {"news": [item.model_dump() for item in self.extracted]}
                )
            )
            publish = parse_publish_request(self._reasoning.converse(self.history, PIPELINE_TOOLS))
            self.transformed = TransformResult(description=publish.message, invocation=publish.invocation)
            logger.info("[run %s] Model produced a %d-character message", self.run_id, len(publish.message))

            self._advance(PipelineState.AWAITING_PUBLISH_DECISION)
        except Exception:
            self._fail()
            raise
        return SummaryDraft(extract=list(self.extracted), transform=self.transformed)

    def publish(self, message: str) -> PublishAck:
        """Deliver the (possibly edited) message from the publish checkpoint."""
        self._advance(PipelineState.PUBLISHING)
        try:
            ack = self._publisher.publish(message)
        except PipelineError as exc:
            exc.partial = self.draft
            self._fail()
            raise
        except Exception:
            self._fail()
            raise
        self._advance(PipelineState.DONE)
        return ack


class Orchestrator:
    """Compose aggregator, reasoning client and publisher into the ETL pipeline."""

    def __init__(
        self,
        config: AppConfig,
        db_path: Path,
        *,
        reasoning: ReasoningService | None = None,
        aggregator: FeedFetcher | None = None,
        publisher: Publisher | None = None,
    ) -> None:
        self._config = config
        self._db = Database(db_path)
        self._reasoning: ReasoningService = reasoning if reasoning is not None else self._build_reasoning(config)
        self._aggregator: FeedFetcher = aggregator if aggregator is not None else self._build_aggregator(config)
        self._publisher: Publisher = publisher if publisher is not None else self._build_publisher(config)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def generate_summary(self) -> SummaryDraft:
        """Run extract and transform, pausing at the publish checkpoint.

        Calling this again is how a draft is regenerated: a new run starts
        from ``IDLE`` and nothing from earlier runs is reused.
        """
        run = self._new_run()
        logger.info("[run %s] Generating summary", run.run_id)
        try:
            draft = run.extract_and_transform()
        except Exception as exc:
            logger.error("[run %s] Summary generation failed: %s", run.run_id, exc)
            self._record_run("interactive", "failed", error=str(exc))
            raise
        self._record_run("interactive", "drafted", item_count=len(draft.extract), message=draft.transform.description)
        return draft

    def post_summary(self, message: str) -> dict[str, PublishAck]:
        """Publish a caller-approved message (the load phase of an interactive run)."""
        if not isinstance(message, str) or not message.strip():
            raise MissingPublishArgument("Summary must be a non-empty string.")
        try:
            ack = self._publisher.publish(message)
        except Exception as exc:
            logger.error("Posting summary failed: %s", exc)
            self._record_run("interactive", "failed", message=message, error=str(exc))
            raise
        self._record_run("interactive", "published", message=message)
        return {"message": ack}

    def run_full_process(self, *, mode: RunMode = "manual") -> PipelineResult:
        """Run every phase non-interactively, publishing the candidate message verbatim."""
        run = self._new_run()
        logger.info("[run %s] Starting full ETL process (%s)", run.run_id, mode)
        try:
            draft = run.extract_and_transform()
            ack = run.publish(draft.transform.description)
        except Exception as exc:
            logger.error("[run %s] ETL process failed in state %s: %s", run.run_id, run.state.value, exc)
            self._record_run(mode, "failed", item_count=len(run.extracted), error=str(exc))
            raise
        logger.info(
            "[run %s] ETL process completed: %s",
            run.run_id,
            ack.detail,
            extra={"extra_data": {"run_id": run.run_id, "mode": mode, "delivered": ack.delivered}},
        )
        self._record_run(mode, "published", item_count=len(draft.extract), message=draft.transform.description)
        return PipelineResult(extracted=draft.extract, transformed=draft.transform, published=ack.detail)

    def get_recent_runs(self, limit: int = 20) -> list[dict[str, object]]:
        """Return recent pipeline runs from the database."""
        return self._db.get_runs(limit=limit)

    @property
    def db(self) -> Database:
        """Public access to the database."""
        return self._db

    @property
    def config(self) -> AppConfig:
        return self._config

    def close(self) -> None:
        """Release resources (database connection)."""
        self._db.close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _new_run(self) -> _PipelineRun:
        return _PipelineRun(
            reasoning=self._reasoning,
            aggregator=self._aggregator,
            publisher=self._publisher,
            database=self._db,
            user_prompt=self._config.prompts.user_prompt,
        )

    def _record_run(self, mode: str, status: str, **fields: Any) -> None:
        """Log a run to the DB (best effort)."""
        try:
            self._db.record_run(mode=mode, status=status, **fields)
        except Exception:
            logger.exception("Failed to record %s run", mode)

    @staticmethod
    def _build_reasoning(config: AppConfig) -> ReasoningService:
        return ReasoningClient(config.reasoning, config.prompts.system_instruction)

    @staticmethod
    def _build_aggregator(config: AppConfig) -> FeedFetcher:
        feeds = config.feeds
        return FeedAggregator(
            max_items_per_source=feeds.max_items_per_source,
            snippet_max_length=feeds.snippet_max_length,
            timeout=feeds.timeout,
            max_workers=feeds.max_workers,
            user_agent=feeds.user_agent,
        )

    @staticmethod
    def _build_publisher(config: AppConfig) -> Publisher:
        pub = config.publisher
        return WebhookPublisher(pub.webhook_url, url_env=pub.webhook_url_env, timeout=pub.timeout)
