"""Tests for the ETL orchestrator and its pipeline state machine."""

import json
import logging
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from news_digest.config import AppConfig
from news_digest.errors import (
    DeliveryError,
    FeedFetchError,
    MissingPublishArgument,
    ServiceUnavailable,
    UnexpectedToolCall,
)
from news_digest.models import PublishAck
from news_digest.monitoring.logging import JSONFormatter
from news_digest.news.aggregator import FeedAggregator
from news_digest.news.models import NewsItem
from news_digest.orchestrator import Orchestrator, PipelineState
from news_digest.publisher import WebhookPublisher
from news_digest.reasoning.tools import ServiceResponse, ToolInvocation


def _fetch_call() -> ServiceResponse:
    return ServiceResponse(
        tool_invocations=[ToolInvocation(id="call_1", name="fetch_news", arguments={"category": "topic", "limit": 5})]
    )


def _publish_call(message: str = "Daily digest: ...") -> ServiceResponse:
    return ServiceResponse(
        tool_invocations=[ToolInvocation(id="call_2", name="post_message", arguments={"message": message})]
    )


def _items(n: int, prefix: str = "Story") -> list[NewsItem]:
    return [NewsItem(title=f"{prefix} {i}", url=f"https://example.com/{i}", snippet=f"Snippet {i}") for i in range(n)]


@pytest.fixture
def reasoning() -> MagicMock:
    mock = MagicMock()
    mock.converse.side_effect = [_fetch_call(), _publish_call()]
    return mock


@pytest.fixture
def aggregator() -> MagicMock:
    mock = MagicMock()
    mock.fetch_all.return_value = _items(3)
    return mock


@pytest.fixture
def publisher() -> MagicMock:
    mock = MagicMock()
    mock.publish.return_value = PublishAck(
        delivered=True, status_code=200, detail="Successfully posted message to webhook."
    )
    return mock


@pytest.fixture
def orch(tmp_path: Path, reasoning, aggregator, publisher):
    orchestrator = Orchestrator(
        config=AppConfig(),
        db_path=tmp_path / "test.db",
        reasoning=reasoning,
        aggregator=aggregator,
        publisher=publisher,
    )
    yield orchestrator
    orchestrator.close()


# ---------------------------------------------------------------------------
# generate_summary
# ---------------------------------------------------------------------------


def test_generate_summary_returns_draft(orch, reasoning, aggregator, publisher):
    draft = orch.generate_summary()

    assert [i.title for i in draft.extract] == ["Story 0", "Story 1", "Story 2"]
    assert draft.transform.description == "Daily digest: ..."
    assert draft.transform.invocation.name == "post_message"
    assert reasoning.converse.call_count == 2
    publisher.publish.assert_not_called()


def test_generate_summary_feeds_items_back_as_tool_result(orch, reasoning):
    orch.generate_summary()

    history = reasoning.converse.call_args_list[1].args[0]
    assert [turn.role for turn in history] == ["user", "assistant", "tool"]
    assert history[1].invocation.name == "fetch_news"
    assert history[2].invocation.id == "call_1"
    assert [item["title"] for item in history[2].result["news"]] == ["Story 0", "Story 1", "Story 2"]


def test_aggregator_receives_persisted_sources(orch, aggregator):
    a = orch.db.add_source("A", "https://a.example.com/rss")
    b = orch.db.add_source("B", "https://b.example.com/rss")
    orch.generate_summary()
    assert aggregator.fetch_all.call_args.args[0] == [a, b]


def test_wrong_first_tool_never_fetches_or_publishes(orch, reasoning, aggregator, publisher):
    reasoning.converse.side_effect = [_publish_call("Sneaky")]
    with pytest.raises(UnexpectedToolCall):
        orch.generate_summary()
    aggregator.fetch_all.assert_not_called()
    publisher.publish.assert_not_called()


def test_text_reply_on_second_turn_fails(orch, reasoning, publisher):
    reasoning.converse.side_effect = [_fetch_call(), ServiceResponse(text="Here is your digest.")]
    with pytest.raises(UnexpectedToolCall):
        orch.generate_summary()
    publisher.publish.assert_not_called()


def test_two_invocations_in_one_turn_fail(orch, reasoning, aggregator):
    double = ServiceResponse(tool_invocations=_fetch_call().tool_invocations * 2)
    reasoning.converse.side_effect = [double]
    with pytest.raises(UnexpectedToolCall):
        orch.generate_summary()
    aggregator.fetch_all.assert_not_called()


def test_empty_message_fails_transform(orch, reasoning, publisher):
    reasoning.converse.side_effect = [_fetch_call(), _publish_call("")]
    with pytest.raises(MissingPublishArgument):
        orch.generate_summary()
    publisher.publish.assert_not_called()


def test_feed_failure_stops_the_run(orch, reasoning, aggregator):
    aggregator.fetch_all.side_effect = FeedFetchError("B", "https://b.example.com/rss", "timed out")
    with pytest.raises(FeedFetchError, match='"B"'):
        orch.generate_summary()
    assert reasoning.converse.call_count == 1


def test_service_unavailable_propagates(orch, reasoning, aggregator):
    reasoning.converse.side_effect = ServiceUnavailable("Reasoning service is not configured")
    with pytest.raises(ServiceUnavailable):
        orch.generate_summary()
    aggregator.fetch_all.assert_not_called()


def test_regenerate_starts_fresh_run(orch, reasoning, aggregator):
    reasoning.converse.side_effect = [_fetch_call(), _publish_call("First"), _fetch_call(), _publish_call("Second")]
    aggregator.fetch_all.side_effect = [_items(2, "Old"), _items(3, "New")]

    first = orch.generate_summary()
    second = orch.generate_summary()

    assert first.transform.description == "First"
    assert second.transform.description == "Second"
    assert [i.title for i in second.extract] == ["New 0", "New 1", "New 2"]
    assert aggregator.fetch_all.call_count == 2
    assert len(reasoning.converse.call_args_list[3].args[0]) == 3


def test_generate_summary_records_draft(orch):
    orch.generate_summary()
    runs = orch.get_recent_runs()
    assert runs[0]["mode"] == "interactive"
    assert runs[0]["status"] == "drafted"
    assert runs[0]["item_count"] == 3


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def test_state_trail_of_interactive_run(orch):
    run = orch._new_run()
    run.extract_and_transform()
    assert run.trail == [
        PipelineState.IDLE,
        PipelineState.EXTRACT_REQUESTED,
        PipelineState.EXTRACTING,
        PipelineState.TRANSFORM_REQUESTED,
        PipelineState.AWAITING_PUBLISH_DECISION,
    ]
    run.publish("approved text")
    assert run.state is PipelineState.DONE


def test_failed_run_is_terminal(orch, reasoning):
    reasoning.converse.side_effect = [ServiceResponse()]
    run = orch._new_run()
    with pytest.raises(UnexpectedToolCall):
        run.extract_and_transform()
    assert run.state is PipelineState.FAILED
    with pytest.raises(RuntimeError, match="Illegal pipeline transition"):
        run.publish("anything")


def test_cannot_publish_before_transform(orch, publisher):
    run = orch._new_run()
    with pytest.raises(RuntimeError):
        run.publish("too early")
    publisher.publish.assert_not_called()


# ---------------------------------------------------------------------------
# post_summary
# ---------------------------------------------------------------------------


def test_post_summary_publishes_edited_text(orch, publisher):
    result = orch.post_summary("Edited digest")
    publisher.publish.assert_called_once_with("Edited digest")
    assert result["message"].delivered is True
    assert orch.get_recent_runs()[0]["status"] == "published"


@pytest.mark.parametrize("message", ["", "   "])
def test_post_summary_rejects_empty(orch, publisher, message):
    with pytest.raises(MissingPublishArgument):
        orch.post_summary(message)
    publisher.publish.assert_not_called()


def test_post_summary_delivery_failure_is_recorded(orch, publisher):
    publisher.publish.side_effect = DeliveryError(500, "boom")
    with pytest.raises(DeliveryError):
        orch.post_summary("hello")
    run = orch.get_recent_runs()[0]
    assert run["status"] == "failed"
    assert "500" in run["error"]


# ---------------------------------------------------------------------------
# run_full_process
# ---------------------------------------------------------------------------


def test_run_full_process_publishes_candidate_verbatim(orch, publisher):
    result = orch.run_full_process(mode="scheduled")
    publisher.publish.assert_called_once_with("Daily digest: ...")
    assert len(result.extracted) == 3
    assert result.transformed.description == "Daily digest: ..."
    assert result.published == "Successfully posted message to webhook."
    run = orch.get_recent_runs()[0]
    assert (run["mode"], run["status"]) == ("scheduled", "published")


def test_publish_failure_carries_partial_artifacts(orch, publisher):
    publisher.publish.side_effect = DeliveryError(500, "internal error")
    with pytest.raises(DeliveryError) as excinfo:
        orch.run_full_process()
    partial = excinfo.value.partial
    assert partial is not None
    assert len(partial.extract) == 3
    assert partial.transform.description == "Daily digest: ..."
    assert orch.get_recent_runs()[0]["status"] == "failed"


def test_early_failure_has_no_partial(orch, reasoning):
    reasoning.converse.side_effect = [ServiceResponse()]
    with pytest.raises(UnexpectedToolCall) as excinfo:
        orch.run_full_process()
    assert excinfo.value.partial is None


def test_unconfigured_webhook_completes_run(tmp_path, reasoning, aggregator, monkeypatch):
    monkeypatch.delenv("SLACK_WEBHOOK_URL", raising=False)
    orch = Orchestrator(
        config=AppConfig(),
        db_path=tmp_path / "test.db",
        reasoning=reasoning,
        aggregator=aggregator,
        publisher=WebhookPublisher(url_env="SLACK_WEBHOOK_URL"),
    )
    result = orch.run_full_process()
    assert "not configured" in result.published
    orch.close()


# ---------------------------------------------------------------------------
# End to end with real aggregator and publisher
# ---------------------------------------------------------------------------


def _rss(prefix: str, count: int) -> bytes:
    items = "".join(
        f"<item><title>{prefix} {i}</title><link>https://{prefix}.example.com/{i}</link>"
        f"<description>About {prefix} {i}</description></item>"
        for i in range(count)
    )
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>{prefix}</title>{items}</channel></rss>'.encode()


def test_end_to_end_two_sources(tmp_path, reasoning):
    hook = "https://hooks.example.com/services/T/B/X"
    feeds = {"https://a.example.com/rss": _rss("a", 2), "https://b.example.com/rss": _rss("b", 3)}
    posted: list[bytes] = []

    def fake_urlopen(req, timeout=None):
        resp = MagicMock()
        resp.__enter__.return_value = resp
        if req.full_url == hook:
            posted.append(req.data)
            resp.status = 200
            resp.read.return_value = b"ok"
        else:
            resp.read.return_value = feeds[req.full_url]
        return resp

    orch = Orchestrator(
        config=AppConfig(),
        db_path=tmp_path / "test.db",
        reasoning=reasoning,
        aggregator=FeedAggregator(),
        publisher=WebhookPublisher(hook),
    )
    orch.db.add_source("A", "https://a.example.com/rss")
    orch.db.add_source("B", "https://b.example.com/rss")

    with patch("urllib.request.urlopen", side_effect=fake_urlopen):
        result = orch.run_full_process()

    assert [i.title for i in result.extracted] == ["a 0", "a 1", "b 0", "b 1", "b 2"]
    assert result.published == "Successfully posted message to webhook."
    assert posted == [b'{"text": "Daily digest: ..."}']
    orch.close()


def test_run_logs_carry_structured_context(orch, caplog):
    caplog.set_level(logging.DEBUG, logger="news_digest.orchestrator")
    orch.run_full_process(mode="scheduled")

    contexts = [r.extra_data for r in caplog.records if hasattr(r, "extra_data")]
    run_ids = {ctx["run_id"] for ctx in contexts}
    assert len(run_ids) == 1
    assert {"from": "publishing", "to": "done"}.items() <= contexts[-2].items()
    assert contexts[-1]["mode"] == "scheduled"
    assert contexts[-1]["delivered"] is True

    completed = next(r for r in caplog.records if "ETL process completed" in r.getMessage())
    data = json.loads(JSONFormatter().format(completed))["data"]
    assert data["mode"] == "scheduled"
