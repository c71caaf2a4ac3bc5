"""Fail-fast aggregation of syndication feeds.

Every source is fetched with a bounded timeout and parsed with
``feedparser``. The first source that cannot be fetched or parsed aborts
the whole aggregation with a :class:`FeedFetchError` naming it; a
silently incomplete article set is never returned.
"""

from __future__ import annotations

import html
import logging
import re
import urllib.request
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

import feedparser

from news_digest.errors import FeedFetchError
from news_digest.news.models import FeedSource, NewsItem

logger = logging.getLogger(__name__)

_DEFAULT_MAX_ITEMS: int = 5
_DEFAULT_SNIPPET_LEN: int = 100
_DEFAULT_TIMEOUT: float = 15.0

_NO_TITLE = "No Title"
_NO_URL = "#"
_NO_SNIPPET = "No snippet available."
_ELLIPSIS = "..."

_TAG_RE = re.compile(r"<[^>]+>")
_SPACE_RE = re.compile(r"\s+")


def _plain_text(markup: str) -> str:
    """Strip tags and collapse whitespace in a feed summary."""
    text = html.unescape(_TAG_RE.sub(" ", markup))
    return _SPACE_RE.sub(" ", text).strip()


def make_snippet(summary: str, max_len: int = _DEFAULT_SNIPPET_LEN) -> str:
    """Return a plain-text snippet capped at ``max_len`` characters.

    Truncation counts code points, not rendered width.
    """
    text = _plain_text(summary)
    if not text:
        return _NO_SNIPPET
    if len(text) > max_len:
        return text[:max_len] + _ELLIPSIS
    return text


class FeedAggregator:
    """Fetch and normalize items from a list of feed sources.

    ``max_workers > 1`` fetches sources concurrently; results are still
    consumed in source order so the first failing source (by position)
    is the one reported, and nothing after it is returned.
    """

    def __init__(
        self,
        *,
        max_items_per_source: int = _DEFAULT_MAX_ITEMS,
        snippet_max_length: int = _DEFAULT_SNIPPET_LEN,
        timeout: float = _DEFAULT_TIMEOUT,
        max_workers: int = 1,
        user_agent: str = "news-digest/0.1",
    ) -> None:
        self._max_items = max(0, max_items_per_source)
        self._snippet_len = max(1, snippet_max_length)
        self._timeout = timeout
        self._max_workers = max(1, max_workers)
        self._user_agent = user_agent

    def fetch_all(self, sources: list[FeedSource]) -> list[NewsItem]:
        """Return the first items of every source, concatenated in source order."""
        if not sources:
            return []
        if self._max_workers == 1 or len(sources) == 1:
            items: list[NewsItem] = []
            for source in sources:
                items.extend(self.fetch_source(source))
        else:
            items = self._fetch_concurrently(sources)
        logger.info("Aggregated %d items from %d sources", len(items), len(sources))
        return items

    def fetch_source(self, source: FeedSource) -> list[NewsItem]:
        """Fetch and normalize a single source, raising ``FeedFetchError`` on failure."""
        try:
            body = self._download(source.url)
            feed = feedparser.parse(body)
            entries = self._validated_entries(feed)
        except Exception as exc:
            logger.warning("Feed %s (%s) failed: %s", source.name, source.url, exc)
            raise FeedFetchError(source.name, source.url, exc) from exc
        return [self._normalize(entry) for entry in entries[: self._max_items]]

    def _fetch_concurrently(self, sources: list[FeedSource]) -> list[NewsItem]:
        items: list[NewsItem] = []
        executor = ThreadPoolExecutor(max_workers=min(self._max_workers, len(sources)))
        futures: list[Future[list[NewsItem]]] = [executor.submit(self.fetch_source, s) for s in sources]
        try:
            for future in futures:
                items.extend(future.result())
        finally:
            # Once a source fails, later results are never read.
            executor.shutdown(wait=False, cancel_futures=True)
        return items

    def _download(self, url: str) -> bytes:
        req = urllib.request.Request(url, headers={"User-Agent": self._user_agent})
        with urllib.request.urlopen(req, timeout=self._timeout) as resp:  # noqa: S310
            return resp.read()

    @staticmethod
    def _validated_entries(feed: Any) -> list[Any]:
        entries = list(feed.get("entries") or [])
        if feed.get("bozo") and not entries:
            cause = feed.get("bozo_exception") or "malformed feed"
            raise ValueError(str(cause))
        if not feed.get("version") and not entries:
            raise ValueError("Invalid or empty RSS feed structure returned.")
        return entries

    def _normalize(self, entry: Any) -> NewsItem:
        summary = entry.get("summary") or entry.get("description") or ""
        return NewsItem(
            title=(entry.get("title") or "").strip() or _NO_TITLE,
            url=(entry.get("link") or "").strip() or _NO_URL,
            snippet=make_snippet(summary, self._snippet_len),
        )
