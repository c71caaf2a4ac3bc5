"""Feed aggregation package."""

from news_digest.news.aggregator import FeedAggregator
from news_digest.news.models import FeedSource, NewsItem

__all__ = ["FeedAggregator", "FeedSource", "NewsItem"]
