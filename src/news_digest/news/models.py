"""Data models for feed sources and news items."""

from pydantic import BaseModel


class FeedSource(BaseModel):
    """A configured syndication feed."""

    id: str
    name: str
    url: str


class NewsItem(BaseModel):
    """A single normalized feed entry."""

    title: str
    url: str
    snippet: str
