"""Pipeline result and schedule models."""

from pydantic import BaseModel

from news_digest.news.models import NewsItem
from news_digest.reasoning.tools import ToolInvocation


class TransformResult(BaseModel):
    """Output of the transform phase.

    ``description`` is the candidate message; ``invocation`` is the
    publish-tool call exactly as the reasoning service emitted it.
    """

    description: str
    invocation: ToolInvocation


class SummaryDraft(BaseModel):
    """Extract and transform artifacts awaiting a publish decision."""

    extract: list[NewsItem]
    transform: TransformResult


class PublishAck(BaseModel):
    """Acknowledgement returned by the publisher."""

    delivered: bool
    status_code: int | None = None
    detail: str


class PipelineResult(BaseModel):
    """Artifacts of a completed non-interactive run."""

    extracted: list[NewsItem]
    transformed: TransformResult
    published: str


class ScheduleConfig(BaseModel):
    """The persisted singleton schedule."""

    cron: str = ""
    enabled: bool = False
