"""Exception hierarchy for the digest pipeline, scheduler and store."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from news_digest.models import SummaryDraft


class DigestError(Exception):
    """Base class for all errors raised by news-digest."""


class PipelineError(DigestError):
    """A pipeline phase failed; the run is terminal.

    ``partial`` holds the extract/transform artifacts computed before the
    failure (set only when a late phase, i.e. publishing, fails).
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.partial: SummaryDraft | None = None


class UnexpectedToolCall(PipelineError):
    """The reasoning service did not invoke exactly the expected tool."""

    def __init__(self, expected: str, received: list[str]) -> None:
        self.expected = expected
        self.received = list(received)
        if not received:
            detail = "no tool invocation"
        else:
            detail = ", ".join(received)
        super().__init__(f"Expected a single call to '{expected}', got: {detail}")


class MissingPublishArgument(PipelineError):
    """The publish invocation lacked a non-empty string message."""


class FeedFetchError(PipelineError):
    """A feed source could not be fetched or parsed."""

    def __init__(self, source_name: str, source_url: str, cause: BaseException | str) -> None:
        self.source_name = source_name
        self.source_url = source_url
        self.cause = cause
        super().__init__(
            f'Failed to process feed from "{source_name}" ({source_url}). Reason: {cause}. '
            "Please check if the URL is a valid RSS feed."
        )


class ServiceUnavailable(PipelineError):
    """The reasoning service could not be reached or is not configured."""


class DeliveryError(PipelineError):
    """The webhook rejected the message or could not be reached."""

    def __init__(self, status_code: int | None, body: str) -> None:
        self.status_code = status_code
        self.body = body
        if status_code is None:
            message = f"Webhook delivery failed: {body}"
        else:
            message = f"Webhook delivery failed with status {status_code}: {body}"
        super().__init__(message)


class InvalidCronExpression(DigestError):
    """A schedule was enabled with an expression that is not a valid cron string."""

    def __init__(self, expression: str) -> None:
        self.expression = expression
        super().__init__(f"Invalid cron expression: {expression!r}")


class SourceNotFound(DigestError):
    def __init__(self, source_id: str) -> None:
        self.source_id = source_id
        super().__init__(f"News source not found: {source_id}")
