"""Tool schemas, conversation turns and invocation parsing.

The reasoning service emits free-form, schema-described tool calls. They
are mapped here onto the closed set of shapes the orchestrator accepts
(:class:`FetchRequest` and :class:`PublishRequest`); anything else is
rejected at this boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

from news_digest.errors import MissingPublishArgument, UnexpectedToolCall
from news_digest.prompts import FETCH_TOOL_NAME, PUBLISH_TOOL_NAME


@dataclass(frozen=True)
class ToolSchema:
    """Provider-neutral declaration of a callable tool."""

    name: str
    description: str
    parameters: dict[str, Any]


FETCH_TOOL = ToolSchema(
    name=FETCH_TOOL_NAME,
    description="Fetch the latest news items from the configured feed sources as JSON.",
    parameters={
        "type": "object",
        "properties": {
            "category": {
                "type": "string",
                "description": "News category to fetch. Always 'topic'.",
            },
            "limit": {
                "type": "integer",
                "description": "Number of items to fetch. Always 5.",
            },
        },
        "required": ["category", "limit"],
    },
)

PUBLISH_TOOL = ToolSchema(
    name=PUBLISH_TOOL_NAME,
    description="Post a formatted text message to the team messaging channel.",
    parameters={
        "type": "object",
        "properties": {
            "message": {
                "type": "string",
                "description": "The formatted message body to post.",
            },
        },
        "required": ["message"],
    },
)

PIPELINE_TOOLS: tuple[ToolSchema, ...] = (FETCH_TOOL, PUBLISH_TOOL)


class ToolInvocation(BaseModel):
    """A request from the reasoning service to run a named tool."""

    id: str = ""
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


@dataclass
class ConversationTurn:
    """One provider-neutral turn of the tool-calling conversation.

    ``user`` turns carry ``text``; ``assistant`` turns carry the tool
    ``invocation`` they made; ``tool`` turns carry the ``result`` of the
    invocation they answer.
    """

    role: Literal["user", "assistant", "tool"]
    text: str = ""
    invocation: ToolInvocation | None = None
    result: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def user(cls, text: str) -> ConversationTurn:
        return cls(role="user", text=text)

    @classmethod
    def tool_call(cls, invocation: ToolInvocation) -> ConversationTurn:
        return cls(role="assistant", invocation=invocation)

    @classmethod
    def tool_result(cls, invocation: ToolInvocation, result: dict[str, Any]) -> ConversationTurn:
        return cls(role="tool", invocation=invocation, result=result)


@dataclass
class ServiceResponse:
    """What the reasoning service returned for one turn."""

    tool_invocations: list[ToolInvocation] = field(default_factory=list)
    text: str | None = None

    @property
    def tool_invocation(self) -> ToolInvocation | None:
        """The sole invocation, or None when there are zero or several."""
        if len(self.tool_invocations) == 1:
            return self.tool_invocations[0]
        return None


class FetchRequest(BaseModel):
    """Typed fetch-tool call. The arguments are hints only."""

    invocation: ToolInvocation
    category: str | None = None
    limit: int | None = None


class PublishRequest(BaseModel):
    """Typed publish-tool call carrying the candidate message."""

    invocation: ToolInvocation
    message: str


def _sole_invocation(response: ServiceResponse, expected: str) -> ToolInvocation:
    invocation = response.tool_invocation
    if invocation is None or invocation.name != expected:
        raise UnexpectedToolCall(expected, [inv.name for inv in response.tool_invocations])
    return invocation


def parse_fetch_request(response: ServiceResponse) -> FetchRequest:
    """Require exactly one fetch-tool invocation."""
    invocation = _sole_invocation(response, FETCH_TOOL.name)
    args = invocation.arguments
    category = args.get("category")
    limit = args.get("limit")
    return FetchRequest(
        invocation=invocation,
        category=str(category) if category is not None else None,
        limit=limit if isinstance(limit, int) and not isinstance(limit, bool) else None,
    )


def parse_publish_request(response: ServiceResponse) -> PublishRequest:
    """Require exactly one publish-tool invocation with a non-empty message."""
    invocation = _sole_invocation(response, PUBLISH_TOOL.name)
    message = invocation.arguments.get("message")
    if not isinstance(message, str) or not message.strip():
        raise MissingPublishArgument(f"'{PUBLISH_TOOL.name}' was called without a non-empty 'message' argument")
    return PublishRequest(invocation=invocation, message=message)
