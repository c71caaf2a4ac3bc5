"""Reasoning-service client: a thin tool-calling adapter over an LLM API.

Supports both OpenAI-compatible and Anthropic providers. Set ``provider``
to ``"openai"`` (any OpenAI-compatible endpoint via ``base_url``, including
local models served by Ollama/vLLM) or ``"anthropic"``.

The client holds no conversation state: every :meth:`converse` call sends
the system instruction plus the full history it is given. There is no
retry logic here; any failure surfaces as :class:`ServiceUnavailable`.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Sequence
from typing import Any

from news_digest.config import ReasoningConfig
from news_digest.errors import ServiceUnavailable
from news_digest.reasoning.tools import ConversationTurn, ServiceResponse, ToolInvocation, ToolSchema

logger = logging.getLogger(__name__)

_DEFAULT_API_KEY_ENVS: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


class ReasoningClient:
    """Send a tool-calling conversation to the configured LLM provider."""

    def __init__(self, config: ReasoningConfig, system_instruction: str) -> None:
        self._config = config
        self._system_instruction = system_instruction
        self._client: Any = None
        self._init_error: str | None = None
        self._init_client()

    @property
    def provider(self) -> str:
        return self._config.provider

    @property
    def available(self) -> bool:
        """Whether an SDK client could be created (API key set, package installed)."""
        return self._client is not None

    def _resolved_api_key_env(self) -> str:
        """Return the env var name to use for the API key."""
        if self._config.api_key_env:
            return self._config.api_key_env
        return _DEFAULT_API_KEY_ENVS.get(self._config.provider, "OPENAI_API_KEY")

    def _init_client(self) -> None:
        env_var = self._resolved_api_key_env()
        api_key = os.environ.get(env_var)
        if not api_key:
            self._init_error = f"{env_var} not set"
            logger.info("%s not set: reasoning service unavailable", env_var)
            return
        if self._config.provider == "anthropic":
            self._init_anthropic_client(api_key)
        else:
            self._init_openai_client(api_key)

    def _init_anthropic_client(self, api_key: str) -> None:
        try:
            import anthropic  # noqa: PLC0415

            self._client = anthropic.Anthropic(api_key=api_key, timeout=self._config.timeout)
        except ImportError:
            self._init_error = "anthropic package not installed"
            logger.warning("anthropic package not installed: reasoning service unavailable")

    def _init_openai_client(self, api_key: str) -> None:
        try:
            import openai  # noqa: PLC0415

            kwargs: dict[str, Any] = {"api_key": api_key, "timeout": self._config.timeout}
            if self._config.base_url:
                kwargs["base_url"] = self._config.base_url
            self._client = openai.OpenAI(**kwargs)
        except ImportError:
            self._init_error = "openai package not installed"
            logger.warning("openai package not installed: reasoning service unavailable")

    def converse(self, history: Sequence[ConversationTurn], tools: Sequence[ToolSchema]) -> ServiceResponse:
        """Send the conversation and return the model's tool calls and text."""
        if self._client is None:
            raise ServiceUnavailable(f"Reasoning service is not configured: {self._init_error or 'no client'}")
        try:
            if self._config.provider == "anthropic":
                return self._converse_anthropic(history, tools)
            return self._converse_openai(history, tools)
        except ServiceUnavailable:
            raise
        except Exception as exc:
            logger.warning("Reasoning service call failed: %s", exc)
            raise ServiceUnavailable(f"Reasoning service call failed: {exc}") from exc

    # ------------------------------------------------------------------
    # OpenAI-compatible provider
    # ------------------------------------------------------------------

    def _converse_openai(self, history: Sequence[ConversationTurn], tools: Sequence[ToolSchema]) -> ServiceResponse:
        messages: list[dict[str, Any]] = [{"role": "system", "content": self._system_instruction}]
        messages.extend(_openai_message(turn) for turn in history)
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "max_tokens": self._config.max_tokens,
            "temperature": self._config.temperature,
            "messages": messages,
            "tools": [
                {
                    "type": "function",
                    "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
                }
                for t in tools
            ],
        }
        if self._config.extra_params:
            kwargs["extra_body"] = self._config.extra_params

        response = self._client.chat.completions.create(**kwargs)
        message = response.choices[0].message
        invocations = [
            ToolInvocation(
                id=call.id or "",
                name=call.function.name,
                arguments=_decode_arguments(call.function.arguments),
            )
            for call in (message.tool_calls or [])
        ]
        return ServiceResponse(tool_invocations=invocations, text=message.content or None)

    # ------------------------------------------------------------------
    # Anthropic provider
    # ------------------------------------------------------------------

    def _converse_anthropic(
        self, history: Sequence[ConversationTurn], tools: Sequence[ToolSchema]
    ) -> ServiceResponse:
        response = self._client.messages.create(
            model=self._config.model,
            max_tokens=self._config.max_tokens,
            temperature=self._config.temperature,
            system=self._system_instruction,
            messages=[_anthropic_message(turn) for turn in history],
            tools=[{"name": t.name, "description": t.description, "input_schema": t.parameters} for t in tools],
        )
        invocations: list[ToolInvocation] = []
        texts: list[str] = []
        for block in response.content:
            if block.type == "tool_use":
                arguments = block.input if isinstance(block.input, dict) else {}
                invocations.append(ToolInvocation(id=block.id, name=block.name, arguments=arguments))
            elif block.type == "text" and block.text:
                texts.append(str(block.text))
        return ServiceResponse(tool_invocations=invocations, text="\n".join(texts) or None)


def _decode_arguments(raw: str | None) -> dict[str, Any]:
    """Parse a JSON-encoded arguments string, tolerating garbage as ``{}``."""
    if not raw:
        return {}
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Could not decode tool arguments: %s", raw[:200])
        return {}
    return decoded if isinstance(decoded, dict) else {}


def _openai_message(turn: ConversationTurn) -> dict[str, Any]:
    if turn.role == "user":
        return {"role": "user", "content": turn.text}
    invocation = turn.invocation
    assert invocation is not None
    if turn.role == "assistant":
        return {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {
                    "id": invocation.id,
                    "type": "function",
                    "function": {"name": invocation.name, "arguments": json.dumps(invocation.arguments)},
                }
            ],
        }
    return {"role": "tool", "tool_call_id": invocation.id, "content": json.dumps(turn.result, ensure_ascii=False)}


def _anthropic_message(turn: ConversationTurn) -> dict[str, Any]:
    if turn.role == "user":
        return {"role": "user", "content": turn.text}
    invocation = turn.invocation
    assert invocation is not None
    if turn.role == "assistant":
        return {
            "role": "assistant",
            "content": [
                {"type": "tool_use", "id": invocation.id, "name": invocation.name, "input": invocation.arguments}
            ],
        }
    return {
        "role": "user",
        "content": [
            {
                "type": "tool_result",
                "tool_use_id": invocation.id,
                "content": json.dumps(turn.result, ensure_ascii=False),
            }
        ],
    }
