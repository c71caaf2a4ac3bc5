"""Configuration loading and validation."""

from pathlib import Path
from typing import Any, Literal

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from news_digest.prompts import SYSTEM_INSTRUCTION, USER_PROMPT


class ReasoningConfig(BaseModel):
    """LLM tool-calling provider configuration."""

    provider: Literal["openai", "anthropic"] = "openai"
    model: str = "gpt-4o-mini"
    base_url: str | None = None
    api_key_env: str | None = None
    timeout: float = 60.0
    max_tokens: int = 4096
    temperature: float = 0.2
    extra_params: dict[str, Any] = Field(default_factory=dict)


class FeedsConfig(BaseModel):
    """Feed aggregation configuration."""

    max_items_per_source: int = 5
    snippet_max_length: int = 100
    timeout: float = 15.0
    max_workers: int = 1
    user_agent: str = "news-digest/0.1"


class PublisherConfig(BaseModel):
    """Webhook publisher configuration.

    ``webhook_url`` wins when set; otherwise the URL is read from the
    environment variable named by ``webhook_url_env``.
    """

    webhook_url: str | None = None
    webhook_url_env: str = "SLACK_WEBHOOK_URL"
    timeout: float = 10.0


class PromptsConfig(BaseModel):
    """Instruction and request sent to the reasoning service."""

    system_instruction: str = SYSTEM_INSTRUCTION
    user_prompt: str = USER_PROMPT


class MonitoringConfig(BaseModel):
    """Logging and API server configuration."""

    structured_logging: bool = False
    log_file: str | None = None
    log_level: str = "INFO"
    api_host: str = "0.0.0.0"
    api_port: int = 3001


class AppConfig(BaseModel):
    """Top-level application configuration."""

    db_path: str = "news_digest.db"
    reasoning: ReasoningConfig = Field(default_factory=ReasoningConfig)
    feeds: FeedsConfig = Field(default_factory=FeedsConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


def load_config(path: Path) -> AppConfig:
    """Load config from a YAML file."""
    load_dotenv(path.parent / ".env", override=False)
    return AppConfig(**(yaml.safe_load(path.read_text()) or {}))
