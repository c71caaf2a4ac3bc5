"""Tests for config loading."""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from news_digest.config import AppConfig, load_config
from news_digest.prompts import SYSTEM_INSTRUCTION, USER_PROMPT

SAMPLE_YAML = """\
db_path: /tmp/digest.db

reasoning:
  provider: anthropic
  model: claude-test
  max_tokens: 1024

feeds:
  max_items_per_source: 3
  timeout: 5
  max_workers: 4

publisher:
  webhook_url: https://hooks.example.com/T000/B000/XXX

monitoring:
  structured_logging: true
  api_port: 8080
"""


def test_load_config_from_yaml(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(SAMPLE_YAML)
    config = load_config(config_file)
    assert config.db_path == "/tmp/digest.db"
    assert config.reasoning.provider == "anthropic"
    assert config.reasoning.model == "claude-test"
    assert config.reasoning.max_tokens == 1024
    assert config.feeds.max_items_per_source == 3
    assert config.feeds.max_workers == 4
    assert config.feeds.snippet_max_length == 100
    assert config.publisher.webhook_url == "https://hooks.example.com/T000/B000/XXX"
    assert config.monitoring.structured_logging is True
    assert config.monitoring.api_port == 8080


def test_empty_yaml_gives_defaults(tmp_path: Path) -> None:
    config_file = tmp_path / "config.yaml"
    config_file.write_text("")
    assert load_config(config_file) == AppConfig()


def test_default_config() -> None:
    config = AppConfig()
    assert config.reasoning.provider == "openai"
    assert config.feeds.max_items_per_source == 5
    assert config.feeds.max_workers == 1
    assert config.publisher.webhook_url is None
    assert config.publisher.webhook_url_env == "SLACK_WEBHOOK_URL"
    assert config.prompts.system_instruction == SYSTEM_INSTRUCTION
    assert config.prompts.user_prompt == USER_PROMPT
    assert config.monitoring.api_port == 3001


def test_unknown_provider_rejected() -> None:
    with pytest.raises(ValidationError):
        AppConfig(reasoning={"provider": "gemini"})


def test_dotenv_next_to_config_is_loaded(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("NEWS_DIGEST_TEST_HOOK", raising=False)
    (tmp_path / ".env").write_text("NEWS_DIGEST_TEST_HOOK=https://hooks.example.com/env\n")
    config_file = tmp_path / "config.yaml"
    config_file.write_text("publisher:\n  webhook_url_env: NEWS_DIGEST_TEST_HOOK\n")

    config = load_config(config_file)

    assert config.publisher.webhook_url_env == "NEWS_DIGEST_TEST_HOOK"
    assert os.environ["NEWS_DIGEST_TEST_HOOK"] == "https://hooks.example.com/env"
    monkeypatch.delenv("NEWS_DIGEST_TEST_HOOK")
