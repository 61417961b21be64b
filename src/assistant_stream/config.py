"""Configuration management for the assistant stream engine."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

API_KEY_ENV = "ANTHROPIC_API_KEY"


class ModelInfo(BaseModel):
    id: str
    display_name: str
    context_window: int
    max_output_tokens: int


AVAILABLE_MODELS: list[ModelInfo] = [
    ModelInfo(
        id="claude-sonnet-4-20250514", display_name="Claude Sonnet 4",
        context_window=200_000, max_output_tokens=16_000,
    ),
    ModelInfo(
        id="claude-opus-4-20250514", display_name="Claude Opus 4",
        context_window=200_000, max_output_tokens=32_000,
    ),
    ModelInfo(
        id="claude-haiku-3-5-20241022", display_name="Claude 3.5 Haiku",
        context_window=200_000, max_output_tokens=8192,
    ),
]


def find_model(model_id: str) -> ModelInfo | None:
    for info in AVAILABLE_MODELS:
        if info.id == model_id:
            return info
    return None


class ProviderConfig(BaseModel):
    api_url: str = "https://api.anthropic.com/v1/messages"
    api_key: str = ""  # falls back to $ANTHROPIC_API_KEY
    api_version: str = "2023-06-01"
    beta: str = "prompt-caching-2024-07-31"  # empty = no anthropic-beta header
    prompt_caching: bool = True
    user_agent: str = "assistant-stream/0.1.0"
    connect_timeout: float = 30
    read_timeout: float = 300

    def resolved_api_key(self) -> str:
        return self.api_key or os.environ.get(API_KEY_ENV, "")


class RetryConfig(BaseModel):
    max_retries: int = 3
    default_delay: float = 30  # seconds, used when retry-after is absent


class HistoryConfig(BaseModel):
    suffix: str = ".claude-history.json"
    version: int = 1


class PreviewConfig(BaseModel):
    tools: list[str] = Field(
        default_factory=lambda: ["write_editor", "replace_selection"]
    )
    field_name: str = "content"


class AssistantConfig(BaseModel):
    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    preview: PreviewConfig = Field(default_factory=PreviewConfig)
    default_model: str = AVAILABLE_MODELS[0].id
    max_tokens: int = 4096
    max_rounds: int = 50  # provider round-trips per ask()
    system_prompt: str = ""


CONFIG_FILENAME = "assistant_stream.yaml"


def load_config(
    config_path: str | Path | None = None,
) -> tuple[AssistantConfig, Path | None]:
    """Load configuration from YAML file.

    Returns (config, resolved_path).  *resolved_path* is ``None`` when
    no file was found and built-in defaults are used.

    Search order (first match wins):
      1. Explicit ``--config`` path
      2. Current working directory: ``./assistant_stream.yaml``
      3. User config dir: ``~/.assistant_stream/assistant_stream.yaml``
    """
    if config_path is None:
        for d in (Path.cwd(), Path.home() / ".assistant_stream"):
            p = d / CONFIG_FILENAME
            if p.exists():
                config_path = p
                break

    resolved: Path | None = Path(config_path) if config_path else None
    if resolved and resolved.exists():
        with open(resolved) as f:
            raw: dict[str, Any] = yaml.safe_load(f) or {}
        return AssistantConfig.model_validate(raw), resolved.resolve()

    if config_path is not None:
        raise FileNotFoundError(f"Config file not found: {config_path}")

    return AssistantConfig(), None
