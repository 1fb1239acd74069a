"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from starbase.core.types import ModelTier


class TierConfig(BaseModel):
    model: str
    input_per_1k: float  # dollars per 1000 input tokens
    output_per_1k: float  # dollars per 1000 output tokens


def _default_tiers() -> dict[ModelTier, TierConfig]:
    return {
        ModelTier.FAST: TierConfig(
            model="claude-haiku-4-5-20251001", input_per_1k=0.0008, output_per_1k=0.004
        ),
        ModelTier.SMART: TierConfig(
            model="claude-sonnet-4-6-20250514", input_per_1k=0.003, output_per_1k=0.015
        ),
    }


class AgentConfig(BaseModel):
    max_tool_rounds: int = Field(default=10, ge=1)
    max_response_tokens: int = Field(default=2048, ge=1)
    max_history_messages: int = Field(default=200, ge=2)
    fallback_text: str = "Done."
    temperature: float = 0.7
    memory_facts: int = Field(default=10, ge=0)
    tiers: dict[ModelTier, TierConfig] = Field(default_factory=_default_tiers)

    @field_validator("tiers")
    @classmethod
    def _fill_missing_tiers(cls, tiers: dict[ModelTier, TierConfig]) -> dict[ModelTier, TierConfig]:
        # A config that overrides only one tier keeps the default for the other
        return {**_default_tiers(), **tiers}


class CompressionConfig(BaseModel):
    threshold_messages: int = Field(default=50, ge=2)
    keep_recent: int = Field(default=40, ge=1)
    threshold_chars: int = 60_000
    max_summary_tokens: int = 500
    summary_batch_messages: int = Field(default=100, ge=1)


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    max_retries: int = 3
    timeout: int = 120


class ServerConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000
    user_header: str = "X-User-Id"


class DiscordConfig(BaseModel):
    enabled: bool = False
    application_id: str = ""
    public_key: str = ""  # hex-encoded Ed25519 key from the developer portal
    api_base: str = "https://discord.com/api/v10"
    default_user_id: Optional[str] = None  # single-household mode
    callback_timeout: float = 15.0


class StorageConfig(BaseModel):
    db_path: str = "./data/starbase.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"
    data_dir: str = "./data"
    anthropic: Optional[AnthropicConfig] = None
    agent: AgentConfig = Field(default_factory=AgentConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # data_dir may be referenced by other keys as ${data_dir}
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
