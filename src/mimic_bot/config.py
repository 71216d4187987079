"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

DEFAULT_REACTIONS = ["👍", "❤", "🔥", "😁", "👌", "🙏", "🤣", "😢", "🤝", "👏"]


class TelegramConfig(BaseModel):
    token: str
    # Optional: pin the business connection instead of learning it from updates
    business_connection_id: Optional[str] = None


class OwnerConfig(BaseModel):
    user_id: Optional[int] = None  # falls back to the business connection's user
    wake_word: str = "канатик"
    display_name: str = "the account owner"


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    max_retries: int = 3
    timeout: int = 120


class AIConfig(BaseModel):
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = Field(default=1000, ge=1, le=8192)
    temperature: float = Field(default=0.8, ge=0.0, le=1.0)
    system_prompt: str = ""
    system_prompt_file: Optional[str] = None
    summary_max_tokens: int = 500
    facts_max_tokens: int = 500
    facts_window: int = 10

    def resolve_system_prompt(self) -> str:
        """Return the inline prompt, or the contents of system_prompt_file."""
        if self.system_prompt_file:
            return Path(self.system_prompt_file).read_text(encoding="utf-8")
        return self.system_prompt


class ProcessingConfig(BaseModel):
    delay_seconds: int = Field(default=10, ge=1, le=60)
    context_messages_limit: int = Field(default=10, ge=5, le=100)
    summary_threshold: int = Field(default=50, ge=10, le=200)
    max_quiet_wait: float = Field(default=60.0, gt=0)
    pending_retention_hours: int = Field(default=24, ge=1)


class PresenceConfig(BaseModel):
    typing_ttl: float = Field(default=10.0, gt=0)
    quiet_period: float = Field(default=5.0, ge=0)
    poll_interval: float = Field(default=1.0, gt=0)


class RateLimitConfig(BaseModel):
    max_messages_per_hour: int = Field(default=50, ge=1, le=1000)
    window_seconds: int = Field(default=3600, ge=1)
    warning_message: str = "Я сейчас занят, чуть позже отвечу 🙏"


class TypoConfig(BaseModel):
    probability: float = Field(default=0.15, ge=0.0, le=1.0)
    fix_delay_min: float = Field(default=1.0, ge=0)
    fix_delay_max: float = Field(default=3.0, ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> TypoConfig:
        if self.fix_delay_max < self.fix_delay_min:
            raise ValueError("typo.fix_delay_max must be >= typo.fix_delay_min")
        return self


class HumanizeConfig(BaseModel):
    comma_drop_probability: float = Field(default=0.25, ge=0.0, le=1.0)
    split_probability: float = Field(default=0.6, ge=0.0, le=1.0)
    chars_per_second: float = Field(default=50.0, gt=0)
    min_typing_seconds: float = 1.0
    max_typing_seconds: float = 10.0
    pause_min_seconds: float = 0.5
    pause_max_seconds: float = 1.5
    reaction_allow_list: list[str] = Field(default_factory=lambda: list(DEFAULT_REACTIONS))
    ack_fallback_text: str = "ок"
    typo: TypoConfig = Field(default_factory=TypoConfig)


class DelayConfig(BaseModel):
    normal_probability: float = Field(default=0.8, ge=0.0, le=1.0)
    medium_probability: float = Field(default=0.15, ge=0.0, le=1.0)
    long_probability: float = Field(default=0.05, ge=0.0, le=1.0)
    normal_seconds: float = 2.0
    medium_minutes: tuple[float, float] = (5.0, 15.0)
    long_minutes: tuple[float, float] = (30.0, 60.0)


class ReadStatusConfig(BaseModel):
    min_delay: float = 3.0
    max_delay: float = 5.0
    seen_without_read_probability: float = Field(default=0.2, ge=0.0, le=1.0)


class SchedulerServiceConfig(BaseModel):
    timezone: str = "UTC"
    max_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=5.0, ge=0)
    prune_cron: str = "0 * * * *"


class StorageConfig(BaseModel):
    db_path: str = "./data/mimic_bot.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    data_dir: str = "./data"
    telegram: TelegramConfig
    anthropic: AnthropicConfig
    owner: OwnerConfig = Field(default_factory=OwnerConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)
    presence: PresenceConfig = Field(default_factory=PresenceConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    humanize: HumanizeConfig = Field(default_factory=HumanizeConfig)
    delay: DelayConfig = Field(default_factory=DelayConfig)
    read_status: ReadStatusConfig = Field(default_factory=ReadStatusConfig)
    scheduler: SchedulerServiceConfig = Field(default_factory=SchedulerServiceConfig)
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

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated)

    return AppConfig(**data)
