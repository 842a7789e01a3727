"""Configuration management for the alerts bot."""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import AliasChoices, BaseModel, Field, field_validator

from avalon_alerts.models import TriggerSchedule


DEFAULT_CONFIG_PATH = "config.yaml"


class IntervalsConfig(BaseModel):
    """Timer settings, in seconds."""
    watcher: float = Field(default=60.0, gt=0, description="Seconds between leader watch cycles")
    apiwatcher: float = Field(default=120.0, gt=0, description="Seconds between endpoint watch cycles")
    retry: float = Field(default=5.0, ge=0, description="Delay before retrying a failed leader cycle")


class LeaderWatcherConfig(BaseModel):
    """Leader watch settings."""
    retries: int = Field(default=3, ge=0, description="Retries of a failed leader cycle before giving up")
    triggers: list[int] = Field(default_factory=lambda: [50, 1, 5, 10], description="Repeater, then checkpoints (blocks)")

    @field_validator("triggers")
    @classmethod
    def _validate_triggers(cls, value: list[int]) -> list[int]:
        TriggerSchedule.from_list(value)
        return value

    @property
    def schedule(self) -> TriggerSchedule:
        return TriggerSchedule.from_list(self.triggers)


class ApiWatcherConfig(BaseModel):
    """Endpoint availability watch settings."""
    nodes: list[str] = Field(default_factory=list, description="API nodes to probe")
    triggers: list[int] = Field(default_factory=lambda: [3600, 300, 900], description="Repeater, then checkpoints (seconds)")
    probe_path: str = Field(default="/count", description="Path appended to each node for the liveness probe")
    probe_timeout_seconds: float = Field(default=10.0, gt=0, description="Per-request probe timeout")
    probe_concurrency: int = Field(default=10, ge=1, description="Max concurrent probes")
    tolerance_seconds: float = Field(default=30.0, gt=0, description="Window around checkpoints/heartbeats")

    @field_validator("triggers")
    @classmethod
    def _validate_triggers(cls, value: list[int]) -> list[int]:
        TriggerSchedule.from_list(value)
        return value

    @property
    def schedule(self) -> TriggerSchedule:
        return TriggerSchedule.from_list(self.triggers)


class TelegramSettings(BaseModel):
    """Telegram delivery settings."""
    api_url: str = Field(
        default="https://api.telegram.org/bot",
        validation_alias=AliasChoices("api_url", "apiurl"),
        description="Bot API base, token is appended",
    )
    bot_token: str = Field(
        default="",
        validation_alias=AliasChoices("bot_token", "apikey"),
        description="Bot token (or TELEGRAM_BOT_TOKEN env)",
    )
    chat_id: str = Field(
        default="",
        validation_alias=AliasChoices("chat_id", "chat"),
        description="Target chat (or TELEGRAM_CHAT_ID env)",
    )
    parse_mode: Optional[str] = Field(default="Markdown", description="Telegram parse_mode")
    timeout_seconds: float = Field(default=15.0, gt=0)

    @field_validator("bot_token", "chat_id", mode="before")
    @classmethod
    def _stringify(cls, value):
        # chat ids are usually written as bare integers in YAML
        return "" if value is None else str(value)

    @property
    def enabled(self) -> bool:
        return bool(self.api_url and self.bot_token.strip() and self.chat_id.strip())


class AlertsConfig(BaseModel):
    """Main configuration of the alerts bot."""

    db: str = Field(default="state.json", description="Path of the state snapshot file")
    apis: list[str] = Field(..., description="Leader data API nodes, rotated on failure")
    intervals: IntervalsConfig = Field(default_factory=IntervalsConfig)
    watcher: LeaderWatcherConfig = Field(default_factory=LeaderWatcherConfig)
    apiwatcher: ApiWatcherConfig = Field(default_factory=ApiWatcherConfig)
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    announce_startup: bool = Field(default=False, description="Send a message when the bot starts")
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("apis")
    @classmethod
    def _validate_apis(cls, value: list[str]) -> list[str]:
        cleaned = [str(v).strip().rstrip("/") for v in value if str(v or "").strip()]
        if not cleaned:
            raise ValueError("Config must contain a non-empty 'apis' list")
        return cleaned


def load_config(config_path: Optional[str] = None) -> AlertsConfig:
    """Load configuration from a YAML file plus environment overrides."""
    if config_path is None:
        config_path = os.getenv("AVALON_ALERTS_CONFIG", DEFAULT_CONFIG_PATH)

    config_data: dict = {}
    path = Path(config_path)
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f) or {}
    if not isinstance(config_data, dict):
        raise ValueError("Config YAML must be a mapping")

    # Older configs listed the probed nodes directly under `apiwatcher`.
    if isinstance(config_data.get("apiwatcher"), list):
        config_data["apiwatcher"] = {"nodes": config_data["apiwatcher"]}

    telegram_data = dict(config_data.get("telegram") or {})
    bot_token = os.getenv("TELEGRAM_BOT_TOKEN")
    chat_id = os.getenv("TELEGRAM_CHAT_ID")
    if bot_token:
        telegram_data["bot_token"] = bot_token
    if chat_id:
        telegram_data["chat_id"] = chat_id
    config_data["telegram"] = telegram_data

    env_overrides = {
        "db": os.getenv("AVALON_ALERTS_DB"),
        "log_level": os.getenv("LOG_LEVEL"),
    }
    for key, value in env_overrides.items():
        if value is not None and value.strip():
            config_data[key] = value.strip()

    return AlertsConfig(**config_data)
