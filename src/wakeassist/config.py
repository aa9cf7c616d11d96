"""WakeAssist configuration — loads from wakeassist.yaml + environment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_yaml_config() -> dict[str, Any]:
    """Load wakeassist.yaml from WAKEASSIST_CONFIG_PATH or default locations."""
    config_path = os.getenv("WAKEASSIST_CONFIG_PATH")
    search_paths = (
        [Path(config_path)]
        if config_path
        else [
            Path("/etc/wakeassist/wakeassist.yaml"),
            Path("wakeassist.yaml"),
        ]
    )
    for path in search_paths:
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}
    return {}


class AlarmConfig(BaseSettings):
    """Escalation timings and output levels."""

    triggered_delay_s: float = Field(default=3.0, ge=0.0, description="Delay before WARNING")
    warning_duration_s: float = Field(default=30.0, gt=0.0)
    alert_duration_s: float = Field(default=30.0, gt=0.0)
    safety_timeout_s: float = Field(
        default=300.0,
        gt=0.0,
        description="Hard ceiling on session length, measured from session start",
    )
    health_check_interval_s: float = Field(default=10.0, gt=0.0)

    pulse_on_s: float = Field(default=0.5, gt=0.0)
    pulse_off_s: float = Field(default=0.5, gt=0.0)
    low_level: int = Field(default=255, ge=0, le=255, description="Small buzzer duty cycle")
    high_level: int = Field(default=255, ge=0, le=255, description="Large buzzer duty cycle")

    test_small_s: float = Field(default=1.0, gt=0.0)
    test_large_s: float = Field(default=0.5, gt=0.0)
    test_countdown_s: float = Field(default=3.0, ge=0.0)

    model_config = SettingsConfigDict(env_prefix="WAKEASSIST_ALARM_")


class TelegramChannelConfig(BaseSettings):
    """Telegram channel configuration."""

    bot_token: str = Field(default="", description="Overrides the stored bot token when set")
    authorized_user_id: int = Field(
        default=0,
        description="Overrides the stored operator chat id when non-zero",
    )
    api_base: str = "https://api.telegram.org"

    poll_interval_s: float = Field(default=5.0, ge=1.0, le=300.0)
    poll_timeout_s: int = Field(default=5, ge=0, le=60)
    poll_limit: int = Field(default=10, ge=1, le=100)
    http_timeout_s: float = Field(default=10.0, ge=1.0, le=120.0)

    wake_cooldown_s: float = Field(default=300.0, ge=0.0)
    queue_size: int = Field(default=10, ge=1, le=1000)
    parse_mode: Literal["Markdown", "MarkdownV2", "HTML"] | None = None
    skip_backlog_on_start: bool = True

    @field_validator("api_base")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.strip().rstrip("/")

    @field_validator("parse_mode", mode="before")
    @classmethod
    def _empty_parse_mode(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    model_config = SettingsConfigDict(env_prefix="WAKEASSIST_TELEGRAM_")


class ConnectivityConfig(BaseSettings):
    """Network link supervision."""

    probe_url: str = "https://api.telegram.org"
    probe_timeout_s: float = Field(default=5.0, gt=0.0, le=60.0)
    check_interval_s: float = Field(default=30.0, ge=1.0)
    max_reconnect_attempts: int = Field(default=3, ge=1, le=20)

    model_config = SettingsConfigDict(env_prefix="WAKEASSIST_CONNECTIVITY_")


class WakeAssistConfig(BaseSettings):
    """Root WakeAssist configuration."""

    # Paths
    data_dir: str = Field(default="/var/lib/wakeassist")
    credentials_path: str = Field(
        default="",
        description="Credential store file. Empty = <data_dir>/credentials.yaml",
    )

    # Runtime loop
    tick_interval_s: float = Field(default=0.01, gt=0.0, le=1.0)
    status_report_interval_s: float = Field(default=60.0, ge=1.0)

    # Sub-configs
    alarm: AlarmConfig = Field(default_factory=AlarmConfig)
    telegram: TelegramChannelConfig = Field(default_factory=TelegramChannelConfig)
    connectivity: ConnectivityConfig = Field(default_factory=ConnectivityConfig)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="'json' or 'console'")

    model_config = SettingsConfigDict(
        env_prefix="WAKEASSIST_",
        env_nested_delimiter="__",
    )

    @model_validator(mode="after")
    def _default_credentials_path(self) -> WakeAssistConfig:
        if not self.credentials_path.strip():
            self.credentials_path = str(Path(self.data_dir) / "credentials.yaml")
        return self

    @classmethod
    def load(cls) -> WakeAssistConfig:
        """Load config from YAML + env vars (env takes precedence)."""
        yaml_cfg = _load_yaml_config()

        alarm_data = yaml_cfg.pop("alarm", {})
        telegram_data = yaml_cfg.pop("telegram", {})
        connectivity_data = yaml_cfg.pop("connectivity", {})

        # Only pass YAML sub-configs if they have data;
        # otherwise let pydantic-settings pick up env vars
        kwargs: dict[str, Any] = {**yaml_cfg}
        if alarm_data:
            kwargs["alarm"] = AlarmConfig(**alarm_data)
        if telegram_data:
            kwargs["telegram"] = TelegramChannelConfig(**telegram_data)
        if connectivity_data:
            kwargs["connectivity"] = ConnectivityConfig(**connectivity_data)

        return cls(**kwargs)


_config: WakeAssistConfig | None = None


def get_config() -> WakeAssistConfig:
    """Get or create the process-wide config."""
    global _config
    if _config is None:
        _config = WakeAssistConfig.load()
    return _config
