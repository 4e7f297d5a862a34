"""Configuration management for OpsDesk."""

from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = "sqlite:///./opsdesk.db"

    # Users (no auth: the X-User-Id header picks the row owner)
    default_user_id: str = "ops"

    # Alerting
    user_timezone: str = "America/Sao_Paulo"
    critical_check_seconds: int = 30
    scheduled_check_seconds: int = 30
    startup_delay_seconds: int = 2
    stale_alert_hours: int = 24
    alert_feed_size: int = 200
    alert_idle_minutes: int = 30
    alert_evict_check_seconds: int = 60
    alerts_config_path: str = "config/alerts.yaml"
    sound_enabled: bool = True

    # Slack (system notifications)
    slack_bot_token: str = ""
    slack_alert_user_id: str = ""

    # App
    log_level: str = "INFO"
    env: str = "development"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
