"""Application settings loaded from environment variables."""

import os
import zoneinfo
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """Rudder configuration. All values come from environment variables."""

    # Storage
    store_backend: str = Field(default="sqlite")
    database_path: Path = Field(default=Path("data/rudder.db"))

    # Remote relational store (PostgREST), used when store_backend == "rest"
    rest_url: str = Field(default="")
    rest_api_key: str = Field(default="")
    store_timeout_seconds: float = Field(default=10.0)

    # Calendar
    user_timezone: str = Field(default="America/Detroit")
    expansion_horizon_days: int = Field(default=7)

    # Due window
    due_back_buffer_minutes: int = Field(default=5)
    due_lookahead_minutes: int = Field(default=60)

    # Scheduler
    dispatch_interval_seconds: int = Field(default=60)
    expansion_hour: int = Field(default=0)

    # Web push
    vapid_private_key: str = Field(default="")
    vapid_subject: str = Field(default="mailto:admin@example.com")
    push_concurrency: int = Field(default=8)
    push_timeout_seconds: float = Field(default=10.0)
    push_ttl_seconds: int = Field(default=3600)
    notification_icon_url: str = Field(default="")
    notification_badge_url: str = Field(default="")
    dedupe_notifications: bool = Field(default=True)

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)

    def get_timezone(self) -> zoneinfo.ZoneInfo:
        """Return USER_TIMEZONE as a ZoneInfo. Raises on unknown zone names."""
        return zoneinfo.ZoneInfo(self.user_timezone.strip())


settings = Settings()
