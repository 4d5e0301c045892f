"""
Moai Core - Configuration and settings.

MoaiSettings is loaded from the environment (and .env in development).
Supabase credentials are only required by code paths that build a store
client. Checkpoint logic never reads settings; machine sessions take their
timed-transition delays from it when one is passed in.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class MoaiSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Supabase
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""

    # Application
    moai_env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Timed auto-transitions (milliseconds)
    tier_celebration_timeout_ms: int = 10_000
    week_completed_timeout_ms: int = 1_000
    buddy_request_sent_timeout_ms: int = 3_000

    # Tier status lookback window
    tier_history_weeks: int = 8

    @property
    def is_development(self) -> bool:
        return self.moai_env == "development"

    @property
    def is_production(self) -> bool:
        return self.moai_env == "production"

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and (self.supabase_service_role_key or self.supabase_anon_key))


@lru_cache
def get_settings() -> MoaiSettings:
    """Get cached settings instance."""
    return MoaiSettings()


class _SettingsProxy:
    """Lazy proxy for settings to avoid loading .env at import time."""

    _instance: MoaiSettings | None = None

    def __getattr__(self, name: str):
        if self._instance is None:
            self._instance = get_settings()
        return getattr(self._instance, name)


settings = _SettingsProxy()
