"""
Onboarding - Configuration and settings.

Loaded from environment variables (prefix ONBOARDING_) and an optional
.env file. Hosts embedding the engine can ignore this module entirely and
pass storage/options explicitly; the CLI and HTTP app read it.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_COMPLETION_KEY = "@onboarding:completed"
USER_DATA_KEY = "@onboarding:user_data"


class OnboardingSettings(BaseSettings):
    """Settings for the onboarding engine and its CLI / HTTP surfaces."""

    model_config = SettingsConfigDict(
        env_prefix="ONBOARDING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    env: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Storage
    storage_backend: Literal["memory", "file", "supabase"] = "file"
    storage_path: Path = Path("~/.onboarding/store.json").expanduser()
    completion_key: str = DEFAULT_COMPLETION_KEY

    # Supabase (only when storage_backend == "supabase")
    supabase_url: str | None = None
    supabase_key: str | None = None
    supabase_table: str = "onboarding_kv"

    @property
    def is_development(self) -> bool:
        return self.env == "development"

    @property
    def is_production(self) -> bool:
        return self.env == "production"


@lru_cache
def get_settings() -> OnboardingSettings:
    """Get cached settings instance."""
    return OnboardingSettings()

