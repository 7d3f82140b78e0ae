"""Application Configuration — environment-driven settings via pydantic-settings.

Every field can be set as MICGAIN_<FIELD> in the environment or a .env file.
CLI flags override these per invocation.
"""

from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from micgain_manager.store.file_store import default_config_path


class Settings(BaseSettings):
    """Process settings. The scheduler's own config lives in the store."""

    model_config = SettingsConfigDict(
        env_prefix="MICGAIN_", env_file=".env", case_sensitive=False
    )

    # Store
    config_path: Path = Field(default_factory=default_config_path)

    # Web
    host: str = "127.0.0.1"
    port: int = 7070

    # Scheduler
    applier: Literal["osascript", "noop"] = "osascript"
    min_interval_seconds: int = Field(default=5, ge=1)

    # Observability
    log_level: str = "WARNING"
    log_format: Literal["text", "json"] = "text"

    @property
    def min_interval(self) -> timedelta:
        return timedelta(seconds=self.min_interval_seconds)


@lru_cache
def get_settings() -> Settings:
    return Settings()
