"""Runtime configuration for the marketplace offer service.

Values come from environment variables or a ``.env`` file.  The module
imports nothing from ``marketplace`` so any layer can read settings.
"""

from __future__ import annotations

import sys
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Service settings.

    ``database_path`` may be ``:memory:`` for throwaway runs; any other value
    is a file whose parent directory is created at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    production: bool = False
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    database_path: Path = Path("data/marketplace.db")

    # Response attached to offers closed because their listing was sold.
    auto_reject_message: str = "This item is no longer available."

    live_channel_queue_size: int = Field(default=100, ge=1)

    sentry_dsn: str = ""
    sentry_traces_sample_rate: float = Field(default=0.1, ge=0.0, le=1.0)

    @field_validator("auto_reject_message")
    @classmethod
    def _message_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("auto_reject_message must not be blank")
        return value

    @property
    def environment(self) -> str:
        """Deployment name reported to Sentry."""
        return "production" if self.production else "development"

    @property
    def in_memory(self) -> bool:
        return str(self.database_path) == ":memory:"


@lru_cache
def get_settings() -> Settings:
    """Parse settings once per process.

    Invalid configuration is logged and terminates the process with exit
    code 1.  Tests reset the cache with ``get_settings.cache_clear()``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)
