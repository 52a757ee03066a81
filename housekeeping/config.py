"""
Environment configuration for the housekeeping core.
Uses Pydantic's settings management; every field can be set through an
environment variable prefixed with HOUSEKEEPING_ (or a .env file).
"""

import logging
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Housekeeping settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_prefix="HOUSEKEEPING_",
        env_file=".env",
        extra="ignore",
    )

    # Remote store
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    # Connectivity check
    connection_retries: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=1.5, ge=0)

    # Task derivation
    anti_ghost_minutes: int = Field(default=120, ge=0)
    default_room_type: str = "1GM8"
    history_months: int = Field(default=1, ge=0)  # Done tasks older than this are not loaded

    # Last-good read snapshots, written as JSON when set
    snapshot_dir: Optional[str] = None

    operator_name: Optional[str] = None
    log_level: str = "INFO"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def configure_logging(settings: Optional[Settings] = None) -> None:
    """Configure the root logger. Call once from the application entry point."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
