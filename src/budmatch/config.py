"""Runtime configuration loaded from the environment."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings for the BudMatch service."""

    app_name: str = "BudMatch API"
    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = False
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: List[str] = ["*"]

    max_images_per_listing: int = 5

    realtime_queue_size: int = 100
    realtime_send_timeout: float = 5.0  # seconds

    model_config = SettingsConfigDict(env_prefix="BUDMATCH_", env_file=".env")


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()
