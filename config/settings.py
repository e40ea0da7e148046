"""Configuration management using pydantic-settings."""
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Cache defaults loaded from environment variables (FETCH_CACHE_*)."""

    # Background refresh
    refresh_interval_seconds: int = 2 * 24 * 3600  # 2 days

    # watch_fetch polling
    poll_interval_seconds: float = 30.0
    # Consecutive failed polls before the wait between polls starts doubling
    watch_backoff_after_failures: int = 3
    watch_backoff_max_seconds: float = 600.0

    # Rating (TTL keyed) caches
    rating_ttl_seconds: int = 3600

    # JsonFileStore location
    cache_directory: Path = Path("./cache")

    class Config:
        env_prefix = "FETCH_CACHE_"
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
