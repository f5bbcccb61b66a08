from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings validated via Pydantic.

    Values are loaded from environment variables and/or a .env file.
    """

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""

    # Store backend: "memory" keeps everything in-process (tests, replays)
    store_backend: str = "supabase"

    # App config
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    log_level: str = "INFO"

    # Detection policy
    related_radius_seconds: int = 120
    max_related_fragments: int = 10
    sliding_window_size: int = 3
    repeat_lookback_minutes: int = 30
    processed_cache_ttl_minutes: int = 30
    processed_cache_max_entries: int = 2048
    store_timeout_seconds: float = 5.0
    body_similarity_threshold: float = 0.85
    accept_threshold: int = 40

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance.

    Gracefully handles missing .env files (e.g. in CI/testing) by falling
    back to environment variables and defaults.
    """
    try:
        return Settings()
    except Exception:
        # If .env is missing or unreadable, build settings from env vars only.
        return Settings(_env_file=None)  # type: ignore[call-arg]


settings = get_settings()
