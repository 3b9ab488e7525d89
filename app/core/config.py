"""Application configuration via environment variables (pydantic-settings)."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    SUPABASE_URL: str
    SUPABASE_KEY: str

    # Cache
    CACHE_BACKEND: Literal["memory", "redis"] = "memory"
    REDIS_URL: str = "redis://localhost:6379"
    CACHE_TTL_SECONDS: float = 300  # 5 minutes
    CACHE_MAX_SIZE: int = 100
    CACHE_CLEANUP_INTERVAL_SECONDS: float = 60
    POLL_LIST_TTL_SECONDS: float = 600
    VOTE_TTL_SECONDS: float = 300
    ANALYTICS_TTL_SECONDS: float = 3600
    CACHE_ADMIN_SECRET: str = ""

    @property
    def redis_enabled(self) -> bool:
        return self.CACHE_BACKEND == "redis"

    # Defaults
    API_PREFIX: str = "/api"
    PROJECT_NAME: str = "Poll Service"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

@lru_cache
def get_settings():
    return Settings()

settings = get_settings()
