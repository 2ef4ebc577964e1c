"""Application settings and configuration."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Timezone used for "since midnight" and "today" decisions
    tz: str = Field(default="Europe/Amsterdam")

    # Database
    db_url: str = Field(default="sqlite+aiosqlite:///./trendwire.db")

    # Logging
    log_level: str = Field(default="INFO")

    # Service configuration
    service_host: str = Field(default="0.0.0.0")
    service_port: Optional[int] = Field(default=None)
    debug: bool = Field(default=False)

    app_name: str = "Trendwire"
    environment: str = Field(default="development")

    # External classifier (OpenAI-compatible chat completions)
    llm_base_url: str = Field(default="https://api.openai.com/v1")
    llm_api_key: str = Field(default="", validation_alias=AliasChoices("llm_api_key", "OPENAI_API_KEY"))
    llm_model: str = Field(default="gpt-4o-mini")
    llm_timeout_seconds: float = Field(default=20.0, gt=0)
    llm_max_retries: int = Field(default=2, ge=1)

    # Trending cache
    trending_ttl_minutes: int = Field(default=60, ge=1)
    trending_cache_enabled: bool = Field(default=True)
    trending_daily_gate: bool = Field(default=False)
    trending_cache_backend: str = Field(default="file")  # file | sql
    trending_cache_path: str = Field(default="data/trending_cache.json")

    # Trending analysis
    analysis_window_hours: int = Field(default=24, ge=1)
    top_terms_limit: int = Field(default=100, ge=1)
    candidate_strategy: str = Field(default="frequency")  # frequency | keywords
    matcher_variant: str = Field(default="window")  # window | today
    national_region: str = Field(default="national")
    stopwords_path: Optional[str] = Field(default=None)

    # Retention
    retention_days: int = Field(default=31, ge=1)

    # Manual trigger of /trending/refresh
    allow_manual_run: bool = Field(default=True)


@lru_cache()
def get_settings() -> Settings:
    """Get settings singleton."""
    return Settings()


settings = get_settings()
