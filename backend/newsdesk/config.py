"""
Application configuration using Pydantic Settings.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from newsdesk.core.categories import all_categories


DEFAULT_CATEGORIES = [
    "business",
    "entertainment",
    "health",
    "politics",
    "science",
    "sports",
    "technology",
    "top",
    "world",
    "domestic",
]


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Newsdesk"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: str = Field(default="INFO")
    log_json: bool = Field(
        default=True,
        description="Render log events as JSON lines (False = console renderer)",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./newsdesk.db",
        description="Async database URL (SQLAlchemy format)",
    )

    # Upstream news API
    newsdata_api_key: str | None = Field(default=None)
    newsdata_base_url: str = Field(default="https://newsdata.io/api/1/latest")
    language: str = Field(default="en")
    country: str = Field(default="in")
    categories: list[str] = Field(
        default_factory=lambda: list(DEFAULT_CATEGORIES),
        description="Categories fetched on every pass, in processing order",
    )
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    # Rate limiting
    hourly_request_ceiling: int = Field(default=200, ge=1)
    rate_limit_reserve: int = Field(
        default=10,
        ge=0,
        description="Requests held back from the ceiling before pausing",
    )
    inter_request_delay_seconds: float = Field(default=30.0, ge=0)

    # Retry / backoff on upstream throttling
    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=60.0, ge=0)
    backoff_cap_seconds: float = Field(default=300.0, ge=0)

    # Deduplication
    near_duplicate_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    max_articles_per_category: int = Field(default=20, ge=1)

    # Scheduler
    fetch_cron: str = Field(
        default="0 */2 * * *",
        description="Crontab expression for recurring ingestion passes",
    )

    @field_validator("categories")
    @classmethod
    def normalize_categories(cls, v: list[str]) -> list[str]:
        cleaned = [c.strip().lower() for c in v if c.strip()]
        if not cleaned:
            raise ValueError("At least one category is required")
        unknown = [c for c in cleaned if c not in all_categories()]
        if unknown:
            raise ValueError(f"Unknown categories: {', '.join(unknown)}")
        return cleaned

    @model_validator(mode="after")
    def check_reserve(self) -> "Settings":
        if self.rate_limit_reserve >= self.hourly_request_ceiling:
            raise ValueError("rate_limit_reserve must be below hourly_request_ceiling")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
