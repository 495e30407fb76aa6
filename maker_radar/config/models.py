"""Pydantic models used across the Maker Radar configuration flow."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


class SinkKind(str, Enum):
    """Supported tabular sink backends."""

    SHEETS = "sheets"
    CSV = "csv"
    NONE = "none"


class FeedConfig(BaseModel):
    """Where feed snapshots come from and which categories are pulled."""

    url_template: str = "https://www.producthunt.com/feed?category={category}"
    categories: list[str] = Field(
        default_factory=lambda: ["artificial-intelligence", "developer-tools", "saas"]
    )
    user_agent: str = BROWSER_USER_AGENT
    timeout: float = 20.0

    @field_validator("url_template")
    @classmethod
    def _require_placeholder(cls, value: str) -> str:
        if "{category}" not in value:
            raise ValueError("url_template must contain a {category} placeholder")
        return value

    @field_validator("categories", mode="before")
    @classmethod
    def _coerce_categories(cls, value: Any) -> list[str]:
        if value in (None, ""):
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(item).strip() for item in value if str(item).strip()]

    def feed_url(self, category: str) -> str:
        return self.url_template.format(category=category)


class CacheConfig(BaseModel):
    """Two-tier enrichment cache settings."""

    expiry_hours: float = 24.0
    max_in_memory: int = 1000

    @model_validator(mode="after")
    def _validate_bounds(self) -> "CacheConfig":
        if self.expiry_hours <= 0:
            raise ValueError("expiry_hours must be > 0")
        if self.max_in_memory < 1:
            raise ValueError("max_in_memory must be >= 1")
        return self

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self.expiry_hours)


class ScheduleConfig(BaseModel):
    """Run gate and timer settings."""

    job_name: str = "feed-fetch"
    interval_hours: float = 0.05
    retention_days: int = 30
    timer_minutes: float = 5.0

    @model_validator(mode="after")
    def _validate_interval(self) -> "ScheduleConfig":
        if self.interval_hours < 0:
            raise ValueError("interval_hours must be >= 0")
        if self.retention_days < 1:
            raise ValueError("retention_days must be >= 1")
        if self.timer_minutes <= 0:
            raise ValueError("timer_minutes must be > 0")
        return self

    @property
    def interval(self) -> timedelta:
        return timedelta(hours=self.interval_hours)


class ProfileLookupConfig(BaseModel):
    """Search-API backed maker profile lookup."""

    api_key: str | None = None
    endpoint: str = "https://serpapi.com/search.json"
    results_per_query: int = 5
    site_filter: str = "linkedin.com/in"
    profile_marker: str = "linkedin.com/in/"
    request_delay: float = 0.5
    timeout: float = 30.0

    @field_validator("api_key", mode="before")
    @classmethod
    def _blank_key_is_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("request_delay")
    @classmethod
    def _non_negative_delay(cls, value: float) -> float:
        if value < 0:
            raise ValueError("request_delay must be non-negative")
        return value


class DetailScrapeConfig(BaseModel):
    """Listing page scraping with retry/backoff."""

    max_attempts: int = 5
    backoff_seconds: float = 3.0
    request_delay: float = 2.0
    cache_expiry_hours: float = 24.0
    timeout: float = 20.0
    user_agent: str = BROWSER_USER_AGENT

    @model_validator(mode="after")
    def _validate_retry(self) -> "DetailScrapeConfig":
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_seconds < 0 or self.request_delay < 0:
            raise ValueError("backoff_seconds and request_delay must be non-negative")
        if self.cache_expiry_hours <= 0:
            raise ValueError("cache_expiry_hours must be > 0")
        return self

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self.cache_expiry_hours)


class SinkConfig(BaseModel):
    """External tabular sink for approved records."""

    kind: SinkKind = SinkKind.SHEETS
    spreadsheet_id: str | None = None
    sheet_name: str = "Approved Makers"
    credentials_file: Path | None = None
    csv_path: Path = Field(default=Path("data/approved.csv"))

    @field_validator("credentials_file", mode="before")
    @classmethod
    def _coerce_credentials(cls, value: Any) -> Path | None:
        if value in (None, ""):
            return None
        return Path(value)

    @field_validator("csv_path", mode="before")
    @classmethod
    def _coerce_csv_path(cls, value: Any) -> Path:
        if value in (None, ""):
            return Path("data/approved.csv")
        return Path(value)

    @field_validator("spreadsheet_id", mode="before")
    @classmethod
    def _blank_id_is_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None


class StorageConfig(BaseModel):
    """Record store location."""

    db_path: Path = Field(default=Path("data/records.db"))

    @field_validator("db_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        return Path(value)

    def resolved_db_path(self, base_dir: Path) -> Path:
        """Return the store path relative to the project home."""

        if not self.db_path.is_absolute():
            return (base_dir / self.db_path).resolve()
        return self.db_path


class AppConfig(BaseModel):
    """Top level configuration shared by every component."""

    feeds: FeedConfig = Field(default_factory=FeedConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    profile_lookup: ProfileLookupConfig = Field(default_factory=ProfileLookupConfig)
    detail_scrape: DetailScrapeConfig = Field(default_factory=DetailScrapeConfig)
    sink: SinkConfig = Field(default_factory=SinkConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


__all__ = [
    "AppConfig",
    "BROWSER_USER_AGENT",
    "CacheConfig",
    "DetailScrapeConfig",
    "FeedConfig",
    "ProfileLookupConfig",
    "ScheduleConfig",
    "SinkConfig",
    "SinkKind",
    "StorageConfig",
]
