"""Configuration package exports."""

from .loader import ConfigLocator, ConfigRepository
from .models import (
    AppConfig,
    CacheConfig,
    DetailScrapeConfig,
    FeedConfig,
    ProfileLookupConfig,
    ScheduleConfig,
    SinkConfig,
    SinkKind,
    StorageConfig,
)

__all__ = [
    "AppConfig",
    "CacheConfig",
    "ConfigLocator",
    "ConfigRepository",
    "DetailScrapeConfig",
    "FeedConfig",
    "ProfileLookupConfig",
    "ScheduleConfig",
    "SinkConfig",
    "SinkKind",
    "StorageConfig",
]
