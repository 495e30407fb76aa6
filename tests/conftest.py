"""Shared pytest fixtures: in-memory store, controllable clock and config builders."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable

import pytest

from maker_radar.config import (
    AppConfig,
    ConfigLocator,
    ConfigRepository,
    DetailScrapeConfig,
    ProfileLookupConfig,
)
from maker_radar.engine.normalizer import NormalizedEntry
from maker_radar.infra import MemoryRecordStore


class MutableClock:
    """Callable clock that only moves when a test says so."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def memory_store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def no_sleep() -> Callable[[float], None]:
    calls: list[float] = []

    def _sleep(seconds: float) -> None:
        calls.append(seconds)

    _sleep.calls = calls  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture
def detail_config() -> Callable[..., DetailScrapeConfig]:
    def _builder(**overrides: Any) -> DetailScrapeConfig:
        base: dict[str, Any] = {
            "max_attempts": 3,
            "backoff_seconds": 0.0,
            "request_delay": 0.0,
        }
        base.update(overrides)
        return DetailScrapeConfig(**base)

    return _builder


@pytest.fixture
def lookup_config() -> Callable[..., ProfileLookupConfig]:
    def _builder(**overrides: Any) -> ProfileLookupConfig:
        base: dict[str, Any] = {"api_key": "test-key", "request_delay": 0.0}
        base.update(overrides)
        return ProfileLookupConfig(**base)

    return _builder


@pytest.fixture
def app_config() -> Callable[..., AppConfig]:
    def _builder(**sections: Any) -> AppConfig:
        base: dict[str, Any] = {
            "feeds": {"url_template": "https://feeds.example.com/{category}.rss", "categories": ["ai"]},
            "profile_lookup": {"request_delay": 0.0},
            "detail_scrape": {"max_attempts": 2, "backoff_seconds": 0.0, "request_delay": 0.0},
            "sink": {"kind": "none"},
        }
        for name, payload in sections.items():
            base[name] = {**base.get(name, {}), **payload}
        return AppConfig.model_validate(base)

    return _builder


@pytest.fixture
def normalized_entry() -> Callable[..., NormalizedEntry]:
    def _builder(**overrides: Any) -> NormalizedEntry:
        base: dict[str, Any] = {
            "source_link": "https://www.producthunt.com/posts/acme",
            "original_link": "https://www.producthunt.com/posts/acme?utm_source=rss",
            "name": "Acme Tool",
            "description": "Ship faster with Acme, the tool for teams.",
            "category": "ai",
            "maker_name": "Jane Doe",
            "published_at": datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
        }
        base.update(overrides)
        return NormalizedEntry(**base)

    return _builder


@pytest.fixture
def temp_config_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterable[ConfigRepository]:
    monkeypatch.setenv("MAKER_RADAR_HOME", str(tmp_path))
    locator = ConfigLocator(project_root=tmp_path)
    repository = ConfigRepository(locator, environ={})
    yield repository
