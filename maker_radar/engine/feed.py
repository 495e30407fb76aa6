"""Pull-based RSS feed source returning raw entries per category."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import feedparser
import httpx
import structlog

from ..config import FeedConfig
from .normalizer import RawFeedEntry


class FeedError(RuntimeError):
    """Raised when one category's feed cannot be fetched or parsed."""

    def __init__(self, category: str, message: str) -> None:
        super().__init__(message)
        self.category = category


class UnknownCategoryError(ValueError):
    def __init__(self, category: str, valid: list[str]) -> None:
        super().__init__(f"Invalid category: {category} (valid: {', '.join(valid) or 'none'})")
        self.category = category
        self.valid = valid


@dataclass(slots=True)
class FeedPreview:
    """Dry-run view of one category feed; nothing is stored."""

    category: str
    url: str
    title: str | None
    item_count: int
    sample_items: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category,
            "url": self.url,
            "title": self.title,
            "item_count": self.item_count,
            "sample_items": list(self.sample_items),
        }


class FeedSource:
    """Fetch category feeds over HTTP and parse them with feedparser."""

    def __init__(
        self,
        config: FeedConfig,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or structlog.get_logger("maker_radar.feed")
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=config.timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    @property
    def categories(self) -> list[str]:
        return list(self.config.categories)

    def require_category(self, category: str) -> str:
        if category not in self.config.categories:
            raise UnknownCategoryError(category, self.categories)
        return category

    def fetch(self, category: str) -> list[RawFeedEntry]:
        url, parsed = self._download(category)
        entries = [self._to_raw_entry(item) for item in parsed.entries]
        self.logger.info("feed_fetched", category=category, url=url, items=len(entries))
        return entries

    def preview(self, category: str, sample_size: int = 3) -> FeedPreview:
        url, parsed = self._download(category)
        samples = [
            {
                "title": item.get("title"),
                "link": item.get("link"),
                "published": item.get("published") or item.get("updated"),
                "has_description": bool(item.get("summary") or item.get("description")),
                "has_content": bool(item.get("content")),
            }
            for item in parsed.entries[:sample_size]
        ]
        preview = FeedPreview(
            category=category,
            url=url,
            title=parsed.feed.get("title"),
            item_count=len(parsed.entries),
            sample_items=samples,
        )
        self.logger.info("feed_previewed", category=category, url=url, items=preview.item_count)
        return preview

    def _download(self, category: str) -> tuple[str, Any]:
        url = self.config.feed_url(category)
        headers = {
            "User-Agent": self.config.user_agent,
            "Accept": "application/rss+xml, application/xml, text/xml",
        }
        try:
            response = self._client.get(url, headers=headers, timeout=self.config.timeout)
        except httpx.HTTPError as exc:
            raise FeedError(category, f"Failed to fetch feed for {category}: {exc}") from exc
        if response.status_code == 403:
            raise FeedError(
                category,
                f"Failed to fetch feed for {category}: status 403 "
                "(possible authentication requirement or rate limit)",
            )
        if response.status_code >= 400:
            raise FeedError(
                category, f"Failed to fetch feed for {category}: status {response.status_code}"
            )

        parsed = feedparser.parse(response.text)
        if parsed.get("bozo") and not parsed.entries:
            error = parsed.get("bozo_exception")
            raise FeedError(category, f"Unreadable feed for {category}: {error}")
        return url, parsed

    @staticmethod
    def _to_raw_entry(item: Any) -> RawFeedEntry:
        content = None
        content_blocks = item.get("content") or []
        if content_blocks:
            content = content_blocks[0].get("value")
        published = None
        stamp = item.get("published_parsed") or item.get("updated_parsed")
        if stamp:
            published = datetime(*stamp[:6], tzinfo=timezone.utc)
        return RawFeedEntry(
            title=item.get("title"),
            link=item.get("link"),
            description=item.get("summary") or item.get("description"),
            content=content,
            author=item.get("author"),
            creator=item.get("dc_creator") or item.get("creator"),
            published=published,
        )


__all__ = ["FeedError", "FeedPreview", "FeedSource", "UnknownCategoryError"]
