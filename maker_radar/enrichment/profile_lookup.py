"""Maker profile lookup through a web-search API with negative result caching."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Callable, Iterable, Protocol

import httpx
import structlog

from ..config import ProfileLookupConfig
from ..engine.cache import EnrichmentCache, InvalidationReport, clean_key
from ..engine.dedup import DeduplicationIndex
from ..infra.storage import StoreError
from ..records import Record

PROFILE_CACHE_PREFIX = "profile_cache:"
SEARCH_NAME_MAX_LENGTH = 50

_NON_NAME_CHARS = re.compile(r"[^\w\s\-.]")
_WHITESPACE = re.compile(r"\s+")
_RATE_LIMIT_HINTS = ("rate limit", "run out of searches", "too many requests")


def clean_search_name(name: str) -> str:
    """Strip punctuation and collapse whitespace for the search phrase."""

    cleaned = _NON_NAME_CHARS.sub("", name or "")
    return _WHITESPACE.sub(" ", cleaned).strip()[:SEARCH_NAME_MAX_LENGTH]


def profile_cache_key(name: str) -> str:
    return f"{PROFILE_CACHE_PREFIX}{clean_key(name)}"


@dataclass(slots=True)
class SearchResult:
    title: str = ""
    snippet: str = ""
    link: str = ""


@dataclass(slots=True)
class SearchResponse:
    """Ranked results or an error indicator from the search API."""

    results: list[SearchResult] = field(default_factory=list)
    error: str | None = None
    rate_limited: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


class SearchClient(Protocol):
    def search(self, query: str) -> SearchResponse:
        """Run ``query`` and return ranked results."""


class SerpApiSearchClient:
    """Minimal SerpAPI client on top of httpx."""

    def __init__(
        self,
        config: ProfileLookupConfig,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        if not config.api_key:
            raise ValueError("SerpApiSearchClient requires an api_key")
        self.config = config
        self.logger = logger or structlog.get_logger("maker_radar.search")
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=config.timeout)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def search(self, query: str) -> SearchResponse:
        params = {
            "engine": "google",
            "q": query,
            "num": self.config.results_per_query,
            "safe": "active",
            "api_key": self.config.api_key,
        }
        try:
            response = self._client.get(self.config.endpoint, params=params, timeout=self.config.timeout)
        except httpx.HTTPError as exc:
            return SearchResponse(error=f"Search request failed: {exc}")
        if response.status_code == 429:
            return SearchResponse(error="Search API rate limit reached", rate_limited=True)
        try:
            payload = response.json()
        except ValueError:
            return SearchResponse(error=f"Unreadable search response (HTTP {response.status_code})")
        if not isinstance(payload, dict):
            return SearchResponse(error="Unexpected search response shape")
        if payload.get("error"):
            message = str(payload["error"])
            limited = any(hint in message.lower() for hint in _RATE_LIMIT_HINTS)
            return SearchResponse(error=message, rate_limited=limited)
        if response.status_code >= 400:
            return SearchResponse(error=f"Search API returned HTTP {response.status_code}")
        results = [
            SearchResult(
                title=str(item.get("title") or ""),
                snippet=str(item.get("snippet") or ""),
                link=str(item.get("link") or ""),
            )
            for item in payload.get("organic_results") or []
            if isinstance(item, dict)
        ]
        return SearchResponse(results=results)


class LookupStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass(slots=True)
class LookupOutcome:
    """Tagged result of one lookup; ``NOT_FOUND`` is a real, cacheable answer."""

    status: LookupStatus
    profile_url: str | None = None
    error: str | None = None
    rate_limited: bool = False
    from_cache: bool = False

    @classmethod
    def found(cls, url: str, from_cache: bool = False) -> "LookupOutcome":
        return cls(LookupStatus.FOUND, profile_url=url, from_cache=from_cache)

    @classmethod
    def not_found(cls, from_cache: bool = False) -> "LookupOutcome":
        return cls(LookupStatus.NOT_FOUND, from_cache=from_cache)

    @classmethod
    def failed(cls, error: str, rate_limited: bool = False) -> "LookupOutcome":
        return cls(LookupStatus.ERROR, error=error, rate_limited=rate_limited)


@dataclass
class ProfileReport:
    processed: int = 0
    found: int = 0
    not_found: int = 0
    cache_hits: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "found": self.found,
            "not_found": self.not_found,
            "cache_hits": self.cache_hits,
            "errors": list(self.errors),
        }


def score_candidate(result: SearchResult, name: str) -> int:
    title = result.title.lower()
    snippet = result.snippet.lower()
    lowered = name.lower()
    score = 10 if lowered and lowered in title else 0
    for token in lowered.split():
        if len(token) > 2:
            if token in title:
                score += 2
            if token in snippet:
                score += 1
    return score


def best_match(results: Iterable[SearchResult], name: str, marker: str) -> str | None:
    """Return the link of the highest scoring profile candidate, if any scores."""

    best_link, best_score = None, 0
    for result in results:
        if marker not in result.link:
            continue
        score = score_candidate(result, name)
        if score > best_score:
            best_link, best_score = result.link, score
    return best_link


class ProfileLookupWorker:
    """Resolve maker names to profile URLs, one external call at a time."""

    def __init__(
        self,
        config: ProfileLookupConfig,
        cache: EnrichmentCache,
        index: DeduplicationIndex,
        search_client: SearchClient | None = None,
        ttl: timedelta | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.index = index
        self.ttl = ttl
        self._sleep = sleep
        self.logger = logger or structlog.get_logger("maker_radar.profile_lookup")
        if search_client is None and config.api_key:
            search_client = SerpApiSearchClient(config)
        self.search_client = search_client

    def lookup(self, maker_name: str | None) -> LookupOutcome:
        if not maker_name or not maker_name.strip() or not clean_key(maker_name):
            return LookupOutcome.not_found()

        key = profile_cache_key(maker_name)
        cached = self.cache.get(key)
        if cached is not None:
            self.logger.debug("profile_cache_hit", maker=maker_name, found=cached.payload is not None)
            if cached.payload:
                return LookupOutcome.found(str(cached.payload), from_cache=True)
            return LookupOutcome.not_found(from_cache=True)

        if self.search_client is None:
            self.logger.info("profile_lookup_unconfigured", maker=maker_name)
            self.cache.set(key, None, ttl=self.ttl)
            return LookupOutcome.not_found()

        search_name = clean_search_name(maker_name)
        query = f'"{search_name}" site:{self.config.site_filter}'
        try:
            response = self.search_client.search(query)
        except Exception as exc:  # noqa: BLE001
            response = SearchResponse(error=str(exc))

        if not response.ok:
            self.logger.warning(
                "profile_lookup_failed",
                maker=maker_name,
                error=response.error,
                rate_limited=response.rate_limited,
            )
            self.cache.set(key, None, ttl=self.ttl)
            return LookupOutcome.failed(response.error or "unknown error", response.rate_limited)

        link = best_match(response.results, search_name, self.config.profile_marker)
        self.cache.set(key, link, ttl=self.ttl)
        if link:
            self.logger.info("profile_found", maker=maker_name, url=link)
            return LookupOutcome.found(link)
        self.logger.info("profile_not_found", maker=maker_name)
        return LookupOutcome.not_found()

    def enrich_records(self, records: Iterable[Record]) -> ProfileReport:
        report = ProfileReport()
        started = time.monotonic()
        for record in records:
            try:
                outcome = self.lookup(record.maker_name)
                self.index.update_fields(record.id, profile_url=outcome.profile_url)
            except StoreError:
                raise
            except Exception as exc:  # noqa: BLE001
                self.logger.error("profile_enrichment_error", record_id=record.id, error=str(exc))
                report.errors.append(
                    {
                        "record_id": record.id,
                        "name": record.name,
                        "maker_name": record.maker_name,
                        "error": str(exc),
                    }
                )
                continue

            report.processed += 1
            if outcome.status is LookupStatus.FOUND:
                report.found += 1
            else:
                report.not_found += 1
            if outcome.from_cache:
                report.cache_hits += 1
            elif self.search_client is not None and self.config.request_delay:
                self._sleep(self.config.request_delay)

        self.logger.info(
            "profile_enrichment_completed",
            duration=round(time.monotonic() - started, 3),
            **{k: v for k, v in report.to_dict().items() if k != "errors"},
            errors=len(report.errors),
        )
        return report

    def clear_cache(self) -> InvalidationReport:
        return self.cache.invalidate_by_prefix(PROFILE_CACHE_PREFIX)


__all__ = [
    "LookupOutcome",
    "LookupStatus",
    "PROFILE_CACHE_PREFIX",
    "ProfileLookupWorker",
    "ProfileReport",
    "SearchClient",
    "SearchResponse",
    "SearchResult",
    "SerpApiSearchClient",
    "best_match",
    "clean_search_name",
    "profile_cache_key",
    "score_candidate",
]
