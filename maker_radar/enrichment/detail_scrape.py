"""Listing page scraping with retry/backoff and a per-record detail cache."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

import structlog

from ..config import DetailScrapeConfig
from ..engine.cache import EnrichmentCache
from ..engine.dedup import DeduplicationIndex
from ..engine.extractors import DetailExtractor
from ..engine.fetcher import FetchError, PageFetcher
from ..engine.retry import RetryPolicy, retry_call
from ..infra.storage import StoreError
from ..records import Record

DETAIL_CACHE_PREFIX = "detail_cache:"

DETAIL_FIELDS = (
    "day_rank",
    "topics",
    "company_website",
    "company_info",
    "launch_year",
    "accelerator",
    "profile_url",
    "repository_url",
    "thumbnail_url",
)


def detail_cache_key(record_id: str) -> str:
    return f"{DETAIL_CACHE_PREFIX}{record_id}"


@dataclass
class DetailReport:
    processed: int = 0
    enriched: int = 0
    skipped: int = 0
    cache_hits: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "enriched": self.enriched,
            "skipped": self.skipped,
            "cache_hits": self.cache_hits,
            "errors": list(self.errors),
        }


def merge_details(record: Record, extracted: dict[str, Any]) -> dict[str, Any]:
    """Prefer freshly extracted values, falling back to what the record already has."""

    merged: dict[str, Any] = {}
    for name in DETAIL_FIELDS:
        value = extracted.get(name)
        merged[name] = value if value else getattr(record, name)
    return merged


def cached_fields(record: Record, payload: dict[str, Any]) -> dict[str, Any]:
    """Typed detail fields from a cached payload, merged like a fresh extraction."""

    snapshot = Record.model_validate({**record.to_store(), **payload})
    fields = merge_details(record, {name: getattr(snapshot, name) for name in DETAIL_FIELDS})
    fields["detail_enriched_at"] = snapshot.detail_enriched_at or record.detail_enriched_at
    return fields


class DetailScrapeWorker:
    """Fetch each record's listing page and fill in the optional detail fields."""

    def __init__(
        self,
        config: DetailScrapeConfig,
        cache: EnrichmentCache,
        index: DeduplicationIndex,
        fetcher: PageFetcher | None = None,
        extractor: DetailExtractor | None = None,
        clock: Callable[[], datetime] | None = None,
        sleep: Callable[[float], None] = time.sleep,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.index = index
        self.fetcher = fetcher or PageFetcher(config)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.extractor = extractor or DetailExtractor(clock=self._clock)
        self._sleep = sleep
        self.policy = RetryPolicy(config.max_attempts, config.backoff_seconds)
        self.logger = logger or structlog.get_logger("maker_radar.detail_scrape")

    def enrich_record(self, record: Record) -> Record:
        """Enrich one record; raises ``FetchError`` once every attempt failed."""

        enriched, _ = self._enrich(record)
        return enriched

    def recently_enriched(self, record: Record) -> bool:
        if record.detail_enriched_at is None:
            return False
        return self._clock() - record.detail_enriched_at < self.config.ttl

    def enrich_new_records(self, records: Iterable[Record]) -> DetailReport:
        report = DetailReport()
        first = True
        for record in records:
            if self.recently_enriched(record):
                report.skipped += 1
                self.logger.debug("detail_skip_recent", record_id=record.id)
                continue
            if not first and self.config.request_delay:
                self._sleep(self.config.request_delay)
            first = False

            report.processed += 1
            try:
                enriched, from_cache = self._enrich(record)
            except StoreError:
                raise
            except Exception as exc:  # noqa: BLE001
                self.logger.error(
                    "detail_enrichment_error", record_id=record.id, name=record.name, error=str(exc)
                )
                report.errors.append({"record_id": record.id, "name": record.name, "error": str(exc)})
                continue
            if from_cache:
                report.cache_hits += 1
            if enriched.enrichment_snapshot() != record.enrichment_snapshot():
                report.enriched += 1

        self.logger.info(
            "detail_enrichment_completed",
            processed=report.processed,
            enriched=report.enriched,
            skipped=report.skipped,
            errors=len(report.errors),
        )
        return report

    # ------------------------------------------------------------------
    def _enrich(self, record: Record) -> tuple[Record, bool]:
        key = detail_cache_key(record.id)
        current = self.index.require(record.id)
        cached = self.cache.get(key)
        if cached is not None and isinstance(cached.payload, dict):
            self.logger.debug("detail_cache_hit", record_id=record.id)
            return self.index.update_fields(record.id, **cached_fields(current, cached.payload)), True

        url = record.original_link or record.source_link
        self.logger.info("detail_fetch", record_id=record.id, url=url)
        html = retry_call(
            lambda: self.fetcher.fetch(url),
            self.policy,
            retry_on=(FetchError,),
            sleep=self._sleep,
            on_retry=lambda attempt, exc, delay: self.logger.warning(
                "detail_fetch_retry", url=url, attempt=attempt, delay=delay, error=str(exc)
            ),
        )

        fields = merge_details(current, self.extractor.extract(html))
        fields["detail_enriched_at"] = self._clock()
        enriched = self.index.update_fields(record.id, **fields)
        self.cache.set(key, {name: enriched.to_store()[name] for name in fields}, ttl=self.config.ttl)
        return enriched, False


__all__ = [
    "DETAIL_CACHE_PREFIX",
    "DETAIL_FIELDS",
    "DetailReport",
    "DetailScrapeWorker",
    "cached_fields",
    "detail_cache_key",
    "merge_details",
]
