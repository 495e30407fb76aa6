from __future__ import annotations

import httpx
import pytest

from maker_radar.engine import DeduplicationIndex, EnrichmentCache, FetchError, PageFetcher
from maker_radar.enrichment.detail_scrape import (
    DetailScrapeWorker,
    detail_cache_key,
    merge_details,
)

PAGE = """
<html><body>
  <div data-sentry-component="CategoryTags"><a href="/categories/ai">AI</a></div>
  <div data-sentry-component="Status">Launched in 2022</div>
  <a data-test="visit-website-button" href="https://acme.dev/?ref=producthunt">Visit</a>
  <div data-sentry-component="Description">Acme turns specs into software.</div>
</body></html>
"""


class CountingHandler:
    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.urls: list[str] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.urls.append(str(request.url))
        outcome = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _worker(memory_store, clock, detail_config, handler, no_sleep, **overrides):
    config = detail_config(**overrides)
    index = DeduplicationIndex(memory_store)
    worker = DetailScrapeWorker(
        config,
        EnrichmentCache(memory_store, clock=clock),
        index,
        fetcher=PageFetcher(config, client=httpx.Client(transport=httpx.MockTransport(handler))),
        clock=clock,
        sleep=no_sleep,
    )
    return worker, index


def test_enrich_record_extracts_persists_and_caches(
    memory_store, clock, detail_config, normalized_entry, no_sleep
) -> None:
    handler = CountingHandler(httpx.Response(200, text=PAGE))
    worker, index = _worker(memory_store, clock, detail_config, handler, no_sleep)
    record = index.admit(normalized_entry()).record

    enriched = worker.enrich_record(record)

    assert handler.urls == ["https://www.producthunt.com/posts/acme?utm_source=rss"]
    assert enriched.topics == ["AI"]
    assert enriched.launch_year == "2022"
    assert enriched.company_website == "https://acme.dev/"
    assert enriched.company_info == "Acme turns specs into software."
    assert enriched.detail_enriched_at == clock.now
    stored = index.require(record.id)
    assert stored.topics == ["AI"]
    cached = memory_store.get(detail_cache_key(record.id))
    assert cached["data"]["launch_year"] == "2022"


def test_cached_details_skip_the_network(memory_store, clock, detail_config, normalized_entry, no_sleep) -> None:
    handler = CountingHandler(httpx.Response(200, text=PAGE))
    worker, index = _worker(memory_store, clock, detail_config, handler, no_sleep)
    record = index.admit(normalized_entry()).record
    worker.enrich_record(record)

    again = worker.enrich_record(record)

    assert len(handler.urls) == 1
    assert again.topics == ["AI"]
    assert again.detail_enriched_at == clock.now


def test_exhausted_retries_raise_fetch_error(memory_store, clock, detail_config, normalized_entry, no_sleep) -> None:
    handler = CountingHandler(httpx.ConnectError("down"))
    worker, index = _worker(
        memory_store, clock, detail_config, handler, no_sleep, max_attempts=3, backoff_seconds=2.0
    )
    record = index.admit(normalized_entry()).record

    with pytest.raises(FetchError):
        worker.enrich_record(record)

    assert len(handler.urls) == 3
    assert no_sleep.calls == [2.0, 4.0]
    assert index.require(record.id).detail_enriched_at is None


def test_batch_isolates_failures_and_skips_recent(
    memory_store, clock, detail_config, normalized_entry, no_sleep
) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if "broken" in str(request.url):
            return httpx.Response(500)
        return httpx.Response(200, text=PAGE)

    worker, index = _worker(memory_store, clock, detail_config, handler, no_sleep, request_delay=1.0)
    broken = index.admit(
        normalized_entry(source_link="https://x.com/posts/broken", original_link="https://x.com/posts/broken")
    ).record
    good = index.admit(normalized_entry()).record
    recent = index.update_fields(
        index.admit(normalized_entry(source_link="https://x.com/posts/recent")).record.id,
        detail_enriched_at=clock.now,
    )

    report = worker.enrich_new_records([broken, good, recent])

    assert report.processed == 2
    assert report.enriched == 1
    assert report.skipped == 1
    assert report.errors[0]["record_id"] == broken.id
    assert index.require(good.id).topics == ["AI"]
    assert 1.0 in no_sleep.calls


def test_recently_enriched_uses_ttl(memory_store, clock, detail_config, normalized_entry, no_sleep) -> None:
    worker, index = _worker(
        memory_store, clock, detail_config, CountingHandler(httpx.Response(200)), no_sleep, cache_expiry_hours=1
    )
    record = index.admit(normalized_entry()).record.with_fields(detail_enriched_at=clock.now)
    assert worker.recently_enriched(record) is True
    clock.advance(minutes=61)
    assert worker.recently_enriched(record) is False


def test_merge_keeps_existing_values_when_extraction_is_empty(memory_store, normalized_entry) -> None:
    record = DeduplicationIndex(memory_store).admit(normalized_entry()).record.with_fields(
        company_website="https://old.example.com", topics=["Legacy"]
    )
    merged = merge_details(record, {"company_website": None, "topics": [], "launch_year": "2020"})
    assert merged["company_website"] == "https://old.example.com"
    assert merged["topics"] == ["Legacy"]
    assert merged["launch_year"] == "2020"


def test_cache_hit_keeps_fields_set_after_the_scrape(
    memory_store, clock, detail_config, normalized_entry, no_sleep
) -> None:
    handler = CountingHandler(httpx.Response(200, text=PAGE))
    worker, index = _worker(memory_store, clock, detail_config, handler, no_sleep)
    record = index.admit(normalized_entry()).record
    worker.enrich_record(record)
    assert memory_store.get(detail_cache_key(record.id))["data"]["profile_url"] is None

    index.update_fields(record.id, profile_url="https://linkedin.com/in/janedoe")
    again = worker.enrich_record(record)

    assert len(handler.urls) == 1
    assert again.profile_url == "https://linkedin.com/in/janedoe"
    assert again.topics == ["AI"]
    assert index.require(record.id).profile_url == "https://linkedin.com/in/janedoe"
