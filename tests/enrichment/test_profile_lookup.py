from __future__ import annotations

from datetime import timedelta

import httpx

from maker_radar.engine import DeduplicationIndex, EnrichmentCache
from maker_radar.enrichment.profile_lookup import (
    LookupStatus,
    ProfileLookupWorker,
    SearchResponse,
    SearchResult,
    SerpApiSearchClient,
    best_match,
    clean_search_name,
    profile_cache_key,
    score_candidate,
)

MARKER = "linkedin.com/in/"


class StubSearchClient:
    def __init__(self, *responses: SearchResponse) -> None:
        self.responses = list(responses)
        self.queries: list[str] = []

    def search(self, query: str) -> SearchResponse:
        self.queries.append(query)
        if not self.responses:
            return SearchResponse()
        return self.responses.pop(0)


def _worker(memory_store, clock, lookup_config, client, no_sleep=None, **overrides):
    cache = EnrichmentCache(memory_store, default_ttl=timedelta(hours=24), clock=clock)
    index = DeduplicationIndex(memory_store)
    worker = ProfileLookupWorker(
        lookup_config(**overrides),
        cache,
        index,
        search_client=client,
        sleep=no_sleep or (lambda seconds: None),
    )
    return worker, index


def test_scoring_prefers_verbatim_title_match() -> None:
    results = [
        SearchResult(title="Jane Smith - Engineer", snippet="Works with Doe", link="https://linkedin.com/in/jsmith"),
        SearchResult(title="Jane Doe - Founder at Acme", snippet="", link="https://linkedin.com/in/janedoe"),
        SearchResult(title="Jane Doe", snippet="", link="https://twitter.com/janedoe"),
    ]
    assert score_candidate(results[0], "Jane Doe") == 3
    assert score_candidate(results[1], "Jane Doe") == 14
    assert best_match(results, "Jane Doe", MARKER) == "https://linkedin.com/in/janedoe"


def test_best_match_requires_positive_score() -> None:
    results = [SearchResult(title="Someone", snippet="else", link="https://linkedin.com/in/someone")]
    assert best_match(results, "Jane Doe", MARKER) is None


def test_clean_search_name_and_cache_key() -> None:
    assert clean_search_name("  Jane   (Doe)! ") == "Jane Doe"
    assert profile_cache_key("Jane DOE!") == profile_cache_key("jane doe")


def test_lookup_found_is_cached(memory_store, clock, lookup_config) -> None:
    client = StubSearchClient(
        SearchResponse(results=[SearchResult(title="Jane Doe | LinkedIn", link="https://linkedin.com/in/janedoe")])
    )
    worker, _ = _worker(memory_store, clock, lookup_config, client)

    first = worker.lookup("Jane Doe")
    second = worker.lookup("jane doe!")

    assert first.status is LookupStatus.FOUND
    assert first.profile_url == "https://linkedin.com/in/janedoe"
    assert second.from_cache is True
    assert second.profile_url == first.profile_url
    assert client.queries == ['"Jane Doe" site:linkedin.com/in']


def test_negative_result_prevents_repeat_calls(memory_store, clock, lookup_config) -> None:
    client = StubSearchClient(SearchResponse(results=[]))
    worker, _ = _worker(memory_store, clock, lookup_config, client)

    assert worker.lookup("Nobody Known").status is LookupStatus.NOT_FOUND
    repeat = worker.lookup("Nobody Known")

    assert repeat.status is LookupStatus.NOT_FOUND
    assert repeat.from_cache is True
    assert len(client.queries) == 1

    clock.advance(hours=25)
    worker.lookup("Nobody Known")
    assert len(client.queries) == 2


def test_errors_are_cached_as_negative(memory_store, clock, lookup_config) -> None:
    client = StubSearchClient(SearchResponse(error="Search API rate limit reached", rate_limited=True))
    worker, _ = _worker(memory_store, clock, lookup_config, client)

    outcome = worker.lookup("Jane Doe")
    assert outcome.status is LookupStatus.ERROR
    assert outcome.rate_limited is True

    assert worker.lookup("Jane Doe").status is LookupStatus.NOT_FOUND
    assert len(client.queries) == 1


def test_blank_names_skip_everything(memory_store, clock, lookup_config) -> None:
    client = StubSearchClient()
    worker, _ = _worker(memory_store, clock, lookup_config, client)
    assert worker.lookup("   ").status is LookupStatus.NOT_FOUND
    assert worker.lookup(None).status is LookupStatus.NOT_FOUND
    assert client.queries == []


def test_missing_api_key_makes_no_calls(memory_store, clock, lookup_config) -> None:
    worker, _ = _worker(memory_store, clock, lookup_config, None, api_key=None)
    assert worker.search_client is None
    assert worker.lookup("Jane Doe").status is LookupStatus.NOT_FOUND
    assert worker.cache.get(profile_cache_key("Jane Doe")).payload is None


def test_enrich_records_writes_profiles_and_sleeps_between_calls(
    memory_store, clock, lookup_config, normalized_entry, no_sleep
) -> None:
    client = StubSearchClient(
        SearchResponse(results=[SearchResult(title="Jane Doe", link="https://linkedin.com/in/janedoe")]),
        SearchResponse(results=[]),
    )
    worker, index = _worker(
        memory_store, clock, lookup_config, client, no_sleep=no_sleep, request_delay=0.5
    )
    jane = index.admit(normalized_entry()).record
    sam = index.admit(normalized_entry(source_link="https://x.com/posts/beta", maker_name="Sam Smith")).record
    again = index.admit(normalized_entry(source_link="https://x.com/posts/gamma", maker_name="Jane Doe")).record

    report = worker.enrich_records([jane, sam, again])

    assert (report.processed, report.found, report.not_found, report.cache_hits) == (3, 2, 1, 1)
    assert report.errors == []
    assert index.require(jane.id).profile_url == "https://linkedin.com/in/janedoe"
    assert index.require(sam.id).profile_url is None
    assert index.require(again.id).profile_url == "https://linkedin.com/in/janedoe"
    assert no_sleep.calls == [0.5, 0.5]


def test_enrich_records_isolates_per_record_errors(memory_store, clock, lookup_config, normalized_entry) -> None:
    worker, index = _worker(memory_store, clock, lookup_config, StubSearchClient())
    ghost = index.admit(normalized_entry()).record.with_fields(id="ghost")

    report = worker.enrich_records([ghost])

    assert report.processed == 0
    assert report.errors[0]["record_id"] == "ghost"


def test_clear_cache_only_drops_profile_namespace(memory_store, clock, lookup_config) -> None:
    worker, _ = _worker(memory_store, clock, lookup_config, StubSearchClient())
    worker.lookup("Jane Doe")
    worker.cache.set("detail_cache:1", {"topics": []})

    report = worker.clear_cache()

    assert report.store_cleared == 1
    assert memory_store.get("detail_cache:1") is not None


def test_serpapi_client_builds_query_and_parses_results(lookup_config) -> None:
    captured: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(dict(request.url.params))
        return httpx.Response(
            200,
            json={"organic_results": [{"title": "Jane Doe", "snippet": "Founder", "link": "https://linkedin.com/in/janedoe"}]},
        )

    client = SerpApiSearchClient(lookup_config(), client=httpx.Client(transport=httpx.MockTransport(handler)))
    response = client.search('"Jane Doe" site:linkedin.com/in')

    assert response.ok
    assert response.results[0].link == "https://linkedin.com/in/janedoe"
    assert captured["q"] == '"Jane Doe" site:linkedin.com/in'
    assert captured["engine"] == "google"
    assert captured["api_key"] == "test-key"
    assert captured["num"] == "5"


def test_serpapi_client_flags_rate_limits(lookup_config) -> None:
    limited = SerpApiSearchClient(
        lookup_config(), client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(429)))
    ).search("q")
    assert limited.rate_limited is True
    assert not limited.ok

    exhausted = SerpApiSearchClient(
        lookup_config(),
        client=httpx.Client(
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"error": "Your account has run out of searches."})
            )
        ),
    ).search("q")
    assert exhausted.rate_limited is True
