"""Enrichment workers."""

from .detail_scrape import DetailReport, DetailScrapeWorker
from .profile_lookup import (
    LookupOutcome,
    LookupStatus,
    ProfileLookupWorker,
    ProfileReport,
    SearchResponse,
    SearchResult,
    SerpApiSearchClient,
)

__all__ = [
    "DetailReport",
    "DetailScrapeWorker",
    "LookupOutcome",
    "LookupStatus",
    "ProfileLookupWorker",
    "ProfileReport",
    "SearchResponse",
    "SearchResult",
    "SerpApiSearchClient",
]
