"""Engine components: feed → normalize → dedup, cache, fetch → extract."""

from .cache import CacheEntry, CleanupReport, EnrichmentCache, InvalidationReport, clean_key
from .dedup import Admission, DeduplicationIndex, RecordNotFoundError
from .extractors import DetailExtractor
from .feed import FeedError, FeedPreview, FeedSource, UnknownCategoryError
from .fetcher import FetchError, FetchResponse, PageFetcher
from .normalizer import EntryRejected, NormalizedEntry, Normalizer, RawFeedEntry, normalize_link
from .retry import RetryPolicy, retry_call

__all__ = [
    "Admission",
    "CacheEntry",
    "CleanupReport",
    "DeduplicationIndex",
    "DetailExtractor",
    "EnrichmentCache",
    "EntryRejected",
    "FeedError",
    "FeedPreview",
    "FeedSource",
    "FetchError",
    "FetchResponse",
    "InvalidationReport",
    "NormalizedEntry",
    "Normalizer",
    "PageFetcher",
    "RawFeedEntry",
    "RecordNotFoundError",
    "RetryPolicy",
    "UnknownCategoryError",
    "clean_key",
    "normalize_link",
    "retry_call",
]
