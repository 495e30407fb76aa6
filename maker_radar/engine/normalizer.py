"""Canonicalise raw feed entries into comparable, structured records."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlparse

from selectolax.lexbor import LexborHTMLParser

TITLE_MAX_LENGTH = 200
DESCRIPTION_MAX_LENGTH = 500
MAKER_MAX_LENGTH = 100
MIN_TITLE_LENGTH = 3
MIN_DESCRIPTION_LENGTH = 10

_TITLE_PREFIX = re.compile(r"^Product Hunt:\s*", re.IGNORECASE)
_TITLE_SUFFIX = re.compile(r"\s*-\s*Product Hunt$", re.IGNORECASE)
_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")
_DESCRIPTION_TRAILERS = (
    re.compile(r"Discussion\s*\|\s*Link\s*$", re.IGNORECASE),
    re.compile(r"Discussion\s*$", re.IGNORECASE),
    re.compile(r"\|\s*Link\s*$", re.IGNORECASE),
)
_PLACEHOLDER_DESCRIPTIONS = {"no description", "|"}

# Order matters: the first pattern that matches wins.
MAKER_PATTERNS = (
    re.compile(r"\bby\s+([^<>\n,]+)", re.IGNORECASE),
    re.compile(r"\bmaker[:\s]+([^<>\n,]+)", re.IGNORECASE),
    re.compile(r"\bcreated by\s+([^<>\n,]+)", re.IGNORECASE),
    re.compile(r"\bfrom\s+([^<>\n,]+)", re.IGNORECASE),
)

_DEFAULT_PORTS = {"http": 80, "https": 443}


class EntryRejected(ValueError):
    """Raised when a feed entry cannot become a record."""

    def __init__(self, reason: str, link: str | None = None) -> None:
        super().__init__(reason)
        self.reason = reason
        self.link = link


@dataclass(slots=True)
class RawFeedEntry:
    """One item exactly as the feed delivered it."""

    title: str | None
    link: str | None
    description: str | None = None
    content: str | None = None
    author: str | None = None
    creator: str | None = None
    published: datetime | None = None


@dataclass(slots=True)
class NormalizedEntry:
    """Feed entry reduced to the fields a record is built from."""

    source_link: str
    original_link: str
    name: str
    description: str
    category: str | None
    maker_name: str | None
    published_at: datetime


def normalize_link(url: str) -> str:
    """Reduce ``url`` to scheme + host + path without query, fragment or trailing slash.

    Raises ``ValueError`` when the URL has no scheme or host.
    """

    parsed = urlparse((url or "").strip())
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    if not scheme or not host:
        raise ValueError(f"Unparsable link: {url!r}")
    try:
        port = parsed.port
    except ValueError as exc:
        raise ValueError(f"Unparsable link: {url!r}") from exc
    netloc = host
    if port is not None and port != _DEFAULT_PORTS.get(scheme):
        netloc = f"{host}:{port}"
    path = parsed.path
    if path.endswith("/"):
        path = path[:-1]
    return f"{scheme}://{netloc}{path}"


def same_link(left: str | None, right: str | None) -> bool:
    """Compare two links by their normalized form, tolerating malformed input."""

    if not left or not right:
        return False
    return _safe_normalize(left) == _safe_normalize(right)


def _safe_normalize(url: str) -> str:
    try:
        return normalize_link(url)
    except ValueError:
        return url.strip()


def strip_markup(text: str) -> str:
    if "<" not in text and "&" not in text:
        return text
    return LexborHTMLParser(f"<div>{text}</div>").text(separator=" ")


def clean_title(title: str) -> str:
    cleaned = _TITLE_PREFIX.sub("", title)
    cleaned = _TITLE_SUFFIX.sub("", cleaned)
    return cleaned.strip()[:TITLE_MAX_LENGTH]


def clean_description(description: str | None) -> str:
    if not description:
        return ""
    cleaned = _WHITESPACE.sub(" ", strip_markup(description)).strip()
    for trailer in _DESCRIPTION_TRAILERS:
        cleaned = trailer.sub("", cleaned)
    cleaned = cleaned.strip()
    if len(cleaned) < MIN_DESCRIPTION_LENGTH or cleaned.lower() in _PLACEHOLDER_DESCRIPTIONS:
        return ""
    return cleaned[:DESCRIPTION_MAX_LENGTH]


def clean_maker_name(maker: str) -> str:
    cleaned = _TAG.sub("", maker)
    cleaned = cleaned.replace("@", "").replace("#", "")
    return cleaned.strip()[:MAKER_MAX_LENGTH]


def extract_maker_from_content(content: str | None) -> str | None:
    if not content:
        return None
    for pattern in MAKER_PATTERNS:
        match = pattern.search(content)
        if match and match.group(1):
            name = clean_maker_name(match.group(1))
            if name:
                return name
    return None


class Normalizer:
    """Turn ``RawFeedEntry`` objects into ``NormalizedEntry`` objects."""

    def __init__(self, clock=None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def normalize(self, entry: RawFeedEntry, category: str | None = None) -> NormalizedEntry:
        if not entry.title or not entry.link:
            raise EntryRejected("missing_title_or_link", entry.link)
        try:
            source_link = normalize_link(entry.link)
        except ValueError as exc:
            raise EntryRejected("unparsable_link", entry.link) from exc

        name = clean_title(entry.title)
        if len(name) < MIN_TITLE_LENGTH:
            raise EntryRejected("title_too_short", entry.link)

        raw_description = entry.content or entry.description or ""
        maker = entry.creator or entry.author
        maker_name = clean_maker_name(maker) if maker else extract_maker_from_content(raw_description)

        published = entry.published or self._clock()
        if published.tzinfo is None:
            published = published.replace(tzinfo=timezone.utc)

        return NormalizedEntry(
            source_link=source_link,
            original_link=entry.link.strip(),
            name=name,
            description=clean_description(raw_description),
            category=category,
            maker_name=maker_name or None,
            published_at=published,
        )


__all__ = [
    "EntryRejected",
    "NormalizedEntry",
    "Normalizer",
    "RawFeedEntry",
    "clean_description",
    "clean_maker_name",
    "clean_title",
    "extract_maker_from_content",
    "normalize_link",
    "same_link",
    "strip_markup",
]
