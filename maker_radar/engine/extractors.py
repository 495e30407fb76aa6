"""Ordered selector strategies that pull optional fields out of a listing page.

Each field owns a list of selectors tried in order; within a selector every
matching node is tried in document order. The first value that survives the
field's transform wins. Selectors accept the ``css::mode`` suffix where mode is
``text`` (default), ``html``, ``attr:<name>`` or ``image`` (``content``/``src``
with the largest ``srcset`` candidate preferred).
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from selectolax.lexbor import LexborHTMLParser, LexborNode

TOPIC_LIMIT = 5
COMPANY_INFO_MAX_LENGTH = 500

DAY_RANK_SELECTORS = (
    '[data-sentry-component="CategoryTags"] a[href*="/categories/"]',
    '[data-test="product-rank"]',
    ".daily-rank",
    '[class*="rank"]',
)
TOPIC_SELECTORS = (
    '[data-sentry-component="CategoryTags"] a[href*="/categories/"]',
    '[data-test="topic-tag"]',
    ".tag-link",
    ".category-tag",
    'a[href*="/topics/"]',
)
WEBSITE_SELECTORS = (
    'a[data-test="visit-website-button"]::attr:href',
    '[data-sentry-component="Status"] a[href*="?ref=producthunt"]::attr:href',
    ".website-link a::attr:href",
    'a[href^="http"]::attr:href',
)
COMPANY_INFO_SELECTORS = (
    '[data-sentry-component="Description"]',
    '[data-test="company-info"]',
    ".post-body",
    ".product-description",
    '[class*="description"]',
    'meta[name="description"]::attr:content',
)
LAUNCH_SELECTORS = (
    '[data-sentry-component="Status"]',
    '[data-test="header"]',
    '[class*="launched"]',
)
ACCELERATOR_SELECTORS = (
    '[data-sentry-component="Description"]',
    '[data-sentry-component="Status"]',
    ".company-info",
    '[class*="accelerator"]',
)
PROFILE_SELECTORS = (
    '[data-sentry-component="SocialLinks"] a[href*="linkedin.com/in/"]::attr:href',
    ".social-link--linkedin::attr:href",
    '[data-test="linkedin-link"]::attr:href',
    'a[href*="linkedin.com/in/"]::attr:href',
)
REPOSITORY_SELECTORS = (
    '[data-sentry-component="Status"] a[href*="github.com"]::attr:href',
    ".social-link--github::attr:href",
    '[data-test="github-link"]::attr:href',
    'a[href*="github.com"]::attr:href',
)
THUMBNAIL_SELECTORS = (
    'meta[property="og:image"]::image',
    'meta[name="twitter:image"]::image',
    '[data-test="thumbnail"] img::image',
    '[data-sentry-component="Header"] img::image',
    ".thumbnail img::image",
    '[class*="thumbnail"] img::image',
    '[class*="logo"] img::image',
    'img[src*="ph-files.imgix.net"]::image',
)

SOURCE_HOST = "producthunt.com"

_RANK = re.compile(r"#(\d+)")
_LAUNCHED_IN = re.compile(r"Launched in (\d{4})", re.IGNORECASE)
_LAUNCHED_THIS = re.compile(r"Launched this", re.IGNORECASE)
_ACCELERATOR = re.compile(r"Y Combinator|\bYC\b")
_LEADING_NUMBER = re.compile(r"^(\d+)")

Transform = Callable[[str], Any]


def split_selector(selector: str) -> tuple[str, str]:
    if "::" in selector:
        css, mode = selector.split("::", 1)
        return css.strip(), mode.strip().lower()
    return selector.strip(), "text"


def node_value(node: LexborNode, mode: str) -> str | None:
    if mode == "html":
        return node.html
    if mode.startswith("attr:"):
        return node.attributes.get(mode.split(":", 1)[1])
    if mode == "image":
        return image_source(node)
    return node.text(separator=" ", strip=True)


def image_source(node: LexborNode) -> str | None:
    """Return the node's image URL, preferring the largest ``srcset`` candidate."""

    src = node.attributes.get("content") or node.attributes.get("src")
    if not src or not src.startswith("http"):
        return None
    srcset = node.attributes.get("srcset")
    if not srcset:
        return src
    best_url, best_res = src, 1
    for candidate in srcset.split(","):
        parts = candidate.strip().split()
        if not parts:
            continue
        match = _LEADING_NUMBER.match(parts[1]) if len(parts) > 1 else None
        resolution = int(match.group(1)) if match else 1
        if resolution > best_res:
            best_url, best_res = parts[0], resolution
    return best_url


def first_match(tree: LexborHTMLParser, selectors: Iterable[str], transform: Transform | None = None) -> Any:
    """Run ``selectors`` in order and return the first non-empty transformed value."""

    for selector in selectors:
        css, mode = split_selector(selector)
        for node in tree.css(css):
            raw = node_value(node, mode)
            if raw is None or not raw.strip():
                continue
            value = transform(raw.strip()) if transform else raw.strip()
            if value:
                return value
    return None


def collect_texts(tree: LexborHTMLParser, selectors: Iterable[str], limit: int) -> list[str]:
    """Return unique texts from the first selector that yields any."""

    for selector in selectors:
        css, mode = split_selector(selector)
        found: list[str] = []
        for node in tree.css(css):
            text = (node_value(node, mode) or "").strip()
            if text and text not in found:
                found.append(text)
            if len(found) >= limit:
                break
        if found:
            return found
    return []


def parse_rank(text: str) -> int | None:
    match = _RANK.search(text)
    if not match:
        return None
    rank = int(match.group(1))
    return rank if rank > 0 else None


def external_link(href: str) -> str | None:
    if not href.startswith("http") or SOURCE_HOST in href:
        return None
    return href.split("?", 1)[0]


def profile_link(href: str) -> str | None:
    if "linkedin.com" not in href or SOURCE_HOST in href:
        return None
    return href


def repository_link(href: str) -> str | None:
    if "github.com" not in href or "login" in href or SOURCE_HOST in href:
        return None
    return href.split("?", 1)[0]


def company_info(text: str) -> str | None:
    return text[:COMPANY_INFO_MAX_LENGTH] or None


def accelerator(text: str) -> str | None:
    return "Y Combinator" if _ACCELERATOR.search(text) else None


class DetailExtractor:
    """Extract the optional detail fields from a listing page."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def launch_year(self, text: str) -> str | None:
        match = _LAUNCHED_IN.search(text)
        if match:
            return match.group(1)
        if _LAUNCHED_THIS.search(text):
            return str(self._clock().year)
        return None

    def extract(self, html: str) -> dict[str, Any]:
        """Return every detail field; ``None`` (or ``[]``) means nothing matched."""

        tree = LexborHTMLParser(html)
        return {
            "day_rank": first_match(tree, DAY_RANK_SELECTORS, parse_rank),
            "topics": collect_texts(tree, TOPIC_SELECTORS, TOPIC_LIMIT),
            "company_website": first_match(tree, WEBSITE_SELECTORS, external_link),
            "company_info": first_match(tree, COMPANY_INFO_SELECTORS, company_info),
            "launch_year": first_match(tree, LAUNCH_SELECTORS, self.launch_year),
            "accelerator": first_match(tree, ACCELERATOR_SELECTORS, accelerator),
            "profile_url": first_match(tree, PROFILE_SELECTORS, profile_link),
            "repository_url": first_match(tree, REPOSITORY_SELECTORS, repository_link),
            "thumbnail_url": first_match(tree, THUMBNAIL_SELECTORS),
        }


__all__ = [
    "DetailExtractor",
    "collect_texts",
    "first_match",
    "image_source",
    "parse_rank",
    "split_selector",
]
