"""HTTP page fetching for listing detail pages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

import httpx
import structlog

from ..config import DetailScrapeConfig


class FetchError(RuntimeError):
    """Raised for transport failures and non-success responses."""

    def __init__(self, url: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


@dataclass(slots=True)
class FetchResponse:
    """Standardised response wrapper."""

    url: str
    status_code: int
    text: str
    headers: Dict[str, str] = field(default_factory=dict)


class PageFetcher:
    """Fetch single pages with browser-like headers; one attempt per call."""

    def __init__(
        self,
        config: DetailScrapeConfig,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or structlog.get_logger("maker_radar.fetcher")
        self._owns_client = client is None
        self._client = client or httpx.Client(follow_redirects=True, timeout=config.timeout)

    @property
    def headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.config.user_agent,
            "Accept-Language": "en-US,en;q=0.9",
        }

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def get(self, url: str) -> FetchResponse:
        try:
            response = self._client.get(url, headers=self.headers, timeout=self.config.timeout)
        except httpx.HTTPError as exc:
            self.logger.warning("fetch_error", url=url, error=str(exc))
            raise FetchError(url, f"Request to {url} failed: {exc}") from exc
        if not response.is_success:
            self.logger.warning("fetch_bad_status", url=url, status=response.status_code)
            raise FetchError(
                url,
                f"HTTP {response.status_code} for {url}",
                status_code=response.status_code,
            )
        return FetchResponse(
            url=str(response.url),
            status_code=response.status_code,
            text=response.text,
            headers=dict(response.headers),
        )

    def fetch(self, url: str) -> str:
        return self.get(url).text


__all__ = ["FetchError", "FetchResponse", "PageFetcher"]
