from __future__ import annotations

import httpx
import pytest

from maker_radar.engine.fetcher import FetchError, PageFetcher


def _fetcher(detail_config, handler) -> PageFetcher:
    return PageFetcher(detail_config(), client=httpx.Client(transport=httpx.MockTransport(handler)))


def test_fetch_sends_browser_headers(detail_config) -> None:
    captured: dict[str, str] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured.update(request.headers)
        return httpx.Response(200, text="<html>ok</html>", headers={"Server": "mock"})

    fetcher = _fetcher(detail_config, handler)
    response = fetcher.get("https://x.com/posts/acme")

    assert response.status_code == 200
    assert response.text == "<html>ok</html>"
    assert response.headers["server"] == "mock"
    assert captured["accept-language"] == "en-US,en;q=0.9"
    assert captured["user-agent"].startswith("Mozilla/5.0")
    assert fetcher.fetch("https://x.com/posts/acme") == "<html>ok</html>"


def test_non_success_status_raises_fetch_error(detail_config) -> None:
    fetcher = _fetcher(detail_config, lambda request: httpx.Response(503, text="busy"))
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://x.com/posts/acme")
    assert excinfo.value.status_code == 503
    assert excinfo.value.url == "https://x.com/posts/acme"


def test_transport_error_raises_fetch_error(detail_config) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    fetcher = _fetcher(detail_config, handler)
    with pytest.raises(FetchError) as excinfo:
        fetcher.fetch("https://x.com/posts/acme")
    assert excinfo.value.status_code is None
