"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; point everything at test values first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENVIRONMENT"] = "test"
os.environ["COMPETITOR_DELAY_SECONDS"] = "0"
os.environ["AI_ENRICHMENT_ENABLED"] = "false"
os.environ["AI_API_KEY"] = ""
os.environ["SCRAPER_PRESETS_PATH"] = ""
os.environ["SCRAPE_INTERVAL_MINUTES"] = "0"

from typing import Any, Callable, Dict, List  # noqa: E402

import httpx  # noqa: E402
import pytest  # noqa: E402

from promowatch.scrapers.fetcher import HttpFetcher  # noqa: E402


class RouteTable:
    """httpx MockTransport handler serving canned responses by URL.

    Keys are URLs without query string. Values may be an httpx.Response,
    a callable taking the request, or an exception instance to raise.
    Unknown URLs answer 404. Every request is recorded.
    """

    def __init__(self, routes: Dict[str, Any]):
        self.routes = routes
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = f"{request.url.scheme}://{request.url.host}{request.url.path}"
        route = self.routes.get(key)

        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, Exception):
            raise route
        if callable(route):
            return route(request)
        # Canned responses are copied per request
        return httpx.Response(route.status_code, headers=route.headers, content=route.content)

    def urls(self) -> List[str]:
        return [str(r.url) for r in self.requests]


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for tests."""
    return "asyncio"


@pytest.fixture
def make_fetcher() -> Callable[[Dict[str, Any]], HttpFetcher]:
    """Build an HttpFetcher backed by a RouteTable (exposed as ``fetcher.routes``)."""

    def _make(routes: Dict[str, Any]) -> HttpFetcher:
        table = RouteTable(routes)
        client = httpx.AsyncClient(transport=httpx.MockTransport(table))
        fetcher = HttpFetcher(client=client, timeout=5.0)
        fetcher.routes = table
        return fetcher

    return _make


def html_response(body: str, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, text=body, headers={"content-type": "text/html; charset=utf-8"})


@pytest.fixture
def html():
    """Factory for text/html responses."""
    return html_response
