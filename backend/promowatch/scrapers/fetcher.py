"""HTTP fetch layer used by every scraping strategy.

All strategies go through a PageFetcher. The default HttpFetcher issues
plain GET requests with httpx and a uniform timeout; CachingFetcher
memoizes responses for the duration of one competitor so the fallback
chain does not download the same URL repeatedly.
"""

import json
import random
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple
from urllib.parse import urlencode, urlparse

import httpx
import structlog

from promowatch.config import settings
from promowatch.core.exceptions import FetchError
from promowatch.scrapers.utils.rate_limiter import DomainRateLimiter

logger = structlog.get_logger(__name__)


# Desktop browser user agents
USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.1 Safari/605.1.15",
]


@dataclass(frozen=True)
class FetchResult:
    """Body and metadata of a successful response."""

    url: str
    status_code: int
    content: bytes
    text: str
    content_type: str = ""

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON
        """
        return json.loads(self.text)


class PageFetcher(Protocol):
    """Anything able to GET a URL and return a FetchResult."""

    async def fetch(self, url: str, params: Optional[Dict[str, Any]] = None) -> FetchResult:
        ...


class RenderedHtmlFetcher(Protocol):
    """Optional capability for JS-rendered pages (headless browser service)."""

    async def fetch_rendered_html(self, url: str) -> str:
        ...


class HttpFetcher:
    """Plain httpx GET fetcher with timeout, browser headers and rate limiting."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
        rate_limiter: Optional[DomainRateLimiter] = None,
    ):
        """Initialize the fetcher.

        Args:
            client: Optional preconfigured AsyncClient (tests inject a MockTransport)
            timeout: Per-request timeout in seconds (defaults to REQUEST_TIMEOUT)
            rate_limiter: Optional per-domain limiter
        """
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
        )
        self.rate_limiter = rate_limiter
        self.logger = logger.bind(service="http_fetcher")

    async def fetch(self, url: str, params: Optional[Dict[str, Any]] = None) -> FetchResult:
        """GET a URL.

        Args:
            url: Absolute URL
            params: Optional query parameters

        Returns:
            FetchResult for a 2xx response

        Raises:
            FetchError: On network errors, timeouts and non-2xx statuses
        """
        if self.rate_limiter:
            await self.rate_limiter.acquire(urlparse(url).netloc)

        try:
            response = await self.client.get(
                url,
                params=params,
                headers=self._get_headers(),
                timeout=self.timeout,
                follow_redirects=True,
            )
        except httpx.HTTPError as e:
            self.logger.warning("fetch_failed", url=url, error=str(e) or type(e).__name__)
            raise FetchError(url, str(e) or type(e).__name__) from e

        if not response.is_success:
            self.logger.warning("fetch_bad_status", url=url, status_code=response.status_code)
            raise FetchError(url, f"HTTP {response.status_code}", status_code=response.status_code)

        self.logger.debug(
            "fetch_completed",
            url=url,
            status_code=response.status_code,
            content_length=len(response.content),
        )

        return FetchResult(
            url=str(response.url),
            status_code=response.status_code,
            content=response.content,
            text=response.text,
            content_type=response.headers.get("content-type", ""),
        )

    def _get_headers(self) -> Dict[str, str]:
        """Request headers mimicking a browser."""
        return {
            "User-Agent": random.choice(USER_AGENTS),
            "Accept": "text/html,application/xhtml+xml,application/json;q=0.9,*/*;q=0.8",
            "Accept-Language": "bs,hr;q=0.9,en;q=0.8",
        }

    async def aclose(self) -> None:
        """Close the underlying client if this fetcher created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


class CachingFetcher:
    """Memoizes results and failures of another fetcher.

    One instance lives for one competitor; a failed URL is not retried.
    """

    def __init__(self, inner: PageFetcher):
        self.inner = inner
        self._results: Dict[Tuple[str, str], FetchResult] = {}
        self._errors: Dict[Tuple[str, str], FetchError] = {}

    async def fetch(self, url: str, params: Optional[Dict[str, Any]] = None) -> FetchResult:
        key = (url, urlencode(sorted((params or {}).items())))
        if key in self._results:
            return self._results[key]
        if key in self._errors:
            raise self._errors[key]

        try:
            result = await self.inner.fetch(url, params=params)
        except FetchError as e:
            self._errors[key] = e
            raise

        self._results[key] = result
        return result
