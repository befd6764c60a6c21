"""Bounded same-origin crawler for HTML storefronts.

Starts at the competitor's base URL and walks same-origin links
breadth-first. Both the number of pages fetched and the number of URLs
ever queued are capped, so one competitor cannot run away with the batch.
"""

import re
from collections import deque
from typing import Deque, List, Optional, Set, Tuple
from urllib.parse import urldefrag, urljoin, urlparse

import structlog
from bs4 import BeautifulSoup

from promowatch.config import settings
from promowatch.core.exceptions import FetchError
from promowatch.schemas.competitor import ScraperConfig
from promowatch.scrapers.base import ParsedCandidate
from promowatch.scrapers.extractors.html import extract_html
from promowatch.scrapers.fetcher import PageFetcher, RenderedHtmlFetcher

logger = structlog.get_logger(__name__)

# Links that are never HTML pages
BINARY_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".ico",
    ".pdf", ".zip", ".rar", ".gz", ".mp4", ".mp3", ".avi",
    ".css", ".js", ".xml", ".json", ".woff", ".woff2", ".ttf",
)

# Links likely to lead to promotions are queued ahead of the rest
PROMO_LINK_PATTERN = re.compile(
    r"akcij|promo|sale|popust|snizenj|sniženj|katalog|letak|ponud|offer|deal|discount",
    re.IGNORECASE,
)


def normalize_link(base_url: str, href: Optional[str]) -> Optional[str]:
    """Resolve ``href`` against ``base_url`` and strip the fragment.

    Returns:
        Absolute http(s) URL, or None for fragment-only, non-http(s)
        (mailto:, tel:, javascript:) and binary-asset links
    """
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith("#"):
        return None

    absolute, _ = urldefrag(urljoin(base_url, href))
    parsed = urlparse(absolute)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    if parsed.path.lower().endswith(BINARY_EXTENSIONS):
        return None
    return absolute


def same_origin(url: str, other: str) -> bool:
    a, b = urlparse(url), urlparse(other)
    return (a.scheme, a.netloc.lower()) == (b.scheme, b.netloc.lower())


class SiteCrawler:
    """Breadth-first crawler running the HTML extractors on every page."""

    def __init__(
        self,
        fetcher: PageFetcher,
        renderer: Optional[RenderedHtmlFetcher] = None,
        max_pages: Optional[int] = None,
        max_queue: Optional[int] = None,
    ):
        """Initialize the crawler.

        Args:
            fetcher: Plain HTTP page fetcher
            renderer: Optional JS-rendering fetcher used instead of ``fetcher``
            max_pages: Page fetch cap (defaults to CRAWL_MAX_PAGES)
            max_queue: Cap on URLs ever queued (defaults to CRAWL_MAX_QUEUE)
        """
        self.fetcher = fetcher
        self.renderer = renderer
        self.max_pages = max_pages or settings.CRAWL_MAX_PAGES
        self.max_queue = max_queue or settings.CRAWL_MAX_QUEUE
        self.logger = logger.bind(service="site_crawler")

    async def crawl(self, base_url: str, config: Optional[ScraperConfig] = None) -> List[ParsedCandidate]:
        """Crawl from ``base_url`` and collect candidates from every page.

        Args:
            base_url: Entry page
            config: Competitor scraper configuration passed to extract_html

        Returns:
            Candidates from all fetched pages, in crawl order

        Raises:
            FetchError: If the entry page cannot be fetched
        """
        start, _ = urldefrag(base_url)
        origin = start
        frontier: Deque[str] = deque([start])
        queued: Set[str] = {start}
        candidates: List[ParsedCandidate] = []
        pages_fetched = 0

        while frontier and pages_fetched < self.max_pages:
            url = frontier.popleft()

            try:
                final_url, html = await self._get_html(url)
            except FetchError as e:
                if url == start:
                    raise
                self.logger.warning("crawl_page_failed", url=url, error=e.message)
                continue
            finally:
                pages_fetched += 1

            if url == start:
                # Links are checked against the entry page after redirects
                origin = final_url
                queued.add(final_url)

            page_candidates = extract_html(html, config)
            candidates.extend(page_candidates)
            self.logger.debug("crawl_page_parsed", url=url, candidates=len(page_candidates))

            for link in self._discover_links(html, final_url, origin):
                if len(queued) >= self.max_queue:
                    break
                if link in queued:
                    continue
                queued.add(link)
                frontier.append(link)

        self.logger.info(
            "crawl_completed",
            base_url=start,
            pages_fetched=pages_fetched,
            urls_queued=len(queued),
            candidates=len(candidates),
        )
        return candidates

    async def _get_html(self, url: str) -> Tuple[str, str]:
        """Final URL (after redirects) and markup of a page."""
        if self.renderer is not None:
            try:
                return url, await self.renderer.fetch_rendered_html(url)
            except FetchError:
                raise
            except Exception as e:
                raise FetchError(url, f"render failed: {e}") from e

        result = await self.fetcher.fetch(url)
        return result.url or url, result.text

    @staticmethod
    def _discover_links(html: str, page_url: str, origin_url: str) -> List[str]:
        """Same-origin links of a page, promotion-looking ones first."""
        soup = BeautifulSoup(html, "html.parser")

        links: List[str] = []
        for anchor in soup.find_all("a", href=True):
            link = normalize_link(page_url, anchor["href"])
            if link and same_origin(link, origin_url) and link not in links:
                links.append(link)

        return sorted(links, key=lambda link: not PROMO_LINK_PATTERN.search(link))
