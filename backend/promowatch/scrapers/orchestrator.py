"""Per-competitor strategy selection and fallback.

Declared source types are often wrong (many "html" shops are really
JSON-backed), so after the declared strategy every other strategy runs in
a fixed order and all candidates are pooled. The one exception is the
Store API: when it yields anything for an html/api competitor, those
products are used exclusively.
"""

from types import MappingProxyType
from typing import Awaitable, Callable, List, Mapping, Optional, Tuple

import structlog

from promowatch.core.exceptions import FetchError, ScraperError
from promowatch.scrapers.base import (
    CompetitorConfig,
    ParsedCandidate,
    ScrapedProduct,
    SourceType,
)
from promowatch.scrapers.crawler import SiteCrawler
from promowatch.scrapers.dedup import deduplicate_products
from promowatch.scrapers.extractors.csv_feed import extract_csv
from promowatch.scrapers.extractors.image import extract_image
from promowatch.scrapers.extractors.json_api import extract_json_payload
from promowatch.scrapers.extractors.pdf import extract_pdf
from promowatch.scrapers.extractors.store_api import fetch_store_api_products
from promowatch.scrapers.fetcher import CachingFetcher, PageFetcher, RenderedHtmlFetcher
from promowatch.scrapers.finalizer import CandidateFinalizer

logger = structlog.get_logger(__name__)

Strategy = Callable[[CompetitorConfig, PageFetcher], Awaitable[List[ParsedCandidate]]]

# Fallback order after the declared type
FALLBACK_ORDER: Tuple[SourceType, ...] = (
    SourceType.HTML,
    SourceType.JSON,
    SourceType.CSV,
    SourceType.PDF,
    SourceType.IMAGE,
)

# Types for which the Store API is tried first
STORE_API_TYPES = frozenset({SourceType.HTML, SourceType.API})

_IMAGE_SIGNATURES = (b"\x89PNG", b"\xff\xd8\xff", b"GIF87a", b"GIF89a", b"II*\x00", b"MM\x00*", b"BM")


def strategy_order(source_type: SourceType) -> List[SourceType]:
    """Declared type first, then the fallback order without repeats.

    ``api`` runs the JSON strategy, so it also counts as ``json`` tried.
    """
    declared = SourceType.JSON if source_type == SourceType.API else source_type
    return [declared] + [t for t in FALLBACK_ORDER if t != declared]


class StrategyOrchestrator:
    """Runs the extraction strategies for one competitor at a time."""

    def __init__(
        self,
        fetcher: PageFetcher,
        finalizer: Optional[CandidateFinalizer] = None,
        renderer: Optional[RenderedHtmlFetcher] = None,
        crawl_max_pages: Optional[int] = None,
        crawl_max_queue: Optional[int] = None,
    ):
        """Initialize the orchestrator.

        Args:
            fetcher: Shared page fetcher (wrapped in a per-competitor cache)
            finalizer: Candidate finalizer (defaults to one without enrichment)
            renderer: Optional JS-rendering fetcher handed to the crawler
            crawl_max_pages: Crawler page cap override
            crawl_max_queue: Crawler queue cap override
        """
        self.fetcher = fetcher
        self.finalizer = finalizer or CandidateFinalizer()
        self.renderer = renderer
        self.crawl_max_pages = crawl_max_pages
        self.crawl_max_queue = crawl_max_queue
        self.logger = logger.bind(service="strategy_orchestrator")

        self.strategies: Mapping[SourceType, Strategy] = MappingProxyType({
            SourceType.HTML: self._run_html,
            SourceType.API: self._run_json,
            SourceType.JSON: self._run_json,
            SourceType.CSV: self._run_csv,
            SourceType.PDF: self._run_pdf,
            SourceType.IMAGE: self._run_image,
        })

    async def scrape(self, competitor: CompetitorConfig) -> List[ScrapedProduct]:
        """Extract, finalize and deduplicate the products of one competitor.

        Args:
            competitor: Competitor definition

        Returns:
            Deduplicated valid products (possibly empty)

        Raises:
            ScraperError: If nothing was found and every strategy failed to fetch
        """
        log = self.logger.bind(competitor=competitor.name)
        fetcher = CachingFetcher(self.fetcher)
        source_type = SourceType.parse(competitor.source_type)

        attempts = 0
        fetch_failures: List[FetchError] = []

        if source_type in STORE_API_TYPES:
            attempts += 1
            try:
                store_candidates = await fetch_store_api_products(fetcher, competitor.base_url)
            except FetchError as e:
                log.debug("store_api_unavailable", error=e.message)
                fetch_failures.append(e)
                store_candidates = []

            if store_candidates:
                products = await self.finalizer.finalize(store_candidates, competitor)
                return deduplicate_products(products)

        candidates: List[ParsedCandidate] = []
        for strategy_type in strategy_order(source_type):
            attempts += 1
            try:
                found = await self.strategies[strategy_type](competitor, fetcher)
            except FetchError as e:
                log.info("strategy_fetch_failed", strategy=strategy_type.value, error=e.message)
                fetch_failures.append(e)
                continue

            if found:
                log.info("strategy_yielded", strategy=strategy_type.value, candidates=len(found))
                candidates.extend(found)

        if not candidates and attempts and len(fetch_failures) == attempts:
            raise ScraperError(competitor.name, fetch_failures[-1].message)

        products = await self.finalizer.finalize(candidates, competitor)
        deduplicated = deduplicate_products(products)
        log.info(
            "competitor_products_extracted",
            candidates=len(candidates),
            products=len(deduplicated),
        )
        return deduplicated

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _run_html(self, competitor: CompetitorConfig, fetcher: PageFetcher) -> List[ParsedCandidate]:
        crawler = SiteCrawler(
            fetcher,
            renderer=self.renderer,
            max_pages=self.crawl_max_pages,
            max_queue=self.crawl_max_queue,
        )
        return await crawler.crawl(competitor.base_url, competitor.scraper_config)

    async def _run_json(self, competitor: CompetitorConfig, fetcher: PageFetcher) -> List[ParsedCandidate]:
        result = await fetcher.fetch(competitor.base_url)
        try:
            payload = result.json()
        except ValueError:
            return []
        return extract_json_payload(payload, competitor.scraper_config)

    async def _run_csv(self, competitor: CompetitorConfig, fetcher: PageFetcher) -> List[ParsedCandidate]:
        result = await fetcher.fetch(competitor.base_url)
        if "html" in result.content_type.lower() or result.text.lstrip().startswith(("<", "{", "[")):
            return []
        return extract_csv(result.text, competitor.scraper_config)

    async def _run_pdf(self, competitor: CompetitorConfig, fetcher: PageFetcher) -> List[ParsedCandidate]:
        result = await fetcher.fetch(competitor.base_url)
        if not result.content.lstrip()[:5].startswith(b"%PDF"):
            return []
        return await extract_pdf(result.content)

    async def _run_image(self, competitor: CompetitorConfig, fetcher: PageFetcher) -> List[ParsedCandidate]:
        result = await fetcher.fetch(competitor.base_url)
        is_image = result.content_type.lower().startswith("image/") or result.content.startswith(_IMAGE_SIGNATURES)
        if not is_image and not (result.content[:4] == b"RIFF" and result.content[8:12] == b"WEBP"):
            return []
        return await extract_image(result.content)
