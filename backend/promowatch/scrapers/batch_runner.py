"""Batch runner: scrape every active competitor and persist the prices.

Competitors are processed strictly one at a time with a pause between
them. A failure of one competitor is recorded in its result and never
stops the batch; only failing to read the competitor list is fatal.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol

import structlog

from promowatch.config import settings
from promowatch.scrapers.base import CompetitorConfig, ScrapedProduct
from promowatch.scrapers.orchestrator import StrategyOrchestrator
from promowatch.scrapers.presets import ScraperPresets

logger = structlog.get_logger(__name__)


class CompetitorSource(Protocol):
    """Supplies the competitors to scrape."""

    async def list_active_competitors(self) -> List[CompetitorConfig]:
        ...


class PriceStore(Protocol):
    """Persists scraped prices for one competitor."""

    async def save_prices(self, competitor: CompetitorConfig, products: List[ScrapedProduct]) -> int:
        ...


@dataclass(frozen=True)
class ScrapeResult:
    """Outcome of one competitor in a batch."""

    competitor: str
    success: bool
    products_found: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "competitor": self.competitor,
            "success": self.success,
            "productsFound": self.products_found,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass(frozen=True)
class BatchSummary:
    """Totals folded from the results of a batch."""

    total_competitors: int = 0
    successful: int = 0
    failed: int = 0
    total_prices_saved: int = 0

    @classmethod
    def from_results(cls, results: List[ScrapeResult]) -> "BatchSummary":
        successful = [r for r in results if r.success]
        return cls(
            total_competitors=len(results),
            successful=len(successful),
            failed=len(results) - len(successful),
            total_prices_saved=sum(r.products_found for r in successful),
        )

    def to_dict(self) -> Dict[str, int]:
        return {
            "totalCompetitors": self.total_competitors,
            "successful": self.successful,
            "failed": self.failed,
            "totalPricesSaved": self.total_prices_saved,
        }


@dataclass(frozen=True)
class BatchReport:
    """Summary plus per-competitor results, as returned to the caller."""

    summary: BatchSummary
    results: List[ScrapeResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }


class BatchRunner:
    """Runs one scraping batch over all active competitors."""

    def __init__(
        self,
        source: CompetitorSource,
        store: PriceStore,
        orchestrator: StrategyOrchestrator,
        presets: Optional[ScraperPresets] = None,
        delay_seconds: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the runner.

        Args:
            source: Competitor source (read once per batch)
            store: Price store
            orchestrator: Strategy orchestrator
            presets: Scraper config defaults keyed by hostname
            delay_seconds: Pause after each competitor (defaults to COMPETITOR_DELAY_SECONDS)
            sleep: Awaitable sleep function (injectable for tests)
        """
        self.source = source
        self.store = store
        self.orchestrator = orchestrator
        self.presets = presets or ScraperPresets()
        self.delay_seconds = (
            delay_seconds if delay_seconds is not None else settings.COMPETITOR_DELAY_SECONDS
        )
        self.sleep = sleep
        self.logger = logger.bind(service="batch_runner")

    async def run(self) -> BatchReport:
        """Scrape and persist every active competitor.

        Returns:
            BatchReport with summary and one result per competitor

        Raises:
            ConfigurationError: If the competitor list cannot be read
        """
        competitors = await self.source.list_active_competitors()

        if not competitors:
            self.logger.info("no_active_competitors")
            return BatchReport(summary=BatchSummary.from_results([]), results=[])

        self.logger.info("batch_started", competitors=len(competitors))

        results: List[ScrapeResult] = []
        for competitor in competitors:
            results.append(await self.run_competitor(self.presets.apply(competitor)))

            if self.delay_seconds > 0:
                await self.sleep(self.delay_seconds)

        report = BatchReport(summary=BatchSummary.from_results(results), results=results)
        self.logger.info("batch_completed", **report.summary.to_dict())
        return report

    async def run_competitor(self, competitor: CompetitorConfig) -> ScrapeResult:
        """Scrape and persist one competitor; any exception becomes a failed result."""
        log = self.logger.bind(competitor=competitor.name, source_type=competitor.source_type.value)
        log.info("competitor_scrape_started", base_url=competitor.base_url)

        try:
            products = await self.orchestrator.scrape(competitor)
            saved = await self.store.save_prices(competitor, products)
        except Exception as e:
            log.error("competitor_scrape_failed", error=str(e), exc_info=True)
            return ScrapeResult(
                competitor=competitor.name,
                success=False,
                error=str(e) or type(e).__name__,
            )

        log.info("competitor_scraped", products_found=len(products), prices_saved=saved)
        return ScrapeResult(
            competitor=competitor.name,
            success=True,
            products_found=len(products),
        )
