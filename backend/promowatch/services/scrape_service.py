"""Wires the scraping pipeline to the database for one batch run."""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from promowatch.scrapers.batch_runner import (
    BatchReport,
    BatchRunner,
    CompetitorSource,
    PriceStore,
)
from promowatch.scrapers.enrichment import AIEnricher
from promowatch.scrapers.fetcher import HttpFetcher
from promowatch.scrapers.finalizer import CandidateFinalizer
from promowatch.scrapers.orchestrator import StrategyOrchestrator
from promowatch.scrapers.presets import ScraperPresets
from promowatch.scrapers.utils.rate_limiter import DomainRateLimiter
from promowatch.services.competitor_service import CompetitorService
from promowatch.services.price_service import PriceService

logger = structlog.get_logger(__name__)


async def run_batch(
    source: CompetitorSource,
    store: PriceStore,
    delay_seconds: Optional[float] = None,
) -> BatchReport:
    """Run one batch with a fresh HTTP fetcher, enricher and presets.

    Args:
        source: Competitor source
        store: Price store
        delay_seconds: Override for the pause between competitors

    Returns:
        BatchReport

    Raises:
        ConfigurationError: If the competitor list or presets cannot be read
    """
    presets = ScraperPresets.load()

    async with HttpFetcher(rate_limiter=DomainRateLimiter()) as fetcher:
        enricher = AIEnricher()
        try:
            orchestrator = StrategyOrchestrator(
                fetcher,
                finalizer=CandidateFinalizer(enricher=enricher),
            )
            runner = BatchRunner(
                source,
                store,
                orchestrator,
                presets=presets,
                delay_seconds=delay_seconds,
            )
            return await runner.run()
        finally:
            await enricher.aclose()


class ScrapeService:
    """Runs a scraping batch against the competitors and prices tables."""

    def __init__(self, db: AsyncSession):
        """Initialize scrape service.

        Args:
            db: Async database session
        """
        self.db = db
        self.competitor_service = CompetitorService(db)
        self.price_service = PriceService(db)
        self.logger = logger.bind(service="scrape_service")

    async def run_batch(self, delay_seconds: Optional[float] = None) -> BatchReport:
        """Scrape all active competitors and persist their prices."""
        self.logger.info("scrape_batch_requested")
        return await run_batch(
            self.competitor_service,
            self.price_service,
            delay_seconds=delay_seconds,
        )
