"""Services module for persistence and batch wiring.

Services adapt the scraping core to the database: reading competitor
definitions, writing scraped prices and running a batch end to end.
"""

from promowatch.services.competitor_service import CompetitorService, FileCompetitorSource
from promowatch.services.price_service import InMemoryPriceStore, PriceService
from promowatch.services.scrape_service import ScrapeService, run_batch

__all__ = [
    "CompetitorService",
    "FileCompetitorSource",
    "PriceService",
    "InMemoryPriceStore",
    "ScrapeService",
    "run_batch",
]
