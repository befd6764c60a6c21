"""Pydantic schemas for PromoWatch.

Scraper configuration models and API response models.
"""

from promowatch.schemas.competitor import ScraperConfig, SelectorConfig
from promowatch.schemas.health import HealthCheckResponse
from promowatch.schemas.scrape import (
    BatchErrorResponse,
    BatchReportResponse,
    BatchSummaryResponse,
    ScrapeResultResponse,
)

__all__ = [
    "ScraperConfig",
    "SelectorConfig",
    "HealthCheckResponse",
    "BatchErrorResponse",
    "BatchReportResponse",
    "BatchSummaryResponse",
    "ScrapeResultResponse",
]
