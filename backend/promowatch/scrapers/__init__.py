"""Scraping core for competitor promo prices.

This package provides:
- Data structures shared by every strategy (base)
- Format extractors for HTML, JSON, Store API, CSV, PDF and image sources
- A bounded site crawler and the per-competitor strategy orchestrator
- Finalization, AI enrichment and deduplication of candidates
- The batch runner and its scheduler
"""

from .base import (
    CompetitorConfig,
    ParsedCandidate,
    ScrapedProduct,
    SourceType,
    merge_products,
)
from .batch_runner import BatchReport, BatchRunner, BatchSummary, ScrapeResult
from .orchestrator import StrategyOrchestrator

__all__ = [
    # Data structures
    "CompetitorConfig",
    "ParsedCandidate",
    "ScrapedProduct",
    "SourceType",
    "merge_products",
    # Pipeline
    "StrategyOrchestrator",
    "BatchRunner",
    "BatchReport",
    "BatchSummary",
    "ScrapeResult",
]
