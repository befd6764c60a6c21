"""Response schemas for the scrape trigger endpoint."""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ScrapeResultResponse(BaseModel):
    """Outcome of one competitor."""

    model_config = ConfigDict(populate_by_name=True)

    competitor: str
    success: bool
    products_found: int = Field(..., alias="productsFound")
    error: Optional[str] = None


class BatchSummaryResponse(BaseModel):
    """Totals of one batch."""

    model_config = ConfigDict(populate_by_name=True)

    total_competitors: int = Field(..., alias="totalCompetitors")
    successful: int
    failed: int
    total_prices_saved: int = Field(..., alias="totalPricesSaved")


class BatchReportResponse(BaseModel):
    """Body returned by POST /scrape-competitors on full or partial success."""

    summary: BatchSummaryResponse
    results: List[ScrapeResultResponse]


class BatchErrorResponse(BaseModel):
    """Body returned when the batch cannot run at all."""

    success: bool = False
    error: str
