"""Batch scrape trigger endpoint."""

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from promowatch.dependencies import get_scrape_service
from promowatch.schemas.scrape import BatchErrorResponse, BatchReportResponse
from promowatch.services.scrape_service import ScrapeService

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.post(
    "/scrape-competitors",
    response_model=BatchReportResponse,
    response_model_exclude_none=True,
    responses={500: {"model": BatchErrorResponse}},
)
async def scrape_competitors(service: ScrapeService = Depends(get_scrape_service)):
    """Scrape every active competitor and persist the prices.

    Returns 200 with the batch summary even when some competitors failed
    (see ``results[].error``). Returns 500 only when the batch could not
    run at all, e.g. the competitor list was unreadable.
    """
    try:
        report = await service.run_batch()
    except Exception as e:
        logger.error("scrape_batch_failed", error=str(e), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(e) or type(e).__name__},
        )

    return report.to_dict()
