"""Health check endpoint."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from promowatch.dependencies import get_db
from promowatch.schemas import HealthCheckResponse

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Return service health status.

    Checks connectivity to the database and reports whether the periodic
    scheduler is running.
    """
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        db_status = "ok"
    except Exception as e:
        db_status = f"error: {str(e)}"

    scheduler = getattr(request.app.state, "scheduler", None)
    scheduler_status = "running" if scheduler is not None and scheduler.is_running() else "disabled"

    return HealthCheckResponse(
        status="ok" if db_status == "ok" else "degraded",
        database=db_status,
        scheduler=scheduler_status,
        services={"database": db_status, "scheduler": scheduler_status},
    )
