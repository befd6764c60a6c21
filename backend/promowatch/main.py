"""PromoWatch Backend -- FastAPI Application Entry Point."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from promowatch.api.v1.router import api_v1_router
from promowatch.config import settings
from promowatch.core.logging import configure_logging
from promowatch.db.session import async_session_factory, engine
from promowatch.models import Base
from promowatch.scrapers.batch_runner import BatchReport
from promowatch.scrapers.scheduler import BatchScheduler
from promowatch.services.scrape_service import ScrapeService

configure_logging()
logger = structlog.get_logger(__name__)

# Headers sent by the admin UI when it triggers a batch
CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


async def run_scheduled_batch() -> BatchReport:
    """One batch with its own session (scheduler jobs have no request)."""
    async with async_session_factory() as session:
        return await ScrapeService(session).run_batch()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown events."""
    logger.info(
        "app_starting",
        environment=settings.ENVIRONMENT,
        debug=settings.DEBUG,
    )

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database_tables_verified")
    except Exception as e:
        logger.error("database_init_failed", error=str(e), exc_info=True)

    app.state.scheduler = None
    if settings.ENVIRONMENT != "test":
        scheduler = BatchScheduler(run_scheduled_batch)
        if scheduler.start(settings.SCRAPE_INTERVAL_MINUTES):
            app.state.scheduler = scheduler
    else:
        logger.info("scheduler_disabled_test_environment")

    yield

    logger.info("app_shutting_down")
    if app.state.scheduler:
        app.state.scheduler.stop()
    await engine.dispose()


app = FastAPI(
    title="PromoWatch API",
    description="Competitor promo price scraper",
    version="0.1.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=CORS_ALLOW_HEADERS,
)

# Register API v1 router
app.include_router(api_v1_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "PromoWatch API",
        "version": "0.1.0",
        "description": "Competitor promo price scraper",
        "docs": "/docs" if settings.DEBUG else None,
        "health": "/api/v1/health",
    }
