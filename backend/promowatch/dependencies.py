"""FastAPI dependency injection providers."""

from typing import AsyncGenerator

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from promowatch.db.session import async_session_factory
from promowatch.services.scrape_service import ScrapeService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a database session for request-scoped usage.

    The session is automatically committed on success or rolled back on error.
    Always closed after the request completes.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def get_scrape_service(db: AsyncSession = Depends(get_db)) -> ScrapeService:
    """Scrape service bound to the request's session."""
    return ScrapeService(db)
