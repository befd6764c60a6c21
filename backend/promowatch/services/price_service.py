"""Price stores: bulk insert into competitor_prices, or in memory for dry runs."""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

import structlog
from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from promowatch.core.exceptions import PersistenceError
from promowatch.models.competitor_price import CompetitorPrice
from promowatch.scrapers.base import CompetitorConfig, ScrapedProduct

logger = structlog.get_logger(__name__)


class PriceService:
    """Writes scraped prices to the competitor_prices table."""

    def __init__(self, db: AsyncSession):
        """Initialize price service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="price_service")

    async def save_prices(self, competitor: CompetitorConfig, products: List[ScrapedProduct]) -> int:
        """Bulk insert one competitor's products, all stamped with the same fetched_at.

        Args:
            competitor: Competitor the prices belong to
            products: Deduplicated valid products

        Returns:
            Number of rows inserted

        Raises:
            PersistenceError: If the insert fails (the transaction is rolled back)
        """
        if not products:
            return 0

        try:
            competitor_id = uuid.UUID(str(competitor.id))
        except ValueError as e:
            raise PersistenceError(f"Invalid competitor id: {competitor.id!r}") from e

        fetched_at = datetime.now(timezone.utc)
        rows = [
            {**product.to_record(competitor_id), "fetched_at": fetched_at}
            for product in products
        ]

        try:
            await self.db.execute(insert(CompetitorPrice), rows)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.logger.error(
                "price_insert_failed",
                competitor=competitor.name,
                rows=len(rows),
                error=str(e),
            )
            raise PersistenceError(f"Failed to save prices for {competitor.name}: {e}") from e

        self.logger.info("prices_saved", competitor=competitor.name, count=len(rows))
        return len(rows)


class InMemoryPriceStore:
    """Collects records instead of persisting them (dry runs)."""

    def __init__(self):
        self.records: Dict[str, List[Dict[str, Any]]] = {}

    async def save_prices(self, competitor: CompetitorConfig, products: List[ScrapedProduct]) -> int:
        fetched_at = datetime.now(timezone.utc).isoformat()
        self.records[competitor.name] = [
            {**product.to_record(competitor.id), "fetched_at": fetched_at}
            for product in products
        ]
        return len(products)
