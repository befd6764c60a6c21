"""Competitor sources: the database table and a JSON file for dry runs."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from promowatch.core.exceptions import ConfigurationError
from promowatch.models.competitor import Competitor
from promowatch.scrapers.base import CompetitorConfig

logger = structlog.get_logger(__name__)


class CompetitorService:
    """Reads and manages competitor definitions in the database."""

    def __init__(self, db: AsyncSession):
        """Initialize competitor service.

        Args:
            db: Async database session
        """
        self.db = db
        self.logger = logger.bind(service="competitor_service")

    async def list_active_competitors(self) -> List[CompetitorConfig]:
        """Load every active competitor.

        Returns:
            Competitor configs ordered by creation time, then name

        Raises:
            ConfigurationError: If the competitors table cannot be read
        """
        try:
            result = await self.db.execute(
                select(Competitor)
                .where(Competitor.is_active.is_(True))
                .order_by(Competitor.created_at, Competitor.name)
            )
            competitors = list(result.scalars().all())
        except SQLAlchemyError as e:
            self.logger.error("competitor_list_unreadable", error=str(e))
            raise ConfigurationError(f"Cannot read competitor list: {e}") from e

        self.logger.info("active_competitors_loaded", count=len(competitors))
        return [CompetitorConfig.from_row(c.to_row()) for c in competitors]

    async def create_competitor(
        self,
        name: str,
        base_url: str,
        source_type: str = "html",
        config_json: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
    ) -> Competitor:
        """Insert a competitor row.

        Returns:
            The persisted Competitor
        """
        competitor = Competitor(
            name=name,
            base_url=base_url,
            source_type=source_type,
            config_json=config_json,
            is_active=is_active,
        )
        self.db.add(competitor)
        await self.db.commit()
        await self.db.refresh(competitor)

        self.logger.info("competitor_created", competitor_id=str(competitor.id), name=name)
        return competitor


class FileCompetitorSource:
    """Competitor rows read from a JSON file (a list of competitor objects)."""

    def __init__(self, path: str):
        self.path = path

    async def list_active_competitors(self) -> List[CompetitorConfig]:
        """Load rows whose ``is_active`` is not false.

        Raises:
            ConfigurationError: If the file is unreadable or not a JSON list
        """
        try:
            rows = json.loads(Path(self.path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read competitors file {self.path}: {e}") from e

        if not isinstance(rows, list):
            raise ConfigurationError(f"Competitors file {self.path} must contain a JSON list")

        return [
            CompetitorConfig.from_row(row)
            for row in rows
            if isinstance(row, dict) and row.get("is_active", True)
        ]
