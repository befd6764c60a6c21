"""SQLAlchemy models for PromoWatch.

All models are imported here so metadata.create_all() sees every table.
"""

from promowatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from promowatch.models.competitor import Competitor
from promowatch.models.competitor_price import CompetitorPrice

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Competitor",
    "CompetitorPrice",
]
