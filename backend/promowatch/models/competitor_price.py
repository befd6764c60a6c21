"""Scraped competitor promo price."""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from promowatch.models.base import Base, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from promowatch.models.competitor import Competitor


class CompetitorPrice(UUIDPrimaryKeyMixin, Base):
    """One product price observed at a competitor.

    Rows are append-only; every batch inserts a fresh set stamped with
    ``fetched_at``.
    """

    __tablename__ = "competitor_prices"

    competitor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("competitors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    product_ean: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    brand: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    promo_price: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    regular_price: Mapped[Optional[float]] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    currency: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Free-form dates as found in the source
    promo_start_date: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    promo_end_date: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    fetched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("idx_competitor_prices_competitor_fetched", "competitor_id", "fetched_at"),
    )

    competitor: Mapped["Competitor"] = relationship(back_populates="prices")

    def __repr__(self) -> str:
        return (
            f"<CompetitorPrice(id={self.id}, product_name='{self.product_name}', "
            f"promo_price={self.promo_price})>"
        )
