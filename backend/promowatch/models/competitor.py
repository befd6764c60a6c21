"""Competitor model: an external retailer whose promo prices are tracked."""

from typing import TYPE_CHECKING, Optional

from sqlalchemy import JSON, Boolean, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from promowatch.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from promowatch.models.competitor_price import CompetitorPrice


class Competitor(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Competitor definition, maintained from the admin UI."""

    __tablename__ = "competitors"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    base_url: Mapped[str] = mapped_column(String(1000), nullable=False, comment="Entry URL of the source")
    source_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="html",
        comment="Declared source format: api, html, csv, json, pdf or image",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    # Declarative scraper configuration (selectors, jsonMap, csvMap, aiEnabled)
    config_json: Mapped[Optional[dict]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=True,
    )

    prices: Mapped[list["CompetitorPrice"]] = relationship(
        back_populates="competitor",
        cascade="all, delete-orphan",
    )

    def to_row(self) -> dict:
        """Plain mapping consumed by CompetitorConfig.from_row()."""
        return {
            "id": str(self.id),
            "name": self.name,
            "base_url": self.base_url,
            "source_type": self.source_type,
            "config_json": self.config_json,
        }

    def __repr__(self) -> str:
        return f"<Competitor(id={self.id}, name='{self.name}', source_type='{self.source_type}')>"
