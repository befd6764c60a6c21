"""Core data structures shared by every scraping strategy.

Extractors produce ParsedCandidate objects (raw, unvalidated values).
The finalizer turns them into ScrapedProduct objects, which validate
themselves on construction.
"""

import math
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Dict, Optional

import structlog
from pydantic import ValidationError

from promowatch.schemas.competitor import ScraperConfig
from promowatch.scrapers.utils.normalizer import MAX_NAME_LENGTH

logger = structlog.get_logger(__name__)


class SourceType(str, Enum):
    """Declared content format of a competitor's data source."""

    API = "api"
    HTML = "html"
    CSV = "csv"
    JSON = "json"
    PDF = "pdf"
    IMAGE = "image"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "SourceType":
        """Parse a declared source type, defaulting to HTML for unknown values."""
        if isinstance(raw, SourceType):
            return raw
        try:
            return cls(str(raw or "").strip().lower())
        except ValueError:
            return cls.HTML


@dataclass(frozen=True)
class CompetitorConfig:
    """Read-only competitor definition consumed by the scraping core."""

    id: str
    name: str
    base_url: str
    source_type: SourceType = SourceType.HTML
    scraper_config: ScraperConfig = field(default_factory=ScraperConfig)

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CompetitorConfig":
        """Build a config from a store row.

        Accepts either ``config_json`` (database column) or ``scraper_config``
        (API payload) for the structured scraper configuration. An invalid
        configuration is logged and replaced by an empty one.

        Args:
            row: Mapping with id, name, base_url, source_type and optional config

        Returns:
            CompetitorConfig instance
        """
        raw_config = row.get("scraper_config")
        if raw_config is None:
            raw_config = row.get("config_json")

        try:
            scraper_config = ScraperConfig.model_validate(raw_config or {})
        except ValidationError as e:
            logger.warning(
                "invalid_scraper_config",
                competitor=row.get("name"),
                error=str(e),
            )
            scraper_config = ScraperConfig()

        return cls(
            id=str(row.get("id", "")),
            name=str(row.get("name", "")),
            base_url=str(row.get("base_url", "")).strip(),
            source_type=SourceType.parse(row.get("source_type")),
            scraper_config=scraper_config,
        )


@dataclass
class ParsedCandidate:
    """Unvalidated product record produced by an extractor.

    Price fields hold whatever the source provided (string or number);
    ``raw`` keeps a text/HTML snippet for AI enrichment.
    """

    name: Any = None
    promo_price: Any = None
    regular_price: Any = None
    currency: Optional[str] = None
    ean: Any = None
    brand: Any = None
    category: Any = None
    promo_start_date: Any = None
    promo_end_date: Any = None
    raw: Optional[str] = None
    source: str = ""


@dataclass
class ScrapedProduct:
    """Normalized product-price record ready for persistence."""

    name: str
    promo_price: float
    regular_price: Optional[float] = None
    currency: Optional[str] = None
    ean: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    promo_start_date: Optional[str] = None
    promo_end_date: Optional[str] = None

    def __post_init__(self):
        """Validate data after initialization."""
        if not self.name or not str(self.name).strip():
            raise ValueError("name is required")
        self.name = str(self.name)[:MAX_NAME_LENGTH]
        if (
            self.promo_price is None
            or isinstance(self.promo_price, bool)
            or not math.isfinite(self.promo_price)
            or self.promo_price <= 0
        ):
            raise ValueError("promo_price must be a finite number greater than zero")

    def to_record(self, competitor_id: Any) -> Dict[str, Any]:
        """Convert to the outbound competitor_prices row shape (without fetched_at)."""
        return {
            "competitor_id": competitor_id,
            "product_name": self.name,
            "category": self.category,
            "brand": self.brand,
            "regular_price": self.regular_price,
            "promo_price": self.promo_price,
            "product_ean": self.ean,
            "promo_start_date": self.promo_start_date,
            "promo_end_date": self.promo_end_date,
            "currency": self.currency,
        }


def is_defined(value: Any) -> bool:
    """A field value counts as defined unless it is None, NaN or a blank string."""
    if value is None:
        return False
    if isinstance(value, float) and math.isnan(value):
        return False
    if isinstance(value, str) and not value.strip():
        return False
    return True


def merge_products(base: ScrapedProduct, incoming: ScrapedProduct) -> ScrapedProduct:
    """Merge two records describing the same product.

    Defined fields of ``incoming`` override ``base``; undefined ones keep
    the base value.

    Args:
        base: Existing record
        incoming: Newer record

    Returns:
        New merged ScrapedProduct (inputs are not mutated)
    """
    updates = {
        f.name: getattr(incoming, f.name)
        for f in fields(ScrapedProduct)
        if is_defined(getattr(incoming, f.name))
    }
    return replace(base, **updates)
