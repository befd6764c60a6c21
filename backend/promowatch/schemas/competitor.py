"""Pydantic schemas for per-competitor scraper configuration.

The configuration is authored in an external admin UI and stored as JSON
(camelCase keys). It is purely declarative: selectors and field maps,
never code.
"""

from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class SelectorConfig(BaseModel):
    """CSS selectors for the DOM-selector HTML strategy."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    product: Optional[str] = Field(None, description="Selector of one product container")
    name: Optional[str] = None
    price: Optional[str] = None
    regular_price: Optional[str] = Field(None, alias="regularPrice")
    ean: Optional[str] = None
    brand: Optional[str] = None
    category: Optional[str] = None
    currency: Optional[str] = None
    promo_start_date: Optional[str] = Field(None, alias="promoStartDate")
    promo_end_date: Optional[str] = Field(None, alias="promoEndDate")


class ScraperConfig(BaseModel):
    """Structured scraper configuration attached to a competitor.

    ``json_map`` and ``csv_map`` map canonical field names (name, promoPrice,
    regularPrice, currency, ean, brand, category, promoStartDate,
    promoEndDate) to the source's field or header names.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    selectors: Optional[SelectorConfig] = None
    json_map: Dict[str, str] = Field(default_factory=dict, alias="jsonMap")
    csv_map: Dict[str, str] = Field(default_factory=dict, alias="csvMap")
    ai_enabled: bool = Field(False, alias="aiEnabled")

    def has_selectors(self) -> bool:
        """True when a product container selector is configured."""
        return bool(self.selectors and self.selectors.product)

    def merged_over(self, defaults: "ScraperConfig") -> "ScraperConfig":
        """Return this config layered over preset defaults (own values win)."""
        base = defaults.model_dump(by_alias=True, exclude_none=True)
        own = self.model_dump(by_alias=True, exclude_none=True, exclude_unset=True)

        merged = dict(base)
        for key, value in own.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        return ScraperConfig.model_validate(merged)
