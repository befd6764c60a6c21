"""Candidate normalization, validation and optional AI enrichment."""

from dataclasses import fields
from typing import Any, Iterable, List, Optional

import structlog

from promowatch.config import settings
from promowatch.core.exceptions import EnrichmentError
from promowatch.scrapers.base import (
    CompetitorConfig,
    ParsedCandidate,
    ScrapedProduct,
    is_defined,
)
from promowatch.scrapers.enrichment import AIEnricher
from promowatch.scrapers.extractors.field_mapping import CANONICAL_FIELDS
from promowatch.scrapers.utils.normalizer import (
    clean_name,
    clean_optional_text,
    extract_currency,
    is_valid_price,
    normalize_currency,
    normalize_price,
)

logger = structlog.get_logger(__name__)

# A product missing any of these is sent to enrichment
ENRICHABLE_FIELDS = ("ean", "brand", "category", "currency", "regular_price")


def normalize_candidate(candidate: ParsedCandidate) -> Optional[ScrapedProduct]:
    """Normalize one candidate.

    Returns:
        A valid ScrapedProduct, or None when the name is empty or the promo
        price is not a finite number greater than zero
    """
    promo_price = normalize_price(candidate.promo_price)
    if not is_valid_price(promo_price):
        return None

    regular_price = normalize_price(candidate.regular_price)

    currency = normalize_currency(candidate.currency)
    if not currency and isinstance(candidate.promo_price, str):
        currency = extract_currency(candidate.promo_price)

    try:
        return ScrapedProduct(
            name=clean_name(candidate.name),
            promo_price=promo_price,
            regular_price=regular_price if is_valid_price(regular_price) else None,
            currency=currency,
            ean=_clean_code(candidate.ean),
            brand=clean_optional_text(candidate.brand),
            category=clean_optional_text(candidate.category),
            promo_start_date=clean_optional_text(candidate.promo_start_date),
            promo_end_date=clean_optional_text(candidate.promo_end_date),
        )
    except ValueError:
        return None


def _clean_code(raw: Any) -> Optional[str]:
    """EANs decoded from JSON/CSV may arrive as numbers (3871234567890.0)."""
    if isinstance(raw, float) and raw.is_integer():
        raw = int(raw)
    return clean_optional_text(raw)


def missing_fields(product: ScrapedProduct) -> List[str]:
    return [name for name in ENRICHABLE_FIELDS if not is_defined(getattr(product, name))]


class CandidateFinalizer:
    """Turns raw candidates into validated products."""

    def __init__(self, enricher: Optional[AIEnricher] = None):
        """Initialize the finalizer.

        Args:
            enricher: AI enricher; when None, enrichment never runs
        """
        self.enricher = enricher
        self.logger = logger.bind(service="candidate_finalizer")

    def enrichment_enabled(self, competitor: CompetitorConfig) -> bool:
        """Per-competitor flag or global flag, and a configured enricher."""
        wanted = competitor.scraper_config.ai_enabled or settings.AI_ENRICHMENT_ENABLED
        if not wanted or self.enricher is None:
            return False
        if not self.enricher.is_configured():
            self.logger.warning("ai_enrichment_skipped_no_api_key", competitor=competitor.name)
            return False
        return True

    async def finalize(
        self,
        candidates: Iterable[ParsedCandidate],
        competitor: CompetitorConfig,
    ) -> List[ScrapedProduct]:
        """Normalize candidates, dropping invalid ones and enriching gaps.

        Args:
            candidates: Raw candidates from any number of strategies
            competitor: Competitor the candidates belong to

        Returns:
            Valid products in candidate order
        """
        enrich = self.enrichment_enabled(competitor)

        products = []
        dropped = 0
        for candidate in candidates:
            product = normalize_candidate(candidate)
            if product is None:
                dropped += 1
                continue

            if enrich and candidate.raw and missing_fields(product):
                product = await self._enrich(product, candidate, competitor)

            products.append(product)

        self.logger.info(
            "candidates_finalized",
            competitor=competitor.name,
            accepted=len(products),
            dropped=dropped,
        )
        return products

    async def _enrich(
        self,
        product: ScrapedProduct,
        candidate: ParsedCandidate,
        competitor: CompetitorConfig,
    ) -> ScrapedProduct:
        """Merge the enrichment reply over the product; keep the original on any failure."""
        try:
            reply = await self.enricher.enrich(product, candidate.raw)
        except EnrichmentError as e:
            self.logger.warning(
                "ai_enrichment_failed",
                competitor=competitor.name,
                product=product.name,
                error=e.message,
            )
            return product

        merged = ParsedCandidate(
            **{f.name: getattr(product, f.name) for f in fields(ScrapedProduct)},
            raw=candidate.raw,
            source=candidate.source,
        )
        for key, value in reply.items():
            attr = CANONICAL_FIELDS.get(key)
            if attr is None and key in CANONICAL_FIELDS.values():
                attr = key
            if attr and is_defined(value):
                setattr(merged, attr, value)

        enriched = normalize_candidate(merged)
        if enriched is None:
            self.logger.warning(
                "ai_enrichment_invalid",
                competitor=competitor.name,
                product=product.name,
            )
            return product
        return enriched
