"""Store API pagination strategy.

Many storefronts declared as plain HTML are WooCommerce shops exposing the
public Store API:

    GET {origin}/wp-json/wc/store/v1/products?per_page=100&page=N

Prices in that API are integer strings in the currency's minor unit
("1099" with ``currency_minor_unit`` 2 means 10.99).
"""

import json
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import structlog

from promowatch.config import settings
from promowatch.core.exceptions import FetchError
from promowatch.scrapers.base import ParsedCandidate, is_defined
from promowatch.scrapers.extractors.html import RAW_SNIPPET_LENGTH
from promowatch.scrapers.fetcher import PageFetcher
from promowatch.scrapers.utils.normalizer import (
    clean_optional_text,
    is_valid_price,
    normalize_price,
)

logger = structlog.get_logger(__name__)

STORE_API_PATH = "/wp-json/wc/store/v1/products"


def store_api_url(base_url: str) -> Optional[str]:
    """Products endpoint at the origin of ``base_url`` (None for non-http URLs)."""
    parsed = urlparse(base_url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}{STORE_API_PATH}"


async def fetch_store_api_products(
    fetcher: PageFetcher,
    base_url: str,
    page_size: Optional[int] = None,
    max_pages: Optional[int] = None,
) -> List[ParsedCandidate]:
    """Page through the Store API products endpoint.

    Stops on the first short or empty page, a non-list payload, or after
    ``max_pages`` pages. A failure on a later page keeps what was already
    collected.

    Args:
        fetcher: Page fetcher
        base_url: Competitor base URL (only its origin is used)
        page_size: Products per page (defaults to STORE_API_PAGE_SIZE)
        max_pages: Page cap (defaults to STORE_API_MAX_PAGES)

    Returns:
        Candidates from every fetched page

    Raises:
        FetchError: If the first page cannot be fetched
    """
    url = store_api_url(base_url)
    if not url:
        return []

    page_size = page_size or settings.STORE_API_PAGE_SIZE
    max_pages = max_pages or settings.STORE_API_MAX_PAGES

    candidates: List[ParsedCandidate] = []
    for page in range(1, max_pages + 1):
        try:
            result = await fetcher.fetch(url, params={"per_page": page_size, "page": page})
        except FetchError:
            if page == 1:
                raise
            logger.warning("store_api_page_failed", url=url, page=page)
            break

        try:
            items = result.json()
        except ValueError:
            logger.debug("store_api_not_json", url=url, page=page)
            break

        if not isinstance(items, list) or not items:
            break

        candidates.extend(
            parse_store_api_product(item) for item in items if isinstance(item, dict)
        )

        if len(items) < page_size:
            break

    if candidates:
        logger.info("store_api_products_found", url=url, count=len(candidates))

    return candidates


def parse_store_api_product(item: Dict[str, Any]) -> ParsedCandidate:
    """Map one Store API product object onto a candidate."""
    prices = item.get("prices") or {}
    minor_unit = prices.get("currency_minor_unit")

    sale = _scaled(prices.get("sale_price"), minor_unit)
    current = _scaled(prices.get("price"), minor_unit)
    regular = _scaled(prices.get("regular_price"), minor_unit)

    promo = sale if is_valid_price(sale) else current

    return ParsedCandidate(
        name=clean_optional_text(item.get("name")),
        promo_price=promo,
        regular_price=regular if is_defined(regular) else None,
        currency=prices.get("currency_code"),
        ean=clean_optional_text(item.get("sku")) if _looks_like_ean(item.get("sku")) else None,
        brand=_first_name(item.get("brands")),
        category=_first_name(item.get("categories")),
        raw=json.dumps(item, ensure_ascii=False, default=str)[:RAW_SNIPPET_LENGTH],
        source="store_api",
    )


def _scaled(raw: Any, minor_unit: Any) -> float:
    value = normalize_price(raw)
    if is_valid_price(value) and isinstance(minor_unit, int) and not isinstance(minor_unit, bool):
        return value / (10 ** minor_unit)
    return value


def _first_name(entries: Any) -> Optional[str]:
    if isinstance(entries, list) and entries and isinstance(entries[0], dict):
        return clean_optional_text(entries[0].get("name"))
    return None


def _looks_like_ean(sku: Any) -> bool:
    """Shops often put the barcode in the SKU field (8, 12, 13 or 14 digits)."""
    value = str(sku or "").strip()
    return value.isdigit() and len(value) in (8, 12, 13, 14)
