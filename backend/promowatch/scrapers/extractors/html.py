"""HTML extraction strategies.

Three strategies run against one page:

1. JSON-LD: ``<script type="application/ld+json">`` Product nodes
2. DOM selectors: CSS selectors from the competitor's scraper config
3. Product cards: ``<article>``/``<div>``/``<li>`` blocks whose class names
   mention product, item or card

When the DOM card strategy finds nothing (usually malformed markup that
the parser could not nest properly), the same card rules are applied with
regular expressions over the raw markup.
"""

import html as html_lib
import json
import re
from typing import Any, Dict, Iterator, List, Optional, Union

import structlog
from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from promowatch.schemas.competitor import ScraperConfig, SelectorConfig
from promowatch.scrapers.base import ParsedCandidate
from promowatch.scrapers.utils.normalizer import (
    clean_optional_text,
    collapse_whitespace,
    extract_currency,
    find_price_tokens,
    is_valid_price,
    normalize_price,
    strip_price_tokens,
)

logger = structlog.get_logger(__name__)

RAW_SNIPPET_LENGTH = 2000

_CARD_CLASS = re.compile(r"product|item|card", re.IGNORECASE)
# Classes naming a part of a card ("product-name", "card-body"), not a card
_CARD_PART = re.compile(
    r"[-_](?:name|title|price|prices|image|img|photo|thumb\w*|body|info|desc\w*|details?"
    r"|link|label|badge|meta|actions?|btn|button|rating|brand|header|footer)$",
    re.IGNORECASE,
)
_CARD_TAGS = ("article", "div", "li")
_HEADING = re.compile(r"^h[1-6]$")
_JSON_LD_TYPE = re.compile(r"application/ld\+json", re.IGNORECASE)
_PRODUCT_TYPES = {"product", "individualproduct", "productmodel"}
_LIST_PRICE_TYPES = ("listprice", "strikethroughprice", "srp", "msrp")

# Regex-card fallback patterns
_RE_CARD_OPEN = re.compile(
    r"<article\b[^>]*>"
    r"|<(?:div|li)\b[^>]*\bclass\s*=\s*[\"']([^\"']*)[\"'][^>]*>",
    re.IGNORECASE,
)
_RE_HEADING = re.compile(r"<h[1-6]\b[^>]*>(.*?)</h[1-6]>", re.IGNORECASE | re.DOTALL)
_RE_ALT_TITLE = re.compile(r"\b(?:alt|title)\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
_RE_NAME_CLASS = re.compile(
    r"<(\w+)\b[^>]*\bclass\s*=\s*[\"'][^\"']*(?:title|name)[^\"']*[\"'][^>]*>(.*?)</\1>",
    re.IGNORECASE | re.DOTALL,
)
_RE_TAG = re.compile(r"<[^>]+>")
_RE_SCRIPT = re.compile(r"<(script|style)\b.*?</\1>", re.IGNORECASE | re.DOTALL)
_RE_DATA_PAIR = re.compile(
    r"data-product-name\s*=\s*[\"']([^\"']+)[\"'][^>]*?data-price\s*=\s*[\"']([^\"']+)[\"']"
    r"|data-price\s*=\s*[\"']([^\"']+)[\"'][^>]*?data-product-name\s*=\s*[\"']([^\"']+)[\"']",
    re.IGNORECASE | re.DOTALL,
)
_REGEX_BLOCK_LIMIT = 4000


def extract_html(html: str, config: Optional[ScraperConfig] = None) -> List[ParsedCandidate]:
    """Run every HTML strategy against one page.

    Args:
        html: Raw page markup
        config: Competitor scraper configuration (selectors are optional)

    Returns:
        Candidates from JSON-LD plus selectors or product cards
    """
    if not html:
        return []

    config = config or ScraperConfig()
    soup = BeautifulSoup(html, "html.parser")

    candidates = extract_json_ld(soup)

    if config.has_selectors():
        selected = extract_with_selectors(soup, config.selectors)
        if selected:
            candidates.extend(selected)
            return candidates
        logger.info(
            "selectors_matched_nothing",
            product_selector=config.selectors.product,
        )

    cards = extract_product_cards(soup)
    if not cards:
        cards = extract_regex_cards(html)
        if cards:
            logger.info("regex_card_fallback_used", count=len(cards))

    candidates.extend(cards)
    return candidates


# ---------------------------------------------------------------------------
# JSON-LD
# ---------------------------------------------------------------------------


def extract_json_ld(source: Union[str, BeautifulSoup]) -> List[ParsedCandidate]:
    """Extract Product nodes from embedded JSON-LD blocks.

    Handles single objects, top-level arrays, ``@graph`` containers and
    ItemList wrappers. Malformed blocks are skipped.
    """
    soup = source if isinstance(source, BeautifulSoup) else BeautifulSoup(source or "", "html.parser")

    candidates = []
    for script in soup.find_all("script", attrs={"type": _JSON_LD_TYPE}):
        text = script.string or script.get_text()
        if not text or not text.strip():
            continue
        try:
            data = json.loads(text)
        except ValueError as e:
            logger.debug("json_ld_block_malformed", error=str(e))
            continue

        for node in _iter_json_ld_nodes(data):
            if _is_product_node(node):
                candidates.append(_parse_json_ld_product(node))

    return candidates


def _iter_json_ld_nodes(data: Any, depth: int = 0) -> Iterator[Dict[str, Any]]:
    if depth > 6:
        return
    if isinstance(data, list):
        for item in data:
            yield from _iter_json_ld_nodes(item, depth + 1)
    elif isinstance(data, dict):
        yield data
        if "@graph" in data:
            yield from _iter_json_ld_nodes(data["@graph"], depth + 1)
        for element in _as_list(data.get("itemListElement")):
            if isinstance(element, dict) and isinstance(element.get("item"), dict):
                yield from _iter_json_ld_nodes(element["item"], depth + 1)


def _is_product_node(node: Dict[str, Any]) -> bool:
    for node_type in _as_list(node.get("@type")):
        if str(node_type).split(":")[-1].lower() in _PRODUCT_TYPES:
            return True
    return False


def _parse_json_ld_product(node: Dict[str, Any]) -> ParsedCandidate:
    """Map one schema.org Product node onto a candidate."""
    price = None
    regular_price = None
    currency = None
    valid_from = None
    valid_until = None
    offer_gtin = None

    for offer in _as_list(node.get("offers")):
        if not isinstance(offer, dict):
            continue

        offer_price = offer.get("price")
        if offer_price is None:
            offer_price = offer.get("lowPrice")
        offer_currency = offer.get("priceCurrency")

        for spec in _as_list(offer.get("priceSpecification")):
            if not isinstance(spec, dict):
                continue
            price_type = str(spec.get("priceType", "")).lower()
            if any(t in price_type for t in _LIST_PRICE_TYPES):
                regular_price = spec.get("price")
            elif offer_price is None:
                offer_price = spec.get("price")
            offer_currency = offer_currency or spec.get("priceCurrency")
            valid_from = valid_from or spec.get("validFrom")
            valid_until = valid_until or spec.get("validThrough")

        if offer_price is None:
            continue

        price = offer_price
        currency = offer_currency
        valid_from = offer.get("priceValidFrom") or offer.get("validFrom") or valid_from
        valid_until = offer.get("priceValidUntil") or offer.get("validThrough") or valid_until
        offer_gtin = offer.get("gtin13") or offer.get("gtin")
        break

    ean = (
        node.get("gtin13")
        or node.get("gtin")
        or node.get("gtin12")
        or node.get("gtin8")
        or offer_gtin
    )

    return ParsedCandidate(
        name=_first_text(node.get("name")),
        promo_price=price,
        regular_price=regular_price,
        currency=currency,
        ean=clean_optional_text(ean),
        brand=_first_text(node.get("brand")),
        category=_first_text(node.get("category")),
        promo_start_date=valid_from,
        promo_end_date=valid_until,
        raw=json.dumps(node, ensure_ascii=False)[:RAW_SNIPPET_LENGTH],
        source="json_ld",
    )


def _first_text(value: Any) -> Optional[str]:
    """Unwrap strings, {"name": ...} objects and lists down to one string."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("name")
    if value is None:
        return None
    return clean_optional_text(html_lib.unescape(str(value)))


# ---------------------------------------------------------------------------
# DOM selectors
# ---------------------------------------------------------------------------


def extract_with_selectors(soup: BeautifulSoup, selectors: SelectorConfig) -> List[ParsedCandidate]:
    """Read product fields using configured CSS selectors.

    A field selector may end in ``@attr`` to read an attribute instead of
    the element text (e.g. ``"span.code@data-ean"``).

    Returns:
        One candidate per product container; empty when nothing matches
        or the container selector is invalid.
    """
    try:
        containers = soup.select(selectors.product)
    except SelectorSyntaxError as e:
        logger.warning("invalid_product_selector", selector=selectors.product, error=str(e))
        return []

    field_selectors = {
        "name": selectors.name,
        "promo_price": selectors.price,
        "regular_price": selectors.regular_price,
        "ean": selectors.ean,
        "brand": selectors.brand,
        "category": selectors.category,
        "currency": selectors.currency,
        "promo_start_date": selectors.promo_start_date,
        "promo_end_date": selectors.promo_end_date,
    }

    candidates = []
    for container in containers:
        values = {
            attr: _select_value(container, selector)
            for attr, selector in field_selectors.items()
            if selector
        }

        if not values.get("name"):
            values["name"] = _card_name(container)

        if not values.get("currency"):
            values["currency"] = extract_currency(values.get("promo_price"))

        candidates.append(ParsedCandidate(
            **values,
            raw=str(container)[:RAW_SNIPPET_LENGTH],
            source="selectors",
        ))

    return candidates


def _select_value(container: Tag, selector: str) -> Optional[str]:
    attribute = None
    if "@" in selector:
        selector, attribute = selector.rsplit("@", 1)

    try:
        element = container.select_one(selector) if selector.strip() else container
    except SelectorSyntaxError as e:
        logger.warning("invalid_field_selector", selector=selector, error=str(e))
        return None

    if element is None:
        return None

    if attribute:
        return clean_optional_text(element.get(attribute))

    text = collapse_whitespace(element.get_text(" ", strip=True))
    if text:
        return text

    for attr in ("content", "value", "data-value", "title", "alt"):
        if element.get(attr):
            return clean_optional_text(element.get(attr))

    return None


# ---------------------------------------------------------------------------
# Product cards (DOM)
# ---------------------------------------------------------------------------


def _is_card_class(classes: List[str]) -> bool:
    return any(_CARD_CLASS.search(c) and not _CARD_PART.search(c) for c in classes)


def _is_card(tag: Tag) -> bool:
    if tag.name == "article":
        return True
    if tag.name in _CARD_TAGS:
        return _is_card_class(tag.get("class") or [])
    return False


def extract_product_cards(soup: BeautifulSoup) -> List[ParsedCandidate]:
    """Extract candidates from product-card-like blocks and data attributes.

    Only innermost matching blocks are used so a product grid wrapper is
    not mistaken for a product. An innermost block that yields nothing is
    retried through its nearest card ancestor, unless that ancestor already
    holds a parsed card.
    """
    candidates = []
    parsed: List[Tag] = []
    failed: List[Tag] = []

    for block in soup.find_all(_is_card):
        if block.find(_is_card):
            continue
        candidate = _parse_card(block)
        if candidate:
            candidates.append(candidate)
            parsed.append(block)
        else:
            failed.append(block)

    retried = set()
    for block in failed:
        parent = block.find_parent(_is_card)
        if parent is None or id(parent) in retried:
            continue
        retried.add(id(parent))
        if any(ancestor is parent for done in parsed for ancestor in done.parents):
            continue
        candidate = _parse_card(parent)
        if candidate:
            candidates.append(candidate)
            parsed.append(parent)

    candidates.extend(_extract_data_attribute_products(soup))
    return candidates


def _parse_card(block: Tag) -> Optional[ParsedCandidate]:
    text = block.get_text(" ", strip=True)
    tokens = find_price_tokens(text)

    if tokens:
        values = [value for value, _, _ in tokens]
        currency = next((cur for _, cur, _ in tokens if cur), None)
    else:
        values = _price_classed_values(block)
        currency = None

    if not values:
        return None

    name = _card_name(block)
    if not name:
        return None

    promo = min(values)
    regular = max(values)

    return ParsedCandidate(
        name=name,
        promo_price=promo,
        regular_price=regular if regular > promo else None,
        currency=currency,
        ean=clean_optional_text(block.get("data-ean") or block.get("data-gtin")),
        raw=str(block)[:RAW_SNIPPET_LENGTH],
        source="product_card",
    )


def _card_name(block: Tag) -> Optional[str]:
    """First heading, else a title/name-classed element, else alt/title attributes."""
    heading = block.find(_HEADING)
    if heading:
        name = strip_price_tokens(heading.get_text(" ", strip=True))
        if name:
            return name

    titled = block.select_one("[class*=title], [class*=name]")
    if titled:
        name = strip_price_tokens(titled.get_text(" ", strip=True))
        if name:
            return name

    for element in [block] + block.find_all(["img", "a"]):
        for attr in ("alt", "title"):
            value = clean_optional_text(element.get(attr))
            if value:
                return value

    return None


def _price_classed_values(block: Tag) -> List[float]:
    """Prices from elements whose class mentions "price" (no currency tag needed)."""
    values = []
    for element in block.select("[class*=price]"):
        if element.find(class_=re.compile("price", re.IGNORECASE)):
            continue
        value = normalize_price(element.get_text(" ", strip=True))
        if is_valid_price(value):
            values.append(value)
    return values


def _extract_data_attribute_products(soup: BeautifulSoup) -> List[ParsedCandidate]:
    """Paired ``data-product-name`` / ``data-price`` attributes on one element."""
    candidates = []
    for element in soup.select("[data-product-name][data-price]"):
        candidates.append(ParsedCandidate(
            name=clean_optional_text(element.get("data-product-name")),
            promo_price=element.get("data-price"),
            regular_price=element.get("data-regular-price") or element.get("data-old-price"),
            currency=element.get("data-currency"),
            ean=clean_optional_text(element.get("data-ean")),
            brand=clean_optional_text(element.get("data-brand")),
            category=clean_optional_text(element.get("data-category")),
            raw=str(element)[:RAW_SNIPPET_LENGTH],
            source="data_attributes",
        ))
    return candidates


# ---------------------------------------------------------------------------
# Product cards (regex fallback)
# ---------------------------------------------------------------------------


def extract_regex_cards(html: str) -> List[ParsedCandidate]:
    """Card strategy over raw markup for pages the DOM parser mangles.

    Each block spans from one card opening tag to the next (bounded), so
    nested closing tags do not cut a card short.
    """
    if not html:
        return []

    markup = _RE_SCRIPT.sub(" ", html)
    starts = [
        m.start() for m in _RE_CARD_OPEN.finditer(markup)
        if m.group(1) is None or _is_card_class(m.group(1).split())
    ]

    candidates = []
    for index, start in enumerate(starts):
        end = starts[index + 1] if index + 1 < len(starts) else len(markup)
        block = markup[start:min(end, start + _REGEX_BLOCK_LIMIT)]

        text = collapse_whitespace(html_lib.unescape(_RE_TAG.sub(" ", block)))
        tokens = find_price_tokens(text)
        if not tokens:
            continue

        name = None
        heading = _RE_HEADING.search(block)
        if heading:
            name = strip_price_tokens(html_lib.unescape(_RE_TAG.sub(" ", heading.group(1))))
        if not name:
            titled = _RE_NAME_CLASS.search(block)
            if titled:
                name = strip_price_tokens(html_lib.unescape(_RE_TAG.sub(" ", titled.group(2))))
        if not name:
            attr = _RE_ALT_TITLE.search(block)
            name = clean_optional_text(html_lib.unescape(attr.group(1))) if attr else None
        if not name:
            continue

        values = [value for value, _, _ in tokens]
        promo, regular = min(values), max(values)
        candidates.append(ParsedCandidate(
            name=name,
            promo_price=promo,
            regular_price=regular if regular > promo else None,
            currency=next((cur for _, cur, _ in tokens if cur), None),
            raw=block[:RAW_SNIPPET_LENGTH],
            source="regex_card",
        ))

    for match in _RE_DATA_PAIR.finditer(markup):
        name = match.group(1) or match.group(4)
        price = match.group(2) or match.group(3)
        candidates.append(ParsedCandidate(
            name=clean_optional_text(html_lib.unescape(name)),
            promo_price=price,
            raw=match.group(0)[:RAW_SNIPPET_LENGTH],
            source="data_attributes",
        ))

    return candidates


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]
