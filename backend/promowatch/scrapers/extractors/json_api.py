"""JSON/REST payload extraction.

Accepts a raw array of product objects, or an object wrapping the array
under ``items`` / ``products`` (also ``data`` and ``results``, common in
paginated APIs). Field names come from the competitor's ``jsonMap`` or
from the shared heuristics in field_mapping.
"""

import json
from typing import Any, Dict, List, Optional

import structlog

from promowatch.schemas.competitor import ScraperConfig
from promowatch.scrapers.base import ParsedCandidate
from promowatch.scrapers.extractors.field_mapping import PRICE_ATTRS, map_fields, price_field
from promowatch.scrapers.extractors.html import RAW_SNIPPET_LENGTH

logger = structlog.get_logger(__name__)

_WRAPPER_KEYS = ("items", "products", "data", "results")


def extract_json_payload(payload: Any, config: Optional[ScraperConfig] = None) -> List[ParsedCandidate]:
    """Map a decoded JSON payload onto candidates.

    Args:
        payload: Decoded JSON (list or dict); a str/bytes body is decoded first
        config: Competitor scraper configuration (``json_map`` is optional)

    Returns:
        One candidate per product object; empty for unrecognized shapes
    """
    if isinstance(payload, (str, bytes)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            logger.debug("json_payload_malformed", error=str(e))
            return []

    config = config or ScraperConfig()
    items = _find_items(payload)
    if not items:
        return []

    explicit_map = config.json_map or None
    candidates = []
    for item in items:
        if not isinstance(item, dict):
            continue

        mapping = map_fields(item.keys(), explicit_map)
        values = {attr: _unwrap(_lookup(item, source)) for attr, source in mapping.items()}
        for attr in PRICE_ATTRS:
            if attr in values:
                values[attr] = price_field(values[attr])

        candidates.append(ParsedCandidate(
            **values,
            raw=json.dumps(item, ensure_ascii=False, default=str)[:RAW_SNIPPET_LENGTH],
            source="json",
        ))

    return candidates


def _find_items(payload: Any) -> List[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _WRAPPER_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
            # {"data": {"products": [...]}}
            if isinstance(value, dict):
                nested = _find_items(value)
                if nested:
                    return nested
    return []


def _lookup(item: Dict[str, Any], path: str) -> Any:
    """Resolve a field name or a dotted path such as ``prices.sale``."""
    if path in item:
        return item[path]

    current: Any = item
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


def _unwrap(value: Any) -> Any:
    """Unwrap nested values like ``{"name": "Dukat"}`` or ``[{"name": ...}]``."""
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        for key in ("name", "value", "title", "amount", "price"):
            if key in value:
                return value[key]
        return None
    return value
