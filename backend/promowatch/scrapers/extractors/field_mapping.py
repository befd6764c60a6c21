"""Field-name mapping shared by the JSON and CSV extractors.

A competitor may declare an explicit map (canonical name -> source name);
otherwise source field names are matched against ordered regex heuristics.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Pattern, Tuple

from promowatch.scrapers.utils.normalizer import is_valid_price, normalize_price

# Canonical camelCase field names -> ParsedCandidate attribute names
CANONICAL_FIELDS: Dict[str, str] = {
    "name": "name",
    "promoPrice": "promo_price",
    "regularPrice": "regular_price",
    "currency": "currency",
    "ean": "ean",
    "brand": "brand",
    "category": "category",
    "promoStartDate": "promo_start_date",
    "promoEndDate": "promo_end_date",
}

# Ordered heuristics per candidate attribute. Earlier patterns win; a source
# field is assigned to at most one attribute. Regular price is resolved
# before promo price so "old_price" is not taken as the promo price, and
# dates before both so "promo_start" is never read as a price.
_HEURISTIC_ORDER: List[Tuple[str, List[str]]] = [
    ("name", [r"^(product_?)?(name|title|naziv)$", r"name|title|naziv|artikal|proizvod"]),
    ("promo_start_date", [r"(^|_)start|start_?date|valid_?from|date_?from|from_?date|vrijedi_?od"]),
    ("promo_end_date", [r"(^|_)end(_|$)|end_?date|until|valid_?to|date_?to|to_?date|vrijedi_?do"]),
    ("regular_price", [r"regular|old|base|original|list_?price|redovn|stara"]),
    (
        "promo_price",
        [
            r"(promo|sale|akcij\w*|special|discount\w*)[_ ]?(price|cijena|cena)|^(promo|sale|akcij\w*)$",
            r"price|cijena|cena",
        ],
    ),
    ("currency", [r"currency|valuta"]),
    ("ean", [r"^ean|gtin|barcode|barkod|^ean_?code"]),
    ("brand", [r"brand|marka|proizvo[dđ]a[cč]|manufacturer"]),
    ("category", [r"categor|kategorij"]),
]

PRICE_ATTRS = ("promo_price", "regular_price")

_COMPILED: List[Tuple[str, List[Pattern[str]]]] = [
    (attr, [re.compile(p, re.IGNORECASE) for p in patterns])
    for attr, patterns in _HEURISTIC_ORDER
]


def map_fields(
    source_fields: Iterable[str],
    explicit_map: Optional[Dict[str, str]] = None,
) -> Dict[str, str]:
    """Resolve which source field feeds each candidate attribute.

    Args:
        source_fields: Field names (JSON keys or CSV headers)
        explicit_map: Optional canonical -> source name map from the config

    Returns:
        Mapping of candidate attribute -> source field name
    """
    fields = [f for f in source_fields if f]

    if explicit_map:
        resolved = {}
        for canonical, source in explicit_map.items():
            attr = CANONICAL_FIELDS.get(canonical, canonical)
            if attr in CANONICAL_FIELDS.values() and source:
                resolved[attr] = source
        return resolved

    resolved: Dict[str, str] = {}
    used = set()
    for attr, patterns in _COMPILED:
        for pattern in patterns:
            match = next(
                (f for f in fields if f not in used and pattern.search(f.strip())),
                None,
            )
            if match is not None:
                resolved[attr] = match
                used.add(match)
                break

    return resolved


def price_field(value: Any) -> Any:
    """Keep a raw price value only if it parses; flags and text become None."""
    return value if is_valid_price(normalize_price(value)) else None
