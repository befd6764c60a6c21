"""Deduplication of products found by several strategies or pages."""

from typing import Dict, Iterable, List, Tuple

from promowatch.scrapers.base import ScrapedProduct, merge_products
from promowatch.scrapers.utils.normalizer import dedupe_key


def deduplicate_products(products: Iterable[ScrapedProduct]) -> List[ScrapedProduct]:
    """Collapse duplicates keyed by lowercased name + lowercased EAN.

    Later records merge into earlier ones (defined incoming fields win).
    A record without EAN merges into the first record of the same name;
    a record with EAN merges into an EAN-less record of the same name,
    which then takes over its EAN. Output keeps first-seen order.

    Args:
        products: Products in discovery order

    Returns:
        Deduplicated products
    """
    slots: List[ScrapedProduct] = []
    index: Dict[Tuple[str, str], int] = {}
    by_name: Dict[str, List[int]] = {}

    for product in products:
        key = dedupe_key(product.name, product.ean)
        name, ean = key

        if key in index:
            position = index[key]
            slots[position] = merge_products(slots[position], product)
            continue

        if not ean and name in by_name:
            position = by_name[name][0]
            slots[position] = merge_products(slots[position], product)
            continue

        if ean and (name, "") in index:
            position = index.pop((name, ""))
            slots[position] = merge_products(slots[position], product)
            index[key] = position
            continue

        position = len(slots)
        slots.append(product)
        index[key] = position
        by_name.setdefault(name, []).append(position)

    return slots
