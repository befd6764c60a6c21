"""Format extractors turning fetched content into ParsedCandidate lists."""

from .html import (
    extract_html,
    extract_json_ld,
    extract_product_cards,
    extract_regex_cards,
    extract_with_selectors,
)
from .json_api import extract_json_payload
from .store_api import fetch_store_api_products, store_api_url
from .csv_feed import extract_csv
from .pdf import extract_pdf
from .image import extract_image
from .text_block import find_validity_range, parse_text_block


__all__ = [
    # HTML
    "extract_html",
    "extract_json_ld",
    "extract_product_cards",
    "extract_regex_cards",
    "extract_with_selectors",
    # Structured feeds
    "extract_json_payload",
    "fetch_store_api_products",
    "store_api_url",
    "extract_csv",
    # Documents
    "extract_pdf",
    "extract_image",
    "parse_text_block",
    "find_validity_range",
]
