"""Data normalization utilities for price parsing and currency labels.

Prices show up in many inconsistent textual forms across extractors
("12.99 KM", "12,99BAM", "€12.99", "EUR 5,00"). Every extractor funnels
its raw values through the helpers in this module.
"""

import math
import re
from typing import Any, List, Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


# Maximum stored length of a product name
MAX_NAME_LENGTH = 200

# Currency aliases mapped to canonical codes
CURRENCY_ALIASES = {
    "KM": "BAM",
    "€": "EUR",
}

_CURRENCY_PATTERN = re.compile(r"(BAM|KM|EUR|€|USD|GBP)", re.IGNORECASE)

# Numeric prefix accepted by normalize_price after cleaning
_NUMBER_PREFIX = re.compile(r"^-?(?:\d+(?:\.\d*)?|\.\d+)")

_NON_PRICE_CHARS = re.compile(r"[^\d.,\-]")

# Currency-tagged price tokens: "12,99 KM", "12.99BAM", "€ 12.99", "EUR 5,00"
_AMOUNT = r"\d{1,3}(?:[.\s]\d{3})*[.,]\d{1,2}|\d+[.,]\d{1,2}|\d+"
_CURRENCY_WORD = r"(?:BAM|KM|EUR|€|USD|GBP|\$|£)"
PRICE_TOKEN_PATTERN = re.compile(
    rf"(?:(?P<amount_a>{_AMOUNT})\s*(?P<cur_a>{_CURRENCY_WORD})(?![A-Za-z]))"
    rf"|(?:(?<![A-Za-z])(?P<cur_b>{_CURRENCY_WORD})\s*(?P<amount_b>{_AMOUNT}))",
    re.IGNORECASE,
)

_SYMBOL_CURRENCIES = {"$": "USD", "£": "GBP"}

_WHITESPACE = re.compile(r"\s+")


def normalize_price(raw: Any) -> float:
    """Parse a raw price value into a float.

    Strips every character except digits, ".", "," and "-", replaces the
    first "," with "." and parses the leading numeric part. Numbers are
    passed through as floats.

    Examples:
        - "12.99" -> 12.99
        - "12,99 KM" -> 12.99
        - "abc" -> nan

    Args:
        raw: Raw price (string, int, float or None)

    Returns:
        Parsed float, or math.nan when the value cannot be parsed.
        Callers must check with is_valid_price() before using it.
    """
    if raw is None or isinstance(raw, bool):
        return math.nan

    if isinstance(raw, (int, float)):
        return float(raw)

    cleaned = _NON_PRICE_CHARS.sub("", str(raw))
    cleaned = cleaned.replace(",", ".", 1)

    match = _NUMBER_PREFIX.match(cleaned)
    if not match:
        return math.nan

    try:
        return float(match.group(0))
    except ValueError:
        return math.nan


def is_valid_price(value: Optional[float]) -> bool:
    """Return True when value is a finite number greater than zero."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value) and value > 0
    except TypeError:
        return False


def extract_currency(raw: Optional[str]) -> Optional[str]:
    """Find the first currency token in a string.

    Args:
        raw: Text such as "12.99 KM" or "€5.00"

    Returns:
        Canonical code ("BAM", "EUR", "USD", "GBP") or None if absent
    """
    if not raw:
        return None

    match = _CURRENCY_PATTERN.search(str(raw))
    if not match:
        return None

    return normalize_currency(match.group(1))


def normalize_currency(code: Optional[str]) -> Optional[str]:
    """Uppercase and canonicalize a currency label.

    Unknown codes are passed through unchanged (uppercased).

    Args:
        code: Currency label (e.g. "km", "€", "eur")

    Returns:
        Canonical code or None for empty input
    """
    if code is None:
        return None

    value = str(code).strip().upper()
    if not value:
        return None

    return CURRENCY_ALIASES.get(value, value)


def find_price_tokens(text: str) -> List[Tuple[float, Optional[str], str]]:
    """Find all currency-tagged price tokens in a block of text.

    Args:
        text: Free text (card text, PDF line, OCR output)

    Returns:
        List of (value, currency, matched_text) tuples in order of appearance.
        Tokens whose amount does not parse to a valid price are skipped.
    """
    if not text:
        return []

    tokens = []
    for match in PRICE_TOKEN_PATTERN.finditer(text):
        amount = match.group("amount_a") or match.group("amount_b")
        symbol = match.group("cur_a") or match.group("cur_b")

        value = normalize_price(_strip_thousands(amount))
        if not is_valid_price(value):
            continue

        currency = _SYMBOL_CURRENCIES.get(symbol) or normalize_currency(symbol)
        tokens.append((value, currency, match.group(0)))

    return tokens


def strip_price_tokens(text: str) -> str:
    """Remove all currency-tagged price tokens from text and collapse whitespace."""
    return collapse_whitespace(PRICE_TOKEN_PATTERN.sub(" ", text or ""))


def collapse_whitespace(text: Optional[str]) -> str:
    """Collapse runs of whitespace into single spaces and trim."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", str(text)).strip()


def clean_name(raw: Any) -> str:
    """Collapse whitespace and truncate a product name to MAX_NAME_LENGTH."""
    if raw is None:
        return ""
    return collapse_whitespace(str(raw))[:MAX_NAME_LENGTH]


def clean_optional_text(raw: Any) -> Optional[str]:
    """Return a trimmed string, or None for missing/blank values."""
    if raw is None:
        return None
    if isinstance(raw, float) and math.isnan(raw):
        return None
    value = collapse_whitespace(str(raw))
    return value or None


def dedupe_key(name: str, ean: Optional[str]) -> Tuple[str, str]:
    """Build the deduplication key: lowercased name and lowercased EAN."""
    return ((name or "").strip().lower(), (ean or "").strip().lower())


def _strip_thousands(amount: str) -> str:
    """Drop thousands separators from amounts like "1.299,00" or "1 299,00".

    normalize_price only treats the first "," as decimal separator, so a
    grouped amount has its group separators removed first.
    """
    amount = amount.replace(" ", "")
    if re.fullmatch(r"\d{1,3}(?:\.\d{3})+,\d{1,2}", amount):
        return amount.replace(".", "")
    if re.fullmatch(r"\d{1,3}(?:,\d{3})+\.\d{1,2}", amount):
        return amount.replace(",", "")
    return amount
