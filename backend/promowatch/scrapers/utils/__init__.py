"""Scraper utilities for rate limiting and data normalization."""

from .rate_limiter import DomainRateLimiter, TokenBucket
from .normalizer import (
    collapse_whitespace,
    dedupe_key,
    extract_currency,
    find_price_tokens,
    is_valid_price,
    normalize_currency,
    normalize_price,
)


__all__ = [
    # Rate limiting
    "DomainRateLimiter",
    "TokenBucket",
    # Normalization
    "collapse_whitespace",
    "dedupe_key",
    "extract_currency",
    "find_price_tokens",
    "is_valid_price",
    "normalize_currency",
    "normalize_price",
]
