"""Free-text parser shared by the PDF and image (OCR) extractors.

Leaflets read top to bottom: one or two lines naming the product, then a
line with its price(s). Lines without a price token are buffered (only the
last two are kept) and become the name of the next priced line.
"""

import re
from collections import deque
from typing import List, Optional, Tuple

from promowatch.scrapers.base import ParsedCandidate
from promowatch.scrapers.utils.normalizer import (
    collapse_whitespace,
    find_price_tokens,
    strip_price_tokens,
)

NAME_BUFFER_LINES = 2

_DATE = r"(\d{1,2})\.\s?(\d{1,2})\.(?:\s?(\d{4})\.?)?"
_VALIDITY_RANGE = re.compile(
    rf"(?:\bod\s+|\bfrom\s+)?{_DATE}\s*(?:-|\u2013|\bdo\b|\bto\b|\buntil\b)\s*{_DATE}",
    re.IGNORECASE,
)


def find_validity_range(text: str) -> Tuple[Optional[str], Optional[str]]:
    """Find a leaflet-wide promo validity range.

    Recognizes "01.03.2025 - 07.03.2025", "01.03.-07.03.2025" and
    "od 01.03. do 07.03.". A missing start year is taken from the end
    date.

    Returns:
        (start, end) as ISO dates when the year is known, else "DD.MM.";
        (None, None) when no range is present
    """
    for match in _VALIDITY_RANGE.finditer(text or ""):
        d1, m1, y1, d2, m2, y2 = match.groups()
        if not (_valid_day_month(d1, m1) and _valid_day_month(d2, m2)):
            continue
        y1 = y1 or y2
        return _format_date(d1, m1, y1), _format_date(d2, m2, y2)
    return None, None


def _valid_day_month(day: str, month: str) -> bool:
    return 1 <= int(day) <= 31 and 1 <= int(month) <= 12


def _format_date(day: str, month: str, year: Optional[str]) -> str:
    if year:
        return f"{year}-{int(month):02d}-{int(day):02d}"
    return f"{int(day):02d}.{int(month):02d}."


def parse_text_block(text: str, source: str = "text") -> List[ParsedCandidate]:
    """Turn a block of leaflet text into candidates.

    Args:
        text: Text layer of a PDF or OCR output
        source: Strategy label recorded on each candidate

    Returns:
        One candidate per line carrying a currency-tagged price
    """
    if not text:
        return []

    start, end = find_validity_range(text)
    buffer = deque(maxlen=NAME_BUFFER_LINES)
    candidates = []

    for raw_line in text.splitlines():
        line = collapse_whitespace(raw_line)
        if not line:
            continue

        tokens = find_price_tokens(line)
        if not tokens:
            if not _VALIDITY_RANGE.search(line):
                buffer.append(line)
            continue

        snippet = " ".join(list(buffer) + [line])
        name = strip_price_tokens(snippet)
        buffer.clear()
        if not name:
            continue

        values = [value for value, _, _ in tokens]
        promo, regular = min(values), max(values)

        candidates.append(ParsedCandidate(
            name=name,
            promo_price=promo,
            regular_price=regular if regular > promo else None,
            currency=next((cur for _, cur, _ in tokens if cur), None),
            promo_start_date=start,
            promo_end_date=end,
            raw=snippet,
            source=source,
        ))

    return candidates
