"""CSV price feed extraction."""

import csv
import io
from typing import List, Optional, Union

import structlog

from promowatch.schemas.competitor import ScraperConfig
from promowatch.scrapers.base import ParsedCandidate
from promowatch.scrapers.extractors.field_mapping import PRICE_ATTRS, map_fields, price_field
from promowatch.scrapers.utils.normalizer import clean_optional_text

logger = structlog.get_logger(__name__)


def detect_delimiter(header_line: str) -> str:
    """``;`` when the header line contains one, else ``,``."""
    return ";" if ";" in header_line else ","


def extract_csv(content: Union[str, bytes], config: Optional[ScraperConfig] = None) -> List[ParsedCandidate]:
    """Parse a CSV feed into candidates, one per data row.

    Args:
        content: Feed body (bytes are decoded as UTF-8, BOM tolerated)
        config: Competitor scraper configuration (``csv_map`` is optional)

    Returns:
        Candidates; empty when the feed has no header or no mapped columns
    """
    if isinstance(content, bytes):
        content = content.decode("utf-8-sig", errors="replace")
    content = (content or "").lstrip("\ufeff")

    lines = content.splitlines()
    if not lines or not lines[0].strip():
        return []

    config = config or ScraperConfig()
    reader = csv.reader(io.StringIO(content), delimiter=detect_delimiter(lines[0]))

    try:
        headers = [h.strip() for h in next(reader)]
    except (StopIteration, csv.Error) as e:
        logger.debug("csv_header_unreadable", error=str(e))
        return []

    mapping = map_fields(headers, config.csv_map or None)
    if not mapping:
        logger.debug("csv_no_mapped_columns", headers=headers)
        return []

    index = {header: position for position, header in enumerate(headers)}

    candidates = []
    try:
        for row in reader:
            if not any(cell.strip() for cell in row):
                continue

            values = {}
            for attr, header in mapping.items():
                position = index.get(header)
                if position is not None and position < len(row):
                    values[attr] = clean_optional_text(row[position])
            for attr in PRICE_ATTRS:
                if attr in values:
                    values[attr] = price_field(values[attr])

            candidates.append(ParsedCandidate(
                **values,
                raw=",".join(row),
                source="csv",
            ))
    except csv.Error as e:
        logger.warning("csv_row_unreadable", error=str(e), parsed_rows=len(candidates))

    return candidates
