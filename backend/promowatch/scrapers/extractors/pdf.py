"""PDF leaflet extraction via the pdfplumber text layer."""

import asyncio
import io
from typing import List

import pdfplumber
import structlog

from promowatch.scrapers.base import ParsedCandidate
from promowatch.scrapers.extractors.text_block import parse_text_block

logger = structlog.get_logger(__name__)


def read_pdf_text(data: bytes) -> str:
    """Join the text layer of every page (blocking)."""
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        return "\n".join(page.extract_text() or "" for page in pdf.pages)


async def extract_pdf(data: bytes) -> List[ParsedCandidate]:
    """Extract candidates from a PDF leaflet.

    Parsing runs in a worker thread. A malformed document is logged and
    yields no candidates. Scanned PDFs without a text layer also yield
    nothing; those competitors should be declared as ``image`` sources.
    """
    if not data:
        return []

    try:
        text = await asyncio.to_thread(read_pdf_text, data)
    except Exception as e:
        logger.warning("pdf_parse_failed", error=str(e), size=len(data))
        return []

    return parse_text_block(text, source="pdf")
