"""Scanned leaflet extraction via Tesseract OCR."""

import asyncio
import io
from typing import List, Optional

import pytesseract
import structlog
from PIL import Image, UnidentifiedImageError

from promowatch.config import settings
from promowatch.scrapers.base import ParsedCandidate
from promowatch.scrapers.extractors.text_block import parse_text_block

logger = structlog.get_logger(__name__)


def ocr_image(data: bytes, lang: Optional[str] = None, timeout: Optional[float] = None) -> str:
    """Run OCR on an image (blocking).

    Args:
        data: Encoded image bytes (PNG, JPEG, ...)
        lang: Tesseract language spec (defaults to OCR_LANG, e.g. "hrv+eng")
        timeout: Seconds before Tesseract is killed (defaults to OCR_TIMEOUT)

    Raises:
        UnidentifiedImageError: If the bytes are not a readable image
        RuntimeError: If Tesseract fails or exceeds the timeout
        OSError: If the Tesseract binary is missing
    """
    with Image.open(io.BytesIO(data)) as img:
        gray = img.convert("L")
        return pytesseract.image_to_string(
            gray,
            lang=lang or settings.OCR_LANG,
            timeout=timeout if timeout is not None else settings.OCR_TIMEOUT,
        )


async def extract_image(data: bytes) -> List[ParsedCandidate]:
    """Extract candidates from a scanned leaflet image."""
    if not data:
        return []

    try:
        text = await asyncio.to_thread(ocr_image, data)
    except UnidentifiedImageError as e:
        logger.warning("image_unreadable", error=str(e), size=len(data))
        return []
    except (RuntimeError, OSError) as e:
        logger.warning("ocr_failed", error=str(e))
        return []

    return parse_text_block(text, source="image")
