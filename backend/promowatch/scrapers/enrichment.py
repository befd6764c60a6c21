"""AI enrichment of partially extracted products.

Calls an OpenAI-compatible chat completions endpoint with the raw source
snippet of a product and asks for a JSON object in the product schema.
The model may only report values visible in the snippet.
"""

import json
import re
from typing import Any, Dict, Optional

import httpx
import structlog

from promowatch.config import settings
from promowatch.core.exceptions import EnrichmentError
from promowatch.scrapers.base import ScrapedProduct

logger = structlog.get_logger(__name__)

MAX_SNIPPET_CHARS = 4000

SYSTEM_PROMPT = """You extract retail product data from scraped web page, feed or leaflet snippets.

Rules:
- Use ONLY information present in the snippet
- Never guess EANs, brands or prices
- Prices are plain numbers with a dot as decimal separator
- Currency is an ISO 4217 code (KM means BAM)
- Use null for anything not present

Respond with ONE JSON object and no other text."""

USER_PROMPT_TEMPLATE = """Product extracted so far:
{known}

Source snippet:
{snippet}

Return a JSON object with these keys:
{{
  "name": string,
  "promoPrice": number,
  "regularPrice": number or null,
  "currency": string or null,
  "ean": string or null,
  "brand": string or null,
  "category": string or null,
  "promoStartDate": string or null,
  "promoEndDate": string or null
}}"""

_CODE_FENCE = re.compile(r"```(?:json)?\s*|```", re.IGNORECASE)


class AIEnricher:
    """Fills missing product fields from the raw source snippet."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        api_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.AI_API_KEY
        self.api_url = api_url or settings.AI_API_URL
        self.model = model or settings.AI_MODEL
        self.timeout = timeout if timeout is not None else settings.AI_TIMEOUT
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.timeout)
        self.logger = logger.bind(service="ai_enricher", model=self.model)

    def is_configured(self) -> bool:
        return bool(self.api_key and self.api_url and self.model)

    async def enrich(self, product: ScrapedProduct, snippet: str) -> Dict[str, Any]:
        """Ask the model for a product object built from ``snippet``.

        Args:
            product: Product as extracted so far
            snippet: Raw text/HTML the product came from

        Returns:
            Decoded JSON object with camelCase product keys

        Raises:
            EnrichmentError: Missing API key, transport error, non-2xx
                response or a reply that is not a JSON object
        """
        if not self.is_configured():
            raise EnrichmentError("AI enrichment is not configured (missing API key)")

        known = {
            "name": product.name,
            "promoPrice": product.promo_price,
            "regularPrice": product.regular_price,
            "currency": product.currency,
            "ean": product.ean,
            "brand": product.brand,
            "category": product.category,
        }
        body = {
            "model": self.model,
            "temperature": 0,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": USER_PROMPT_TEMPLATE.format(
                        known=json.dumps(known, ensure_ascii=False),
                        snippet=(snippet or "")[:MAX_SNIPPET_CHARS],
                    ),
                },
            ],
        }

        try:
            response = await self.client.post(
                self.api_url,
                json=body,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise EnrichmentError(f"AI request failed: {str(e) or type(e).__name__}") from e

        if not response.is_success:
            raise EnrichmentError(
                f"AI gateway returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise EnrichmentError(f"Unexpected AI response shape: {e}") from e

        data = parse_model_json(content)
        self.logger.debug("product_enriched", product=product.name, keys=sorted(data))
        return data

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()


def parse_model_json(content: Any) -> Dict[str, Any]:
    """Decode a model reply, tolerating markdown code fences.

    Raises:
        EnrichmentError: If the reply is not a JSON object
    """
    if isinstance(content, dict):
        return content

    cleaned = _CODE_FENCE.sub("", str(content or "")).strip()
    try:
        data = json.loads(cleaned)
    except ValueError as e:
        raise EnrichmentError(f"AI reply is not valid JSON: {cleaned[:100]}") from e

    if not isinstance(data, dict):
        raise EnrichmentError("AI reply is not a JSON object")
    return data
