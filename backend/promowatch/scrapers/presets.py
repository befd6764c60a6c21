"""Static scraper configuration defaults keyed by competitor hostname.

A presets file looks like::

    {
      "www.example-market.ba": {
        "selectors": {"product": "div.promo-item", "name": "h3", "price": ".new-price"},
        "aiEnabled": false
      }
    }

Presets are loaded once per batch and never mutated. A competitor's own
scraper configuration is layered on top, so stored values always win.
"""

import json
from dataclasses import replace
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional
from urllib.parse import urlparse

import structlog
from pydantic import ValidationError

from promowatch.config import settings
from promowatch.core.exceptions import ConfigurationError
from promowatch.schemas.competitor import ScraperConfig
from promowatch.scrapers.base import CompetitorConfig

logger = structlog.get_logger(__name__)


def _host_key(hostname: Optional[str]) -> str:
    host = (hostname or "").strip().lower()
    return host[4:] if host.startswith("www.") else host


class ScraperPresets:
    """Read-only hostname -> ScraperConfig lookup."""

    def __init__(self, presets: Optional[Mapping[str, ScraperConfig]] = None):
        self._presets = MappingProxyType(
            {_host_key(host): config for host, config in (presets or {}).items()}
        )

    @classmethod
    def load(cls, path: Optional[str] = None) -> "ScraperPresets":
        """Load presets from a JSON file.

        Args:
            path: File path (defaults to SCRAPER_PRESETS_PATH; empty means no presets)

        Returns:
            ScraperPresets instance; entries with an invalid config are skipped

        Raises:
            ConfigurationError: If the file cannot be read or is not a JSON object
        """
        path = path if path is not None else settings.SCRAPER_PRESETS_PATH
        if not path:
            return cls()

        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot load scraper presets from {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Scraper presets in {path} must be a JSON object")

        presets = {}
        for host, raw in data.items():
            try:
                presets[host] = ScraperConfig.model_validate(raw)
            except ValidationError as e:
                logger.warning("invalid_scraper_preset", host=host, error=str(e))

        logger.info("scraper_presets_loaded", path=path, count=len(presets))
        return cls(presets)

    @property
    def presets(self) -> Mapping[str, ScraperConfig]:
        return self._presets

    def lookup(self, base_url: str) -> Optional[ScraperConfig]:
        """Preset for the hostname of ``base_url`` ("www." is ignored)."""
        return self._presets.get(_host_key(urlparse(base_url or "").hostname))

    def apply(self, competitor: CompetitorConfig) -> CompetitorConfig:
        """Return the competitor with its configuration layered over the preset."""
        preset = self.lookup(competitor.base_url)
        if preset is None:
            return competitor
        return replace(
            competitor,
            scraper_config=competitor.scraper_config.merged_over(preset),
        )

    def __len__(self) -> int:
        return len(self._presets)
