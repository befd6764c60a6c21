"""Custom exception classes for the application."""

from typing import Optional


class PromoWatchException(Exception):
    """Base exception for all PromoWatch errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ConfigurationError(PromoWatchException):
    """Raised when the batch cannot start (e.g. competitor list unreadable)."""


class FetchError(PromoWatchException):
    """Raised when a URL cannot be fetched (network error or non-2xx status)."""

    def __init__(self, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(f"Failed to fetch {url}: {message}")


class ScraperError(PromoWatchException):
    """Raised when scraping a competitor fails as a whole."""

    def __init__(self, competitor: str, message: str):
        self.competitor = competitor
        super().__init__(f"Scraper error for {competitor}: {message}")


class EnrichmentError(PromoWatchException):
    """Raised when the AI enrichment call fails or returns unusable data."""


class PersistenceError(PromoWatchException):
    """Raised when scraped prices cannot be written to the store."""
