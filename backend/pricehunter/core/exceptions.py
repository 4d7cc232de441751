"""Custom exception classes for the pricing pipeline."""

from typing import Optional


class PriceHunterException(Exception):
    """Base exception for all PriceHunter errors."""

    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(self.message)


class ScraperError(PriceHunterException):
    """Raised when a retailer adapter encounters an error."""

    def __init__(self, retailer: str, message: str):
        self.retailer = retailer
        super().__init__(f"Scraper error for {retailer}: {message}")


class TransportFailure(ScraperError):
    """Raised when an HTTP fetch fails after retries (or is not retryable).

    Attributes:
        url: URL that was being fetched
        status_code: HTTP status of the last response, None for network errors
    """

    def __init__(self, retailer: str, url: str, message: str, status_code: Optional[int] = None):
        self.url = url
        self.status_code = status_code
        super().__init__(retailer, message)


class DisallowedUrlError(PriceHunterException):
    """Raised when a URL is outside the scrape allow-list."""

    def __init__(self, url: str):
        self.url = url
        super().__init__("URL domain not allowed for scraping")


class ReconciliationConflict(PriceHunterException):
    """Raised when a product could be neither created nor re-read after a unique collision."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Could not reconcile product for key '{key}'")
