"""Pydantic schemas for PriceHunter results.

All result models are defined here for easy import.
"""

from pricehunter.schemas.fetch import FetchResult, RetailerResult, UrlFetchResult

__all__ = [
    "FetchResult",
    "RetailerResult",
    "UrlFetchResult",
]
