"""SQLAlchemy models for PriceHunter.

All models are imported here so metadata.create_all and migrations see them.
"""

from pricehunter.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from pricehunter.models.retailer import Retailer
from pricehunter.models.product import Product
from pricehunter.models.listing import RetailerListing
from pricehunter.models.price_history import PriceHistory
from pricehunter.models.fetch_job import FetchJob, JobStatus, JobType
from pricehunter.models.exchange_rate import ExchangeRate

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Retailer",
    "Product",
    "RetailerListing",
    "PriceHistory",
    "FetchJob",
    "JobStatus",
    "JobType",
    "ExchangeRate",
]
