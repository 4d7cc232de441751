"""Price ledger: listing upsert plus one append-only history point per write."""

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pricehunter.config import settings
from pricehunter.models.base import as_utc, utcnow
from pricehunter.models.listing import RetailerListing
from pricehunter.models.price_history import PriceHistory
from pricehunter.models.product import Product
from pricehunter.models.retailer import Retailer
from pricehunter.scrapers.base import ExtractedRecord
from pricehunter.services.currency import ExchangeRateProvider

logger = structlog.get_logger(__name__)

# Smallest step that keeps history timestamps strictly increasing per listing
MIN_HISTORY_STEP = timedelta(microseconds=1)


def compute_discount(original_price: Optional[Decimal], price: Decimal) -> Optional[int]:
    """Whole-percent discount, rounded half up, only when original > price.

    >>> compute_discount(Decimal("115"), Decimal("100"))
    13
    """
    if original_price is None or original_price <= 0 or original_price <= price:
        return None
    pct = (original_price - price) / original_price * 100
    return int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PriceLedgerWriter:
    """Writes a record's price into the listing and its history.

    Idempotent on the listing: the same record written twice leaves one
    listing row with the same field values (apart from the fetch time).
    Every write appends a history point, even when the price is unchanged.
    """

    def __init__(
        self,
        db: AsyncSession,
        rates: ExchangeRateProvider,
        normalized_currency: Optional[str] = None,
    ):
        self.db = db
        self.rates = rates
        self.normalized_currency = normalized_currency or settings.NORMALIZED_CURRENCY
        self.logger = logger.bind(service="price_ledger")

    async def record(
        self,
        product: Product,
        retailer: Retailer,
        record: ExtractedRecord,
        observed_at: Optional[datetime] = None,
    ) -> Tuple[RetailerListing, PriceHistory, bool]:
        """Upsert the (product, retailer) listing and append a history point.

        Args:
            product: Canonical product from the reconciler
            retailer: Retailer the record was extracted from
            record: Extracted record
            observed_at: Observation time, defaults to now

        Returns:
            Tuple of (listing, history point, listing_created)
        """
        observed_at = observed_at or utcnow()
        price_usd = await self.rates.convert(
            record.price, record.currency, self.normalized_currency, db=self.db
        )
        discount = compute_discount(record.original_price, record.price)

        listing = await self.get_listing(product.id, retailer.id)
        created = listing is None
        if created:
            listing = RetailerListing(product_id=product.id, retailer_id=retailer.id)
            self.db.add(listing)
            recorded_at = observed_at
        else:
            previous = as_utc(listing.last_fetched_at)
            recorded_at = max(observed_at, previous + MIN_HISTORY_STEP) if previous else observed_at

        listing.url = record.url
        listing.price = record.price
        listing.currency = record.currency
        listing.price_usd = price_usd
        listing.original_price = record.original_price
        listing.discount = discount
        listing.in_stock = record.in_stock
        listing.rating = record.rating
        listing.review_count = record.review_count
        listing.last_fetched_at = recorded_at
        await self.db.flush()

        point = PriceHistory(
            listing_id=listing.id,
            price=record.price,
            price_usd=price_usd,
            currency=record.currency,
            recorded_at=recorded_at,
        )
        self.db.add(point)
        await self.db.flush()

        self.logger.debug(
            "price_recorded",
            listing_id=str(listing.id),
            retailer=retailer.slug,
            price=str(record.price),
            currency=record.currency,
            price_usd=str(price_usd),
            listing_created=created,
        )
        return listing, point, created

    async def get_listing(self, product_id, retailer_id) -> Optional[RetailerListing]:
        result = await self.db.execute(
            select(RetailerListing).where(
                RetailerListing.product_id == product_id,
                RetailerListing.retailer_id == retailer_id,
            )
        )
        return result.scalar_one_or_none()
