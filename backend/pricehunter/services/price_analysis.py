"""Price summaries for listings: lowest/highest/average and the latest change."""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricehunter.models.base import as_utc, utcnow
from pricehunter.models.listing import RetailerListing
from pricehunter.models.price_history import PriceHistory
from pricehunter.services.price_prediction import PricePoint

logger = structlog.get_logger(__name__)

ANALYSIS_HISTORY_LIMIT = 100


@dataclass
class PriceChange:
    amount: Decimal
    percentage: int
    direction: str  # "up" or "down"
    days_ago: int


@dataclass
class PriceAnalysis:
    """Summary of a listing's current price against its recent history.

    Attributes:
        current_price: Listing's current native price
        lowest_ever: Minimum over history and the current price
        highest_ever: Maximum over history and the current price
        average_price: Mean of the history points
        is_at_lowest: Current price equals the lowest seen
        previous_price: Most recent history point, if any
        price_change: Change since the most recent point with a different price
    """

    current_price: Decimal
    lowest_ever: Decimal
    highest_ever: Decimal
    average_price: Decimal
    is_at_lowest: bool
    previous_price: Optional[Decimal] = None
    price_change: Optional[PriceChange] = None


def summarize_prices(
    current_price: Decimal,
    history: Sequence[PricePoint],
    now: Optional[datetime] = None,
) -> PriceAnalysis:
    """Build a PriceAnalysis from the current price and newest-first history."""
    if not history:
        return PriceAnalysis(
            current_price=current_price,
            lowest_ever=current_price,
            highest_ever=current_price,
            average_price=current_price,
            is_at_lowest=True,
        )

    now = now or utcnow()
    prices = [p.price for p in history]
    lowest = min(min(prices), current_price)
    highest = max(max(prices), current_price)
    average = (sum(prices, Decimal("0")) / len(prices)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    price_change = None
    for point in history:
        if point.price != current_price:
            amount = current_price - point.price
            pct = (abs(amount) / point.price * 100) if point.price else Decimal("0")
            price_change = PriceChange(
                amount=abs(amount),
                percentage=int(pct.quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
                direction="up" if amount > 0 else "down",
                days_ago=max(0, (now - as_utc(point.recorded_at)).days),
            )
            break

    return PriceAnalysis(
        current_price=current_price,
        lowest_ever=lowest,
        highest_ever=highest,
        average_price=average,
        is_at_lowest=current_price <= lowest,
        previous_price=history[0].price,
        price_change=price_change,
    )


class PriceAnalyzer:
    """Read-only price summaries over the ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="price_analysis")

    async def _history(self, listing_id: UUID) -> List[PricePoint]:
        result = await self.db.execute(
            select(PriceHistory.recorded_at, PriceHistory.price)
            .where(PriceHistory.listing_id == listing_id)
            .order_by(PriceHistory.recorded_at.desc())
            .limit(ANALYSIS_HISTORY_LIMIT)
        )
        return [PricePoint(recorded_at=as_utc(row.recorded_at), price=Decimal(row.price)) for row in result]

    async def analyze_listing(self, listing_id: UUID) -> Optional[PriceAnalysis]:
        """Summary over the latest 100 points; None if the listing does not exist."""
        listing = await self.db.get(RetailerListing, listing_id)
        if listing is None:
            return None
        return summarize_prices(Decimal(listing.price), await self._history(listing_id))

    async def analyze_product(self, product_id: UUID) -> Dict[str, PriceAnalysis]:
        """Summaries for every listing of a product, keyed by retailer slug."""
        result = await self.db.execute(
            select(RetailerListing)
            .where(RetailerListing.product_id == product_id)
            .options(selectinload(RetailerListing.retailer))
        )
        analyses: Dict[str, PriceAnalysis] = {}
        for listing in result.scalars().all():
            history = await self._history(listing.id)
            analyses[listing.retailer.slug] = summarize_prices(Decimal(listing.price), history)
        return analyses
