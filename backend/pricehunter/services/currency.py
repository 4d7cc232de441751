"""Exchange-rate lookup used to normalize listing prices.

Rates come from the ``exchange_rates`` table (kept fresh by an external
ingester) and are cached in memory for an hour. When the table has no
usable rate, or the database is unavailable, a static fallback table is
used so a price write never fails for lack of a rate.
"""

import time
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pricehunter.config import settings
from pricehunter.models.exchange_rate import ExchangeRate

logger = structlog.get_logger(__name__)

# Fallback rates to USD
FALLBACK_RATES_TO_USD: Dict[str, Decimal] = {
    "SAR": Decimal("0.2666"),
    "EGP": Decimal("0.0204"),
    "AED": Decimal("0.2723"),
    "KWD": Decimal("3.252"),
    "USD": Decimal("1"),
}

CENT = Decimal("0.01")
RATE_PRECISION = Decimal("0.000001")


class ExchangeRateProvider:
    """Cached ``get_rate(from, to)`` over the exchange_rates table.

    Built once at startup and shared by every ledger write. Lookup order
    for a pair: direct row, inverse row, cross rate through USD, static
    fallback table.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        ttl_seconds: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.EXCHANGE_RATE_TTL_SECONDS
        self._cache: Dict[Tuple[str, str], Tuple[Decimal, float]] = {}
        self.logger = logger.bind(service="exchange_rates")

    async def get_rate(self, from_currency: str, to_currency: str, db: Optional[AsyncSession] = None) -> Decimal:
        """Rate that converts one unit of ``from_currency`` into ``to_currency``.

        Args:
            from_currency: ISO code of the source currency
            to_currency: ISO code of the target currency
            db: Session to read through; the provider opens its own when omitted

        Returns:
            Conversion rate, never failing for a missing rate
        """
        from_currency = from_currency.upper()
        to_currency = to_currency.upper()
        if from_currency == to_currency:
            return Decimal("1")

        key = (from_currency, to_currency)
        cached = self._cache.get(key)
        if cached is not None and time.monotonic() < cached[1]:
            return cached[0]

        rate: Optional[Decimal] = None
        try:
            rate = await self._lookup(from_currency, to_currency, db)
        except SQLAlchemyError as e:
            self.logger.warning(
                "exchange_rate_lookup_failed",
                from_currency=from_currency,
                to_currency=to_currency,
                error=str(e),
            )

        if rate is None:
            rate = self.fallback_rate(from_currency, to_currency)
            # Fallback rates are never cached
            return rate

        self._cache[key] = (rate, time.monotonic() + self.ttl_seconds)
        return rate

    async def convert(
        self,
        amount: Decimal,
        from_currency: str,
        to_currency: Optional[str] = None,
        db: Optional[AsyncSession] = None,
    ) -> Decimal:
        """Convert an amount, rounded half-up to cents."""
        to_currency = to_currency or settings.NORMALIZED_CURRENCY
        rate = await self.get_rate(from_currency, to_currency, db=db)
        return (amount * rate).quantize(CENT, rounding=ROUND_HALF_UP)

    def invalidate(self) -> None:
        self._cache.clear()

    @staticmethod
    def fallback_rate(from_currency: str, to_currency: str) -> Decimal:
        """Static cross rate via USD; unknown currencies convert 1:1."""
        from_usd = FALLBACK_RATES_TO_USD.get(from_currency)
        to_usd = FALLBACK_RATES_TO_USD.get(to_currency)
        if from_usd is None or to_usd is None:
            logger.warning("exchange_rate_unknown_currency", from_currency=from_currency, to_currency=to_currency)
            return Decimal("1")
        return (from_usd / to_usd).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)

    async def _lookup(self, from_currency: str, to_currency: str, db: Optional[AsyncSession]) -> Optional[Decimal]:
        if db is not None:
            return await self._lookup_in(db, from_currency, to_currency)
        if self.session_factory is None:
            return None
        async with self.session_factory() as session:
            return await self._lookup_in(session, from_currency, to_currency)

    async def _lookup_in(self, db: AsyncSession, from_currency: str, to_currency: str) -> Optional[Decimal]:
        rate = await self._pair(db, from_currency, to_currency)
        if rate is not None:
            return rate

        if "USD" in (from_currency, to_currency):
            return None

        to_usd = await self._pair(db, from_currency, "USD")
        from_usd = await self._pair(db, "USD", to_currency)
        if to_usd is None or from_usd is None:
            return None
        return (to_usd * from_usd).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    async def _pair(db: AsyncSession, from_currency: str, to_currency: str) -> Optional[Decimal]:
        """Direct row, else the inverse of the reverse row."""
        result = await db.execute(
            select(ExchangeRate.from_currency, ExchangeRate.rate).where(
                (
                    (ExchangeRate.from_currency == from_currency)
                    & (ExchangeRate.to_currency == to_currency)
                )
                | (
                    (ExchangeRate.from_currency == to_currency)
                    & (ExchangeRate.to_currency == from_currency)
                )
            )
        )
        rows = {row.from_currency: Decimal(row.rate) for row in result}
        if from_currency in rows and rows[from_currency] > 0:
            return rows[from_currency]
        inverse = rows.get(to_currency)
        if inverse is not None and inverse > 0:
            return (Decimal("1") / inverse).quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)
        return None
