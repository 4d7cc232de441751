"""Short-horizon price forecasting over a listing's price history.

The engine is a handful of pure functions over PricePoint sequences so it
can be exercised without a database; PricePredictor loads history and
feeds them.

Pipeline for one listing:
1. Volatility: population stddev / mean over up to 90 recent points
2. Trend: mean of the latest 14 points vs the 16 before them
3. Seasonality: day-of-week buckets, only with 30+ points
4. Forecast: least-squares line over the series, damped for volatile trends
5. Confidence and a buy_now / wait / neutral recommendation
"""

import statistics
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from pricehunter.models.base import as_utc, utcnow
from pricehunter.models.listing import RetailerListing
from pricehunter.models.price_history import PriceHistory
from pricehunter.models.retailer import Retailer

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# History windows
# ---------------------------------------------------------------------------
PREDICTION_HISTORY_LIMIT = 90
BEST_TIME_HISTORY_LIMIT = 60
MIN_POINTS_FOR_PREDICTION = 7
MIN_POINTS_FOR_BEST_TIME = 14
MIN_POINTS_FOR_TREND = 3
MIN_POINTS_FOR_SEASONALITY = 30
RECENT_WINDOW = 14
PRIOR_WINDOW = 16

# ---------------------------------------------------------------------------
# Classification thresholds
# ---------------------------------------------------------------------------
VOLATILE_THRESHOLD = 0.15
DAMPING_VOLATILITY_THRESHOLD = 0.10
TREND_CHANGE_PCT = Decimal("5")
SEASONALITY_DEVIATION = 0.05
DIRECTION_CHANGE_PCT = 2.0
STRONG_CHANGE_PCT = 3.0
REASONING_CHANGE_PCT = 5.0

# ---------------------------------------------------------------------------
# Confidence model
# ---------------------------------------------------------------------------
BASE_CONFIDENCE = 0.5
LONG_HISTORY_BONUS = 0.15  # 30+ points
MEDIUM_HISTORY_BONUS = 0.10  # 14+ points
FIT_WEIGHT = 0.2
LOW_VOLATILITY_BONUS = 0.15
MIN_CONFIDENCE = 0.2
MAX_CONFIDENCE = 0.95
INSUFFICIENT_CONFIDENCE = 0.3

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")

INSUFFICIENT_HISTORY_REASONING = "Insufficient price history for accurate prediction"


@dataclass
class PricePoint:
    recorded_at: datetime
    price: Decimal


@dataclass
class PricePrediction:
    """Forecast for one listing.

    Attributes:
        current_price: Listing's current native price
        predicted_price: Forecast at ``predicted_date``
        confidence: 0.2 to 0.95 (0.3 when history is insufficient)
        direction: "up", "down" or "stable"
        change_percentage: Forecast change vs current, one decimal
        recommendation: "buy_now", "wait" or "neutral"
        reasoning: Human-readable explanation
        predicted_date: Date the forecast refers to
        historical_trend: "rising", "falling", "stable" or "volatile"
    """

    current_price: Decimal
    predicted_price: Decimal
    confidence: float
    direction: str
    change_percentage: float
    recommendation: str
    reasoning: str
    predicted_date: datetime
    historical_trend: str


@dataclass
class BestTimeToBuy:
    recommendation: str
    best_day: Optional[str] = None
    expected_savings: Optional[Decimal] = None


# ---------------------------------------------------------------------------
# Pure engine
# ---------------------------------------------------------------------------

def _oldest_first(history: Sequence[PricePoint], limit: int = PREDICTION_HISTORY_LIMIT) -> List[PricePoint]:
    """Sort by time and keep the most recent ``limit`` points."""
    ordered = sorted(history, key=lambda p: as_utc(p.recorded_at))
    return ordered[-limit:]


def calculate_volatility(history: Sequence[PricePoint]) -> float:
    """Population standard deviation divided by the mean (0 for < 2 points)."""
    if len(history) < 2:
        return 0.0
    prices = [float(p.price) for p in history]
    mean = statistics.fmean(prices)
    if mean <= 0:
        return 0.0
    return statistics.pstdev(prices) / mean


def analyze_trend(history: Sequence[PricePoint]) -> str:
    """Classify as "volatile", "rising", "falling" or "stable".

    Volatility above 0.15 overrides everything else. Otherwise the mean of
    the latest 14 points is compared with the mean of up to 16 points
    before them; more than 5% either way is a trend. Means are compared
    in Decimal so exactly 5% stays "stable".
    """
    points = _oldest_first(history)
    if len(points) < MIN_POINTS_FOR_TREND:
        return "stable"

    recent = points[-RECENT_WINDOW:]
    prior = points[-(RECENT_WINDOW + PRIOR_WINDOW):-RECENT_WINDOW]
    if not prior:
        return "stable"

    if calculate_volatility(points) > VOLATILE_THRESHOLD:
        return "volatile"

    recent_avg = sum((p.price for p in recent), Decimal("0")) / len(recent)
    prior_avg = sum((p.price for p in prior), Decimal("0")) / len(prior)
    if prior_avg <= 0:
        return "stable"

    change_pct = (recent_avg - prior_avg) / prior_avg * 100
    if change_pct > TREND_CHANGE_PCT:
        return "rising"
    if change_pct < -TREND_CHANGE_PCT:
        return "falling"
    return "stable"


def detect_seasonality(history: Sequence[PricePoint]) -> Optional[str]:
    """Cheapest weekday hint when some weekday's mean deviates more than 5%.

    Returns:
        "Best prices typically on <Day>" or None
    """
    if len(history) < MIN_POINTS_FOR_SEASONALITY:
        return None

    buckets: Dict[int, List[float]] = {}
    for point in history:
        buckets.setdefault(as_utc(point.recorded_at).weekday(), []).append(float(point.price))

    day_averages = {day: statistics.fmean(prices) for day, prices in buckets.items()}
    overall = statistics.fmean(day_averages.values())
    if overall <= 0:
        return None

    max_deviation = max(abs(avg - overall) / overall for avg in day_averages.values())
    if max_deviation <= SEASONALITY_DEVIATION:
        return None

    cheapest_day = min(day_averages, key=lambda d: (day_averages[d], d))
    return f"Best prices typically on {DAY_NAMES[cheapest_day]}"


def linear_regression(prices: Sequence[float]) -> Tuple[float, float, float]:
    """Ordinary least squares of price on index 0..n-1.

    Returns:
        (slope, intercept, r2) with r2 clamped to [0, 1]
    """
    n = len(prices)
    if n == 0:
        return 0.0, 0.0, 0.0
    sum_x = sum_y = sum_xy = sum_x2 = 0.0
    for x, y in enumerate(prices):
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_x2 += x * x

    denominator = n * sum_x2 - sum_x * sum_x
    slope = (n * sum_xy - sum_x * sum_y) / denominator if denominator else 0.0
    intercept = (sum_y - slope * sum_x) / n

    y_mean = sum_y / n
    ss_total = sum((y - y_mean) ** 2 for y in prices)
    ss_residual = sum((y - (slope * x + intercept)) ** 2 for x, y in enumerate(prices))
    r2 = 1 - ss_residual / ss_total if ss_total > 0 else 0.0
    return slope, intercept, max(0.0, min(1.0, r2))


def apply_volatility_adjustment(prediction: float, volatility: float, trend: str) -> float:
    """Pull a forecast back toward the current level when prices swing."""
    if volatility > DAMPING_VOLATILITY_THRESHOLD:
        adjustment = volatility * 0.5
        if trend == "rising":
            return prediction * (1 - adjustment * 0.3)
        if trend == "falling":
            return prediction * (1 + adjustment * 0.3)
    return prediction


def calculate_confidence(point_count: int, volatility: float, r2: float) -> float:
    confidence = BASE_CONFIDENCE
    if point_count >= 30:
        confidence += LONG_HISTORY_BONUS
    elif point_count >= 14:
        confidence += MEDIUM_HISTORY_BONUS
    confidence += r2 * FIT_WEIGHT
    confidence += max(0.0, LOW_VOLATILITY_BONUS - volatility)
    return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, confidence))


def get_recommendation(direction: str, change_pct: float, confidence: float, trend: str) -> str:
    if confidence < 0.4:
        return "neutral"
    if direction == "up" and change_pct > STRONG_CHANGE_PCT and confidence > 0.6:
        return "buy_now"
    if direction == "down" and change_pct < -STRONG_CHANGE_PCT and confidence > 0.6:
        return "wait"
    if trend == "falling" and confidence > 0.5:
        return "wait"
    if trend == "rising" and confidence > 0.5:
        return "buy_now"
    return "neutral"


def generate_reasoning(trend: str, change_pct: float, confidence: float, seasonality: Optional[str]) -> str:
    trend_text = {
        "rising": "Prices have been trending upward recently",
        "falling": "Prices have been declining",
        "volatile": "Prices have been fluctuating significantly",
    }.get(trend, "Prices have been relatively stable")
    parts = [trend_text]

    if abs(change_pct) > REASONING_CHANGE_PCT:
        word = "increase" if change_pct > 0 else "decrease"
        parts.append(f"We predict a {abs(change_pct):.1f}% {word}")

    if confidence > 0.7:
        parts.append("with high confidence")
    elif confidence > 0.5:
        parts.append("with moderate confidence")
    else:
        parts.append("but prediction confidence is low")

    reasoning = " ".join(parts)
    if seasonality:
        reasoning += f". {seasonality}"
    return reasoning


def predict_from_history(
    current_price: Decimal,
    history: Sequence[PricePoint],
    days_ahead: int = 7,
    now: Optional[datetime] = None,
) -> PricePrediction:
    """Forecast ``days_ahead`` days out from up to 90 history points.

    Args:
        current_price: Listing's current native price
        history: Price points in any order
        days_ahead: Forecast horizon in days
        now: Reference time for ``predicted_date``

    Returns:
        PricePrediction; fewer than 7 points yields the fixed
        low-confidence neutral result
    """
    now = now or utcnow()
    predicted_date = now + timedelta(days=days_ahead)
    points = _oldest_first(history)

    if len(points) < MIN_POINTS_FOR_PREDICTION:
        return PricePrediction(
            current_price=current_price,
            predicted_price=current_price,
            confidence=INSUFFICIENT_CONFIDENCE,
            direction="stable",
            change_percentage=0.0,
            recommendation="neutral",
            reasoning=INSUFFICIENT_HISTORY_REASONING,
            predicted_date=predicted_date,
            historical_trend="stable",
        )

    trend = analyze_trend(points)
    volatility = calculate_volatility(points)
    seasonality = detect_seasonality(points)

    slope, intercept, r2 = linear_regression([float(p.price) for p in points])
    raw_prediction = max(0.0, slope * (len(points) + days_ahead) + intercept)
    adjusted = apply_volatility_adjustment(raw_prediction, volatility, trend)

    confidence = calculate_confidence(len(points), volatility, r2)

    current = float(current_price)
    change_pct = (adjusted - current) / current * 100 if current > 0 else 0.0
    if change_pct > DIRECTION_CHANGE_PCT:
        direction = "up"
    elif change_pct < -DIRECTION_CHANGE_PCT:
        direction = "down"
    else:
        direction = "stable"

    return PricePrediction(
        current_price=current_price,
        predicted_price=Decimal(str(adjusted)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
        confidence=confidence,
        direction=direction,
        change_percentage=round(change_pct, 1),
        recommendation=get_recommendation(direction, change_pct, confidence, trend),
        reasoning=generate_reasoning(trend, change_pct, confidence, seasonality),
        predicted_date=predicted_date,
        historical_trend=trend,
    )


# ---------------------------------------------------------------------------
# Database-facing service
# ---------------------------------------------------------------------------

class PricePredictor:
    """Loads listing history and runs the forecast engine."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(service="price_prediction")

    async def _history(self, listing_id: UUID, limit: int) -> List[PricePoint]:
        result = await self.db.execute(
            select(PriceHistory.recorded_at, PriceHistory.price)
            .where(PriceHistory.listing_id == listing_id)
            .order_by(PriceHistory.recorded_at.desc())
            .limit(limit)
        )
        return [PricePoint(recorded_at=as_utc(row.recorded_at), price=Decimal(row.price)) for row in result]

    async def predict_price(self, listing_id: UUID, days_ahead: int = 7) -> Optional[PricePrediction]:
        """Forecast a listing's price; None if the listing does not exist."""
        listing = await self.db.get(RetailerListing, listing_id)
        if listing is None:
            return None

        history = await self._history(listing_id, PREDICTION_HISTORY_LIMIT)
        prediction = predict_from_history(Decimal(listing.price), history, days_ahead)
        self.logger.debug(
            "price_predicted",
            listing_id=str(listing_id),
            points=len(history),
            trend=prediction.historical_trend,
            recommendation=prediction.recommendation,
        )
        return prediction

    async def predictions_for_product(self, product_id: UUID, days_ahead: int = 7) -> Dict[str, PricePrediction]:
        """Forecasts for every listing of a product at an active retailer, keyed by retailer slug."""
        result = await self.db.execute(
            select(RetailerListing)
            .join(Retailer, RetailerListing.retailer_id == Retailer.id)
            .where(RetailerListing.product_id == product_id, Retailer.is_active.is_(True))
            .options(selectinload(RetailerListing.retailer))
        )
        predictions: Dict[str, PricePrediction] = {}
        for listing in result.scalars().all():
            history = await self._history(listing.id, PREDICTION_HISTORY_LIMIT)
            predictions[listing.retailer.slug] = predict_from_history(Decimal(listing.price), history, days_ahead)
        return predictions

    async def best_time_to_buy(self, listing_id: UUID) -> BestTimeToBuy:
        """Advice combining the 7-day forecast with weekday seasonality.

        Needs at least 14 of the latest 60 points; otherwise suggests
        setting a price alert.
        """
        listing = await self.db.get(RetailerListing, listing_id)
        history = await self._history(listing_id, BEST_TIME_HISTORY_LIMIT) if listing is not None else []
        if listing is None or len(history) < MIN_POINTS_FOR_BEST_TIME:
            return BestTimeToBuy(
                recommendation=(
                    "Not enough data to determine the best time to buy. "
                    "Consider setting a price alert."
                )
            )

        seasonality = detect_seasonality(history)
        prediction = await self.predict_price(listing_id, 7)

        if prediction is not None and prediction.recommendation == "wait":
            return BestTimeToBuy(
                recommendation=f"Wait for better prices. {prediction.reasoning}",
                expected_savings=abs(prediction.current_price - prediction.predicted_price),
            )

        if seasonality:
            return BestTimeToBuy(recommendation=seasonality, best_day=seasonality.split()[-1])

        if prediction is not None and prediction.recommendation == "buy_now":
            return BestTimeToBuy(recommendation="Now is a good time to buy. Prices may increase soon.")

        return BestTimeToBuy(
            recommendation="Prices are stable. Set a price alert for when prices drop below your target."
        )
