"""Percentile, trend and recommendation maths over a route's price history.

The functions here are pure: they take already-loaded history entries and
return values, so both the alert engine and the wheel share one threshold
table.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from statistics import fmean
from typing import Optional, Sequence

from .models import PriceBadge, PriceHistoryEntry, PriceStatistics, Recommendation, Trend

SHORT_WINDOW = timedelta(days=30)
LONG_WINDOW = timedelta(days=90)

TREND_POINTS = 7
TREND_TOLERANCE = 0.05

# (upper percentile bound, recommendation), checked in order
RECOMMENDATION_TABLE = (
    (15.0, Recommendation.EXCELLENT),
    (35.0, Recommendation.GOOD),
    (65.0, Recommendation.FAIR),
)

NEUTRAL_BADGE = PriceBadge.FAIR
NEUTRAL_PERCENTILE = 50.0


def percentile_of(price: float, sample: Sequence[float]) -> float:
    """Share of *sample* at or below *price*, in percent."""
    if not sample:
        raise ValueError("percentile of an empty sample")
    position = sum(1 for p in sample if p <= price)
    return position / len(sample) * 100.0


def classify_trend(prices: Sequence[float]) -> Trend:
    """Compare the mean of the earliest and latest points of *prices*.

    *prices* must be ordered by observation time. With fewer than
    ``2 * TREND_POINTS`` values the two windows overlap.
    """
    if not prices:
        return Trend.STABLE
    older = fmean(prices[:TREND_POINTS])
    recent = fmean(prices[-TREND_POINTS:])
    if recent > older * (1 + TREND_TOLERANCE):
        return Trend.INCREASING
    if recent < older * (1 - TREND_TOLERANCE):
        return Trend.DECREASING
    return Trend.STABLE


def recommend(percentile: float, trend: Trend) -> Recommendation:
    for bound, rec in RECOMMENDATION_TABLE:
        if percentile > bound:
            continue
        if rec is Recommendation.EXCELLENT and trend is Trend.INCREASING:
            continue
        return rec
    return Recommendation.POOR


def badge_for(recommendation: Recommendation) -> PriceBadge:
    """Collapse the four-way recommendation into the wheel's price badge."""
    if recommendation in (Recommendation.EXCELLENT, Recommendation.GOOD):
        return PriceBadge.GOOD
    if recommendation is Recommendation.FAIR:
        return PriceBadge.FAIR
    return PriceBadge.POOR


def compute_statistics(
    route: str,
    entries: Sequence[PriceHistoryEntry],
    now: datetime,
    current_price: Optional[float] = None,
) -> Optional[PriceStatistics]:
    """Build :class:`PriceStatistics` for *route* from *entries*.

    Returns ``None`` when no entry falls inside the 30-day window.
    """
    ordered = sorted(
        (e for e in entries if e.observed_at >= now - LONG_WINDOW),
        key=lambda e: e.observed_at,
    )
    recent = [e for e in ordered if e.observed_at >= now - SHORT_WINDOW]
    if not recent:
        return None

    prices_30d = [float(e.price) for e in recent]
    prices_90d = [float(e.price) for e in ordered]

    trend = classify_trend(prices_30d)
    price = float(current_price) if current_price is not None else prices_30d[-1]
    pct = percentile_of(price, prices_30d)

    return PriceStatistics(
        route_key=route,
        current_price=price,
        average_30d=fmean(prices_30d),
        average_90d=fmean(prices_90d),
        min_30d=min(prices_30d),
        max_30d=max(prices_30d),
        percentile=pct,
        trend=trend,
        recommendation=recommend(pct, trend),
        sample_size=len(prices_30d),
    )


__all__ = [
    "RECOMMENDATION_TABLE",
    "NEUTRAL_BADGE",
    "NEUTRAL_PERCENTILE",
    "percentile_of",
    "classify_trend",
    "recommend",
    "badge_for",
    "compute_statistics",
]
