"""Data models used throughout the project."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def route_key(origin: str, destination: str) -> str:
    """Return the canonical ``ORIGIN-DESTINATION`` key for a route."""
    return f"{origin}-{destination}"


def check_iata(code: str, field_name: str = "iata_code") -> str:
    if not isinstance(code, str) or len(code) != 3 or not code.isalpha():
        raise ValueError(f"{field_name} must be a 3-letter IATA code, got {code!r}")
    if not code.isupper():
        raise ValueError(f"{field_name} must be upper-case, got {code!r}")
    return code


class CabinClass(str, Enum):
    ECONOMY = "economy"
    PREMIUM_ECONOMY = "premium_economy"
    BUSINESS = "business"
    FIRST = "first"


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class Recommendation(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class PriceBadge(str, Enum):
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class AlertKind(str, Enum):
    PRICE_THRESHOLD = "price_threshold"
    PRICE_DROP = "price_drop"
    GOOD_DEAL = "good_deal"


@dataclass(frozen=True, slots=True)
class Offer:
    """A priced itinerary quote as returned by the search provider."""

    offer_id: str
    origin: str
    destination: str
    departure_date: date
    return_date: Optional[date]
    total_amount: Decimal
    currency: str
    cabin_class: str
    stops: int
    carrier: str
    created_at: datetime
    expires_at: datetime
    conditions: Dict[str, Any] = field(default_factory=dict, compare=False)
    duration_minutes: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.offer_id:
            raise ValueError("offer_id must be non-empty")
        check_iata(self.origin, "origin")
        check_iata(self.destination, "destination")
        if self.total_amount < 0:
            raise ValueError("total_amount must not be negative")
        if self.expires_at <= self.created_at:
            raise ValueError(
                f"offer {self.offer_id} expires at {self.expires_at} "
                f"which is not after its creation time {self.created_at}"
            )

    @property
    def route_key(self) -> str:
        return route_key(self.origin, self.destination)

    def is_valid_at(self, now: datetime) -> bool:
        return now < self.expires_at


@dataclass(frozen=True, slots=True)
class PriceHistoryEntry:
    route_key: str
    origin: str
    destination: str
    departure_date: date
    price: Decimal
    currency: str
    source: str
    observed_at: datetime

    def __post_init__(self) -> None:
        expected = route_key(self.origin, self.destination)
        if self.route_key != expected:
            raise ValueError(
                f"route_key {self.route_key!r} does not match {expected!r}"
            )

    @classmethod
    def from_offer(
        cls, offer: Offer, observed_at: datetime, source: str = "duffel"
    ) -> "PriceHistoryEntry":
        return cls(
            route_key=offer.route_key,
            origin=offer.origin,
            destination=offer.destination,
            departure_date=offer.departure_date,
            price=offer.total_amount,
            currency=offer.currency,
            source=source,
            observed_at=observed_at,
        )


@dataclass(frozen=True, slots=True)
class PriceStatistics:
    route_key: str
    current_price: float
    average_30d: float
    average_90d: float
    min_30d: float
    max_30d: float
    percentile: float
    trend: Trend
    recommendation: Recommendation
    sample_size: int


@dataclass(frozen=True, slots=True)
class TrendPoint:
    day: date
    average: float
    min: float
    max: float
    count: int


@dataclass(slots=True)
class Alert:
    """A user's price subscription for one route."""

    id: str
    user_id: str
    origin: str
    destination: str
    kind: AlertKind
    departure_date: Optional[date] = None
    max_price: Optional[Decimal] = None
    price_drop_percent: Optional[float] = None
    is_active: bool = True
    last_checked_at: Optional[datetime] = None
    last_notified_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    route_key: str = field(init=False)

    def __post_init__(self) -> None:
        check_iata(self.origin, "origin")
        check_iata(self.destination, "destination")
        self.kind = AlertKind(self.kind)
        if self.kind is AlertKind.PRICE_THRESHOLD:
            if self.max_price is None or self.max_price < 0:
                raise ValueError("price_threshold alerts need a non-negative max_price")
        elif self.kind is AlertKind.PRICE_DROP:
            pct = self.price_drop_percent
            if pct is None or not 0 < pct <= 100:
                raise ValueError("price_drop alerts need price_drop_percent in (0, 100]")
        self.route_key = route_key(self.origin, self.destination)


@dataclass(frozen=True, slots=True)
class Airport:
    iata_code: str
    name: str
    city: str
    country_code: str
    latitude: float
    longitude: float
    is_active: bool = True

    def __post_init__(self) -> None:
        check_iata(self.iata_code)


@dataclass(frozen=True, slots=True)
class Destination:
    id: str
    name: str
    primary_airport_iata: str
    estimated_price_eur: Optional[int] = None
    is_published: bool = True
    is_featured: bool = False


@dataclass(slots=True)
class DestinationOffers:
    destination: Destination
    offers: List[Offer]
    badge: PriceBadge
    percentile: float
    best_price: Optional[Decimal] = None
    currency: str = "EUR"


@dataclass(frozen=True, slots=True)
class WheelSpinRecord:
    id: str
    user_id: Optional[str]
    origin_airport: str
    destination_ids: List[str]
    offers_shown_count: int
    created_at: datetime


@dataclass(slots=True)
class WheelSpinResult:
    spin_id: str
    origin_airport: Airport
    destinations: List[DestinationOffers]
    spun_at: datetime


__all__ = [
    "Clock",
    "utcnow",
    "route_key",
    "check_iata",
    "CabinClass",
    "Trend",
    "Recommendation",
    "PriceBadge",
    "AlertKind",
    "Offer",
    "PriceHistoryEntry",
    "PriceStatistics",
    "TrendPoint",
    "Alert",
    "Airport",
    "Destination",
    "DestinationOffers",
    "WheelSpinRecord",
    "WheelSpinResult",
]
