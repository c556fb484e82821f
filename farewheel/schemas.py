"""Request models and response shapes for the HTTP API."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .models import (
    Airport,
    Alert,
    AlertKind,
    DestinationOffers,
    Offer,
    PriceStatistics,
    TrendPoint,
    WheelSpinResult,
)

IATA_PATTERN = r"^[A-Za-z]{3}$"
ROUTE_KEY_PATTERN = r"^[A-Z]{3}-[A-Z]{3}$"


class Preferences(BaseModel):
    budget: Optional[Literal["low", "medium", "high"]] = None


class SpinIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)
    home_airport_iata: Optional[str] = Field(
        None, alias="homeAirportIata", pattern=IATA_PATTERN
    )
    preferences: Optional[Preferences] = None

    @field_validator("home_airport_iata")
    @classmethod
    def _upper(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    @model_validator(mode="after")
    def _coords_together(self) -> "SpinIn":
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be given together")
        return self


class AlertCreateIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    origin: str = Field(pattern=IATA_PATTERN)
    destination: str = Field(pattern=IATA_PATTERN)
    alert_type: AlertKind = Field(alias="alertType")
    max_price: Optional[Decimal] = Field(None, alias="maxPrice", ge=0)
    price_drop_percent: Optional[int] = Field(
        None, alias="priceDropPercent", ge=1, le=100
    )
    departure_date: Optional[date] = Field(None, alias="departureDate")

    @field_validator("origin", "destination")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def _kind_parameters(self) -> "AlertCreateIn":
        if self.alert_type is AlertKind.PRICE_THRESHOLD and self.max_price is None:
            raise ValueError("maxPrice is required for price_threshold alerts")
        if self.alert_type is AlertKind.PRICE_DROP and self.price_drop_percent is None:
            raise ValueError("priceDropPercent is required for price_drop alerts")
        return self


class AlertPatchIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(alias="isActive")


# ────────────────────────────────────────────────────────────────
# Response shapes
# ────────────────────────────────────────────────────────────────


def _iso(value: Any) -> Optional[str]:
    return value.isoformat() if value is not None else None


def offer_out(offer: Offer) -> Dict[str, Any]:
    return {
        "id": offer.offer_id,
        "origin": offer.origin,
        "destination": offer.destination,
        "departure_date": offer.departure_date.isoformat(),
        "return_date": _iso(offer.return_date),
        "total_amount": str(offer.total_amount),
        "total_currency": offer.currency,
        "cabin_class": offer.cabin_class,
        "stops": offer.stops,
        "carrier_name": offer.carrier,
        "duration_minutes": offer.duration_minutes,
        "conditions": offer.conditions,
        "expires_at": offer.expires_at.isoformat(),
    }


def alert_out(alert: Alert) -> Dict[str, Any]:
    return {
        "id": alert.id,
        "user_id": alert.user_id,
        "origin": alert.origin,
        "destination": alert.destination,
        "route_key": alert.route_key,
        "departure_date": _iso(alert.departure_date),
        "alert_type": alert.kind.value,
        "max_price": str(alert.max_price) if alert.max_price is not None else None,
        "price_drop_percent": alert.price_drop_percent,
        "is_active": alert.is_active,
        "last_checked_at": _iso(alert.last_checked_at),
        "last_notified_at": _iso(alert.last_notified_at),
        "created_at": _iso(alert.created_at),
    }


def stats_out(stats: PriceStatistics) -> Dict[str, Any]:
    return {
        "route_key": stats.route_key,
        "current_price": stats.current_price,
        "average_30d": stats.average_30d,
        "average_90d": stats.average_90d,
        "min_30d": stats.min_30d,
        "max_30d": stats.max_30d,
        "percentile": stats.percentile,
        "trend": stats.trend.value,
        "recommendation": stats.recommendation.value,
        "sample_size": stats.sample_size,
    }


def trend_out(points: List[TrendPoint]) -> List[Dict[str, Any]]:
    return [
        {
            "date": p.day.isoformat(),
            "average": p.average,
            "min": p.min,
            "max": p.max,
            "count": p.count,
        }
        for p in points
    ]


def airport_out(airport: Airport) -> Dict[str, Any]:
    return {
        "iata_code": airport.iata_code,
        "name": airport.name,
        "city": airport.city,
        "country_code": airport.country_code,
        "latitude": airport.latitude,
        "longitude": airport.longitude,
    }


def destination_out(item: DestinationOffers) -> Dict[str, Any]:
    dest = item.destination
    return {
        "destination": {
            "id": dest.id,
            "name": dest.name,
            "primary_airport_iata": dest.primary_airport_iata,
            "estimated_price_eur": dest.estimated_price_eur,
        },
        "offers": [offer_out(o) for o in item.offers],
        "priceBadge": item.badge.value,
        "percentile": item.percentile,
        "bestPrice": str(item.best_price) if item.best_price is not None else None,
        "currency": item.currency,
    }


def spin_out(result: WheelSpinResult) -> Dict[str, Any]:
    return {
        "spinId": result.spin_id,
        "originAirport": airport_out(result.origin_airport),
        "destinations": [destination_out(d) for d in result.destinations],
        "spinTimestamp": result.spun_at.isoformat(),
    }


__all__ = [
    "SpinIn",
    "AlertCreateIn",
    "AlertPatchIn",
    "Preferences",
    "ROUTE_KEY_PATTERN",
    "offer_out",
    "alert_out",
    "stats_out",
    "trend_out",
    "spin_out",
]
