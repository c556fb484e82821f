from __future__ import annotations

from math import atan2, cos, radians, sin, sqrt
from typing import Iterable, Optional

from .models import Airport

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in kilometres."""
    d_lat = radians(lat2 - lat1)
    d_lon = radians(lon2 - lon1)
    a = (
        sin(d_lat / 2) ** 2
        + cos(radians(lat1)) * cos(radians(lat2)) * sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(a), sqrt(1 - a))


def nearest_airport(
    lat: float, lng: float, airports: Iterable[Airport]
) -> Optional[Airport]:
    """Return the airport closest to ``(lat, lng)`` or ``None`` if empty."""
    return min(
        airports,
        key=lambda ap: haversine_km(lat, lng, ap.latitude, ap.longitude),
        default=None,
    )


__all__ = ["haversine_km", "nearest_airport", "EARTH_RADIUS_KM"]
