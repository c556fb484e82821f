"""wheel – pick destinations for a spin and attach priced, ranked offers.

1. resolve the origin airport (home airport → nearest to coordinates → fallback)
2. draw up to three featured destinations, optionally within a budget band
3. price each candidate on a fixed near-term trip and badge it
4. keep candidates with offers and record the spin for analytics
"""

from __future__ import annotations

import logging
import random
import sqlite3
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from . import db
from .catalog import Catalog
from .errors import PersistenceError, WheelSpinError
from .geo import nearest_airport
from .models import (
    Airport,
    CabinClass,
    Clock,
    Destination,
    DestinationOffers,
    WheelSpinRecord,
    WheelSpinResult,
    route_key,
    utcnow,
)
from .offer_cache import OfferCache
from .price_history import PriceHistory
from .price_stats import NEUTRAL_BADGE, NEUTRAL_PERCENTILE, badge_for

logger = logging.getLogger(__name__)

BUDGET_RANGES: Dict[str, Tuple[int, int]] = {
    "low": (0, 300),
    "medium": (200, 600),
    "high": (500, 2000),
}
CANDIDATE_COUNT = 3
TOP_OFFERS = 3
DEPARTURE_OFFSET = timedelta(weeks=2)
TRIP_LENGTH = timedelta(days=3)


@dataclass(slots=True)
class SpinRequest:
    user_id: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    home_airport_iata: Optional[str] = None
    budget: Optional[str] = None

    def __post_init__(self) -> None:
        if self.budget is not None and self.budget not in BUDGET_RANGES:
            raise ValueError(
                f"budget must be one of {sorted(BUDGET_RANGES)}, got {self.budget!r}"
            )
        if (self.lat is None) != (self.lng is None):
            raise ValueError("lat and lng must be given together")
        if self.lat is not None and not -90 <= self.lat <= 90:
            raise ValueError("lat must be between -90 and 90")
        if self.lng is not None and not -180 <= self.lng <= 180:
            raise ValueError("lng must be between -180 and 180")


def _neutral(destination: Destination) -> DestinationOffers:
    return DestinationOffers(
        destination=destination,
        offers=[],
        badge=NEUTRAL_BADGE,
        percentile=NEUTRAL_PERCENTILE,
    )


class WheelSelector:
    def __init__(
        self,
        catalog: Catalog,
        offers: OfferCache,
        history: PriceHistory,
        *,
        clock: Clock = utcnow,
        rng: Optional[random.Random] = None,
        fallback_airport: str = "BRU",
    ) -> None:
        self.catalog = catalog
        self.offers = offers
        self.history = history
        self._clock = clock
        self._rng = rng or random.Random()
        self.fallback_airport = fallback_airport

    def resolve_origin(self, request: SpinRequest) -> Airport:
        if request.home_airport_iata:
            airport = self.catalog.get_airport(request.home_airport_iata)
            if airport:
                return airport
            logger.info(
                "Home airport %s unknown or inactive", request.home_airport_iata
            )

        if request.lat is not None and request.lng is not None:
            airport = nearest_airport(
                request.lat, request.lng, self.catalog.active_airports()
            )
            if airport:
                return airport

        airport = self.catalog.get_airport(self.fallback_airport, active_only=False)
        if airport is None:
            raise WheelSpinError("Could not determine origin airport")
        return airport

    def select_candidates(self, budget: Optional[str] = None) -> List[Destination]:
        pool = self.catalog.wheel_destinations(
            BUDGET_RANGES[budget] if budget else None
        )
        return self._rng.sample(pool, min(CANDIDATE_COUNT, len(pool)))

    def price_candidate(
        self, origin: Airport, destination: Destination
    ) -> DestinationOffers:
        """Search offers for *destination* and badge the cheapest one."""
        airport = self.catalog.get_airport(
            destination.primary_airport_iata, active_only=False
        )
        if airport is None:
            logger.warning(
                "No airport found for destination %s (%s)",
                destination.id,
                destination.primary_airport_iata,
            )
            return _neutral(destination)

        started = self._clock()
        departure = started.date() + DEPARTURE_OFFSET
        offers = self.offers.fetch(
            origin.iata_code,
            airport.iata_code,
            departure,
            departure + TRIP_LENGTH,
            CabinClass.ECONOMY,
        )
        if not offers:
            return _neutral(destination)

        best = offers[0]
        try:
            stats = self.history.statistics(
                route_key(origin.iata_code, airport.iata_code),
                float(best.total_amount),
                before=started,
            )
        except PersistenceError as exc:
            logger.error(
                "Error reading price statistics for destination %s: %s",
                destination.id,
                exc,
            )
            stats = None
        return DestinationOffers(
            destination=destination,
            offers=offers[:TOP_OFFERS],
            badge=badge_for(stats.recommendation) if stats else NEUTRAL_BADGE,
            percentile=stats.percentile if stats else NEUTRAL_PERCENTILE,
            best_price=best.total_amount,
            currency=best.currency,
        )

    def _price_isolated(
        self, origin: Airport, destination: Destination
    ) -> DestinationOffers:
        try:
            return self.price_candidate(origin, destination)
        except Exception:
            logger.exception("Error getting offers for destination %s", destination.id)
            return _neutral(destination)

    def spin(self, request: SpinRequest) -> WheelSpinResult:
        logger.info("Executing wheel spin for user %s", request.user_id or "anonymous")
        origin = self.resolve_origin(request)
        logger.info("Origin airport: %s (%s)", origin.iata_code, origin.city)

        candidates = self.select_candidates(request.budget)
        if not candidates:
            raise WheelSpinError("No destinations available")
        logger.info("Selected %d candidate destinations", len(candidates))

        with ThreadPoolExecutor(max_workers=len(candidates)) as pool:
            priced = list(
                pool.map(lambda d: self._price_isolated(origin, d), candidates)
            )
        valid = [p for p in priced if p.offers]

        now = self._clock()
        record = WheelSpinRecord(
            id=str(uuid.uuid4()),
            user_id=request.user_id,
            origin_airport=origin.iata_code,
            destination_ids=[p.destination.id for p in valid],
            offers_shown_count=sum(len(p.offers) for p in valid),
            created_at=now,
        )
        try:
            db.insert_wheel_spin(record, self.catalog.db_path)
        except sqlite3.Error as exc:
            logger.error("Error recording wheel spin %s: %s", record.id, exc)

        if not valid:
            raise WheelSpinError("No priced destinations for this spin")

        return WheelSpinResult(
            spin_id=record.id,
            origin_airport=origin,
            destinations=valid,
            spun_at=now,
        )


__all__ = ["WheelSelector", "SpinRequest", "BUDGET_RANGES"]
