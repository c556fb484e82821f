"""Two-tier cache of provider offers.

The memory tier is guarded by one lock per route key; the durable tier is the
``offers`` table. The cache is an accelerator only: when the durable tier is
unavailable, offers already in hand are still served and recorded.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Protocol

from . import db
from .errors import ProviderUnavailable
from .models import CabinClass, Clock, Offer, route_key, utcnow
from .price_history import PriceHistory

logger = logging.getLogger(__name__)

DEFAULT_DEPARTURE_OFFSET = timedelta(days=14)
DEFAULT_TRIP_LENGTH = timedelta(days=2)


class OfferProvider(Protocol):
    def search(
        self,
        origin: str,
        destination: str,
        departure_date: date,
        return_date: Optional[date] = None,
        cabin_class: CabinClass | str = CabinClass.ECONOMY,
    ) -> List[Offer]:
        ...


def _price_order(offers: Iterable[Offer]) -> List[Offer]:
    return sorted(offers, key=lambda o: o.total_amount)


class RouteLocks:
    """Hand out one lock per route key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def __call__(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock


class OfferCache:
    def __init__(
        self,
        db_path: str,
        history: PriceHistory,
        provider: Optional[OfferProvider] = None,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.db_path = db_path
        self.history = history
        self.provider = provider
        self._clock = clock
        self._locks = RouteLocks()
        self._by_route: Dict[str, Dict[str, Offer]] = {}

    # ── memory tier ──────────────────────────────────────────

    def _remember(self, offers: Iterable[Offer]) -> None:
        grouped: Dict[str, List[Offer]] = defaultdict(list)
        for off in offers:
            grouped[off.route_key].append(off)
        for key, group in grouped.items():
            with self._locks(key):
                bucket = self._by_route.setdefault(key, {})
                for off in group:
                    bucket[off.offer_id] = off

    def _valid_in_memory(self, key: str) -> List[Offer]:
        now = self._clock()
        with self._locks(key):
            bucket = self._by_route.get(key)
            if not bucket:
                return []
            expired = [oid for oid, off in bucket.items() if not off.is_valid_at(now)]
            for oid in expired:
                del bucket[oid]
            return list(bucket.values())

    # ── public API ───────────────────────────────────────────

    def put(self, offers: Iterable[Offer]) -> None:
        """Store *offers* keyed by provider id and record their prices."""
        offers = list(offers)
        if not offers:
            return
        self._remember(offers)
        try:
            db.upsert_offers(offers, self.db_path)
        except sqlite3.Error as exc:
            logger.warning(
                "Offer store unavailable, %d offers kept in memory only: %s",
                len(offers),
                exc,
            )
        self.history.record_offers(offers)
        logger.info("Cached %d offers", len(offers))

    def get(self, offer_id: str) -> Optional[Offer]:
        """Return the offer if it has not expired, else ``None``."""
        now = self._clock()
        for key in list(self._by_route):
            with self._locks(key):
                off = self._by_route[key].get(offer_id)
                if off is None:
                    continue
                if off.is_valid_at(now):
                    return off
                del self._by_route[key][offer_id]
                return None

        try:
            off = db.get_offer(offer_id, now, self.db_path)
        except sqlite3.Error as exc:
            logger.error("Error reading offer %s: %s", offer_id, exc)
            return None
        if off is None:
            logger.debug("Offer %s not found or expired", offer_id)
            return None
        self._remember([off])
        return off

    def best_for(
        self,
        origin: str,
        destination: str,
        departure_date: Optional[date] = None,
    ) -> List[Offer]:
        """Currently valid offers for a route, cheapest first."""
        offers = self._valid_in_memory(route_key(origin, destination))
        if departure_date is not None:
            offers = [o for o in offers if o.departure_date == departure_date]
        if offers:
            return _price_order(offers)
        try:
            stored = db.find_offers(
                origin, destination, self._clock(), self.db_path, departure_date
            )
        except sqlite3.Error as exc:
            logger.error(
                "Error reading cached offers for %s-%s: %s", origin, destination, exc
            )
            return []
        self._remember(stored)
        return stored

    def fetch(
        self,
        origin: str,
        destination: str,
        departure_date: Optional[date] = None,
        return_date: Optional[date] = None,
        cabin_class: CabinClass | str = CabinClass.ECONOMY,
    ) -> List[Offer]:
        """Serve cached offers for the route/date pair or search once.

        Cached offers must match the trip shape exactly: without a return
        date only one-way offers are served.
        """
        if departure_date is None:
            departure_date = self._clock().date() + DEFAULT_DEPARTURE_OFFSET
            if return_date is None:
                return_date = departure_date + DEFAULT_TRIP_LENGTH

        cached = [
            o
            for o in self.best_for(origin, destination, departure_date)
            if o.return_date == return_date
        ]
        if cached:
            logger.debug(
                "Serving %d cached offers for %s-%s", len(cached), origin, destination
            )
            return cached

        if self.provider is None:
            return []
        try:
            offers = self.provider.search(
                origin, destination, departure_date, return_date, cabin_class
            )
        except ProviderUnavailable as exc:
            logger.warning(
                "Failed to fetch %s->%s on %s: %s",
                origin,
                destination,
                departure_date,
                exc,
            )
            return []
        self.put(offers)
        return _price_order(offers)

    def purge_expired(self) -> int:
        """Drop expired offers from both tiers; return the stored count removed."""
        for key in list(self._by_route):
            self._valid_in_memory(key)
        try:
            removed = db.delete_expired_offers(self._clock(), self.db_path)
        except sqlite3.Error as exc:
            logger.error("Error purging expired offers: %s", exc)
            return 0
        logger.info("Purged %d expired offers", removed)
        return removed


__all__ = ["OfferCache", "OfferProvider", "RouteLocks"]
