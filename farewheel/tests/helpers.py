"""Fakes and record builders shared by the test modules."""

from __future__ import annotations

import itertools
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from farewheel.errors import ProviderUnavailable
from farewheel.models import Offer, PriceHistoryEntry, route_key

T0 = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeProvider:
    """Returns canned offers per (origin, destination) and counts calls."""

    def __init__(self, offers: Optional[Dict[tuple, List[Offer]]] = None) -> None:
        self.offers = offers or {}
        self.calls: List[tuple] = []
        self.fail_for: set = set()

    def search(self, origin, destination, departure_date, return_date=None, cabin_class="economy"):
        self.calls.append((origin, destination, departure_date, return_date))
        if (origin, destination) in self.fail_for:
            raise ProviderUnavailable("HTTP 503 – upstream down")
        return list(self.offers.get((origin, destination), []))


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: List[tuple] = []

    def send(self, user_id, subject, body, data) -> None:
        self.sent.append((user_id, subject, body, data))


_ids = itertools.count(1)


def make_offer(
    price,
    origin: str = "BRU",
    destination: str = "BCN",
    *,
    offer_id: Optional[str] = None,
    departure: date = date(2024, 6, 15),
    return_date: Optional[date] = date(2024, 6, 17),
    created_at: datetime = T0,
    ttl: timedelta = timedelta(hours=1),
    currency: str = "EUR",
) -> Offer:
    return Offer(
        offer_id=offer_id or f"off_{next(_ids):04d}",
        origin=origin,
        destination=destination,
        departure_date=departure,
        return_date=return_date,
        total_amount=Decimal(str(price)),
        currency=currency,
        cabin_class="economy",
        stops=0,
        carrier="Brussels Airlines",
        created_at=created_at,
        expires_at=created_at + ttl,
    )


def make_entry(
    price,
    observed_at: datetime,
    origin: str = "BRU",
    destination: str = "BCN",
) -> PriceHistoryEntry:
    return PriceHistoryEntry(
        route_key=route_key(origin, destination),
        origin=origin,
        destination=destination,
        departure_date=date(2024, 7, 1),
        price=Decimal(str(price)),
        currency="EUR",
        source="test",
        observed_at=observed_at,
    )
