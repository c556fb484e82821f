from __future__ import annotations

import datetime as dt
import logging
import re
from decimal import Decimal, InvalidOperation

import requests

from .errors import ProviderUnavailable
from .models import CabinClass, Clock, Offer, utcnow

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?$")


def parse_duration_minutes(value: str | None) -> int | None:
    """Parse an ISO 8601 duration such as ``PT9H30M`` into minutes."""
    if not value:
        return None
    match = _DURATION_RE.match(value)
    if not match:
        return None
    days, hours, minutes = (int(g or 0) for g in match.groups())
    return days * 24 * 60 + hours * 60 + minutes


def _parse_dt(value: str) -> dt.datetime:
    parsed = dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed


class DuffelClient:
    """
    Client for the Duffel offer request API (``/air/offer_requests``).
    """

    def __init__(
        self,
        token: str,
        base_url: str = "https://api.duffel.com",
        *,
        timeout: float = 15.0,
        clock: Clock = utcnow,
    ) -> None:
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._clock = clock

    # ──────────────────────────────────────────────────────────

    def search(
        self,
        origin: str,
        destination: str,
        departure_date: dt.date,
        return_date: dt.date | None = None,
        cabin_class: CabinClass | str = CabinClass.ECONOMY,
    ) -> list[Offer]:
        """Return offers for a route. One attempt, bounded by ``timeout``."""
        cabin = CabinClass(cabin_class).value
        slices = [
            {
                "origin": origin,
                "destination": destination,
                "departure_date": departure_date.isoformat(),
            }
        ]
        if return_date:
            slices.append(
                {
                    "origin": destination,
                    "destination": origin,
                    "departure_date": return_date.isoformat(),
                }
            )
        payload = {
            "data": {
                "slices": slices,
                "passengers": [{"type": "adult"}],
                "cabin_class": cabin,
            }
        }
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Duffel-Version": "v2",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

        logger.info(
            "Searching offers %s ➔ %s on %s", origin, destination, departure_date
        )
        try:
            resp = requests.post(
                f"{self.base_url}/air/offer_requests",
                params={"return_offers": "true"},
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ProviderUnavailable(f"Duffel request failed: {exc}") from exc

        if resp.status_code not in (200, 201):
            raise ProviderUnavailable(
                f"HTTP {resp.status_code} – {resp.text[:120]}"
            )

        try:
            data = resp.json()["data"]
            items = data.get("offers") or []
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise ProviderUnavailable(f"Malformed Duffel response: {exc}") from exc

        offers = [self._to_offer(item, origin, destination, cabin) for item in items]
        offers = [off for off in offers if off]
        logger.info(
            "Duffel returned %d offers for %s-%s", len(offers), origin, destination
        )
        return offers

    def _to_offer(
        self, item: dict, origin: str, destination: str, cabin: str
    ) -> Offer | None:
        """Map one Duffel offer onto :class:`Offer`; ``None`` if unusable."""
        try:
            outbound = item["slices"][0]
            segments = outbound["segments"]
            first = segments[0]
            inbound = item["slices"][1] if len(item["slices"]) > 1 else None
            carrier = (
                (first.get("operating_carrier") or {}).get("name")
                or (item.get("owner") or {}).get("name")
                or ""
            )
            return Offer(
                offer_id=item["id"],
                origin=origin,
                destination=destination,
                departure_date=dt.date.fromisoformat(first["departing_at"][:10]),
                return_date=(
                    dt.date.fromisoformat(inbound["segments"][0]["departing_at"][:10])
                    if inbound
                    else None
                ),
                total_amount=Decimal(str(item["total_amount"])),
                currency=item["total_currency"],
                cabin_class=item.get("cabin_class") or cabin,
                stops=len(segments) - 1,
                carrier=carrier,
                duration_minutes=parse_duration_minutes(outbound.get("duration")),
                conditions=item.get("conditions") or {},
                created_at=self._clock(),
                expires_at=_parse_dt(item["expires_at"]),
            )
        except (KeyError, IndexError, TypeError, ValueError, InvalidOperation) as exc:
            logger.debug("Skipping offer %s: %s", item.get("id"), exc)
            return None


__all__ = ["DuffelClient", "parse_duration_minutes"]
