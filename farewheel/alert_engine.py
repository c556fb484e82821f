"""alert_engine – decide per alert whether a notification should fire.

An alert is eligible unless it was notified within the cooldown window.
Eligible alerts are priced against the cheapest current offer and judged by
their kind; every evaluated alert gets ``last_checked_at`` stamped.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Protocol

from .alerts import AlertStore
from .models import Alert, AlertKind, Clock, Offer, Recommendation, utcnow
from .offer_cache import OfferCache
from .price_history import PriceHistory

logger = logging.getLogger(__name__)

DEFAULT_COOLDOWN = timedelta(hours=24)


class AlertNotifier(Protocol):
    def send(
        self, user_id: str, subject: str, body: str, data: Dict[str, Any]
    ) -> None:
        ...


@dataclass(frozen=True, slots=True)
class Decision:
    fire: bool
    reason: str = ""


NO_FIRE = Decision(False)


class AlertEvaluator:
    def __init__(
        self,
        alerts: AlertStore,
        offers: OfferCache,
        history: PriceHistory,
        notifier: AlertNotifier,
        *,
        clock: Clock = utcnow,
        cooldown: timedelta = DEFAULT_COOLDOWN,
        max_workers: int = 4,
    ) -> None:
        self.alerts = alerts
        self.offers = offers
        self.history = history
        self.notifier = notifier
        self._clock = clock
        self.cooldown = cooldown
        self.max_workers = max_workers

    def in_cooldown(self, alert: Alert, now: datetime) -> bool:
        return (
            alert.last_notified_at is not None
            and now - alert.last_notified_at < self.cooldown
        )

    def decide(
        self, alert: Alert, best: Offer, *, as_of: Optional[datetime] = None
    ) -> Decision:
        """Judge *alert* against the cheapest current offer *best*.

        History-based kinds only look at prices observed before *as_of*.
        """
        price = best.total_amount

        if alert.kind is AlertKind.PRICE_THRESHOLD:
            if alert.max_price is not None and price <= alert.max_price:
                return Decision(
                    True,
                    f"Price dropped to {price} {best.currency} "
                    f"(below {alert.max_price})",
                )
            return NO_FIRE

        if alert.kind is AlertKind.PRICE_DROP:
            stats = self.history.statistics(
                alert.route_key, float(price), before=as_of
            )
            if stats is None or stats.average_30d <= 0:
                return NO_FIRE
            drop = (stats.average_30d - float(price)) / stats.average_30d * 100
            if drop >= (alert.price_drop_percent or 0):
                return Decision(
                    True, f"Price dropped {drop:.1f}% from 30-day average"
                )
            return NO_FIRE

        if alert.kind is AlertKind.GOOD_DEAL:
            stats = self.history.statistics(
                alert.route_key, float(price), before=as_of
            )
            if stats and stats.recommendation in (
                Recommendation.EXCELLENT,
                Recommendation.GOOD,
            ):
                return Decision(
                    True,
                    f"Great deal found! {stats.recommendation.value} price "
                    f"({stats.percentile:.0f}th percentile)",
                )
            return NO_FIRE

        raise ValueError(f"Unsupported alert kind: {alert.kind!r}")

    def evaluate(self, alert: Alert) -> bool:
        """Evaluate one alert; return ``True`` if a notification was sent."""
        now = self._clock()
        try:
            if self.in_cooldown(alert, now):
                logger.debug("Alert %s notified recently, skipping", alert.id)
                return False

            offers = self.offers.fetch(
                alert.origin, alert.destination, alert.departure_date
            )
            if not offers:
                logger.debug("No offers found for alert %s", alert.id)
                return False

            best = min(offers, key=lambda o: o.total_amount)
            decision = self.decide(alert, best, as_of=now)
            if not decision.fire:
                return False

            logger.info("Alert triggered: %s - %s", alert.id, decision.reason)
            # stamp first: an unstamped alert would notify again next sweep
            self.alerts.mark_notified(alert.id, now)
            alert.last_notified_at = now
            try:
                self._notify(alert, best, decision.reason)
            except Exception:
                logger.exception("Error sending notification for alert %s", alert.id)
            return True
        finally:
            self.alerts.mark_checked(alert.id, now)
            alert.last_checked_at = now

    def _notify(self, alert: Alert, offer: Offer, reason: str) -> None:
        self.notifier.send(
            alert.user_id,
            f"Price Alert: {alert.origin} → {alert.destination}",
            reason,
            {
                "alert_id": alert.id,
                "offer_id": offer.offer_id,
                "price": str(offer.total_amount),
                "currency": offer.currency,
                "route": alert.route_key,
            },
        )

    def _evaluate_isolated(self, alert: Alert) -> Optional[bool]:
        try:
            return self.evaluate(alert)
        except Exception:
            logger.exception("Error checking alert %s", alert.id)
            return None

    def evaluate_all(self) -> int:
        """Evaluate every active alert; return the number that fired."""
        alerts = self.alerts.list_active()
        if not alerts:
            logger.info("No active alerts to check")
            return 0

        logger.info("Checking %d active alerts", len(alerts))
        triggered = 0
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = [pool.submit(self._evaluate_isolated, a) for a in alerts]
            for fut in as_completed(futures):
                if fut.result():
                    triggered += 1
        logger.info("%d alerts triggered", triggered)
        return triggered


__all__ = ["AlertEvaluator", "AlertNotifier", "Decision", "DEFAULT_COOLDOWN"]
