"""Construct every component once at start-up and pass them down."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from .alert_engine import AlertEvaluator
from .alerts import AlertStore
from .catalog import Catalog
from .config import Settings, get_settings
from .db import migrate
from .duffel_client import DuffelClient
from .notifier import Notifier
from .offer_cache import OfferCache
from .price_history import PriceHistory
from .tasks import MaintenanceScheduler
from .wheel import WheelSelector


@dataclass(slots=True)
class Services:
    settings: Settings
    history: PriceHistory
    offers: OfferCache
    alerts: AlertStore
    notifier: Notifier
    evaluator: AlertEvaluator
    catalog: Catalog
    wheel: WheelSelector
    scheduler: MaintenanceScheduler


def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or get_settings()
    db_path = settings.db_path
    migrate(db_path)

    history = PriceHistory(db_path, retention_days=settings.history_retention_days)
    provider = DuffelClient(
        settings.duffel_token,
        settings.duffel_url,
        timeout=settings.provider_timeout_s,
    )
    offers = OfferCache(db_path, history, provider)
    alerts = AlertStore(db_path)
    notifier = Notifier(
        db_path,
        telegram_token=settings.telegram_token,
        telegram_chat_id=settings.telegram_chat_id,
    )
    evaluator = AlertEvaluator(
        alerts,
        offers,
        history,
        notifier,
        cooldown=timedelta(hours=settings.alert_cooldown_h),
        max_workers=settings.alert_workers,
    )
    catalog = Catalog(db_path)
    wheel = WheelSelector(
        catalog, offers, history, fallback_airport=settings.fallback_airport
    )
    scheduler = MaintenanceScheduler(
        evaluator,
        history,
        offers,
        alert_interval_h=settings.alert_interval_h,
        prune_hour=settings.prune_hour,
        prune_minute=settings.prune_minute,
        timezone=settings.scheduler_tz,
    )
    return Services(
        settings=settings,
        history=history,
        offers=offers,
        alerts=alerts,
        notifier=notifier,
        evaluator=evaluator,
        catalog=catalog,
        wheel=wheel,
        scheduler=scheduler,
    )


__all__ = ["Services", "build_services"]
