"""tasks.py – maintenance schedule on APScheduler.

• every ``alert_interval_h`` hours (and once at start-up) – alert sweep
• once a day at ``prune_hour:prune_minute`` – price history pruning and
  expired offer purge

Each job can be cancelled by id and triggered by hand.
"""

from __future__ import annotations

import logging
from typing import Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.base import BaseScheduler

from .alert_engine import AlertEvaluator
from .models import Clock, utcnow
from .offer_cache import OfferCache
from .price_history import PriceHistory

logger = logging.getLogger(__name__)

ALERT_JOB_ID = "price-alerts"
CLEANUP_JOB_ID = "cleanup-price-history"


class MaintenanceScheduler:
    def __init__(
        self,
        evaluator: AlertEvaluator,
        history: PriceHistory,
        offers: OfferCache,
        *,
        alert_interval_h: float = 2,
        prune_hour: int = 2,
        prune_minute: int = 0,
        timezone: str = "UTC",
        scheduler: Optional[BaseScheduler] = None,
        clock: Clock = utcnow,
    ) -> None:
        self.evaluator = evaluator
        self.history = history
        self.offers = offers
        self.alert_interval_h = alert_interval_h
        self.prune_hour = prune_hour
        self.prune_minute = prune_minute
        self._clock = clock
        self.sched = scheduler or BackgroundScheduler(timezone=timezone)

    def start(self, paused: bool = False) -> None:
        """Register both jobs and start the scheduler."""
        logger.info("Starting scheduler service...")
        self.sched.add_job(
            self._alert_job,
            "interval",
            hours=self.alert_interval_h,
            id=ALERT_JOB_ID,
            next_run_time=self._clock(),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.sched.add_job(
            self._cleanup_job,
            "cron",
            hour=self.prune_hour,
            minute=self.prune_minute,
            id=CLEANUP_JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.sched.start(paused=paused)
        logger.info(
            "Scheduled %s every %s h and %s daily at %02d:%02d",
            ALERT_JOB_ID,
            self.alert_interval_h,
            CLEANUP_JOB_ID,
            self.prune_hour,
            self.prune_minute,
        )

    def cancel(self, job_id: str) -> bool:
        """Remove one job; return ``False`` if it was not scheduled."""
        try:
            self.sched.remove_job(job_id)
        except JobLookupError:
            return False
        logger.info("Cancelled job %s", job_id)
        return True

    def shutdown(self, wait: bool = True) -> None:
        logger.info("Stopping scheduler service...")
        if self.sched.running:
            self.sched.shutdown(wait=wait)
        logger.info("Scheduler service stopped")

    # ── job bodies ───────────────────────────────────────────

    def _alert_job(self) -> None:
        logger.info("Running scheduled price alerts check")
        try:
            triggered = self.evaluator.evaluate_all()
        except Exception:
            logger.exception("Error in scheduled price alerts check")
            return
        logger.info("Price alerts check completed: %d alerts triggered", triggered)

    def _cleanup_job(self) -> None:
        logger.info("Running scheduled price history cleanup")
        try:
            deleted = self.history.prune()
            self.offers.purge_expired()
        except Exception:
            logger.exception("Error in scheduled price history cleanup")
            return
        logger.info("Price history cleanup completed: %d entries deleted", deleted)

    # ── manual triggers ──────────────────────────────────────

    def trigger_alert_sweep(self) -> int:
        logger.info("Manually triggering price alerts check")
        return self.evaluator.evaluate_all()

    def trigger_history_cleanup(self) -> int:
        logger.info("Manually triggering price history cleanup")
        deleted = self.history.prune()
        self.offers.purge_expired()
        return deleted


__all__ = ["MaintenanceScheduler", "ALERT_JOB_ID", "CLEANUP_JOB_ID"]
