from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

import pandas as pd

from . import db
from .errors import PersistenceError
from .models import Clock, Offer, PriceHistoryEntry, PriceStatistics, TrendPoint, utcnow
from .price_stats import LONG_WINDOW, compute_statistics

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 365


class PriceHistory:
    """Append-only per-route price series with statistics on top."""

    def __init__(
        self,
        db_path: str,
        *,
        clock: Clock = utcnow,
        retention_days: int = DEFAULT_RETENTION_DAYS,
    ) -> None:
        self.db_path = db_path
        self._clock = clock
        self.retention_days = retention_days

    def record(self, entry: PriceHistoryEntry) -> None:
        """Append *entry*. Store failures are logged, never raised."""
        self.record_many([entry])

    def record_many(self, entries: Iterable[PriceHistoryEntry]) -> int:
        entries = list(entries)
        try:
            written = db.insert_price_entries(entries, self.db_path)
        except sqlite3.Error as exc:
            logger.error(
                "Error recording %d price history entries: %s", len(entries), exc
            )
            return 0
        logger.debug("Recorded %d price history entries", written)
        return written

    def record_offers(self, offers: Iterable[Offer], source: str = "duffel") -> int:
        """Record one observation per offer, stamped with the current time."""
        now = self._clock()
        return self.record_many(
            PriceHistoryEntry.from_offer(off, observed_at=now, source=source)
            for off in offers
        )

    def entries(self, route: str, days: int = 90) -> List[PriceHistoryEntry]:
        since = self._clock() - timedelta(days=days)
        try:
            return db.fetch_price_entries(route, since, self.db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"reading history for {route}: {exc}") from exc

    def statistics(
        self,
        route: str,
        current_price: Optional[float] = None,
        *,
        before: Optional[datetime] = None,
    ) -> Optional[PriceStatistics]:
        """Return statistics for *route* or ``None`` without recent history.

        With *before*, only entries observed strictly earlier count, so a price
        can be judged against history that does not already contain it.
        """
        entries = self.entries(route, days=LONG_WINDOW.days)
        if before is not None:
            entries = [e for e in entries if e.observed_at < before]
        return compute_statistics(route, entries, self._clock(), current_price)

    def trend(self, route: str, days: int = 30) -> List[TrendPoint]:
        """Daily average/min/max/count of observed prices, oldest day first."""
        since = self._clock() - timedelta(days=days)
        try:
            conn = sqlite3.connect(self.db_path, timeout=10)
            try:
                df = pd.read_sql_query(
                    """
                    SELECT price, observed_at FROM price_history
                     WHERE route_key = ? AND observed_at >= ?
                    """,
                    conn,
                    params=(route, db.to_ts(since)),
                )
            finally:
                conn.close()
        except (sqlite3.Error, pd.errors.DatabaseError) as exc:
            raise PersistenceError(f"reading trend for {route}: {exc}") from exc

        if df.empty:
            return []

        df["price"] = df["price"].astype(float)
        df["day"] = pd.to_datetime(df["observed_at"], utc=True, format="ISO8601").dt.date
        daily = (
            df.groupby("day", as_index=False)
            .agg(
                average=("price", "mean"),
                low=("price", "min"),
                high=("price", "max"),
                samples=("price", "count"),
            )
            .sort_values("day")
        )
        return [
            TrendPoint(
                day=row.day,
                average=float(row.average),
                min=float(row.low),
                max=float(row.high),
                count=int(row.samples),
            )
            for row in daily.itertuples(index=False)
        ]

    def prune(self, retention_days: Optional[int] = None) -> int:
        """Delete entries older than the retention horizon; return the count."""
        days = retention_days if retention_days is not None else self.retention_days
        cutoff = self._clock() - timedelta(days=days)
        try:
            deleted = db.delete_price_entries_before(cutoff, self.db_path)
        except sqlite3.Error as exc:
            raise PersistenceError(f"pruning price history: {exc}") from exc
        logger.info("Cleaned up %d old price history entries", deleted)
        return deleted


__all__ = ["PriceHistory", "DEFAULT_RETENTION_DAYS"]
