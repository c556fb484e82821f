from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from . import db
from .errors import AlertNotFound, PersistenceError
from .models import Alert, AlertKind, Clock, utcnow

logger = logging.getLogger(__name__)

NOTIFICATION_TYPE = "price_alert"


def _row_to_alert(row: sqlite3.Row) -> Alert:
    return Alert(
        id=row["id"],
        user_id=row["user_id"],
        origin=row["origin"],
        destination=row["destination"],
        kind=AlertKind(row["alert_type"]),
        departure_date=(
            date.fromisoformat(row["departure_date"]) if row["departure_date"] else None
        ),
        max_price=Decimal(row["max_price"]) if row["max_price"] is not None else None,
        price_drop_percent=row["price_drop_percent"],
        is_active=bool(row["is_active"]),
        last_checked_at=db.from_ts(row["last_checked_at"]),
        last_notified_at=db.from_ts(row["last_notified_at"]),
        created_at=db.from_ts(row["created_at"]),
    )


class AlertStore:
    """Persistence for price alerts. Store failures surface as
    :class:`PersistenceError` so the owner can retry."""

    def __init__(self, db_path: str, *, clock: Clock = utcnow) -> None:
        self.db_path = db_path
        self._clock = clock

    def create(
        self,
        user_id: str,
        origin: str,
        destination: str,
        kind: AlertKind | str,
        *,
        max_price: Optional[Decimal] = None,
        price_drop_percent: Optional[float] = None,
        departure_date: Optional[date] = None,
        is_active: bool = True,
    ) -> Alert:
        alert = Alert(
            id=str(uuid.uuid4()),
            user_id=user_id,
            origin=origin,
            destination=destination,
            kind=AlertKind(kind),
            departure_date=departure_date,
            max_price=Decimal(str(max_price)) if max_price is not None else None,
            price_drop_percent=price_drop_percent,
            is_active=is_active,
            created_at=self._clock(),
        )
        try:
            with db.connect(self.db_path) as conn:
                conn.execute(
                    """
                    INSERT INTO price_alerts(
                        id, user_id, origin, destination, route_key,
                        departure_date, alert_type, max_price,
                        price_drop_percent, is_active, created_at
                    ) VALUES (?,?,?,?,?,?,?,?,?,?,?)
                    """,
                    (
                        alert.id,
                        alert.user_id,
                        alert.origin,
                        alert.destination,
                        alert.route_key,
                        alert.departure_date.isoformat() if alert.departure_date else None,
                        alert.kind.value,
                        str(alert.max_price) if alert.max_price is not None else None,
                        alert.price_drop_percent,
                        int(alert.is_active),
                        db.to_ts(alert.created_at),
                    ),
                )
        except sqlite3.Error as exc:
            raise PersistenceError(f"creating alert for {alert.route_key}: {exc}") from exc
        logger.info("Alert created: %s for route %s", alert.id, alert.route_key)
        return alert

    def _query(self, sql: str, params: tuple) -> List[Alert]:
        try:
            with db.connect(self.db_path) as conn:
                rows = conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"reading alerts: {exc}") from exc
        return [_row_to_alert(r) for r in rows]

    def get(self, alert_id: str) -> Optional[Alert]:
        found = self._query("SELECT * FROM price_alerts WHERE id=?", (alert_id,))
        return found[0] if found else None

    def list_for_user(self, user_id: str, active_only: bool = False) -> List[Alert]:
        sql = "SELECT * FROM price_alerts WHERE user_id=?"
        if active_only:
            sql += " AND is_active=1"
        return self._query(sql + " ORDER BY created_at DESC", (user_id,))

    def list_active(self) -> List[Alert]:
        return self._query(
            "SELECT * FROM price_alerts WHERE is_active=1 ORDER BY created_at", ()
        )

    def _update(self, sql: str, params: tuple) -> int:
        try:
            with db.connect(self.db_path) as conn:
                return conn.execute(sql, params).rowcount
        except sqlite3.Error as exc:
            raise PersistenceError(f"updating alert: {exc}") from exc

    def set_active(self, alert_id: str, user_id: str, is_active: bool) -> None:
        changed = self._update(
            "UPDATE price_alerts SET is_active=? WHERE id=? AND user_id=?",
            (int(is_active), alert_id, user_id),
        )
        if not changed:
            raise AlertNotFound(alert_id)
        logger.info("Alert %s %s", alert_id, "activated" if is_active else "deactivated")

    def delete(self, alert_id: str, user_id: str) -> None:
        changed = self._update(
            "DELETE FROM price_alerts WHERE id=? AND user_id=?", (alert_id, user_id)
        )
        if not changed:
            raise AlertNotFound(alert_id)
        logger.info("Alert deleted: %s", alert_id)

    def mark_checked(self, alert_id: str, at: datetime) -> None:
        self._update(
            "UPDATE price_alerts SET last_checked_at=? WHERE id=?",
            (db.to_ts(at), alert_id),
        )

    def mark_notified(self, alert_id: str, at: datetime) -> None:
        self._update(
            "UPDATE price_alerts SET last_notified_at=? WHERE id=?",
            (db.to_ts(at), alert_id),
        )

    def stats_for_user(self, user_id: str) -> Dict[str, int]:
        alerts = self.list_for_user(user_id)
        try:
            total, unread = db.count_notifications(
                user_id, NOTIFICATION_TYPE, self.db_path
            )
        except sqlite3.Error as exc:
            raise PersistenceError(f"reading notifications: {exc}") from exc
        return {
            "total_alerts": len(alerts),
            "active_alerts": sum(1 for a in alerts if a.is_active),
            "total_notifications": total,
            "unread_notifications": unread,
        }


__all__ = ["AlertStore", "NOTIFICATION_TYPE"]
