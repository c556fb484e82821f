from __future__ import annotations

import json
import logging
import pathlib
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from .models import Offer, PriceHistoryEntry, WheelSpinRecord

PKG_DIR = pathlib.Path(__file__).resolve().parent
SCHEMA_FILE = str(PKG_DIR / "schema.sql")
SCHEMA_VERSION = 1

logger = logging.getLogger(__name__)


def to_ts(value: datetime) -> str:
    """Serialise *value* as a sortable UTC ISO-8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _from_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value[:10]) if value else None


@contextmanager
def connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """Open a connection that commits on success and always closes."""
    conn = sqlite3.connect(db_path, timeout=10)
    conn.row_factory = sqlite3.Row
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def _apply_schema(conn: sqlite3.Connection, schema_path: str) -> None:
    with open(schema_path, "r", encoding="utf-8") as fh:
        conn.executescript(fh.read())


def migrate(db_path: str, schema_path: str = SCHEMA_FILE) -> None:
    """Run pending migrations on the database."""
    logger.info("Running migrations for %s", db_path)
    with connect(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version "
            "(version INTEGER NOT NULL)"
        )
        row = conn.execute("SELECT version FROM schema_version").fetchone()
        current = row[0] if row else 0
        if current < SCHEMA_VERSION:
            logger.info("Applying schema version %s", SCHEMA_VERSION)
            _apply_schema(conn, schema_path)
            if row:
                conn.execute(
                    "UPDATE schema_version SET version=?", (SCHEMA_VERSION,)
                )
            else:
                conn.execute(
                    "INSERT INTO schema_version(version) VALUES (?)",
                    (SCHEMA_VERSION,),
                )


def init_db(db_path: str, schema_path: str = SCHEMA_FILE) -> None:
    """Initialize SQLite database using *schema_path*."""
    logger.info("Initializing database at %s", db_path)
    with connect(db_path) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        _apply_schema(conn, schema_path)
        conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version "
            "(version INTEGER NOT NULL)"
        )
        conn.execute("DELETE FROM schema_version")
        conn.execute(
            "INSERT INTO schema_version(version) VALUES (?)",
            (SCHEMA_VERSION,),
        )


# ────────────────────────────────────────────────────────────────
# Offers
# ────────────────────────────────────────────────────────────────


def upsert_offers(offers: Iterable[Offer], db_path: str) -> int:
    """Insert or overwrite *offers* keyed by their provider id."""
    rows = [
        (
            off.offer_id,
            off.origin,
            off.destination,
            off.departure_date.isoformat(),
            off.return_date.isoformat() if off.return_date else None,
            str(off.total_amount),
            off.currency,
            off.cabin_class,
            off.stops,
            off.carrier,
            off.duration_minutes,
            json.dumps(off.conditions or {}),
            to_ts(off.created_at),
            to_ts(off.expires_at),
        )
        for off in offers
    ]
    if not rows:
        return 0
    with connect(db_path) as conn:
        conn.executemany(
            """
            INSERT INTO offers(
                offer_id, origin, destination, departure_date, return_date,
                total_amount, currency, cabin_class, stops, carrier,
                duration_minutes, conditions, created_at, expires_at
            ) VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            ON CONFLICT(offer_id) DO UPDATE SET
                origin=excluded.origin,
                destination=excluded.destination,
                departure_date=excluded.departure_date,
                return_date=excluded.return_date,
                total_amount=excluded.total_amount,
                currency=excluded.currency,
                cabin_class=excluded.cabin_class,
                stops=excluded.stops,
                carrier=excluded.carrier,
                duration_minutes=excluded.duration_minutes,
                conditions=excluded.conditions,
                created_at=excluded.created_at,
                expires_at=excluded.expires_at
            """,
            rows,
        )
    return len(rows)


def _row_to_offer(row: sqlite3.Row) -> Offer:
    return Offer(
        offer_id=row["offer_id"],
        origin=row["origin"],
        destination=row["destination"],
        departure_date=_from_date(row["departure_date"]),
        return_date=_from_date(row["return_date"]),
        total_amount=Decimal(row["total_amount"]),
        currency=row["currency"],
        cabin_class=row["cabin_class"],
        stops=row["stops"],
        carrier=row["carrier"],
        duration_minutes=row["duration_minutes"],
        conditions=json.loads(row["conditions"] or "{}"),
        created_at=from_ts(row["created_at"]),
        expires_at=from_ts(row["expires_at"]),
    )


def get_offer(offer_id: str, now: datetime, db_path: str) -> Optional[Offer]:
    """Return offer *offer_id* if it has not expired at *now*."""
    with connect(db_path) as conn:
        row = conn.execute(
            "SELECT * FROM offers WHERE offer_id=? AND expires_at > ?",
            (offer_id, to_ts(now)),
        ).fetchone()
    return _row_to_offer(row) if row else None


def find_offers(
    origin: str,
    destination: str,
    now: datetime,
    db_path: str,
    departure_date: Optional[date] = None,
) -> List[Offer]:
    """Return valid offers for a route, cheapest first."""
    q = """
    SELECT * FROM offers
     WHERE origin = ? AND destination = ? AND expires_at > ?
    """
    params: List[Any] = [origin, destination, to_ts(now)]
    if departure_date is not None:
        q += " AND departure_date = ?"
        params.append(departure_date.isoformat())
    q += " ORDER BY CAST(total_amount AS REAL) ASC"
    with connect(db_path) as conn:
        rows = conn.execute(q, params).fetchall()
    return [_row_to_offer(r) for r in rows]


def delete_expired_offers(now: datetime, db_path: str) -> int:
    with connect(db_path) as conn:
        cur = conn.execute(
            "DELETE FROM offers WHERE expires_at <= ?", (to_ts(now),)
        )
        return cur.rowcount


# ────────────────────────────────────────────────────────────────
# Price history
# ────────────────────────────────────────────────────────────────


def _entry_row(entry: PriceHistoryEntry) -> Tuple:
    return (
        entry.route_key,
        entry.origin,
        entry.destination,
        entry.departure_date.isoformat(),
        str(entry.price),
        entry.currency,
        entry.source,
        to_ts(entry.observed_at),
    )


def insert_price_entries(
    entries: Iterable[PriceHistoryEntry], db_path: str
) -> int:
    """Append *entries* to ``price_history``; never updates existing rows."""
    rows = [_entry_row(e) for e in entries]
    if not rows:
        return 0
    with connect(db_path) as conn:
        conn.executemany(
            """
            INSERT INTO price_history(
                route_key, origin, destination, departure_date,
                price, currency, source, observed_at
            ) VALUES (?,?,?,?,?,?,?,?)
            """,
            rows,
        )
    return len(rows)


def fetch_price_entries(
    route: str, since: datetime, db_path: str
) -> List[PriceHistoryEntry]:
    """Return entries for *route* observed at or after *since*, oldest first."""
    with connect(db_path) as conn:
        rows = conn.execute(
            """
            SELECT * FROM price_history
             WHERE route_key = ? AND observed_at >= ?
             ORDER BY observed_at ASC, id ASC
            """,
            (route, to_ts(since)),
        ).fetchall()
    return [
        PriceHistoryEntry(
            route_key=r["route_key"],
            origin=r["origin"],
            destination=r["destination"],
            departure_date=_from_date(r["departure_date"]),
            price=Decimal(r["price"]),
            currency=r["currency"],
            source=r["source"],
            observed_at=from_ts(r["observed_at"]),
        )
        for r in rows
    ]


def delete_price_entries_before(cutoff: datetime, db_path: str) -> int:
    with connect(db_path) as conn:
        cur = conn.execute(
            "DELETE FROM price_history WHERE observed_at < ?", (to_ts(cutoff),)
        )
        return cur.rowcount


# ────────────────────────────────────────────────────────────────
# Notifications & wheel spins
# ────────────────────────────────────────────────────────────────


def insert_notification(
    user_id: str,
    kind: str,
    title: str,
    message: str,
    data: Dict[str, Any],
    created_at: datetime,
    db_path: str,
) -> int:
    with connect(db_path) as conn:
        cur = conn.execute(
            """
            INSERT INTO notifications(
                user_id, type, title, message, data, is_read, created_at
            ) VALUES (?,?,?,?,?,0,?)
            """,
            (user_id, kind, title, message, json.dumps(data), to_ts(created_at)),
        )
        return int(cur.lastrowid)


def count_notifications(user_id: str, kind: str, db_path: str) -> Tuple[int, int]:
    """Return ``(total, unread)`` notification counts for *user_id*."""
    with connect(db_path) as conn:
        row = conn.execute(
            """
            SELECT COUNT(*), COALESCE(SUM(CASE WHEN is_read=0 THEN 1 ELSE 0 END), 0)
              FROM notifications
             WHERE user_id=? AND type=?
            """,
            (user_id, kind),
        ).fetchone()
    return int(row[0]), int(row[1])


def insert_wheel_spin(record: WheelSpinRecord, db_path: str) -> str:
    with connect(db_path) as conn:
        conn.execute(
            """
            INSERT INTO wheel_spins(
                id, user_id, origin_airport, destination_ids,
                offers_shown_count, created_at
            ) VALUES (?,?,?,?,?,?)
            """,
            (
                record.id,
                record.user_id,
                record.origin_airport,
                json.dumps(record.destination_ids),
                record.offers_shown_count,
                to_ts(record.created_at),
            ),
        )
    return record.id


__all__ = [
    "to_ts",
    "from_ts",
    "connect",
    "init_db",
    "migrate",
    "upsert_offers",
    "get_offer",
    "find_offers",
    "delete_expired_offers",
    "insert_price_entries",
    "fetch_price_entries",
    "delete_price_entries_before",
    "insert_notification",
    "count_notifications",
    "insert_wheel_spin",
]
