from __future__ import annotations

import logging
import sqlite3
from typing import Iterable, List, Optional, Tuple

import pandas as pd

from . import db
from .errors import PersistenceError
from .models import Airport, Destination

logger = logging.getLogger(__name__)

AIRPORT_COLUMNS = [
    "iata_code",
    "name",
    "city",
    "country_code",
    "latitude",
    "longitude",
    "is_active",
]
DESTINATION_COLUMNS = [
    "id",
    "name",
    "primary_airport_iata",
    "estimated_price_eur",
    "is_published",
    "is_featured",
]


def _row_to_airport(row: sqlite3.Row) -> Airport:
    return Airport(
        iata_code=row["iata_code"],
        name=row["name"],
        city=row["city"],
        country_code=row["country_code"],
        latitude=float(row["latitude"]),
        longitude=float(row["longitude"]),
        is_active=bool(row["is_active"]),
    )


def _row_to_destination(row: sqlite3.Row) -> Destination:
    return Destination(
        id=row["id"],
        name=row["name"],
        primary_airport_iata=row["primary_airport_iata"],
        estimated_price_eur=row["estimated_price_eur"],
        is_published=bool(row["is_published"]),
        is_featured=bool(row["is_featured"]),
    )


class Catalog:
    """Read access to airports and wheel destinations."""

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path

    def _rows(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        try:
            with db.connect(self.db_path) as conn:
                return conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise PersistenceError(f"reading catalog: {exc}") from exc

    def get_airport(self, iata_code: str, active_only: bool = True) -> Optional[Airport]:
        sql = "SELECT * FROM airports WHERE iata_code=?"
        if active_only:
            sql += " AND is_active=1"
        rows = self._rows(sql, (iata_code.upper(),))
        return _row_to_airport(rows[0]) if rows else None

    def active_airports(self) -> List[Airport]:
        return [
            _row_to_airport(r)
            for r in self._rows("SELECT * FROM airports WHERE is_active=1")
        ]

    def wheel_destinations(
        self, price_range: Optional[Tuple[int, int]] = None
    ) -> List[Destination]:
        """Published, featured destinations, optionally within *price_range*."""
        sql = "SELECT * FROM destinations WHERE is_published=1 AND is_featured=1"
        params: tuple = ()
        if price_range is not None:
            sql += " AND estimated_price_eur BETWEEN ? AND ?"
            params = price_range
        return [_row_to_destination(r) for r in self._rows(sql + " ORDER BY id", params)]

    def upsert_airports(self, airports: Iterable[Airport]) -> int:
        rows = [
            (
                a.iata_code,
                a.name,
                a.city,
                a.country_code,
                a.latitude,
                a.longitude,
                int(a.is_active),
            )
            for a in airports
        ]
        with db.connect(self.db_path) as conn:
            conn.executemany(
                """
                INSERT INTO airports VALUES (?,?,?,?,?,?,?)
                ON CONFLICT(iata_code) DO UPDATE SET
                    name=excluded.name, city=excluded.city,
                    country_code=excluded.country_code,
                    latitude=excluded.latitude, longitude=excluded.longitude,
                    is_active=excluded.is_active
                """,
                rows,
            )
        return len(rows)

    def upsert_destinations(self, destinations: Iterable[Destination]) -> int:
        rows = [
            (
                d.id,
                d.name,
                d.primary_airport_iata,
                d.estimated_price_eur,
                int(d.is_published),
                int(d.is_featured),
            )
            for d in destinations
        ]
        with db.connect(self.db_path) as conn:
            conn.executemany(
                """
                INSERT INTO destinations VALUES (?,?,?,?,?,?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    primary_airport_iata=excluded.primary_airport_iata,
                    estimated_price_eur=excluded.estimated_price_eur,
                    is_published=excluded.is_published,
                    is_featured=excluded.is_featured
                """,
                rows,
            )
        return len(rows)

    def import_csv(
        self,
        airports_csv: Optional[str] = None,
        destinations_csv: Optional[str] = None,
    ) -> Tuple[int, int]:
        """Load airports and destinations from CSV files using pandas.

        Missing boolean columns default to the schema defaults.
        """
        n_airports = n_destinations = 0
        if airports_csv:
            df = pd.read_csv(airports_csv, dtype={"iata_code": str})
            if "is_active" not in df:
                df["is_active"] = True
            n_airports = self.upsert_airports(
                Airport(
                    iata_code=row.iata_code.strip().upper(),
                    name=row.name,
                    city=row.city,
                    country_code=row.country_code,
                    latitude=float(row.latitude),
                    longitude=float(row.longitude),
                    is_active=bool(row.is_active),
                )
                for row in df[AIRPORT_COLUMNS].itertuples(index=False)
            )
        if destinations_csv:
            df = pd.read_csv(destinations_csv, dtype={"id": str})
            for col, default in (("is_published", True), ("is_featured", False)):
                if col not in df:
                    df[col] = default
            if "estimated_price_eur" not in df:
                df["estimated_price_eur"] = None
            n_destinations = self.upsert_destinations(
                Destination(
                    id=row.id,
                    name=row.name,
                    primary_airport_iata=row.primary_airport_iata.strip().upper(),
                    estimated_price_eur=(
                        None
                        if pd.isna(row.estimated_price_eur)
                        else int(row.estimated_price_eur)
                    ),
                    is_published=bool(row.is_published),
                    is_featured=bool(row.is_featured),
                )
                for row in df[DESTINATION_COLUMNS].itertuples(index=False)
            )
        logger.info(
            "Imported %d airports and %d destinations", n_airports, n_destinations
        )
        return n_airports, n_destinations


__all__ = ["Catalog"]
