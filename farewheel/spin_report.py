from __future__ import annotations

import sqlite3
from datetime import datetime, timedelta

import pandas as pd

from .db import to_ts

SUMMARY_COLUMNS = ["day", "spins", "anonymous_spins", "avg_offers_shown"]


def spin_summary(db_path: str, now: datetime, days: int = 7) -> pd.DataFrame:
    """Return per-day spin counts for the last *days* days, oldest first."""
    conn = sqlite3.connect(db_path)
    try:
        df = pd.read_sql_query(
            """
            SELECT user_id, offers_shown_count, created_at
              FROM wheel_spins
             WHERE created_at >= ?
            """,
            conn,
            params=(to_ts(now - timedelta(days=days)),),
        )
    finally:
        conn.close()

    if df.empty:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    df["day"] = pd.to_datetime(df["created_at"], utc=True, format="ISO8601").dt.date
    df["anonymous"] = df["user_id"].isna()
    return (
        df.groupby("day", as_index=False)
        .agg(
            spins=("created_at", "count"),
            anonymous_spins=("anonymous", "sum"),
            avg_offers_shown=("offers_shown_count", "mean"),
        )
        .sort_values("day")
        .reset_index(drop=True)[SUMMARY_COLUMNS]
    )


__all__ = ["spin_summary"]
