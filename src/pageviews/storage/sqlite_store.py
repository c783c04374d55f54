"""SQLite-backed stores.

Tables:
- page_views(id, page_path, visitor_id, created_at)
- analytics_daily(date PRIMARY KEY, landing/checkout counts, conversion_rate, updated_at)
- orders(order_number PRIMARY KEY, amount, payment_status, created_at)

Timestamps are stored as fixed-width ISO-8601 UTC text, so range predicates
are plain string comparisons on an indexed column.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from ..core.models import DailySummary, PageViewEvent
from ..core.time import ensure_utc, format_utc_sortable, get_current_utc, parse_utc_iso8601
from ..observability import get_logger
from .base import EventStore, OrderStore, StoreUnavailableError

__all__ = [
    "SQLiteEventStore",
    "SQLiteOrderStore",
]

logger = get_logger("storage")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS page_views (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    page_path TEXT NOT NULL,
    visitor_id TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_page_views_created_at
ON page_views(created_at);

CREATE TABLE IF NOT EXISTS analytics_daily (
    date TEXT PRIMARY KEY,
    landing_total_visits INTEGER NOT NULL DEFAULT 0,
    landing_unique_visitors INTEGER NOT NULL DEFAULT 0,
    checkout_total_visits INTEGER NOT NULL DEFAULT 0,
    checkout_unique_visitors INTEGER NOT NULL DEFAULT 0,
    conversion_rate REAL NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS orders (
    order_number TEXT PRIMARY KEY,
    amount REAL NOT NULL,
    payment_status TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_created_at
ON orders(created_at);
"""


class _SQLiteStore:
    """Connection handling shared by the SQLite stores."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self._init_database()

    def _init_database(self) -> None:
        """Initialize database schema."""
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_connection()
            conn.executescript(_SCHEMA)
            conn.commit()
        except (sqlite3.Error, OSError) as exc:
            raise StoreUnavailableError(f"Cannot open store at {self.db_path}: {exc}") from exc

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection."""
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path))
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            return self._get_connection().execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            logger.error("Store read failed", db_path=str(self.db_path), error=str(exc))
            raise StoreUnavailableError(f"Read failed: {exc}") from exc

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def _parse_stored_instant(value: str) -> datetime:
    try:
        return parse_utc_iso8601(value)
    except (TypeError, ValueError) as exc:
        logger.error("Stored created_at is not a valid instant", value=repr(value), error=str(exc))
        raise StoreUnavailableError(f"Corrupt created_at value {value!r}: {exc}") from exc


def _row_to_event(row: sqlite3.Row) -> PageViewEvent:
    return PageViewEvent(
        page_path=row["page_path"],
        visitor_id=row["visitor_id"],
        created_at=_parse_stored_instant(row["created_at"]),
    )


class SQLiteEventStore(_SQLiteStore, EventStore):
    """Event store on a local SQLite database."""

    def insert_event(self, event: PageViewEvent) -> None:
        created_at = event.created_at
        if isinstance(created_at, str):
            created_at = parse_utc_iso8601(created_at)

        try:
            conn = self._get_connection()
            with conn:
                conn.execute(
                    "INSERT INTO page_views (page_path, visitor_id, created_at) VALUES (?, ?, ?)",
                    (event.page_path, event.visitor_id, format_utc_sortable(created_at)),
                )
        except sqlite3.Error as exc:
            logger.error("Page view insert failed", error=str(exc))
            raise StoreUnavailableError(f"Insert failed: {exc}") from exc

    def select_events_before(self, cutoff: datetime) -> list[PageViewEvent]:
        rows = self._query(
            "SELECT page_path, visitor_id, created_at FROM page_views WHERE created_at < ?",
            (format_utc_sortable(cutoff),),
        )
        return [_row_to_event(row) for row in rows]

    def select_events_between(
        self,
        start: datetime,
        end: datetime,
        *,
        end_exclusive: bool = False,
    ) -> list[PageViewEvent]:
        op = "<" if end_exclusive else "<="
        rows = self._query(
            "SELECT page_path, visitor_id, created_at FROM page_views "
            f"WHERE created_at >= ? AND created_at {op} ?",
            (format_utc_sortable(start), format_utc_sortable(end)),
        )
        return [_row_to_event(row) for row in rows]

    def delete_events_before(self, cutoff: datetime) -> int:
        try:
            conn = self._get_connection()
            with conn:
                cursor = conn.execute(
                    "DELETE FROM page_views WHERE created_at < ?",
                    (format_utc_sortable(cutoff),),
                )
            return cursor.rowcount
        except sqlite3.Error as exc:
            logger.error("Page view delete failed", error=str(exc))
            raise StoreUnavailableError(f"Delete failed: {exc}") from exc

    def upsert_daily_summaries(self, summaries: Iterable[DailySummary]) -> None:
        now = format_utc_sortable(get_current_utc())
        rows = [
            (
                s.date,
                s.landing_total_visits,
                s.landing_unique_visitors,
                s.checkout_total_visits,
                s.checkout_unique_visitors,
                s.conversion_rate,
                now,
            )
            for s in summaries
        ]

        try:
            conn = self._get_connection()
            # Single transaction: either every summary lands or none does
            with conn:
                conn.executemany(
                    """
                    INSERT OR REPLACE INTO analytics_daily
                    (date, landing_total_visits, landing_unique_visitors,
                     checkout_total_visits, checkout_unique_visitors,
                     conversion_rate, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                    rows,
                )
        except sqlite3.Error as exc:
            logger.error("Daily summary upsert failed", error=str(exc))
            raise StoreUnavailableError(f"Upsert failed: {exc}") from exc

    def get_daily_summaries(self, first_date: str, last_date: str) -> list[DailySummary]:
        rows = self._query(
            "SELECT * FROM analytics_daily WHERE date >= ? AND date <= ? ORDER BY date",
            (first_date, last_date),
        )
        return [DailySummary.from_row(row) for row in rows]

    def count_events(self, before: datetime | None = None) -> int:
        if before is None:
            rows = self._query("SELECT COUNT(*) FROM page_views")
        else:
            rows = self._query(
                "SELECT COUNT(*) FROM page_views WHERE created_at < ?",
                (format_utc_sortable(before),),
            )
        return int(rows[0][0])

    def oldest_event_timestamp(self) -> datetime | None:
        rows = self._query("SELECT MIN(created_at) FROM page_views")
        value = rows[0][0]
        return _parse_stored_instant(value) if value else None


class SQLiteOrderStore(_SQLiteStore, OrderStore):
    """Order store on a local SQLite database."""

    def record_order(
        self,
        order_number: str,
        amount: float,
        payment_status: str,
        created_at: datetime,
    ) -> None:
        """Insert or replace an order row."""
        try:
            conn = self._get_connection()
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO orders (order_number, amount, payment_status, created_at) "
                    "VALUES (?, ?, ?, ?)",
                    (order_number, amount, payment_status, format_utc_sortable(ensure_utc(created_at))),
                )
        except sqlite3.Error as exc:
            raise StoreUnavailableError(f"Order insert failed: {exc}") from exc

    def sum_revenue(self, start: datetime, end: datetime) -> float:
        rows = self._query(
            "SELECT COALESCE(SUM(amount), 0) FROM orders "
            "WHERE payment_status = 'paid' AND created_at >= ? AND created_at < ?",
            (format_utc_sortable(start), format_utc_sortable(end)),
        )
        return round(float(rows[0][0]), 2)

    def count_paid_orders(self, start: datetime, end: datetime) -> int:
        rows = self._query(
            "SELECT COUNT(*) FROM orders "
            "WHERE payment_status = 'paid' AND created_at >= ? AND created_at < ?",
            (format_utc_sortable(start), format_utc_sortable(end)),
        )
        return int(rows[0][0])
