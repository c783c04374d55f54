"""Tests for the SQLite event and order stores."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from pageviews.core.models import DailySummary
from pageviews.storage.base import StoreUnavailableError
from pageviews.storage.sqlite_store import SQLiteEventStore, SQLiteOrderStore


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def store(tmp_path):
    with SQLiteEventStore(tmp_path / "pv.db") as s:
        yield s


@pytest.fixture
def orders(tmp_path):
    with SQLiteOrderStore(tmp_path / "pv.db") as s:
        yield s


def test_insert_and_select_round_trip(store, make_event):
    store.insert_event(make_event("/", 1, utc(2024, 3, 1, 10, 0, 0, 123456)))
    store.insert_event(make_event("/checkout", 1, "2024-03-01T11:00:00Z"))

    events = store.select_events_before(utc(2024, 3, 2))

    assert [e.page_path for e in events] == ["/", "/checkout"]
    assert events[0].created_at == utc(2024, 3, 1, 10, 0, 0, 123456)
    assert events[1].created_at == utc(2024, 3, 1, 11, 0)


def test_cutoff_is_strict(store, make_event):
    cutoff = utc(2024, 3, 6, 16, 0)
    store.insert_event(make_event("/", 1, cutoff - timedelta(microseconds=1)))
    store.insert_event(make_event("/", 2, cutoff))
    store.insert_event(make_event("/", 3, cutoff + timedelta(days=1)))

    assert store.count_events(before=cutoff) == 1
    assert len(store.select_events_before(cutoff)) == 1
    assert store.delete_events_before(cutoff) == 1
    assert store.count_events() == 2


def test_select_between_inclusive_and_exclusive(store, make_event):
    start, end = utc(2024, 3, 1, 16, 0), utc(2024, 3, 2, 16, 0)
    store.insert_event(make_event("/", 1, start))
    store.insert_event(make_event("/", 2, end))

    assert len(store.select_events_between(start, end)) == 2
    assert len(store.select_events_between(start, end, end_exclusive=True)) == 1


def test_upsert_overwrites_by_date(store):
    store.upsert_daily_summaries([DailySummary("2024-03-02", 2, 1, 1, 1, 100.0)])
    store.upsert_daily_summaries(
        [
            DailySummary("2024-03-02", 3, 2, 1, 1, 50.0),
            DailySummary("2024-03-03", 1, 1, 0, 0, 0.0),
        ]
    )

    assert store.get_daily_summaries("2024-03-01", "2024-03-31") == [
        DailySummary("2024-03-02", 3, 2, 1, 1, 50.0),
        DailySummary("2024-03-03", 1, 1, 0, 0, 0.0),
    ]
    assert store.get_daily_summaries("2024-03-03", "2024-03-03")[0].date == "2024-03-03"


def test_oldest_event_timestamp(store, make_event):
    assert store.oldest_event_timestamp() is None

    store.insert_event(make_event("/", 1, "2024-03-05T10:00:00Z"))
    store.insert_event(make_event("/", 2, "2024-03-01T10:00:00Z"))

    assert store.oldest_event_timestamp() == utc(2024, 3, 1, 10, 0)


def test_read_failure_is_store_unavailable(store):
    store._get_connection().execute("DROP TABLE page_views")

    with pytest.raises(StoreUnavailableError):
        store.count_events()


def test_corrupt_created_at_is_store_unavailable(store, make_event, log_records):
    store.insert_event(make_event("/", 1, utc(2024, 3, 1, 10, 0)))
    conn = store._get_connection()
    conn.execute(
        "INSERT INTO page_views (page_path, visitor_id, created_at) VALUES (?, ?, ?)",
        ("/", "v_1709337600002_abcd0002", "2024-03-01Tgarbage"),
    )
    conn.commit()

    with pytest.raises(StoreUnavailableError, match="Corrupt created_at"):
        store.select_events_before(utc(2024, 3, 6))
    with pytest.raises(StoreUnavailableError):
        store.select_events_between(utc(2024, 3, 1), utc(2024, 3, 2))
    with pytest.raises(StoreUnavailableError):
        store.oldest_event_timestamp()
    assert any(r["level"].name == "ERROR" for r in log_records)


def test_unopenable_database(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")

    with pytest.raises(StoreUnavailableError):
        SQLiteEventStore(blocker / "pv.db")


def test_order_revenue_is_paid_only_and_half_open(orders):
    start, end = utc(2024, 3, 1), utc(2024, 3, 2)
    orders.record_order("A-1", 10.5, "paid", start)
    orders.record_order("A-2", 20.0, "pending", start)
    orders.record_order("A-3", 5.25, "paid", end)

    assert orders.sum_revenue(start, end) == 10.5
    assert orders.count_paid_orders(start, end) == 1
    assert orders.sum_revenue(end, end + timedelta(days=1)) == 5.25


def test_stores_share_one_database(tmp_path, make_event):
    path = tmp_path / "shared.db"
    with SQLiteEventStore(path) as events, SQLiteOrderStore(path) as orders:
        events.insert_event(make_event("/", 1, "2024-03-05T10:00:00Z"))
        orders.record_order("A-1", 1.0, "paid", utc(2024, 3, 5))

    conn = sqlite3.connect(path)
    try:
        assert conn.execute("SELECT COUNT(*) FROM page_views").fetchone()[0] == 1
        assert conn.execute("SELECT COUNT(*) FROM orders").fetchone()[0] == 1
    finally:
        conn.close()
