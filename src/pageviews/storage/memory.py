"""In-process stores.

Used by tests and by callers embedding the engine without a database.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from ..core.models import DailySummary, PageViewEvent
from ..core.time import ensure_utc, parse_utc_iso8601
from .base import EventStore, OrderStore

__all__ = [
    "InMemoryEventStore",
    "InMemoryOrderStore",
    "Order",
]


def _as_instant(value: datetime | str) -> datetime:
    if isinstance(value, datetime):
        return ensure_utc(value)
    return parse_utc_iso8601(value)


class InMemoryEventStore(EventStore):
    """Event store backed by a list and a dict."""

    def __init__(self, events: Iterable[PageViewEvent] = ()) -> None:
        self._lock = threading.Lock()
        self._events: list[PageViewEvent] = []
        self._summaries: dict[str, DailySummary] = {}
        for event in events:
            self.insert_event(event)

    def insert_event(self, event: PageViewEvent) -> None:
        normalized = replace(event, created_at=_as_instant(event.created_at))
        with self._lock:
            self._events.append(normalized)

    def select_events_before(self, cutoff: datetime) -> list[PageViewEvent]:
        cutoff = ensure_utc(cutoff)
        with self._lock:
            return [e for e in self._events if e.created_at < cutoff]

    def select_events_between(
        self,
        start: datetime,
        end: datetime,
        *,
        end_exclusive: bool = False,
    ) -> list[PageViewEvent]:
        start, end = ensure_utc(start), ensure_utc(end)
        with self._lock:
            if end_exclusive:
                return [e for e in self._events if start <= e.created_at < end]
            return [e for e in self._events if start <= e.created_at <= end]

    def delete_events_before(self, cutoff: datetime) -> int:
        cutoff = ensure_utc(cutoff)
        with self._lock:
            kept = [e for e in self._events if not e.created_at < cutoff]
            deleted = len(self._events) - len(kept)
            self._events = kept
        return deleted

    def upsert_daily_summaries(self, summaries: Iterable[DailySummary]) -> None:
        rows = list(summaries)
        with self._lock:
            for summary in rows:
                self._summaries[summary.date] = summary

    def get_daily_summaries(self, first_date: str, last_date: str) -> list[DailySummary]:
        with self._lock:
            return [self._summaries[d] for d in sorted(self._summaries) if first_date <= d <= last_date]

    def count_events(self, before: datetime | None = None) -> int:
        if before is None:
            with self._lock:
                return len(self._events)
        return len(self.select_events_before(before))

    def oldest_event_timestamp(self) -> datetime | None:
        with self._lock:
            if not self._events:
                return None
            return min(e.created_at for e in self._events)

    @property
    def events(self) -> list[PageViewEvent]:
        """Snapshot of the stored raw events."""
        with self._lock:
            return list(self._events)

    @property
    def summaries(self) -> dict[str, DailySummary]:
        """Snapshot of the stored summaries keyed by date."""
        with self._lock:
            return dict(self._summaries)


@dataclass(frozen=True)
class Order:
    """A customer order as seen by the dashboard."""

    order_number: str
    amount: float
    payment_status: str
    created_at: datetime


class InMemoryOrderStore(OrderStore):
    """Order store backed by a list."""

    def __init__(self, orders: Iterable[Order] = ()) -> None:
        self._orders = [replace(o, created_at=ensure_utc(o.created_at)) for o in orders]

    def add(self, order: Order) -> None:
        self._orders.append(replace(order, created_at=ensure_utc(order.created_at)))

    def _paid_between(self, start: datetime, end: datetime) -> list[Order]:
        start, end = ensure_utc(start), ensure_utc(end)
        return [o for o in self._orders if o.payment_status == "paid" and start <= o.created_at < end]

    def sum_revenue(self, start: datetime, end: datetime) -> float:
        return round(sum(o.amount for o in self._paid_between(start, end)), 2)

    def count_paid_orders(self, start: datetime, end: datetime) -> int:
        return len(self._paid_between(start, end))
