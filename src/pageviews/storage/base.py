"""Store contracts consumed by the rollup engine.

Two collaborators:
- EventStore: raw page views (ingest-only, time-ordered) and daily summaries
  (keyed by local date, upserted)
- OrderStore: paid orders, read for revenue metrics

Every read or write failure surfaces as StoreUnavailableError.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from ..core.models import DailySummary, PageViewEvent

__all__ = [
    "EventStore",
    "OrderStore",
    "StoreUnavailableError",
]


class StoreUnavailableError(Exception):
    """Raised when a store cannot be read or written."""

    pass


class EventStore(ABC):
    """Raw page-view events and daily summaries."""

    @abstractmethod
    def insert_event(self, event: PageViewEvent) -> None:
        """Append one raw page view."""

    @abstractmethod
    def select_events_before(self, cutoff: datetime) -> list[PageViewEvent]:
        """Return every event with ``created_at < cutoff``."""

    @abstractmethod
    def select_events_between(
        self,
        start: datetime,
        end: datetime,
        *,
        end_exclusive: bool = False,
    ) -> list[PageViewEvent]:
        """Return events with ``start <= created_at <= end`` (``< end`` when exclusive)."""

    @abstractmethod
    def delete_events_before(self, cutoff: datetime) -> int:
        """Delete every event with ``created_at < cutoff`` in one operation.

        The predicate is the same as ``select_events_before``; callers must
        pass the cutoff they selected with, never a recomputed one.

        Returns
        -------
        int
            Number of events deleted
        """

    @abstractmethod
    def upsert_daily_summaries(self, summaries: Iterable[DailySummary]) -> None:
        """Insert or overwrite summaries keyed by date, all or nothing."""

    @abstractmethod
    def get_daily_summaries(self, first_date: str, last_date: str) -> list[DailySummary]:
        """Summaries with ``first_date <= date <= last_date``, sorted by date."""

    @abstractmethod
    def count_events(self, before: datetime | None = None) -> int:
        """Count raw events, optionally only those with ``created_at < before``."""

    @abstractmethod
    def oldest_event_timestamp(self) -> datetime | None:
        """``created_at`` of the oldest raw event, or None when empty."""


class OrderStore(ABC):
    """Paid orders, read over half-open ``[start, end)`` intervals."""

    @abstractmethod
    def sum_revenue(self, start: datetime, end: datetime) -> float:
        """Total amount of paid orders created in ``[start, end)``."""

    @abstractmethod
    def count_paid_orders(self, start: datetime, end: datetime) -> int:
        """Number of paid orders created in ``[start, end)``."""
