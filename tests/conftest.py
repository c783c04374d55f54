"""Shared fixtures: virtual clocks, stores, and a loguru capture sink."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from loguru import logger

from pageviews.core.models import PageViewEvent
from pageviews.rollups.time_windows import BoundaryCache, BoundaryCalculator
from pageviews.storage.memory import InMemoryEventStore, InMemoryOrderStore

# 2024-03-10 12:00 local (UTC+8)
FIXED_NOW = datetime(2024, 3, 10, 4, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Wall clock returning a settable UTC instant."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


class FakeMonotonic:
    """Monotonic clock in seconds that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


def visitor(n: int) -> str:
    """A well-formed visitor id."""
    return f"v_{1709337600000 + n}_abcd{n:04d}"


@pytest.fixture
def vid():
    """Visitor id factory: ``vid(3)``."""
    return visitor


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def monotonic() -> FakeMonotonic:
    return FakeMonotonic()


@pytest.fixture
def calculator(clock, monotonic) -> BoundaryCalculator:
    return BoundaryCalculator(cache=BoundaryCache(clock=monotonic), now=clock)


@pytest.fixture
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def order_store() -> InMemoryOrderStore:
    return InMemoryOrderStore()


@pytest.fixture
def make_event():
    """Factory for page views: ``make_event("/", 1, "2024-03-01T10:00:00Z")``."""

    def _make(page_path: str, visitor_n: int, created_at: datetime | str) -> PageViewEvent:
        return PageViewEvent(page_path=page_path, visitor_id=visitor(visitor_n), created_at=created_at)

    return _make


@pytest.fixture
def log_records():
    """Capture loguru records emitted during the test."""
    records: list[dict] = []
    handler_id = logger.add(lambda message: records.append(message.record), level="DEBUG", format="{message}")
    yield records
    logger.remove(handler_id)
