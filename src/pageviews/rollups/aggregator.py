"""Daily page-view aggregation.

Group raw page views by local business day into unique-visitor and
total-visit counts for the landing and checkout pages.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import TYPE_CHECKING

from ..core.models import DailySummary, PageViewEvent, TrackedPaths
from ..core.time import parse_utc_iso8601
from ..observability import get_logger
from .time_windows import get_default_calculator

if TYPE_CHECKING:
    from .time_windows import BoundaryCalculator

__all__ = [
    "DailyBucket",
    "aggregate_daily_summaries",
    "conversion_rate",
]

logger = get_logger("aggregator")


def conversion_rate(numerator: int | float, denominator: int | float) -> float:
    """Percentage ``numerator / denominator * 100`` rounded to 2 decimals.

    Returns 0.0 when the denominator is zero.

    Example
    -------
    >>> conversion_rate(1, 3)
    33.33
    >>> conversion_rate(5, 0)
    0.0
    """
    if not denominator:
        return 0.0
    return round(numerator / denominator * 100, 2)


class DailyBucket:
    """Visit counters and visitor sets for one local day.

    Attributes
    ----------
    date : str
        Local date (YYYY-MM-DD)
    landing_total_visits : int
    checkout_total_visits : int
    landing_visitors : set
    checkout_visitors : set
    """

    def __init__(self, date: str) -> None:
        self.date = date
        self.landing_total_visits = 0
        self.checkout_total_visits = 0
        self.landing_visitors: set[str] = set()
        self.checkout_visitors: set[str] = set()

    def add_landing(self, visitor_id: str) -> None:
        self.landing_total_visits += 1
        self.landing_visitors.add(visitor_id)

    def add_checkout(self, visitor_id: str) -> None:
        self.checkout_total_visits += 1
        self.checkout_visitors.add(visitor_id)

    def to_summary(self) -> DailySummary:
        """Collapse visitor sets into counts."""
        landing_unique = len(self.landing_visitors)
        checkout_unique = len(self.checkout_visitors)
        return DailySummary(
            date=self.date,
            landing_total_visits=self.landing_total_visits,
            landing_unique_visitors=landing_unique,
            checkout_total_visits=self.checkout_total_visits,
            checkout_unique_visitors=checkout_unique,
            conversion_rate=conversion_rate(checkout_unique, landing_unique),
        )


def _event_instant(event: PageViewEvent) -> datetime | None:
    created_at = event.created_at
    if isinstance(created_at, datetime):
        return created_at
    try:
        return parse_utc_iso8601(created_at)
    except ValueError:
        return None


def aggregate_daily_summaries(
    events: Iterable[PageViewEvent],
    *,
    paths: TrackedPaths | None = None,
    calculator: BoundaryCalculator | None = None,
) -> list[DailySummary]:
    """Aggregate raw page views into per-day summaries.

    The result depends only on the events given, so aggregating the same
    events twice yields identical summaries.

    Parameters
    ----------
    events
        Raw page views (any order)
    paths
        Tracked landing/checkout paths
    calculator
        Boundary calculator used to derive local dates

    Returns
    -------
    list[DailySummary]
        One summary per local date that saw tracked traffic, sorted by date
    """
    paths = paths or TrackedPaths()
    calculator = calculator or get_default_calculator()

    buckets: dict[str, DailyBucket] = {}
    untracked = 0
    unparseable = 0

    for event in events:
        if event.page_path == paths.landing:
            add = DailyBucket.add_landing
        elif event.page_path == paths.checkout:
            add = DailyBucket.add_checkout
        else:
            untracked += 1
            continue

        instant = _event_instant(event)
        if instant is None:
            unparseable += 1
            continue

        day = calculator.local_date_string(instant)
        bucket = buckets.get(day)
        if bucket is None:
            bucket = buckets[day] = DailyBucket(day)
        add(bucket, event.visitor_id)

    if untracked:
        logger.warning("Ignored page views with untracked paths", count=untracked)
    if unparseable:
        logger.warning("Skipped page views with unparseable timestamps", count=unparseable)

    return [buckets[day].to_summary() for day in sorted(buckets)]
