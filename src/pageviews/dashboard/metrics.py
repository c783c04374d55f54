"""Dashboard metrics read from live page views, archived summaries and orders.

Days still inside the retention window are aggregated on the fly from raw
events with the same aggregator the retention cycle uses; older days are
read from the archived daily summaries, or from their raw events while no
summary exists for them yet.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable, Literal

from ..core.models import DailySummary, TrackedPaths
from ..core.time import ensure_utc, get_current_utc
from ..maintenance.retention import RetentionPolicy
from ..observability import get_logger
from ..rollups.aggregator import aggregate_daily_summaries, conversion_rate
from ..rollups.time_windows import (
    LOCAL_TZ,
    BoundaryCalculator,
    Boundaries,
    get_default_calculator,
    local_dates_between,
)
from ..storage.base import EventStore, OrderStore, StoreUnavailableError

__all__ = [
    "DashboardMetrics",
    "DataUnavailableError",
    "MonthComparison",
    "percentage_change",
    "summary_payload",
]

logger = get_logger("dashboard")

Metric = Literal["revenue", "visits"]


class DataUnavailableError(Exception):
    """Raised when dashboard data cannot be read.

    Callers decide how to degrade; the reader never substitutes zeros.
    """

    pass


def percentage_change(current: int | float, previous: int | float) -> float:
    """Percentage delta from ``previous`` to ``current``, 2 decimals.

    Returns 0.0 when ``previous`` is zero.

    Example
    -------
    >>> percentage_change(150, 100)
    50.0
    >>> percentage_change(10, 0)
    0.0
    """
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


def summary_payload(summary: DailySummary) -> dict[str, Any]:
    """Dashboard form of a daily summary."""
    return {
        "date": summary.date,
        "landingVisits": summary.landing_total_visits,
        "landingUniqueVisitors": summary.landing_unique_visitors,
        "checkoutVisits": summary.checkout_total_visits,
        "checkoutUniqueVisitors": summary.checkout_unique_visitors,
        "conversionRate": summary.conversion_rate,
    }


@dataclass(frozen=True)
class MonthComparison:
    """Current vs previous local month for one metric."""

    metric: str
    current: float
    previous: float
    percentage_change: float
    month_label: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "currentMonth": self.current,
            "previousMonth": self.previous,
            "percentageChange": self.percentage_change,
            "monthName": self.month_label,
        }


class DashboardMetrics:
    """Read-side metrics for the admin dashboard.

    Parameters
    ----------
    events
        Event store with raw events and archived summaries
    orders
        Order store for revenue metrics (optional)
    calculator
        Boundary calculator for local days and months
    policy
        Retention policy deciding which days are archived
    paths
        Tracked landing/checkout paths
    clock
        Returns the current UTC instant
    """

    def __init__(
        self,
        events: EventStore,
        orders: OrderStore | None = None,
        *,
        calculator: BoundaryCalculator | None = None,
        policy: RetentionPolicy | None = None,
        paths: TrackedPaths | None = None,
        clock: Callable[[], datetime] = get_current_utc,
    ) -> None:
        self.events = events
        self.orders = orders
        self.calculator = calculator or get_default_calculator()
        self.policy = policy or RetentionPolicy()
        self.paths = paths or TrackedPaths()
        self.clock = clock

    @contextmanager
    def _reading(self, what: str) -> Iterator[None]:
        try:
            yield
        except StoreUnavailableError as exc:
            logger.error("Dashboard data unavailable", query=what, error=str(exc))
            raise DataUnavailableError(f"{what} unavailable: {exc}") from exc

    def _require_orders(self) -> OrderStore:
        if self.orders is None:
            raise DataUnavailableError("Order store is not configured")
        return self.orders

    def _today(self) -> date:
        return self.calculator.resolve_local_date(self.clock())

    def _aggregate(self, events) -> dict[str, DailySummary]:
        return {
            s.date: s for s in aggregate_daily_summaries(events, paths=self.paths, calculator=self.calculator)
        }

    def _events_on_days(self, first: str, last: str) -> list:
        # Half-open up to the next local midnight so sub-millisecond instants
        # after the inclusive day end are still counted
        start = self.calculator.local_day_boundaries(first).start
        end = self.calculator.local_day_boundaries(date.fromisoformat(last) + timedelta(days=1)).start
        return self.events.select_events_between(start, end, end_exclusive=True)

    def today_traffic(self) -> DailySummary:
        """Today's traffic, always computed live from raw events."""
        day = self._today().isoformat()

        with self._reading("today's traffic"):
            events = self._events_on_days(day, day)

        return self._aggregate(events).get(day, DailySummary.empty(day))

    def daily_series(self, first_date: date | str, last_date: date | str) -> list[DailySummary]:
        """One summary per local day from ``first_date`` to ``last_date``.

        Days that ended before the retention cutoff come from archived
        summaries; the rest are aggregated from raw events. A past-cutoff
        day with no summary yet (no retention run has archived it) is also
        aggregated from whatever raw events remain for it.
        """
        dates = local_dates_between(first_date, last_date)
        if not dates:
            return []

        cutoff = self.policy.compute_cutoff(self.clock(), self.calculator)
        archived_dates = [d for d in dates if self.calculator.local_day_boundaries(d).end < cutoff]
        live_dates = dates[len(archived_dates):]

        archived: dict[str, DailySummary] = {}
        live: dict[str, DailySummary] = {}

        with self._reading("daily traffic"):
            if archived_dates:
                archived = {
                    s.date: s for s in self.events.get_daily_summaries(archived_dates[0], archived_dates[-1])
                }
                unarchived = [d for d in archived_dates if d not in archived]
                if unarchived:
                    pending = self._aggregate(self._events_on_days(unarchived[0], unarchived[-1]))
                    archived.update((d, pending[d]) for d in unarchived if d in pending)
            if live_dates:
                live = self._aggregate(self._events_on_days(live_dates[0], live_dates[-1]))

        series = []
        for d in dates:
            source = archived if d in archived_dates else live
            series.append(source.get(d, DailySummary.empty(d)))
        return series

    def last_n_days(self, days: int = 7) -> list[DailySummary]:
        """Daily summaries for the last ``days`` local days, oldest first."""
        days = max(days, 1)
        today = self._today()
        return self.daily_series(today - timedelta(days=days - 1), today)

    def week_over_week_growth(self, metric: Literal["visitors", "visits"] = "visitors") -> float:
        """Percentage change of the last 7 local days against the 7 before.

        ``visitors`` sums daily landing unique visitors, ``visits`` sums
        landing total visits.
        """
        field = "landing_unique_visitors" if metric == "visitors" else "landing_total_visits"
        series = self.last_n_days(14)
        previous = sum(getattr(s, field) for s in series[:7])
        current = sum(getattr(s, field) for s in series[7:])
        return percentage_change(current, previous)

    def today_conversion_rate(self) -> float:
        """Checkout over landing unique visitors for today."""
        return self.today_traffic().conversion_rate

    def sales_conversion_rate_today(self) -> float:
        """Paid orders today over today's landing unique visitors."""
        orders = self._require_orders()
        today = self._today()
        start = self.calculator.local_day_boundaries(today).start
        end = self.calculator.local_day_boundaries(today + timedelta(days=1)).start

        with self._reading("today's orders"):
            paid = orders.count_paid_orders(start, end)

        return conversion_rate(paid, self.today_traffic().landing_unique_visitors)

    def monthly_comparison(self, metric: Metric = "revenue") -> MonthComparison:
        """Current local month against the previous one.

        Parameters
        ----------
        metric
            ``revenue`` (paid order amounts) or ``visits`` (landing total visits)
        """
        now = self.clock()
        current = self.calculator.local_month_boundaries(now)
        previous = self.calculator.local_month_boundaries(current.start - timedelta(milliseconds=1))

        if metric == "revenue":
            orders = self._require_orders()
            with self._reading("monthly revenue"):
                current_value = orders.sum_revenue(current.start, current.end)
                previous_value = orders.sum_revenue(previous.start, previous.end)
        elif metric == "visits":
            current_value = self._visits_in(current)
            previous_value = self._visits_in(previous)
        else:
            raise ValueError(f"Unknown metric: {metric}")

        return MonthComparison(
            metric=metric,
            current=current_value,
            previous=previous_value,
            percentage_change=percentage_change(current_value, previous_value),
            month_label=ensure_utc(now).astimezone(LOCAL_TZ).strftime("%B %Y"),
        )

    def _visits_in(self, month: Boundaries) -> int:
        first = self.calculator.resolve_local_date(month.start)
        last = min(
            self.calculator.resolve_local_date(month.end - timedelta(milliseconds=1)),
            self._today(),
        )
        if first > last:
            return 0
        return sum(s.landing_total_visits for s in self.daily_series(first, last))

    def daily_revenue_chart(self, days: int = 7) -> list[dict[str, Any]]:
        """Paid revenue per local day for the last ``days`` days, oldest first."""
        orders = self._require_orders()
        days = max(days, 1)
        today = self._today()

        chart = []
        with self._reading("daily revenue"):
            for offset in range(days - 1, -1, -1):
                day = today - timedelta(days=offset)
                start = self.calculator.local_day_boundaries(day).start
                end = self.calculator.local_day_boundaries(day + timedelta(days=1)).start
                chart.append(
                    {
                        "date": day.isoformat(),
                        "day": day.strftime("%a"),
                        "revenue": orders.sum_revenue(start, end),
                        "isToday": day == today,
                    }
                )
        return chart

    def snapshot(self, days: int = 7) -> dict[str, Any]:
        """Everything the dashboard shows, in one payload."""
        today = self.today_traffic()
        data: dict[str, Any] = {
            "date": today.date,
            "pageViews": {
                "today": summary_payload(today),
                "trends": [summary_payload(s) for s in self.last_n_days(days)],
            },
            "weeklyGrowth": self.week_over_week_growth(),
            "monthlyVisitComparison": self.monthly_comparison("visits").to_dict(),
        }

        if self.orders is not None:
            data["monthlyRevenueComparison"] = self.monthly_comparison("revenue").to_dict()
            data["dailyRevenueChart"] = self.daily_revenue_chart(days)
            data["salesConversionRate"] = self.sales_conversion_rate_today()

        logger.debug("Dashboard snapshot built", date=today.date)
        return data
