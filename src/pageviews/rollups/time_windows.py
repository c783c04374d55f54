"""Local day and month boundaries for the fixed UTC+8 business timezone.

Compute UTC boundaries from local calendar windows (day, month, N-day range)
independently of the host process timezone, with a short-lived cache of
computed boundaries.
"""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Callable

import pytz

from ..core.time import ensure_utc, format_utc_millis, get_current_utc, parse_utc_iso8601
from ..observability import get_logger

__all__ = [
    "BOUNDARY_CACHE_TTL",
    "LOCAL_TZ",
    "LOCAL_UTC_OFFSET_HOURS",
    "BoundaryCache",
    "BoundaryCalculator",
    "Boundaries",
    "get_default_calculator",
    "local_date_range",
    "local_date_string",
    "local_dates_between",
    "local_day_boundaries",
    "local_month_boundaries",
]

LOCAL_UTC_OFFSET_HOURS = 8
LOCAL_TZ = pytz.FixedOffset(LOCAL_UTC_OFFSET_HOURS * 60)

BOUNDARY_CACHE_TTL = timedelta(minutes=5)

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")

logger = get_logger("time_windows")


@dataclass(frozen=True)
class Boundaries:
    """UTC instants delimiting a local window.

    Attributes
    ----------
    start : datetime
        Window start in UTC (inclusive)
    end : datetime
        Window end in UTC
    end_exclusive : bool
        Day windows end at 23:59:59.999 local and include ``end``;
        month windows end at next month's midnight and exclude it
    """

    start: datetime
    end: datetime
    end_exclusive: bool = False

    def contains(self, instant: datetime) -> bool:
        """Check whether ``instant`` falls inside the window."""
        instant = ensure_utc(instant)
        if self.end_exclusive:
            return self.start <= instant < self.end
        return self.start <= instant <= self.end

    def to_dict(self) -> dict[str, str]:
        """Convert to ``{"start": ..., "end": ...}`` millisecond strings."""
        return {"start": format_utc_millis(self.start), "end": format_utc_millis(self.end)}


class BoundaryCache:
    """TTL cache of computed boundaries.

    Entries older than ``ttl`` are never returned. The cache only saves
    recomputation: a miss always recomputes the identical value.

    Parameters
    ----------
    ttl
        Entry lifetime (default: 5 minutes)
    clock
        Monotonic clock in seconds (injectable for tests)
    """

    def __init__(
        self,
        ttl: timedelta = BOUNDARY_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl.total_seconds()
        self._clock = clock
        self._entries: dict[str, tuple[Boundaries, float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def get(self, key: str) -> Boundaries | None:
        """Return a fresh entry for ``key`` or None (stale entries are evicted)."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None

            value, written_at = entry
            if self._clock() - written_at >= self.ttl_seconds:
                del self._entries[key]
                return None

            return value

    def set(self, key: str, value: Boundaries) -> None:
        """Store ``value`` under ``key`` with the current timestamp."""
        now = self._clock()
        with self._lock:
            self._entries[key] = (value, now)

        if now - self._last_sweep >= self.ttl_seconds:
            self.sweep()

    def sweep(self) -> int:
        """Evict every stale entry.

        Returns
        -------
        int
            Number of entries evicted
        """
        now = self._clock()
        with self._lock:
            stale = [k for k, (_, written_at) in self._entries.items() if now - written_at >= self.ttl_seconds]
            for key in stale:
                del self._entries[key]
            self._last_sweep = now

        return len(stale)

    def clear(self) -> None:
        """Drop all entries."""
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class BoundaryCalculator:
    """Maps instants and calendar dates to local-window UTC boundaries.

    Parameters
    ----------
    cache
        Boundary cache (default: a new 5-minute cache)
    now
        Clock returning the current UTC instant; used for missing or
        unparseable input
    """

    def __init__(
        self,
        cache: BoundaryCache | None = None,
        now: Callable[[], datetime] = get_current_utc,
    ) -> None:
        self.cache = cache if cache is not None else BoundaryCache()
        self.now = now

    def resolve_local_date(self, value: Any = None, *, caller: str = "resolve_local_date") -> date:
        """Resolve ``value`` to a local calendar date.

        Accepts aware or naive datetimes (naive = UTC), ISO instant strings,
        ``date`` objects and ``YYYY-MM-DD`` strings (taken as local dates).
        Never raises: invalid input logs a warning and resolves to today.
        """
        if value is None:
            return self._to_local_date(self.now())

        try:
            if isinstance(value, datetime):
                return self._to_local_date(value)
            if isinstance(value, date):
                return value
            if isinstance(value, str):
                text = value.strip()
                if _DATE_ONLY.match(text):
                    return date.fromisoformat(text)
                return self._to_local_date(parse_utc_iso8601(text))
        except (ValueError, OverflowError) as exc:
            logger.warning(f"{caller}: invalid date input, using current date", value=repr(value), error=str(exc))
            return self._to_local_date(self.now())

        logger.warning(f"{caller}: unsupported date type, using current date", value_type=type(value).__name__)
        return self._to_local_date(self.now())

    def local_date_string(self, value: Any = None) -> str:
        """Local calendar date (YYYY-MM-DD) of an instant."""
        return self.resolve_local_date(value, caller="local_date_string").isoformat()

    def local_day_boundaries(self, value: Any = None) -> Boundaries:
        """Compute UTC boundaries for a local day.

        ``start`` is local midnight and ``end`` is 23:59:59.999 local time
        (inclusive), both expressed in UTC.

        Examples
        --------
        >>> calc = BoundaryCalculator()
        >>> calc.local_day_boundaries("2024-03-02").to_dict()
        {'start': '2024-03-01T16:00:00.000Z', 'end': '2024-03-02T15:59:59.999Z'}
        """
        local_date = self.resolve_local_date(value, caller="local_day_boundaries")
        key = f"day:{local_date.isoformat()}"

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            result = _day_boundaries(local_date)
        except (ValueError, OverflowError) as exc:
            logger.warning(
                "local_day_boundaries: date out of range, using current date",
                local_date=local_date.isoformat(),
                error=str(exc),
            )
            return self.local_day_boundaries(self.now())

        self.cache.set(key, result)
        return result

    def local_month_boundaries(self, value: Any = None) -> Boundaries:
        """Compute UTC boundaries for a local month.

        Half-open: ``start`` is the first of the month at local midnight,
        ``end`` is the first of the next month at local midnight (exclusive).
        """
        local_date = self.resolve_local_date(value, caller="local_month_boundaries")
        key = f"month:{local_date.year:04d}-{local_date.month:02d}"

        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            result = _month_boundaries(local_date)
        except (ValueError, OverflowError) as exc:
            logger.warning(
                "local_month_boundaries: date out of range, using current date",
                local_date=local_date.isoformat(),
                error=str(exc),
            )
            return self.local_month_boundaries(self.now())

        self.cache.set(key, result)
        return result

    def local_date_range(self, days: int = 7, from_instant: Any = None) -> Boundaries:
        """Boundaries covering the last ``days`` local days ending at ``from_instant``.

        Parameters
        ----------
        days
            Number of local days, including the day of ``from_instant``
        from_instant
            Reference instant or date (default: now)
        """
        if days < 1:
            logger.warning("local_date_range: days must be >= 1, using 1", days=days)
            days = 1

        last_day = self.resolve_local_date(from_instant, caller="local_date_range")
        try:
            first_day = last_day - timedelta(days=days - 1)
        except OverflowError:
            logger.warning("local_date_range: range starts before year 1, using one day", days=days)
            first_day = last_day

        return Boundaries(
            start=self.local_day_boundaries(first_day).start,
            end=self.local_day_boundaries(last_day).end,
            end_exclusive=False,
        )

    @staticmethod
    def _to_local_date(instant: datetime) -> date:
        return ensure_utc(instant).astimezone(LOCAL_TZ).date()


def _local_to_utc(local_naive: datetime) -> datetime:
    return ensure_utc(LOCAL_TZ.localize(local_naive))


def _day_boundaries(local_date: date) -> Boundaries:
    y, m, d = local_date.year, local_date.month, local_date.day
    return Boundaries(
        start=_local_to_utc(datetime(y, m, d, 0, 0, 0)),
        end=_local_to_utc(datetime(y, m, d, 23, 59, 59, 999000)),
        end_exclusive=False,
    )


def _month_boundaries(local_date: date) -> Boundaries:
    # Raises ValueError for December 9999 and OverflowError for January 0001
    if local_date.month == 12:
        next_year, next_month = local_date.year + 1, 1
    else:
        next_year, next_month = local_date.year, local_date.month + 1

    return Boundaries(
        start=_local_to_utc(datetime(local_date.year, local_date.month, 1)),
        end=_local_to_utc(datetime(next_year, next_month, 1)),
        end_exclusive=True,
    )


def local_dates_between(first: date | str, last: date | str) -> list[str]:
    """Inclusive list of local date strings from ``first`` to ``last``."""
    if isinstance(first, str):
        first = date.fromisoformat(first)
    if isinstance(last, str):
        last = date.fromisoformat(last)

    dates = []
    current = first
    while current <= last:
        dates.append(current.isoformat())
        current += timedelta(days=1)
    return dates


_default_calculator = BoundaryCalculator()


def get_default_calculator() -> BoundaryCalculator:
    """Process-wide calculator shared by the module-level helpers."""
    return _default_calculator


def local_date_string(value: Any = None) -> str:
    """Local calendar date (YYYY-MM-DD) of an instant. See BoundaryCalculator."""
    return _default_calculator.local_date_string(value)


def local_day_boundaries(value: Any = None) -> Boundaries:
    """UTC boundaries of a local day. See BoundaryCalculator."""
    return _default_calculator.local_day_boundaries(value)


def local_month_boundaries(value: Any = None) -> Boundaries:
    """UTC boundaries of a local month. See BoundaryCalculator."""
    return _default_calculator.local_month_boundaries(value)


def local_date_range(days: int = 7, from_instant: Any = None) -> Boundaries:
    """UTC boundaries of the last ``days`` local days. See BoundaryCalculator."""
    return _default_calculator.local_date_range(days, from_instant)
