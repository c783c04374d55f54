"""Local-day boundaries and daily rollups."""

from .aggregator import DailyBucket, aggregate_daily_summaries, conversion_rate
from .time_windows import (
    BOUNDARY_CACHE_TTL,
    LOCAL_TZ,
    LOCAL_UTC_OFFSET_HOURS,
    BoundaryCache,
    BoundaryCalculator,
    Boundaries,
    get_default_calculator,
    local_date_range,
    local_date_string,
    local_dates_between,
    local_day_boundaries,
    local_month_boundaries,
)

__all__ = [
    # Time windows
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
    # Aggregation
    "DailyBucket",
    "aggregate_daily_summaries",
    "conversion_rate",
]
