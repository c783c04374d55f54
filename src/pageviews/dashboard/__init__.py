"""Dashboard metrics reader."""

from .metrics import (
    DashboardMetrics,
    DataUnavailableError,
    MonthComparison,
    percentage_change,
    summary_payload,
)

__all__ = [
    "DashboardMetrics",
    "DataUnavailableError",
    "MonthComparison",
    "percentage_change",
    "summary_payload",
]
