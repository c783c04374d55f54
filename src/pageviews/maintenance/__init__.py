"""Retention of raw page views."""

from .retention import (
    RETENTION_WINDOW,
    ArchivedButNotDeletedError,
    OrderingViolationError,
    RetentionAbortedError,
    RetentionCycle,
    RetentionCycleResult,
    RetentionDeadlineExceeded,
    RetentionError,
    RetentionPolicy,
    RetentionStats,
    get_retention_stats,
    run_retention_cycle,
)

__all__ = [
    "RETENTION_WINDOW",
    "ArchivedButNotDeletedError",
    "OrderingViolationError",
    "RetentionAbortedError",
    "RetentionCycle",
    "RetentionCycleResult",
    "RetentionDeadlineExceeded",
    "RetentionError",
    "RetentionPolicy",
    "RetentionStats",
    "get_retention_stats",
    "run_retention_cycle",
]
