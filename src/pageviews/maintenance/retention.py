"""Archive-then-purge retention cycle for raw page views.

One run:
1. Capture the cutoff once (now - retention window)
2. Select raw events older than the cutoff
3. Aggregate them into daily summaries
4. Upsert the summaries (must succeed before anything is deleted)
5. Delete raw events older than the same cutoff
6. Report counts

Summaries are upserted by date, so a run that is retried after failing
between steps 4 and 5 recomputes and overwrites identical values.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from ..core.models import DailySummary, PageViewEvent, TrackedPaths
from ..core.time import ensure_utc, format_utc_iso8601, get_current_utc
from ..observability import get_logger, timing_context
from ..rollups.aggregator import aggregate_daily_summaries
from ..rollups.time_windows import BoundaryCalculator, get_default_calculator
from ..storage.base import EventStore, StoreUnavailableError

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

RETENTION_WINDOW = timedelta(days=3)

logger = get_logger("retention")


class RetentionError(Exception):
    """Base class for retention cycle failures.

    Attributes
    ----------
    step : str
        Step that failed (select, aggregate, upsert, delete)
    cutoff : datetime | None
        Cutoff used by the failed run
    """

    def __init__(self, message: str, *, step: str, cutoff: datetime | None = None) -> None:
        super().__init__(message)
        self.step = step
        self.cutoff = cutoff


class RetentionAbortedError(RetentionError):
    """The cycle stopped before deleting anything. Safe to retry."""

    pass


class RetentionDeadlineExceeded(RetentionAbortedError):
    """The run exceeded its deadline before the delete step."""

    pass


class ArchivedButNotDeletedError(RetentionError):
    """Summaries are durable but raw events were not deleted.

    Recoverable: the next run re-selects the same events, overwrites the
    same summaries and retries the delete.
    """

    pass


class OrderingViolationError(RetentionError):
    """A delete removed raw events that were not summarized."""

    pass


@dataclass(frozen=True)
class RetentionPolicy:
    """Retention configuration.

    Attributes
    ----------
    window : timedelta
        Age beyond which raw events are archived and purged (default: 3 days)
    align_to_local_day : bool
        Snap the cutoff back to the start of its local day, so a local day
        is always archived in a single run
    """

    window: timedelta = RETENTION_WINDOW
    align_to_local_day: bool = True

    def compute_cutoff(self, now: datetime, calculator: BoundaryCalculator | None = None) -> datetime:
        """Cutoff instant for a run started at ``now``."""
        cutoff = ensure_utc(now) - self.window
        if self.align_to_local_day:
            calculator = calculator or get_default_calculator()
            cutoff = calculator.local_day_boundaries(cutoff).start
        return cutoff


@dataclass
class RetentionCycleResult:
    """Outcome of one retention run.

    Attributes
    ----------
    cutoff : datetime
        Cutoff used for both select and delete
    records_archived : int
        Raw events selected and summarized
    records_deleted : int
        Raw events deleted
    summaries_updated : int
        Daily summaries upserted
    rerun : bool
        True when summaries for these dates already existed
    message : str
        Human-readable outcome
    """

    cutoff: datetime
    records_archived: int = 0
    records_deleted: int = 0
    summaries_updated: int = 0
    rerun: bool = False
    message: str = ""
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Admin-facing payload."""
        return {
            "success": self.success,
            "message": self.message,
            "recordsArchived": self.records_archived,
            "recordsDeleted": self.records_deleted,
            "summariesUpdated": self.summaries_updated,
            "cutoff": format_utc_iso8601(self.cutoff),
            "rerun": self.rerun,
        }


@dataclass
class RetentionStats:
    """Pre-cleanup preview.

    Attributes
    ----------
    current_record_count : int
        Raw events currently stored
    oldest_record_date : str | None
        Local date of the oldest raw event
    can_cleanup : bool
        Whether a run would archive anything
    records_to_cleanup : int
        Raw events older than the cutoff
    cutoff : datetime
        Cutoff a run started now would use
    """

    current_record_count: int
    oldest_record_date: str | None
    can_cleanup: bool
    records_to_cleanup: int
    cutoff: datetime

    def to_dict(self) -> dict[str, Any]:
        """Admin-facing payload."""
        return {
            "currentRecordCount": self.current_record_count,
            "oldestRecordDate": self.oldest_record_date or "N/A",
            "canCleanup": self.can_cleanup,
            "recordsToCleanup": self.records_to_cleanup,
            "cutoff": format_utc_iso8601(self.cutoff),
        }


class RetentionCycle:
    """Runs the archive-then-purge cycle against an event store.

    Parameters
    ----------
    store
        Event store holding raw events and summaries
    policy
        Retention window and cutoff alignment
    calculator
        Boundary calculator for local dates
    paths
        Tracked landing/checkout paths
    clock
        Returns the current UTC instant
    monotonic
        Monotonic seconds, used for the run deadline
    """

    def __init__(
        self,
        store: EventStore,
        *,
        policy: RetentionPolicy | None = None,
        calculator: BoundaryCalculator | None = None,
        paths: TrackedPaths | None = None,
        clock: Callable[[], datetime] = get_current_utc,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.policy = policy or RetentionPolicy()
        self.calculator = calculator or get_default_calculator()
        self.paths = paths or TrackedPaths()
        self.clock = clock
        self.monotonic = monotonic

    def compute_cutoff(self, now: datetime | None = None) -> datetime:
        """Cutoff shared by ``run`` and ``stats``."""
        return self.policy.compute_cutoff(now or self.clock(), self.calculator)

    def run(self, deadline: float | None = None) -> RetentionCycleResult:
        """Run one retention cycle.

        Parameters
        ----------
        deadline
            Maximum seconds the run may spend before starting the delete

        Returns
        -------
        RetentionCycleResult
            Counts for the run ("nothing to clean up" is a success)

        Raises
        ------
        RetentionAbortedError
            Select, aggregate or upsert failed, or the deadline passed; nothing deleted
        ArchivedButNotDeletedError
            Summaries were written but the delete failed
        OrderingViolationError
            Delete removed more events than were summarized
        """
        cutoff = self.compute_cutoff()
        started = self.monotonic()

        logger.info("Starting analytics cleanup", cutoff=format_utc_iso8601(cutoff))

        with timing_context("retention_cycle", component="retention") as ctx:
            events = self._select(cutoff)

            if not events:
                logger.info("No records to archive. Cleanup process not needed.")
                ctx["records_archived"] = 0
                return RetentionCycleResult(cutoff=cutoff, message="No records needed cleanup.")

            self._check_deadline(started, deadline, "select", cutoff)

            summaries = self._aggregate(events, cutoff)
            self._check_deadline(started, deadline, "aggregate", cutoff)

            rerun = self._upsert(summaries, cutoff)
            self._check_deadline(started, deadline, "upsert", cutoff)

            deleted = self._delete(cutoff, selected=len(events))

            ctx.update(records_archived=len(events), records_deleted=deleted, summaries_updated=len(summaries))

        return RetentionCycleResult(
            cutoff=cutoff,
            records_archived=len(events),
            records_deleted=deleted,
            summaries_updated=len(summaries),
            rerun=rerun,
            message=f"Cleanup successful. Archived {len(events)} and deleted {deleted} records.",
        )

    def stats(self) -> RetentionStats:
        """Preview what a run started now would archive.

        Raises
        ------
        StoreUnavailableError
            If the store cannot be read
        """
        cutoff = self.compute_cutoff()

        total = self.store.count_events()
        oldest = self.store.oldest_event_timestamp()

        to_cleanup = 0
        if oldest is not None and ensure_utc(oldest) < cutoff:
            to_cleanup = self.store.count_events(before=cutoff)

        stats = RetentionStats(
            current_record_count=total,
            oldest_record_date=self.calculator.local_date_string(oldest) if oldest else None,
            can_cleanup=to_cleanup > 0,
            records_to_cleanup=to_cleanup,
            cutoff=cutoff,
        )
        logger.info("Fetched analytics retention stats", **stats.to_dict())
        return stats

    def _select(self, cutoff: datetime) -> list[PageViewEvent]:
        try:
            return self.store.select_events_before(cutoff)
        except StoreUnavailableError as exc:
            logger.error("Error fetching records to archive", error=str(exc))
            raise RetentionAbortedError(
                f"Store unavailable while selecting records: {exc}", step="select", cutoff=cutoff
            ) from exc

    def _aggregate(self, events: list[PageViewEvent], cutoff: datetime) -> list[DailySummary]:
        try:
            return aggregate_daily_summaries(events, paths=self.paths, calculator=self.calculator)
        except Exception as exc:
            logger.error("Error aggregating records", error=str(exc))
            raise RetentionAbortedError(f"Aggregation failed: {exc}", step="aggregate", cutoff=cutoff) from exc

    def _upsert(self, summaries: list[DailySummary], cutoff: datetime) -> bool:
        """Write summaries; returns True when some dates were already archived."""
        rerun = False
        try:
            if summaries:
                existing = self.store.get_daily_summaries(summaries[0].date, summaries[-1].date)
                computed = {s.date for s in summaries}
                rerun = any(s.date in computed for s in existing)

            self.store.upsert_daily_summaries(summaries)
        except StoreUnavailableError as exc:
            logger.error("Error upserting daily summaries", error=str(exc))
            raise RetentionAbortedError(
                f"Store unavailable while upserting summaries: {exc}", step="upsert", cutoff=cutoff
            ) from exc

        if rerun:
            logger.info(
                "Re-run over already archived dates; summaries overwritten with recomputed values",
                dates=[s.date for s in summaries],
            )

        logger.info("Successfully upserted daily summaries", count=len(summaries))
        return rerun

    def _delete(self, cutoff: datetime, *, selected: int) -> int:
        try:
            deleted = self.store.delete_events_before(cutoff)
        except StoreUnavailableError as exc:
            logger.error(
                "Summaries archived but raw page views not deleted; the next run will re-archive and retry",
                cutoff=format_utc_iso8601(cutoff),
                error=str(exc),
            )
            raise ArchivedButNotDeletedError(
                f"Archived but failed to delete records: {exc}", step="delete", cutoff=cutoff
            ) from exc

        if deleted > selected:
            logger.critical(
                "Deleted more raw page views than were summarized; data was lost",
                selected=selected,
                deleted=deleted,
                cutoff=format_utc_iso8601(cutoff),
            )
            raise OrderingViolationError(
                f"Deleted {deleted} records but only {selected} were summarized", step="delete", cutoff=cutoff
            )

        logger.info("Successfully deleted archived page_views records", count=deleted)
        return deleted

    def _check_deadline(self, started: float, deadline: float | None, step: str, cutoff: datetime) -> None:
        if deadline is None:
            return
        elapsed = self.monotonic() - started
        if elapsed > deadline:
            logger.warning("Retention deadline exceeded; nothing deleted", step=step, elapsed_s=round(elapsed, 3))
            raise RetentionDeadlineExceeded(
                f"Deadline of {deadline}s exceeded after {step}", step=step, cutoff=cutoff
            )


def run_retention_cycle(store: EventStore, *, deadline: float | None = None, **kwargs: Any) -> RetentionCycleResult:
    """Run one retention cycle. Keyword arguments go to RetentionCycle."""
    return RetentionCycle(store, **kwargs).run(deadline=deadline)


def get_retention_stats(store: EventStore, **kwargs: Any) -> RetentionStats:
    """Preview a retention cycle. Keyword arguments go to RetentionCycle."""
    return RetentionCycle(store, **kwargs).stats()
