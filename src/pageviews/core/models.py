"""Page-view data model and ingestion validation.

Raw events are immutable once written. Daily summaries are keyed by the
local (UTC+8) business date and are always written whole.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Mapping

from .time import get_current_utc

__all__ = [
    "VISITOR_ID_PATTERN",
    "DailySummary",
    "PageViewEvent",
    "TrackedPaths",
    "ValidationError",
    "new_page_view",
    "validate_page_view",
]

# Timestamp-prefixed random suffix, e.g. v_1709337600000_a1B2c3D4
VISITOR_ID_PATTERN = re.compile(r"^v_\d{13}_[a-zA-Z0-9]{8}$")


class ValidationError(Exception):
    """Raised when a page view fails ingestion validation."""

    pass


@dataclass(frozen=True)
class TrackedPaths:
    """The closed set of tracked page paths.

    Attributes
    ----------
    landing : str
        Landing page path
    checkout : str
        Checkout page path
    """

    landing: str = "/"
    checkout: str = "/checkout"

    def __contains__(self, page_path: object) -> bool:
        return page_path in (self.landing, self.checkout)


@dataclass(frozen=True)
class PageViewEvent:
    """A single raw page view.

    Attributes
    ----------
    page_path : str
        One of the tracked paths
    visitor_id : str
        Opaque browsing-session identifier
    created_at : datetime | str
        UTC instant assigned at write time (stores may hand back ISO text)
    """

    page_path: str
    visitor_id: str
    created_at: datetime | str


@dataclass(frozen=True)
class DailySummary:
    """Per local-day traffic summary.

    Attributes
    ----------
    date : str
        Local business date (YYYY-MM-DD), the upsert key
    landing_total_visits : int
    landing_unique_visitors : int
    checkout_total_visits : int
    checkout_unique_visitors : int
    conversion_rate : float
        checkout_unique_visitors / landing_unique_visitors * 100, 2 decimals
    """

    date: str
    landing_total_visits: int = 0
    landing_unique_visitors: int = 0
    checkout_total_visits: int = 0
    checkout_unique_visitors: int = 0
    conversion_rate: float = 0.0

    @classmethod
    def empty(cls, date: str) -> DailySummary:
        """Summary for a day with no recorded traffic."""
        return cls(date=date)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> DailySummary:
        """Build a summary from a persisted row."""
        return cls(
            date=str(row["date"]),
            landing_total_visits=int(row["landing_total_visits"] or 0),
            landing_unique_visitors=int(row["landing_unique_visitors"] or 0),
            checkout_total_visits=int(row["checkout_total_visits"] or 0),
            checkout_unique_visitors=int(row["checkout_unique_visitors"] or 0),
            conversion_rate=float(row["conversion_rate"] or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted row form."""
        return asdict(self)


def validate_page_view(
    page_path: str | None,
    visitor_id: str | None,
    paths: TrackedPaths | None = None,
) -> None:
    """Validate an incoming page view before it is written.

    Parameters
    ----------
    page_path
        Requested page path
    visitor_id
        Visitor identifier supplied by the client
    paths
        Tracked paths (default: landing "/" and checkout "/checkout")

    Raises
    ------
    ValidationError
        If a field is missing, the path is untracked or the visitor id is malformed
    """
    paths = paths or TrackedPaths()

    if not page_path or not visitor_id:
        raise ValidationError("Missing required fields: page_path and visitor_id")

    if page_path not in paths:
        raise ValidationError(f"Invalid page path: {page_path}")

    if not isinstance(visitor_id, str) or not VISITOR_ID_PATTERN.match(visitor_id):
        raise ValidationError(f"Invalid visitor ID format: {visitor_id}")


def new_page_view(
    page_path: str,
    visitor_id: str,
    *,
    paths: TrackedPaths | None = None,
    now: datetime | None = None,
) -> PageViewEvent:
    """Validate and stamp a new page view with the current UTC instant."""
    validate_page_view(page_path, visitor_id, paths)
    return PageViewEvent(
        page_path=page_path,
        visitor_id=visitor_id,
        created_at=now or get_current_utc(),
    )
