"""Core data model and time helpers."""

from .models import (
    VISITOR_ID_PATTERN,
    DailySummary,
    PageViewEvent,
    TrackedPaths,
    ValidationError,
    new_page_view,
    validate_page_view,
)
from .time import (
    describe_relative,
    ensure_utc,
    format_utc_iso8601,
    format_utc_millis,
    format_utc_sortable,
    get_current_utc,
    parse_utc_iso8601,
)

__all__ = [
    # Models
    "VISITOR_ID_PATTERN",
    "DailySummary",
    "PageViewEvent",
    "TrackedPaths",
    "ValidationError",
    "new_page_view",
    "validate_page_view",
    # Time
    "describe_relative",
    "ensure_utc",
    "format_utc_iso8601",
    "format_utc_millis",
    "format_utc_sortable",
    "get_current_utc",
    "parse_utc_iso8601",
]
