"""Page-view rollups, retention and dashboard metrics on a fixed UTC+8 calendar."""

__version__ = "0.1.0"
