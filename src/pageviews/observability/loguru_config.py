"""Loguru configuration for the rollup engine.

This module provides centralized loguru configuration with:
- Coloured console output for operators running the CLI
- Structured JSON log file for the retention job history
- Component binding so each subsystem can be filtered
- A timing context manager for the retention cycle steps
"""

from __future__ import annotations

import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger

if TYPE_CHECKING:
    from collections.abc import Generator

__all__ = [
    "configure_loguru",
    "get_logger",
    "timing_context",
]


def configure_loguru(
    *,
    log_dir: Path | None = None,
    level: str = "INFO",
    rotation: str = "50 MB",
    retention: str = "14 days",
    enable_console: bool = True,
) -> None:
    """Configure loguru sinks.

    Parameters
    ----------
    log_dir
        Directory for the JSONL log file (no file sink when None)
    level
        Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    rotation
        Log rotation policy (e.g., "50 MB", "1 day")
    retention
        Log retention policy (e.g., "14 days")
    enable_console
        Enable console output

    Example
    -------
    >>> configure_loguru(log_dir=Path("logs"), level="INFO")
    """
    # Remove default handler
    logger.remove()

    if enable_console:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{extra[component]}</cyan> | "
            "<level>{message}</level>",
            level=level,
            colorize=True,
            backtrace=True,
            diagnose=False,
        )

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_dir / "pageviews.jsonl",
            format="{message}",
            level=level,
            rotation=rotation,
            retention=retention,
            serialize=True,
            backtrace=True,
            diagnose=False,
        )

    logger.configure(extra={"component": "pageviews"})
    get_logger("observability").debug("Loguru configured", log_dir=str(log_dir), level=level)


def get_logger(component: str = "pageviews") -> Any:
    """Get logger instance bound to specific component.

    Parameters
    ----------
    component
        Component name (time_windows, aggregator, retention, dashboard, storage, cli)

    Returns
    -------
    Logger
        Loguru logger bound to component
    """
    return logger.bind(component=component)


@contextmanager
def timing_context(
    operation: str,
    *,
    component: str = "pageviews",
    **metadata: Any,
) -> Generator[dict[str, Any], None, None]:
    """Context manager that logs the duration of an operation.

    Parameters
    ----------
    operation
        Name of the operation being timed
    component
        Component name for filtering logs
    **metadata
        Additional metadata to log

    Yields
    ------
    dict
        Context dictionary that can be updated with additional data

    Example
    -------
    >>> with timing_context("retention_cycle", component="retention") as ctx:
    ...     result = cycle.run()
    ...     ctx["records_deleted"] = result.records_deleted
    """
    start = time.perf_counter()
    context: dict[str, Any] = dict(metadata)
    bound = logger.bind(component=component, timing=True, operation=operation)

    bound.debug(f"START: {operation}", phase="start", **metadata)

    try:
        yield context
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        bound.info(
            f"END: {operation}",
            phase="end",
            duration_ms=round(duration_ms, 3),
            **context,
        )
