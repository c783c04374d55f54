"""Tests for the boundary TTL cache."""

import threading
from datetime import timedelta

from pageviews.rollups.time_windows import BOUNDARY_CACHE_TTL, BoundaryCache, BoundaryCalculator


def test_default_ttl_is_five_minutes():
    assert BOUNDARY_CACHE_TTL == timedelta(minutes=5)
    assert BoundaryCache().ttl_seconds == 300


def test_fresh_entry_is_reused(calculator):
    first = calculator.local_day_boundaries("2024-03-02")
    second = calculator.local_day_boundaries("2024-03-02")

    assert second is first
    assert len(calculator.cache) == 1


def test_entry_expires_at_ttl(monotonic):
    cache = BoundaryCache(ttl=timedelta(minutes=5), clock=monotonic)
    calc = BoundaryCalculator(cache=cache)
    first = calc.local_day_boundaries("2024-03-02")

    monotonic.advance(299)
    assert cache.get("day:2024-03-02") is first

    monotonic.advance(1)
    assert cache.get("day:2024-03-02") is None


def test_stale_entry_is_recomputed_to_identical_value(monotonic):
    cache = BoundaryCache(clock=monotonic)
    calc = BoundaryCalculator(cache=cache)
    cached = calc.local_month_boundaries("2024-12-15")

    monotonic.advance(301)
    recomputed = calc.local_month_boundaries("2024-12-15")

    assert recomputed is not cached
    assert recomputed == cached


def test_cached_and_uncached_results_agree(monotonic):
    cached_calc = BoundaryCalculator(cache=BoundaryCache(clock=monotonic))
    uncached_calc = BoundaryCalculator(cache=BoundaryCache(ttl=timedelta(0), clock=monotonic))

    for day in ("2024-02-29", "2024-03-01", "2024-12-31"):
        cached_calc.local_day_boundaries(day)
        assert cached_calc.local_day_boundaries(day) == uncached_calc.local_day_boundaries(day)
        assert cached_calc.local_month_boundaries(day) == uncached_calc.local_month_boundaries(day)


def test_zero_ttl_never_hits(monotonic):
    cache = BoundaryCache(ttl=timedelta(0), clock=monotonic)
    BoundaryCalculator(cache=cache).local_day_boundaries("2024-03-02")

    assert cache.get("day:2024-03-02") is None


def test_sweep_evicts_stale_entries(monotonic):
    cache = BoundaryCache(clock=monotonic)
    calc = BoundaryCalculator(cache=cache)
    calc.local_day_boundaries("2024-03-01")
    calc.local_day_boundaries("2024-03-02")

    monotonic.advance(300)

    assert cache.sweep() == 2
    assert len(cache) == 0


def test_set_sweeps_once_ttl_has_elapsed(monotonic):
    cache = BoundaryCache(clock=monotonic)
    calc = BoundaryCalculator(cache=cache)
    calc.local_day_boundaries("2024-03-01")

    monotonic.advance(300)
    calc.local_day_boundaries("2024-03-02")

    # The 2024-03-01 entry was swept when 2024-03-02 was written
    assert len(cache) == 1
    assert cache.get("day:2024-03-02") is not None


def test_clear(calculator):
    calculator.local_day_boundaries("2024-03-02")
    calculator.cache.clear()

    assert len(calculator.cache) == 0


def test_concurrent_writers_and_len(monotonic):
    cache = BoundaryCache(clock=monotonic)
    calc = BoundaryCalculator(cache=cache)
    days = [f"2024-03-{day:02d}" for day in range(1, 29)]
    sizes = []

    def worker():
        for day in days:
            calc.local_day_boundaries(day)
            sizes.append(len(cache))

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) == len(days)
    assert all(1 <= size <= len(days) for size in sizes)
