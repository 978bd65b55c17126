"""
Poll Metrics
============

Counters for the alert pipeline, per category:
    - alerts_sent / alerts_failed
    - suppressed (cooldown or unchanged top-bid price)
    - collapsed (duplicate listings on the same token set)
    - skipped_incomplete (missing upstream fields)
    - bootstraps / gaps (ordered feeds)
    - errors (upstream, state store)

Plus cycle counts and the duration of the last cycle.

Thread-safe for use across async tasks and the HTTP server.
"""

import threading
from collections import defaultdict

from nftwatch.types import Category
from nftwatch.utils_time import now_ms

COUNTERS = (
    "alerts_sent",
    "alerts_failed",
    "suppressed",
    "collapsed",
    "skipped_incomplete",
    "bootstraps",
    "gaps",
    "errors",
)


class PollMetrics:
    """
    Central counters for the poller.

    Usage:
        metrics = PollMetrics()
        metrics.inc(Category.SALES, "alerts_sent")
        snapshot = metrics.snapshot()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._cycles_total = 0
        self._last_cycle_ms: int | None = None
        self._last_cycle_end_ts_ms: int | None = None
        self._start_time_ms = now_ms()

    def inc(self, category: Category, counter: str, amount: int = 1) -> None:
        if counter not in COUNTERS:
            raise KeyError(f"unknown counter {counter}")
        with self._lock:
            self._counters[category.value][counter] += amount

    def get(self, category: Category, counter: str) -> int:
        with self._lock:
            return self._counters[category.value][counter]

    def observe_cycle(self, duration_ms: int) -> None:
        with self._lock:
            self._cycles_total += 1
            self._last_cycle_ms = duration_ms
            self._last_cycle_end_ts_ms = now_ms()

    def snapshot(self) -> dict:
        """All counters, for /state and the periodic state log."""
        current_ms = now_ms()
        with self._lock:
            categories = {
                category: {name: counts.get(name, 0) for name in COUNTERS}
                for category, counts in self._counters.items()
            }
            return {
                "server_time_ms": current_ms,
                "uptime_ms": current_ms - self._start_time_ms,
                "cycles_total": self._cycles_total,
                "last_cycle_ms": self._last_cycle_ms,
                "last_cycle_age_ms": (
                    current_ms - self._last_cycle_end_ts_ms
                    if self._last_cycle_end_ts_ms is not None
                    else None
                ),
                "categories": categories,
            }

    def get_short_summary(self) -> dict:
        """Totals across categories for periodic logging."""
        snap = self.snapshot()
        totals = {name: 0 for name in COUNTERS}
        for counts in snap["categories"].values():
            for name, value in counts.items():
                totals[name] += value
        return {
            "cycles": snap["cycles_total"],
            "last_cycle_ms": snap["last_cycle_ms"],
            **totals,
        }
