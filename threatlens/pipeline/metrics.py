"""Scan metrics tracking.

Counts verdicts by level, pattern-rule hits and analyzer unavailability so
the coordinator can report runtime statistics.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Iterable

logger = logging.getLogger(__name__)


class ScanMetrics:
    """Thread-safe metrics collector owned by one coordinator."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._verdicts: dict[str, int] = defaultdict(int)
        self._categories: dict[str, int] = defaultdict(int)
        self._pattern_hits: dict[str, int] = defaultdict(int)
        self._unavailable: dict[str, int] = defaultdict(int)
        self._total_scans: int = 0
        self._failed_scans: int = 0
        self._started: datetime = datetime.now()

    def record_verdict(self, level: str, category: str, pattern_matches: Iterable[str] = ()) -> None:
        """Record a completed scan."""
        with self._lock:
            self._verdicts[level] += 1
            self._categories[category] += 1
            self._total_scans += 1
            for match in pattern_matches:
                self._pattern_hits[match.split(":", 1)[0]] += 1

    def record_unavailable(self, kind: str) -> None:
        with self._lock:
            self._unavailable[kind] += 1

    def record_failure(self) -> None:
        with self._lock:
            self._failed_scans += 1

    @property
    def total_scans(self) -> int:
        with self._lock:
            return self._total_scans

    def verdicts_by_level(self) -> dict[str, int]:
        with self._lock:
            return dict(self._verdicts)

    def get_summary(self) -> dict:
        """Get a summary of all metrics."""
        with self._lock:
            uptime = datetime.now() - self._started
            return {
                "uptime_seconds": int(uptime.total_seconds()),
                "total_scans": self._total_scans,
                "failed_scans": self._failed_scans,
                "verdicts": dict(self._verdicts),
                "categories": dict(self._categories),
                "pattern_hits": dict(self._pattern_hits),
                "unavailable": dict(self._unavailable),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._verdicts.clear()
            self._categories.clear()
            self._pattern_hits.clear()
            self._unavailable.clear()
            self._total_scans = 0
            self._failed_scans = 0
            self._started = datetime.now()
