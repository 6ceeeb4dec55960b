"""
Positioning metrics: counters, drop reasons, histograms.

Follows a range line through the system:

    lines_in -> parse_errors
             -> ranging_cycles -> position_estimates -> filter_updates
                                                     -> drop reason

A cycle that does not move the smoothed position is always charged to one of
DROP_REASONS, so a frozen tag on the display can be traced back to why.
"""

import logging
import statistics
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional

logger = logging.getLogger(__name__)

# Values kept per histogram (most recent)
HISTOGRAM_WINDOW = 5000

STANDARD_COUNTERS = (
    'lines_in',
    'parse_errors',
    'ranging_cycles',
    'position_estimates',
    'triangle_violations',
    'filter_updates',
    'filter_resets',
)


@dataclass
class CounterSnapshot:
    """Copy of the collector state at one point in time."""

    timestamp: float
    counters: Dict[str, int]
    drop_reasons: Dict[str, int]
    histograms: Dict[str, List[float]]

    def total_dropped(self) -> int:
        return sum(self.drop_reasons.values())

    def acceptance_percent(self) -> float:
        """Share of estimated cycles that reached the filter."""
        estimates = self.counters.get('position_estimates', 0)
        if estimates == 0:
            return 0.0
        return self.counters.get('filter_updates', 0) / estimates * 100.0


class MetricsCollector:
    """
    Thread-safe counters shared by the estimator, filter, pipeline and CLI.

    Usage:
        metrics = get_metrics()
        metrics.increment('ranging_cycles')
        metrics.increment_drop('out_of_bounds')
        metrics.record_histogram('estimator_triplets_used', 4)

        metrics.print_summary()
    """

    DROP_REASONS = {
        'parse_error': 'Malformed range line',
        'insufficient_anchors': 'Fewer than 3 usable anchors',
        'degenerate_geometry': 'Every anchor triplet was singular',
        'out_of_bounds': 'Estimate outside boundary rectangle',
        'unknown_anchor': 'Sample for an anchor not in the layout',
        'tag_limit': 'Tag ID beyond configured tag count',
    }

    def __init__(self):
        self._lock = threading.Lock()
        self._counters: Counter = Counter(dict.fromkeys(STANDARD_COUNTERS, 0))
        self._drops: Counter = Counter(dict.fromkeys(self.DROP_REASONS, 0))
        self._histograms: Dict[str, Deque[float]] = {}
        self._started = time.time()

    def increment(self, counter_name: str, value: int = 1):
        with self._lock:
            self._counters[counter_name] += value

    def increment_drop(self, reason: str, value: int = 1):
        """
        Charge rejected cycles or lines to a drop reason.

        Unknown reasons are still counted, with a warning.
        """
        if reason not in self.DROP_REASONS:
            logger.warning("Unknown drop reason '%s'", reason)

        with self._lock:
            self._drops[reason] += value
            self._counters['dropped'] += value

    def get_counter(self, counter_name: str) -> int:
        with self._lock:
            return self._counters.get(counter_name, 0)

    def get_drop_count(self, reason: str) -> int:
        with self._lock:
            return self._drops.get(reason, 0)

    def record_histogram(self, histogram_name: str, value: float):
        with self._lock:
            window = self._histograms.get(histogram_name)
            if window is None:
                window = self._histograms[histogram_name] = deque(maxlen=HISTOGRAM_WINDOW)
            window.append(float(value))

    def histogram_stats(self, histogram_name: str) -> Optional[Dict[str, float]]:
        """
        Summary of one histogram window.

        Returns:
            Dict with count, min, max, mean, p95; None if nothing recorded
        """
        with self._lock:
            values = sorted(self._histograms.get(histogram_name, ()))

        if not values:
            return None

        return {
            'count': len(values),
            'min': values[0],
            'max': values[-1],
            'mean': statistics.fmean(values),
            'p95': values[min(len(values) - 1, int(len(values) * 0.95))],
        }

    def snapshot(self) -> CounterSnapshot:
        with self._lock:
            return CounterSnapshot(
                timestamp=time.time(),
                counters=dict(self._counters),
                drop_reasons=dict(self._drops),
                histograms={name: list(window) for name, window in self._histograms.items()},
            )

    def print_summary(self):
        """Print lines, cycles, drop reasons and histograms."""
        snap = self.snapshot()
        c = snap.counters

        print("\n" + "=" * 60)
        print(f"  POSITIONING SUMMARY ({snap.timestamp - self._started:.1f}s)")
        print("=" * 60)

        print(f"\n  lines: {c['lines_in']} read, {c['parse_errors']} unparseable")
        print(f"  cycles: {c['ranging_cycles']} run, {c['position_estimates']} estimated, "
              f"{c['filter_updates']} accepted ({snap.acceptance_percent():.1f}%)")
        print(f"  triangle violations: {c['triangle_violations']}, "
              f"filter resets: {c['filter_resets']}")

        if snap.total_dropped():
            print("\nDROP REASONS:")
            for reason, count in sorted(snap.drop_reasons.items()):
                if count:
                    print(f"  {reason:24s}: {count:8d}")

        for name in sorted(snap.histograms):
            stats = self.histogram_stats(name)
            if stats:
                print(f"\n  {name}: n={stats['count']} mean={stats['mean']:.3f} "
                      f"min={stats['min']:.3f} max={stats['max']:.3f} p95={stats['p95']:.3f}")

        print("=" * 60 + "\n")
