"""
Metrics Module: Diagnostics, counters, histograms.

- Counters: ranging_cycles, position_estimates, triangle_violations, etc.
- Histograms: triplets used, filter innovation, anchor quality
- Drop reason codes for every rejected cycle

Usage:
    from uwb_core.metrics import get_metrics

    metrics = get_metrics()
    metrics.increment('ranging_cycles')
    metrics.increment_drop('out_of_bounds')
    metrics.record_histogram('filter_innovation_cm', 1.23)
"""

from .counters import MetricsCollector, CounterSnapshot

# Global singleton for easy access
_global_metrics = None


def get_metrics() -> MetricsCollector:
    """
    Get the global metrics collector singleton.

    Returns:
        MetricsCollector instance
    """
    global _global_metrics
    if _global_metrics is None:
        _global_metrics = MetricsCollector()
    return _global_metrics


def reset_metrics():
    """Reset global metrics (for testing)."""
    global _global_metrics
    _global_metrics = MetricsCollector()


__all__ = ['MetricsCollector', 'CounterSnapshot', 'get_metrics', 'reset_metrics']
