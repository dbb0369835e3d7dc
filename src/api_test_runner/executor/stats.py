"""Latency statistics for performance runs."""

import math

from api_test_runner.executor.models import LatencyStats


def percentile(sorted_times: list[float], fraction: float) -> float:
    """Value at index floor(count * fraction) of an ascending list."""
    index = min(math.floor(len(sorted_times) * fraction), len(sorted_times) - 1)
    return sorted_times[index]


def compute_latency_stats(times: list[float]) -> LatencyStats:
    if not times:
        return LatencyStats()
    ordered = sorted(times)
    return LatencyStats(
        min=ordered[0],
        max=ordered[-1],
        avg=round(sum(ordered) / len(ordered), 2),
        p50=percentile(ordered, 0.5),
        p90=percentile(ordered, 0.9),
        p99=percentile(ordered, 0.99),
    )
