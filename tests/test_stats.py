from api_test_runner.executor.stats import compute_latency_stats, percentile


class TestPercentile:
    def test_fixed_array(self):
        times = [float(v) for v in range(10, 1001, 10)]
        assert len(times) == 100
        stats = compute_latency_stats(times)
        assert stats.p50 == times[50] == 510
        assert stats.p90 == times[90] == 910
        assert stats.p99 == times[99] == 1000
        assert stats.min == 10
        assert stats.max == 1000
        assert stats.avg == 505

    def test_unsorted_input(self):
        stats = compute_latency_stats([30, 10, 20])
        assert stats.min == 10
        assert stats.p50 == 20
        assert stats.max == 30

    def test_single_value(self):
        stats = compute_latency_stats([42])
        assert stats.p50 == stats.p99 == 42

    def test_empty(self):
        stats = compute_latency_stats([])
        assert stats.model_dump() == {"min": 0, "max": 0, "avg": 0, "p50": 0, "p90": 0, "p99": 0}

    def test_index_is_clamped(self):
        assert percentile([1, 2], 1.0) == 2
