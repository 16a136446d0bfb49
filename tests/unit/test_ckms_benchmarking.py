"""
Unit tests for CKMSStream benchmarking hooks.
"""

import random
import unittest

from tiny_ckms.algorithms.ckms import CKMSStream


class TestCKMSStreamBenchmarking(unittest.TestCase):
    """Test cases for CKMSStream statistics and timing hooks."""

    def test_get_stats_empty(self):
        """Test getting stats for an empty summary."""
        stream = CKMSStream()

        stats = stream.get_stats()

        self.assertEqual(stats["type"], "CKMSStream")
        self.assertEqual(stats["items_processed"], 0)
        self.assertEqual(stats["buffer_capacity"], 4096)
        self.assertEqual(stats["count"], 0)
        self.assertEqual(stats["num_samples"], 0)
        self.assertEqual(stats["flush_count"], 0)
        self.assertEqual(stats["state"], "empty")

        # No sample statistics without samples
        self.assertNotIn("min_value", stats)
        self.assertNotIn("max_g", stats)
        self.assertNotIn("bytes_per_item", stats)
        self.assertNotIn("avg_flush_time_ns", stats)

        self.assertEqual(stats["target_estimates"], {"q0.500": None, "q0.990": None})

    def test_get_stats_with_data(self):
        """Test getting stats for a summary with data."""
        stream = CKMSStream(buffer_capacity=100)

        for i in range(1000):
            stream.update(i)

        stats = stream.get_stats()

        self.assertEqual(stats["items_processed"], 1000)
        self.assertEqual(stats["count"], 1000)
        self.assertEqual(stats["buffer_items"], 0)
        self.assertEqual(stats["flush_count"], 10)
        self.assertIn("avg_flush_time_ns", stats)

        # Structure statistics
        self.assertGreater(stats["num_samples"], 0)
        self.assertLessEqual(stats["compression_ratio"], 1.0)
        self.assertEqual(stats["min_value"], 0)
        self.assertEqual(stats["max_value"], 999)
        self.assertIn("max_g", stats)
        self.assertIn("avg_g", stats)
        self.assertIn("max_delta", stats)
        self.assertIn("avg_delta", stats)
        self.assertGreater(stats["bytes_per_item"], 0)

        # Estimates at the configured targets
        estimates = stats["target_estimates"]
        self.assertAlmostEqual(estimates["q0.500"], 500, delta=60)
        self.assertAlmostEqual(estimates["q0.990"], 990, delta=5)

    def test_get_stats_flushes_buffer(self):
        """Test that stats reflect buffered values."""
        stream = CKMSStream(buffer_capacity=100)
        for i in range(50):
            stream.update(i)

        stats = stream.get_stats()
        self.assertEqual(stats["count"], 50)
        self.assertEqual(stats["buffer_items"], 0)
        self.assertEqual(stats["flush_count"], 1)

    def test_error_bounds(self):
        """Test error bound reporting."""
        stream = CKMSStream()

        empty_bounds = stream.error_bounds()
        self.assertEqual(empty_bounds["state"], "empty")
        self.assertEqual(
            empty_bounds["target_errors"], {"q0.500": 0.05, "q0.990": 0.001}
        )
        self.assertNotIn("rank_error_at_targets", empty_bounds)

        for i in range(1000):
            stream.update(i)

        bounds = stream.error_bounds()
        self.assertEqual(
            bounds["accuracy_model"], "targeted (error per configured quantile)"
        )
        self.assertNotIn("state", bounds)

        rank_errors = bounds["rank_error_at_targets"]
        # f(500, 1000) = 100 and f(990, 1000) = 2
        self.assertAlmostEqual(rank_errors["q0.500"], 50.0)
        self.assertAlmostEqual(rank_errors["q0.990"], 1.0, delta=0.15)
        self.assertLess(rank_errors["q0.990"], rank_errors["q0.500"])

    def test_performance_tracking(self):
        """Test recording of individual flush times."""
        stream = CKMSStream(buffer_capacity=100)
        stream.enable_performance_tracking(max_history=5)

        for i in range(1000):
            stream.update(random.random())

        perf = stream.get_performance_stats()
        self.assertEqual(perf["items_processed"], 1000)
        self.assertEqual(perf["flush_count"], 10)
        self.assertGreater(perf["memory_bytes"], 0)
        self.assertIn("avg_flush_time_ns", perf)
        self.assertIn("last_flush_time_ns", perf)

        # Only the most recent flushes are kept
        self.assertEqual(len(perf["recent_flush_times_ns"]), 5)
        self.assertLessEqual(perf["min_flush_time_ns"], perf["max_flush_time_ns"])
        self.assertGreaterEqual(perf["min_flush_time_ns"], 0.0)

        stream.disable_performance_tracking()
        perf = stream.get_performance_stats()
        self.assertNotIn("recent_flush_times_ns", perf)
        self.assertEqual(perf["flush_count"], 10)

    def test_performance_stats_without_flushes(self):
        """Test performance stats before any flush happened."""
        stream = CKMSStream()
        stream.enable_performance_tracking()
        stream.update(1.0)

        perf = stream.get_performance_stats()
        self.assertEqual(perf["items_processed"], 1)
        self.assertEqual(perf["flush_count"], 0)
        self.assertNotIn("avg_flush_time_ns", perf)
        self.assertNotIn("recent_flush_times_ns", perf)

    def test_merge_batch_counts_as_flush(self):
        """Test that merge_batch is timed like a buffer flush."""
        stream = CKMSStream()
        stream.merge_batch(range(100))
        stream.merge_batch([])

        self.assertEqual(stream.get_performance_stats()["flush_count"], 1)
        self.assertEqual(stream.items_processed, 100)

    def test_clear_resets_timing(self):
        """Test that clearing drops timing counters."""
        stream = CKMSStream(buffer_capacity=10)
        stream.enable_performance_tracking()
        for i in range(100):
            stream.update(i)

        stream.clear()

        perf = stream.get_performance_stats()
        self.assertEqual(perf["flush_count"], 0)
        self.assertEqual(perf["items_processed"], 0)
        self.assertNotIn("recent_flush_times_ns", perf)

    def test_estimate_size(self):
        """Test memory usage estimation."""
        stream = CKMSStream(buffer_capacity=500)
        empty_size = stream.estimate_size()
        self.assertGreater(empty_size, 0)

        for _ in range(5000):
            stream.update(random.uniform(0, 100))

        self.assertGreater(stream.estimate_size(), empty_size)

    def test_check_memory_limit(self):
        """Test memory limit checks."""
        unlimited = CKMSStream()
        self.assertTrue(unlimited.check_memory_limit())

        tiny = CKMSStream(memory_limit_bytes=1)
        tiny.update(1.0)
        self.assertFalse(tiny.check_memory_limit())

        roomy = CKMSStream(memory_limit_bytes=10**9)
        roomy.update(1.0)
        self.assertTrue(roomy.check_memory_limit())

        stats = tiny.get_stats()
        self.assertEqual(stats["memory_limit_bytes"], 1)
        self.assertGreater(stats["memory_usage_pct"], 100.0)


if __name__ == "__main__":
    unittest.main()
