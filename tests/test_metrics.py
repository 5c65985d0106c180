"""Tests for Prometheus metrics rendering."""

from handson.metrics import MetricsCollector


class TestMetricsCollector:
    def test_frames(self):
        metrics = MetricsCollector()
        metrics.record_frame(0.004)
        metrics.record_frame(0.030)
        metrics.record_drop()
        assert metrics.frames_total == 2
        text = metrics.render()
        assert "handson_frames_total 2" in text
        assert "handson_frames_dropped_total 1" in text

    def test_histogram_is_cumulative(self):
        metrics = MetricsCollector()
        metrics.record_frame(0.004)
        metrics.record_frame(0.030)
        metrics.record_frame(1.0)
        text = metrics.render()
        assert 'handson_frame_latency_seconds_bucket{le="0.005"} 1' in text
        assert 'handson_frame_latency_seconds_bucket{le="0.033"} 2' in text
        assert 'handson_frame_latency_seconds_bucket{le="0.25"} 2' in text
        assert 'handson_frame_latency_seconds_bucket{le="+Inf"} 3' in text
        assert "handson_frame_latency_seconds_count 3" in text

    def test_matches_by_result(self):
        metrics = MetricsCollector()
        metrics.record_match(True)
        metrics.record_match(True)
        metrics.record_match(False)
        text = metrics.render()
        assert 'handson_match_attempts_total{result="pass"} 2' in text
        assert 'handson_match_attempts_total{result="fail"} 1' in text

    def test_completions_by_key(self):
        metrics = MetricsCollector()
        metrics.record_completion("Letters")
        metrics.record_completion("Words")
        metrics.record_completion("Letters")
        assert metrics.completion_counts == {"Letters": 2, "Words": 1}
        assert 'handson_completions_total{key="Letters"} 2' in metrics.render()

    def test_connections_gauge(self):
        metrics = MetricsCollector()
        metrics.set_connections(3)
        assert "handson_active_connections 3" in metrics.render()

    def test_exposition_format(self):
        text = MetricsCollector().render()
        assert text.endswith("\n")
        assert "# TYPE handson_uptime_seconds gauge" in text
        assert "# TYPE handson_frame_latency_seconds histogram" in text
