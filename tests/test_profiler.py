"""Tests for the pipeline stage profiler."""

import time

from handson.profiler import PipelineProfiler


class TestPipelineProfiler:
    def test_stage_records_timing(self):
        profiler = PipelineProfiler()
        with profiler.stage("extraction"):
            time.sleep(0.001)
        stats = profiler.get_stage_stats("extraction")
        assert stats.call_count == 1
        assert stats.avg_ms > 0

    def test_unknown_stage_is_none(self):
        assert PipelineProfiler().get_stage_stats("matching") is None

    def test_custom_stage(self):
        profiler = PipelineProfiler()
        profiler.record("rendering", 2.0)
        assert profiler.get_stage_stats("rendering").avg_ms == 2.0

    def test_stats(self):
        profiler = PipelineProfiler()
        for ms in range(1, 101):
            profiler.record("frame", float(ms))
        stats = profiler.get_stage_stats("frame")
        assert stats.min_ms == 1.0
        assert stats.max_ms == 100.0
        assert stats.avg_ms == 50.5
        assert stats.p95_ms == 96.0

    def test_window_limits_history(self):
        profiler = PipelineProfiler(window_size=10)
        for ms in range(20):
            profiler.record("frame", float(ms))
        stats = profiler.get_stage_stats("frame")
        assert stats.min_ms == 10.0
        assert stats.call_count == 20

    def test_summary_skips_idle_stages(self):
        profiler = PipelineProfiler()
        profiler.record("matching", 1.23456)
        summary = profiler.summary()
        assert list(summary) == ["matching"]
        assert summary["matching"]["avg_ms"] == 1.235
        assert summary["matching"]["calls"] == 1

    def test_disabled(self):
        profiler = PipelineProfiler()
        profiler.enabled = False
        with profiler.stage("extraction"):
            pass
        profiler.record("frame", 1.0)
        assert profiler.summary() == {}

    def test_failed_block_not_recorded(self):
        profiler = PipelineProfiler()
        try:
            with profiler.stage("extraction"):
                raise ValueError
        except ValueError:
            pass
        assert profiler.get_stage_stats("extraction") is None

    def test_reset(self):
        profiler = PipelineProfiler()
        profiler.record("frame", 1.0)
        profiler.reset()
        assert profiler.summary() == {}
