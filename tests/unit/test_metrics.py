"""
Unit tests for metrics collection utilities.
"""

import pytest

from georesilience.utils.metrics import MetricsCollector, emit_metric, track_attempt


def test_metrics_collector_initialization():
    """Test metrics collector initialization."""
    collector = MetricsCollector()

    assert collector.attempts == {}
    assert collector.rejections == {}
    assert collector.get_metrics_summary() == {}


def test_metrics_collector_record_attempt():
    """Test recording attempt metrics."""
    collector = MetricsCollector()

    collector.record_attempt("sync-api", 150.5, success=False)
    collector.record_attempt("sync-api", 200.0, success=True)
    collector.record_attempt("gps", 500.0, success=True)

    assert collector.attempts["sync-api"] == 2
    assert collector.failures["sync-api"] == 1
    assert collector.successes["sync-api"] == 1
    assert collector.attempts["gps"] == 1
    assert len(collector.latencies["sync-api"]) == 2


def test_metrics_collector_get_summary():
    """Test getting metrics summary."""
    collector = MetricsCollector()

    collector.record_attempt("sync-api", 150.0, success=True)
    collector.record_attempt("sync-api", 200.0, success=False)
    collector.record_rejection("sync-api")
    collector.record_rejection("db")

    summary = collector.get_metrics_summary()

    assert summary["sync-api"]["attempts"] == 2
    assert summary["sync-api"]["rejections"] == 1
    assert summary["sync-api"]["latency"]["count"] == 2
    assert summary["sync-api"]["latency"]["avg_ms"] == 175.0
    assert summary["db"] == {"attempts": 0, "successes": 0, "failures": 0, "rejections": 1}


def test_metrics_collector_reset():
    """Test clearing collected metrics."""
    collector = MetricsCollector()
    collector.record_attempt("sync-api", 10.0, success=True)

    collector.reset()

    assert collector.get_metrics_summary() == {}


@pytest.mark.asyncio
async def test_track_attempt_success():
    """Test tracking a successful attempt."""
    collector = MetricsCollector()

    async with track_attempt(collector, "upload"):
        pass

    assert collector.successes["upload"] == 1
    assert collector.latencies["upload"][0] >= 0


@pytest.mark.asyncio
async def test_track_attempt_failure():
    """Test tracking a failed attempt re-raises and records the failure."""
    collector = MetricsCollector()

    with pytest.raises(RuntimeError):
        async with track_attempt(collector, "upload"):
            raise RuntimeError("offline")

    assert collector.failures["upload"] == 1
    assert "upload" not in collector.successes


@pytest.mark.asyncio
async def test_track_attempt_without_collector():
    """Test tracking is a no-op without a collector."""
    async with track_attempt(None, "upload"):
        pass


def test_emit_metric():
    """Test emitting a metric."""
    # This should not raise an exception
    emit_metric("circuit_open", 1, resource_key="gps", failures=5)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
