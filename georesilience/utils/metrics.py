"""
Metrics collection and emission for observability.

This module provides metrics tracking for:
- Attempts, successes and failures per resource key
- Calls rejected by an open circuit
- Attempt latency
"""

import time
from typing import Optional, Dict, Any
from contextlib import asynccontextmanager

from georesilience.utils.logging import get_logger

logger = get_logger(__name__)


class MetricsCollector:
    """
    Collects retry metrics per resource key.

    Tracks:
    - Attempt counts and latency
    - Successes and failures
    - Circuit breaker rejections
    """

    def __init__(self):
        self.attempts: Dict[str, int] = {}
        self.successes: Dict[str, int] = {}
        self.failures: Dict[str, int] = {}
        self.rejections: Dict[str, int] = {}
        self.latencies: Dict[str, list[float]] = {}

    def record_attempt(self, resource_key: str, duration_ms: float, success: bool) -> None:
        """
        Record one attempt and its latency.

        Args:
            resource_key: Resource key of the operation
            duration_ms: Attempt duration in milliseconds
            success: Whether the attempt succeeded
        """
        self.attempts[resource_key] = self.attempts.get(resource_key, 0) + 1

        outcome = self.successes if success else self.failures
        outcome[resource_key] = outcome.get(resource_key, 0) + 1

        if resource_key not in self.latencies:
            self.latencies[resource_key] = []
        self.latencies[resource_key].append(duration_ms)

    def record_rejection(self, resource_key: str) -> None:
        """
        Record a call rejected by the circuit breaker.

        Args:
            resource_key: Resource key of the operation
        """
        self.rejections[resource_key] = self.rejections.get(resource_key, 0) + 1

    def get_metrics_summary(self) -> Dict[str, Any]:
        """
        Get summary of collected metrics.

        Returns:
            Dictionary of metrics keyed by resource key
        """
        summary: Dict[str, Any] = {}

        keys = set(self.attempts) | set(self.rejections)
        for key in sorted(keys):
            entry: Dict[str, Any] = {
                "attempts": self.attempts.get(key, 0),
                "successes": self.successes.get(key, 0),
                "failures": self.failures.get(key, 0),
                "rejections": self.rejections.get(key, 0),
            }

            latencies = self.latencies.get(key)
            if latencies:
                entry["latency"] = {
                    "count": len(latencies),
                    "min_ms": round(min(latencies), 2),
                    "max_ms": round(max(latencies), 2),
                    "avg_ms": round(sum(latencies) / len(latencies), 2),
                }

            summary[key] = entry

        return summary

    def reset(self) -> None:
        self.attempts.clear()
        self.successes.clear()
        self.failures.clear()
        self.rejections.clear()
        self.latencies.clear()


@asynccontextmanager
async def track_attempt(
    metrics_collector: Optional[MetricsCollector],
    resource_key: str
):
    """
    Context manager to track one attempt's timing and outcome.

    Usage:
        async with track_attempt(metrics, "sync-api"):
            result = await upload()

    Args:
        metrics_collector: Metrics collector (optional)
        resource_key: Resource key of the operation

    Yields:
        None
    """
    start_time = time.perf_counter()
    success = False

    try:
        yield
        success = True
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000

        if metrics_collector:
            metrics_collector.record_attempt(resource_key, duration_ms, success)


def emit_metric(metric_name: str, value: float, **tags: Any) -> None:
    """
    Emit a metric.

    Metrics are logged; a monitoring backend can pick them up from the
    structured log stream.

    Args:
        metric_name: Metric name
        value: Metric value
        **tags: Metric tags/labels
    """
    logger.info(
        f"Metric: {metric_name}",
        extra={
            "metric_name": metric_name,
            "metric_value": value,
            "metric_tags": tags,
        }
    )
