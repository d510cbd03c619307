"""
Metrics Collection for Briefly CoPilot

Tracks request latency per action, vectorization throughput and contract
review output for the /api/v1/metrics endpoint.
"""

import time
import logging
import threading
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Optional
from datetime import datetime, timedelta

logger = logging.getLogger(__name__)


@dataclass
class RequestMetrics:
    """Metrics for a single tracked request."""
    action: str
    organization_id: str
    start_time: float
    end_time: float = 0
    latency_ms: float = 0
    error: Optional[str] = None


@dataclass
class SystemMetrics:
    """Aggregated system metrics."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0

    # Latency tracking (in ms)
    total_latency_ms: float = 0
    min_latency_ms: float = float('inf')
    max_latency_ms: float = 0
    latencies: list = field(default_factory=list)

    requests_by_action: dict = field(default_factory=lambda: defaultdict(int))

    # Vectorization
    documents_vectorized: int = 0
    vectorization_failures: int = 0
    chunks_embedded: int = 0
    total_vectorization_time_ms: float = 0

    # Contract review
    reviews_completed: int = 0
    reviews_failed: int = 0
    findings_extracted: int = 0

    errors_by_type: dict = field(default_factory=lambda: defaultdict(int))
    requests_by_organization: dict = field(default_factory=lambda: defaultdict(int))

    @property
    def avg_latency_ms(self) -> float:
        if self.total_requests == 0:
            return 0
        return self.total_latency_ms / self.total_requests

    def _percentile(self, fraction: float) -> float:
        if not self.latencies:
            return 0
        sorted_latencies = sorted(self.latencies)
        index = int(len(sorted_latencies) * fraction)
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    @property
    def p95_latency_ms(self) -> float:
        """Calculate 95th percentile latency."""
        return self._percentile(0.95)

    @property
    def p99_latency_ms(self) -> float:
        """Calculate 99th percentile latency."""
        return self._percentile(0.99)

    @property
    def error_rate(self) -> float:
        if self.total_requests == 0:
            return 0
        return self.failed_requests / self.total_requests

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "requests": {
                "total": self.total_requests,
                "successful": self.successful_requests,
                "failed": self.failed_requests,
                "error_rate": f"{self.error_rate:.2%}",
                "by_action": dict(self.requests_by_action),
            },
            "latency_ms": {
                "avg": round(self.avg_latency_ms, 2),
                "min": round(self.min_latency_ms, 2) if self.min_latency_ms != float('inf') else 0,
                "max": round(self.max_latency_ms, 2),
                "p95": round(self.p95_latency_ms, 2),
                "p99": round(self.p99_latency_ms, 2),
            },
            "vectorization": {
                "documents": self.documents_vectorized,
                "failures": self.vectorization_failures,
                "chunks": self.chunks_embedded,
                "avg_time_ms": round(
                    self.total_vectorization_time_ms / max(self.documents_vectorized, 1), 2
                ),
            },
            "contract_review": {
                "completed": self.reviews_completed,
                "failed": self.reviews_failed,
                "findings": self.findings_extracted,
            },
            "errors": dict(self.errors_by_type),
        }


class MetricsCollector:
    """
    Collects and aggregates system metrics.

    Usage:
        collector = get_metrics_collector()

        with collector.track_request("query", organization_id):
            stream = gateway.stream_chat(messages)

        metrics = collector.get_metrics_dict()
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern for global metrics collection."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.metrics = SystemMetrics()
        self._max_history = 1000
        self._lock = threading.Lock()
        self._start_time = datetime.now()
        self._initialized = True

    def reset(self):
        """Reset all metrics (for testing)."""
        with self._lock:
            self.metrics = SystemMetrics()
            self._start_time = datetime.now()

    class RequestTracker:
        """Context manager for tracking request metrics."""

        def __init__(self, collector: 'MetricsCollector', action: str, organization_id: str):
            self.collector = collector
            self.request = RequestMetrics(
                action=action,
                organization_id=organization_id or "none",
                start_time=time.time(),
            )

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            self.request.end_time = time.time()
            self.request.latency_ms = (self.request.end_time - self.request.start_time) * 1000

            if exc_type:
                self.request.error = str(exc_val)
                self.collector.record_error(exc_type.__name__)

            self.collector._record_request(self.request)
            return False  # Don't suppress exceptions

    def track_request(self, action: str, organization_id: Optional[str] = None) -> RequestTracker:
        """Create a request tracker context manager."""
        return self.RequestTracker(self, action, organization_id)

    def _record_request(self, request: RequestMetrics):
        with self._lock:
            m = self.metrics
            m.total_requests += 1
            if request.error:
                m.failed_requests += 1
            else:
                m.successful_requests += 1

            m.total_latency_ms += request.latency_ms
            m.min_latency_ms = min(m.min_latency_ms, request.latency_ms)
            m.max_latency_ms = max(m.max_latency_ms, request.latency_ms)
            m.latencies.append(request.latency_ms)
            if len(m.latencies) > self._max_history:
                m.latencies = m.latencies[-self._max_history:]

            m.requests_by_action[request.action] += 1
            m.requests_by_organization[request.organization_id] += 1

    def record_error(self, error_type: str):
        """Record an error by type."""
        with self._lock:
            self.metrics.errors_by_type[error_type] += 1

    def record_vectorization(self, chunk_count: int, duration_ms: float, success: bool = True):
        """Record the outcome of a document vectorization."""
        with self._lock:
            if success:
                self.metrics.documents_vectorized += 1
                self.metrics.chunks_embedded += chunk_count
                self.metrics.total_vectorization_time_ms += duration_ms
            else:
                self.metrics.vectorization_failures += 1

    def record_review(self, findings_count: int, success: bool = True):
        """Record the outcome of a contract review."""
        with self._lock:
            if success:
                self.metrics.reviews_completed += 1
                self.metrics.findings_extracted += findings_count
            else:
                self.metrics.reviews_failed += 1

    def get_metrics(self) -> SystemMetrics:
        return self.metrics

    def get_metrics_dict(self) -> dict:
        """Get metrics as a dictionary, including uptime."""
        data = self.metrics.to_dict()
        data["uptime_seconds"] = int(self.get_uptime().total_seconds())
        return data

    def get_uptime(self) -> timedelta:
        return datetime.now() - self._start_time


# Global metrics collector instance
_collector = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
