"""
chatrelay - Prometheus Metrics

Metrics exposed:
- chatrelay_requests_total: Counter of HTTP requests by endpoint and status
- chatrelay_request_duration_seconds: Histogram of request latency
- chatrelay_exchanges_total: Counter of relayed exchanges by outcome
- chatrelay_errors_total: Counter of classified errors by error type
- chatrelay_time_to_first_token_seconds: Histogram of upstream time to first delta
- chatrelay_active_streams: Gauge of streams currently being relayed

Usage:
    from chatrelay.observability.metrics import get_metrics, metrics_endpoint

    metrics = get_metrics()
    metrics.record_exchange("completed")
    metrics.record_error("rate_limit")

    @app.get("/metrics")
    async def metrics():
        return metrics_endpoint()
"""

from typing import Optional

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class MetricsCollector:
    """
    Central metrics collector using the Prometheus client.

    One instance per registry; use get_metrics() for the process-wide one.
    """

    def __init__(self, registry: CollectorRegistry = REGISTRY):
        self.registry = registry

        self.requests_total = Counter(
            "chatrelay_requests_total",
            "Total number of HTTP requests",
            labelnames=["endpoint", "status"],
            registry=registry,
        )

        self.request_duration = Histogram(
            "chatrelay_request_duration_seconds",
            "Request duration in seconds (until response headers)",
            labelnames=["endpoint"],
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, float("inf")),
            registry=registry,
        )

        self.exchanges_total = Counter(
            "chatrelay_exchanges_total",
            "Relayed exchanges by terminal outcome",
            labelnames=["outcome"],
            registry=registry,
        )

        self.errors_total = Counter(
            "chatrelay_errors_total",
            "Classified errors by error type",
            labelnames=["error_type"],
            registry=registry,
        )

        # Upstream answers typically start within 0.2s to 10s
        self.time_to_first_token = Histogram(
            "chatrelay_time_to_first_token_seconds",
            "Time from upstream call to first text delta",
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, float("inf")),
            registry=registry,
        )

        self.active_streams = Gauge(
            "chatrelay_active_streams",
            "Streams currently being relayed",
            registry=registry,
        )

    def record_request(self, endpoint: str, status_code: int, duration_seconds: float):
        self.requests_total.labels(endpoint=endpoint, status=str(status_code)).inc()
        self.request_duration.labels(endpoint=endpoint).observe(duration_seconds)

    def record_exchange(self, outcome: str):
        """outcome: completed / failed / interrupted"""
        self.exchanges_total.labels(outcome=outcome).inc()

    def record_error(self, error_type: str):
        self.errors_total.labels(error_type=error_type).inc()

    def record_time_to_first_token(self, ttft_seconds: float):
        self.time_to_first_token.observe(ttft_seconds)

    def track_active_stream(self) -> "ActiveStreamTracker":
        return ActiveStreamTracker(self)


class ActiveStreamTracker:
    """Context manager keeping the active stream gauge in sync."""

    def __init__(self, collector: MetricsCollector):
        self.collector = collector

    def __enter__(self):
        self.collector.active_streams.inc()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.collector.active_streams.dec()


_metrics_instance: Optional[MetricsCollector] = None


def setup_metrics(registry: CollectorRegistry = REGISTRY) -> MetricsCollector:
    """
    Setup metrics collection.

    Safe to call multiple times - returns the existing instance for the
    same registry.
    """
    global _metrics_instance

    if _metrics_instance is not None and _metrics_instance.registry is registry:
        return _metrics_instance

    _metrics_instance = MetricsCollector(registry)
    return _metrics_instance


def get_metrics() -> MetricsCollector:
    """Process-wide collector, created on first use."""
    if _metrics_instance is None:
        return setup_metrics()
    return _metrics_instance


def metrics_endpoint() -> Response:
    """Prometheus text exposition of the active registry."""
    content = generate_latest(get_metrics().registry)
    return Response(content=content, media_type=CONTENT_TYPE_LATEST)
