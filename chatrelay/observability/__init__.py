"""
chatrelay - Observability Module

- Prometheus metrics (Counter, Histogram, Gauge)
- Structured JSON logging with context injection

Usage:
    from chatrelay.observability import setup_observability, get_logger, get_metrics

    setup_observability()

    logger = get_logger(__name__)
    metrics = get_metrics()
"""

from .metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
    metrics_endpoint,
)
from .logging import (
    StructuredLogger,
    get_logger,
    setup_logging,
    trim_for_privacy,
    LogContext,
)
from .middleware import (
    ObservabilityMiddleware,
    setup_observability,
    set_request_model,
)

__all__ = [
    # Metrics
    "MetricsCollector",
    "get_metrics",
    "setup_metrics",
    "metrics_endpoint",
    # Logging
    "StructuredLogger",
    "get_logger",
    "setup_logging",
    "trim_for_privacy",
    "LogContext",
    # Combined
    "ObservabilityMiddleware",
    "setup_observability",
    "set_request_model",
]
