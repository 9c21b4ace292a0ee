"""
chatrelay - Observability Middleware

Middleware that combines request metrics and structured logging.

Features:
- Request/response metrics collection
- Structured logging with a per-request correlation ID
- X-Request-Id propagation

Usage:
    from chatrelay.observability import setup_observability, ObservabilityMiddleware

    # Setup at startup
    setup_observability()

    # Add middleware
    app.add_middleware(ObservabilityMiddleware)
"""

import os
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.types import ASGIApp

from .metrics import get_metrics, setup_metrics
from .logging import get_logger, LogContext, setup_logging


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """
    Request metrics plus logging context.

    For streamed responses the recorded duration covers the time until
    headers were produced; stream-level timings are recorded by the relay.
    """

    # Paths to exclude from detailed observability
    EXCLUDE_PATHS = {"/health", "/metrics", "/openapi.json", "/docs", "/redoc"}

    def __init__(self, app: ASGIApp, exclude_paths: Optional[set] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths or self.EXCLUDE_PATHS
        self.logger = get_logger("chatrelay.middleware")

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        metrics = get_metrics()

        request_id = request.headers.get("x-request-id", "")
        if not request_id:
            request_id = f"req_{uuid.uuid4().hex[:24]}"

        start_time = time.perf_counter()

        log_ctx = LogContext(request_id=request_id, endpoint=request.url.path)
        LogContext.set_current(log_ctx)
        request.state.request_id = request_id
        request.state.log_context = log_ctx

        try:
            response = await call_next(request)
            duration_seconds = time.perf_counter() - start_time

            metrics.record_request(
                endpoint=request.url.path,
                status_code=response.status_code,
                duration_seconds=duration_seconds,
            )
            self._log_request(request, response, duration_seconds * 1000, log_ctx)

            response.headers["X-Request-Id"] = request_id
            return response

        except Exception as e:
            duration_seconds = time.perf_counter() - start_time
            metrics.record_request(
                endpoint=request.url.path,
                status_code=500,
                duration_seconds=duration_seconds,
            )
            self.logger.exception(
                "Request failed with exception",
                error=str(e),
                error_class=type(e).__name__,
                duration_ms=duration_seconds * 1000,
            )
            raise

        finally:
            LogContext.clear()

    def _log_request(
        self,
        request: Request,
        response: Response,
        duration_ms: float,
        log_ctx: LogContext,
    ):
        status_code = response.status_code

        log_data = {
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
            "client_ip": request.client.host if request.client else None,
        }
        if log_ctx.model:
            log_data["model"] = log_ctx.model

        if status_code >= 500:
            self.logger.error("Request completed with server error", **log_data)
        elif status_code >= 400:
            self.logger.warning("Request completed with client error", **log_data)
        else:
            self.logger.info("Request completed", **log_data)


_observability_initialized = False


def setup_observability(
    log_level: str = "INFO",
    metrics_enabled: bool = True,
    logging_enabled: bool = True,
) -> Dict[str, Any]:
    """
    Setup logging and metrics.

    Call once at application startup. Safe to call multiple times.

    Args:
        log_level: Log level, overridden by LOG_LEVEL
        metrics_enabled: Enable Prometheus metrics
        logging_enabled: Enable structured logging

    Returns:
        Dict with initialized components
    """
    global _observability_initialized

    result: Dict[str, Any] = {}

    log_level = os.getenv("LOG_LEVEL", log_level)

    # Logging first, other components may log
    if logging_enabled:
        json_output = os.getenv("LOG_FORMAT", "json").lower() == "json"
        setup_logging(level=log_level, json_output=json_output)
        result["logging"] = True

    if metrics_enabled:
        result["metrics"] = setup_metrics()

    if not _observability_initialized:
        get_logger("chatrelay.observability").info(
            "Observability initialized",
            metrics_enabled=metrics_enabled,
            log_level=log_level,
        )
        _observability_initialized = True

    return result


def set_request_model(request: Request, model: str):
    """Attach the requested model to the request's log context."""
    log_ctx = getattr(request.state, "log_context", None)
    if log_ctx:
        log_ctx.model = model
