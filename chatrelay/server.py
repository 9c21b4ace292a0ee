"""
chatrelay - Main API Server

FastAPI server relaying streamed chat completions from an OpenAI or Azure
OpenAI deployment to the browser client.

Features:
- Streaming relay with a closed error taxonomy (ErrorEnvelope)
- Raw passthrough relay for automated callers
- Static model catalog
- Observability (metrics, structured logging)
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core.config import RelayConfig
from .core.errors import RateLimit, RelayError, UnexpectedError
from .streaming.relay import Relay

from .api import (
    chat_router,
    models_router,
    set_relay_getter,
)
from .api.models import HealthResponse

from .observability import (
    setup_observability,
    ObservabilityMiddleware,
    get_logger,
    metrics_endpoint,
)


# ============================================================
# Global state
# ============================================================

relay_instance: Optional[Relay] = None


# ============================================================
# Lifespan management
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build configuration and the relay once; close the relay on shutdown."""
    global relay_instance

    # Observability first, for logging during startup
    setup_observability()
    logger = get_logger("chatrelay.server")

    config = RelayConfig.from_env()
    relay_instance = Relay(config)

    logger.info(
        "chatrelay server ready",
        provider=config.api_type.value,
        api_host=config.api_host,
        max_tokens=config.max_tokens,
        default_key_configured=bool(config.default_api_key),
    )

    yield

    await relay_instance.close()
    relay_instance = None
    logger.info("chatrelay server stopped")


# ============================================================
# FastAPI App
# ============================================================

app = FastAPI(
    title="chatrelay",
    description="Streaming relay between a chat UI and an OpenAI-compatible provider",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(models_router)


def get_relay_instance() -> Optional[Relay]:
    return relay_instance


set_relay_getter(get_relay_instance)


# ============================================================
# Core Endpoints (not in routes)
# ============================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    if relay_instance is None:
        return JSONResponse(status_code=503, content={"status": "starting"})

    config = relay_instance.config
    return HealthResponse(provider=config.api_type.value, api_host=config.api_host)


@app.get("/metrics")
async def prometheus_metrics():
    """Prometheus metrics in text exposition format."""
    return metrics_endpoint()


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(RelayError)
async def relay_error_handler(request: Request, exc: RelayError):
    """Render a classified failure as its wire envelope."""
    headers = {"X-Error-Type": exc.envelope.kind.value}
    if isinstance(exc.envelope, RateLimit):
        headers["Retry-After"] = str(exc.envelope.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.envelope.to_dict(),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies surface as unexpected_error; details stay in the log."""
    get_logger("chatrelay.server").warning(
        "Request validation failed",
        path=request.url.path,
        errors=exc.errors(),
    )
    envelope = UnexpectedError()
    return JSONResponse(status_code=envelope.status_code, content=envelope.to_dict())


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    get_logger("chatrelay.server").exception(
        "Unhandled exception",
        path=request.url.path,
        error_class=type(exc).__name__,
    )
    envelope = UnexpectedError()
    return JSONResponse(status_code=envelope.status_code, content=envelope.to_dict())


# ============================================================
# Run server
# ============================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "chatrelay.server:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
