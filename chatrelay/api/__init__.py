"""
chatrelay - API Layer

Provides:
- Streaming chat relay (envelope errors and raw passthrough)
- Model catalog listing
"""

from .models import (
    ChatRequestBody,
    HealthResponse,
    MessageInput,
    ModelInput,
    RoleEnum,
)
from .dependencies import (
    get_relay,
    set_relay_getter,
)
from .routes import (
    chat_router,
    models_router,
)


__all__ = [
    # Routers
    "chat_router",
    "models_router",
    # Request models
    "ChatRequestBody",
    "MessageInput",
    "ModelInput",
    "RoleEnum",
    "HealthResponse",
    # Dependencies
    "get_relay",
    "set_relay_getter",
]
