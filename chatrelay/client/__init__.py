"""
chatrelay Client Module

Consumes the relay stream on behalf of a chat UI.
"""

from .consumer import (
    CancellationToken,
    Conversation,
    ExchangeInProgressError,
    ExchangeState,
    StreamConsumer,
)
from .notifications import (
    AUTH_ERROR_MESSAGE,
    UNEXPECTED_ERROR_MESSAGE,
    render_notification,
)

__all__ = [
    "CancellationToken",
    "Conversation",
    "ExchangeInProgressError",
    "ExchangeState",
    "StreamConsumer",
    "AUTH_ERROR_MESSAGE",
    "UNEXPECTED_ERROR_MESSAGE",
    "render_notification",
]
