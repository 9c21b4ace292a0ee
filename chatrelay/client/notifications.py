"""
chatrelay - User Notifications

One user-facing message per error kind.
"""

from typing import Callable, Dict, Union

from ..core.errors import (
    ContextLengthExceeded,
    ErrorEnvelope,
    ErrorKind,
    GenericProviderError,
    ProviderError,
    RateLimit,
)


AUTH_ERROR_MESSAGE = (
    "Invalid API Key. Please enter the correct Azure OpenAI key in left menu bar of Chatty."
)
UNEXPECTED_ERROR_MESSAGE = "Unexpected server error. Please try again a bit later."


def _context_length(envelope: ContextLengthExceeded) -> str:
    return (
        f"This model's maximum context length is exceeded "
        f"({envelope.limit} tokens but {envelope.requested} tokens requested). "
        f"Please reduce the number of tokens in the request"
    )


def _rate_limit(envelope: RateLimit) -> str:
    return f"Too many requests. Please wait {envelope.retry_after} seconds before trying again."


def _verbatim(envelope: Union[GenericProviderError, ProviderError]) -> str:
    return envelope.message


_TEMPLATES: Dict[ErrorKind, Callable[..., str]] = {
    ErrorKind.AUTH_ERROR: lambda _: AUTH_ERROR_MESSAGE,
    ErrorKind.CONTEXT_LENGTH_EXCEEDED: _context_length,
    ErrorKind.RATE_LIMIT: _rate_limit,
    ErrorKind.GENERIC_PROVIDER_ERROR: _verbatim,
    ErrorKind.PROVIDER_ERROR: _verbatim,
    ErrorKind.UNEXPECTED_ERROR: lambda _: UNEXPECTED_ERROR_MESSAGE,
}


def render_notification(envelope: ErrorEnvelope) -> str:
    """
    Text shown to the user for a failed exchange.

    Example:
        >>> render_notification(RateLimit(retry_after=26))
        'Too many requests. Please wait 26 seconds before trying again.'
    """
    return _TEMPLATES[envelope.kind](envelope)
