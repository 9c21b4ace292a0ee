"""
chatrelay Core Module

Shared data model, configuration and error taxonomy.
"""

from .models import (
    # Enums
    Role,
    OutcomeKind,

    # Values
    ModelSpec,
    ChatMessage,
    CompletionRequest,
    TextDelta,
    StreamOutcome,
)

from .errors import (
    # Taxonomy
    ErrorKind,
    ErrorEnvelope,
    AuthError,
    ContextLengthExceeded,
    RateLimit,
    GenericProviderError,
    ProviderError,
    UnexpectedError,
    RelayError,

    # Upstream failures
    UpstreamFailure,
    UpstreamAPIError,
    UpstreamTransportError,

    # Stream failures
    StreamError,
    StreamParseError,
    StreamInterruptedError,

    ConfigError,
)

from .config import (
    ProviderType,
    RelayConfig,
    DEFAULT_SYSTEM_PROMPT,
    DEFAULT_TEMPERATURE,
)

__all__ = [
    "Role",
    "OutcomeKind",
    "ModelSpec",
    "ChatMessage",
    "CompletionRequest",
    "TextDelta",
    "StreamOutcome",
    "ErrorKind",
    "ErrorEnvelope",
    "AuthError",
    "ContextLengthExceeded",
    "RateLimit",
    "GenericProviderError",
    "ProviderError",
    "UnexpectedError",
    "RelayError",
    "UpstreamFailure",
    "UpstreamAPIError",
    "UpstreamTransportError",
    "StreamError",
    "StreamParseError",
    "StreamInterruptedError",
    "ConfigError",
    "ProviderType",
    "RelayConfig",
    "DEFAULT_SYSTEM_PROMPT",
    "DEFAULT_TEMPERATURE",
]
