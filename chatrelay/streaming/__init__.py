"""
chatrelay Streaming Module

Upstream event parsing, error classification and the relay itself.
"""

from .parser import (
    DONE_SENTINEL,
    StreamEventType,
    UpstreamEvent,
    UpstreamEventParser,
)
from .classifier import (
    ProviderErrorInfo,
    classify_failure,
    classify_response,
)
from .relay import (
    Relay,
    RelayStream,
)

__all__ = [
    "DONE_SENTINEL",
    "StreamEventType",
    "UpstreamEvent",
    "UpstreamEventParser",
    "ProviderErrorInfo",
    "classify_failure",
    "classify_response",
    "Relay",
    "RelayStream",
]
