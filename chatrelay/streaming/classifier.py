"""
chatrelay - Error Classifier

Maps upstream failure signals onto the closed error taxonomy.

The decision table is evaluated top to bottom, first match wins:

    401                                   -> openai_auth_error
    400 + context-length validation       -> context_length_exceeded
    429                                   -> rate_limit
    400 + human-readable message          -> generic_openai_error
    >=500 + human-readable message        -> openai_error
    anything else / transport / unknown   -> unexpected_error

Classification depends only on (status, body, headers) and never raises.

Provider error body format (OpenAI and Azure OpenAI):
{
    "error": {
        "message": "...",
        "type": "invalid_request_error|...",
        "param": "messages",
        "code": "context_length_exceeded|..."
    }
}
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from ..core.errors import (
    AuthError,
    ContextLengthExceeded,
    ErrorContext,
    ErrorEnvelope,
    GenericProviderError,
    ProviderError,
    RateLimit,
    UnexpectedError,
    UpstreamAPIError,
    UpstreamFailure,
)
from ..observability.logging import get_logger


logger = get_logger("chatrelay.classifier")

DEFAULT_RETRY_AFTER = 60

CONTEXT_LENGTH_CODE = "context_length_exceeded"

_CONTEXT_LIMITS = re.compile(
    r"maximum context length is (\d+) tokens.*?(?:resulted in|requested) (\d+) tokens",
    re.IGNORECASE | re.DOTALL,
)
_RETRY_AFTER_MESSAGE = re.compile(r"retry after (\d+) seconds?", re.IGNORECASE)

Body = Union[bytes, str, Mapping[str, Any], None]


@dataclass(frozen=True)
class ProviderErrorInfo:
    """The ``error`` object of a provider error body."""
    message: str = ""
    type: str = ""
    param: str = ""
    code: str = ""

    @classmethod
    def from_body(cls, body: Body) -> Optional["ProviderErrorInfo"]:
        data = _load_json(body)
        if not isinstance(data, Mapping):
            return None
        error = data.get("error")
        if not isinstance(error, Mapping):
            return None
        return cls(
            message=_as_text(error.get("message")),
            type=_as_text(error.get("type")),
            param=_as_text(error.get("param")),
            code=_as_text(error.get("code")),
        )


def classify_response(
    status_code: Optional[int],
    body: Body = None,
    headers: Optional[Mapping[str, str]] = None,
) -> ErrorEnvelope:
    """
    Classify a non-success upstream response.

    Args:
        status_code: Upstream HTTP status, or None when no response arrived
        body: Raw or already-decoded response body
        headers: Response headers (used for Retry-After)

    Returns:
        Exactly one envelope; UnexpectedError when nothing else matches.
    """
    try:
        return _decide(status_code, ProviderErrorInfo.from_body(body), headers or {})
    except Exception:
        logger.exception("Error classification failed", upstream_status=status_code)
        return UnexpectedError()


def classify_failure(failure: BaseException) -> ErrorEnvelope:
    """Classify any exception raised while opening or reading a stream."""
    if isinstance(failure, UpstreamAPIError):
        info = ProviderErrorInfo(
            message=failure.message,
            type=failure.type,
            param=failure.param,
            code=failure.code,
        )
        try:
            envelope = _decide(failure.status_code, info, failure.headers)
        except Exception:
            logger.exception("Error classification failed", upstream_status=failure.status_code)
            envelope = UnexpectedError()
    elif isinstance(failure, UpstreamFailure):
        envelope = classify_response(failure.status_code, failure.body, failure.headers)
    else:
        envelope = UnexpectedError()

    _log_classification(failure, envelope)
    return envelope


# ============================================================
# Decision table
# ============================================================

def _decide(
    status_code: Optional[int],
    info: Optional[ProviderErrorInfo],
    headers: Mapping[str, str],
) -> ErrorEnvelope:
    if status_code is None:
        return UnexpectedError()

    message = info.message if info else ""

    if status_code == 401:
        return AuthError()

    if status_code == 400 and info is not None:
        context_error = _context_length(info)
        if context_error is not None:
            return context_error

    if status_code == 429:
        return RateLimit(retry_after=_retry_after(headers, message))

    if status_code == 400 and message:
        return GenericProviderError(message=message)

    if status_code >= 500 and message:
        return ProviderError(message=message, upstream_status=status_code)

    return UnexpectedError()


def _context_length(info: ProviderErrorInfo) -> Optional[ContextLengthExceeded]:
    """Context-length validation failure with both numbers recoverable."""
    if info.code != CONTEXT_LENGTH_CODE and "maximum context length" not in info.message.lower():
        return None
    match = _CONTEXT_LIMITS.search(info.message)
    if match is None:
        return None
    return ContextLengthExceeded(limit=int(match.group(1)), requested=int(match.group(2)))


def _retry_after(headers: Mapping[str, str], message: str) -> int:
    for name in ("retry-after", "Retry-After"):
        value = headers.get(name)
        if value is not None:
            try:
                return max(0, int(float(value)))
            except (ValueError, OverflowError):
                break

    match = _RETRY_AFTER_MESSAGE.search(message)
    if match:
        return int(match.group(1))

    return DEFAULT_RETRY_AFTER


def _load_json(body: Body) -> Any:
    if body is None or isinstance(body, Mapping):
        return body
    try:
        return json.loads(body)
    except (TypeError, ValueError):
        return None


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _log_classification(failure: BaseException, envelope: ErrorEnvelope):
    context = ErrorContext(
        kind=envelope.kind,
        upstream_status=getattr(failure, "status_code", None),
        upstream_code=getattr(failure, "code", "") or "",
        upstream_type=getattr(failure, "type", "") or "",
    )
    fields: Dict[str, Any] = context.to_log_fields()
    fields["status_code"] = envelope.status_code

    if isinstance(envelope, (ProviderError, UnexpectedError)):
        logger.error(f"Upstream failure classified: {failure}", **fields)
    else:
        logger.warning(f"Upstream failure classified: {failure}", **fields)
