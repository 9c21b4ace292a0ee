"""
chatrelay - Error Definitions

Closed error taxonomy surfaced to callers, plus the raw upstream failure
values the relay produces before classification.

Wire format of an envelope is a flat JSON object:

    {"errorType": "rate_limit", "retryAfter": 26}

Decoding reads the discriminant first and falls back to
``unexpected_error`` for unknown discriminants or missing fields.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Mapping, Optional, Type


DISCRIMINANT = "errorType"


class ErrorKind(str, Enum):
    """Canonical error kinds, in classification order."""
    AUTH_ERROR = "openai_auth_error"
    CONTEXT_LENGTH_EXCEEDED = "context_length_exceeded"
    RATE_LIMIT = "rate_limit"
    GENERIC_PROVIDER_ERROR = "generic_openai_error"
    PROVIDER_ERROR = "openai_error"
    UNEXPECTED_ERROR = "unexpected_error"


# ============================================================
# Error Envelopes (tagged union)
# ============================================================

@dataclass(frozen=True)
class ErrorEnvelope:
    """Base of the envelope union. Never instantiated directly."""

    kind: ClassVar[ErrorKind]
    default_status: ClassVar[int] = 500

    @property
    def status_code(self) -> int:
        return self.default_status

    def fields(self) -> Dict[str, Any]:
        """Kind-specific wire fields."""
        return {}

    def to_dict(self) -> Dict[str, Any]:
        return {DISCRIMINANT: self.kind.value, **self.fields()}

    @classmethod
    def _from_fields(cls, data: Mapping[str, Any]) -> "ErrorEnvelope":
        return cls()

    @staticmethod
    def from_dict(data: Any) -> "ErrorEnvelope":
        """
        Decode a wire envelope.

        Never raises: anything that does not match a known kind with its
        required fields becomes UnexpectedError.
        """
        if not isinstance(data, Mapping):
            return UnexpectedError()

        discriminant = data.get(DISCRIMINANT)
        if not isinstance(discriminant, str):
            return UnexpectedError()

        envelope_cls = _ENVELOPES.get(discriminant)
        if envelope_cls is None:
            return UnexpectedError()

        try:
            return envelope_cls._from_fields(data)
        except (KeyError, TypeError, ValueError):
            return UnexpectedError()


@dataclass(frozen=True)
class AuthError(ErrorEnvelope):
    kind: ClassVar[ErrorKind] = ErrorKind.AUTH_ERROR
    default_status: ClassVar[int] = 401


@dataclass(frozen=True)
class ContextLengthExceeded(ErrorEnvelope):
    limit: int = 0
    requested: int = 0

    kind: ClassVar[ErrorKind] = ErrorKind.CONTEXT_LENGTH_EXCEEDED
    default_status: ClassVar[int] = 400

    def fields(self) -> Dict[str, Any]:
        return {"limit": self.limit, "requested": self.requested}

    @classmethod
    def _from_fields(cls, data: Mapping[str, Any]) -> "ContextLengthExceeded":
        return cls(limit=_strict_int(data["limit"]), requested=_strict_int(data["requested"]))


@dataclass(frozen=True)
class RateLimit(ErrorEnvelope):
    retry_after: int = 0

    kind: ClassVar[ErrorKind] = ErrorKind.RATE_LIMIT
    default_status: ClassVar[int] = 429

    def fields(self) -> Dict[str, Any]:
        return {"retryAfter": self.retry_after}

    @classmethod
    def _from_fields(cls, data: Mapping[str, Any]) -> "RateLimit":
        return cls(retry_after=_strict_int(data["retryAfter"]))


@dataclass(frozen=True)
class GenericProviderError(ErrorEnvelope):
    message: str = ""

    kind: ClassVar[ErrorKind] = ErrorKind.GENERIC_PROVIDER_ERROR
    default_status: ClassVar[int] = 400

    def fields(self) -> Dict[str, Any]:
        return {"message": self.message}

    @classmethod
    def _from_fields(cls, data: Mapping[str, Any]) -> "GenericProviderError":
        return cls(message=_strict_str(data["message"]))


@dataclass(frozen=True)
class ProviderError(ErrorEnvelope):
    message: str = ""
    upstream_status: int = 500

    kind: ClassVar[ErrorKind] = ErrorKind.PROVIDER_ERROR

    @property
    def status_code(self) -> int:
        return self.upstream_status

    def fields(self) -> Dict[str, Any]:
        return {"message": self.message}

    @classmethod
    def _from_fields(cls, data: Mapping[str, Any]) -> "ProviderError":
        return cls(message=_strict_str(data["message"]))


@dataclass(frozen=True)
class UnexpectedError(ErrorEnvelope):
    kind: ClassVar[ErrorKind] = ErrorKind.UNEXPECTED_ERROR


_ENVELOPES: Dict[str, Type[ErrorEnvelope]] = {
    cls.kind.value: cls
    for cls in (
        AuthError,
        ContextLengthExceeded,
        RateLimit,
        GenericProviderError,
        ProviderError,
        UnexpectedError,
    )
}


def _strict_int(value: Any) -> int:
    # bool is an int subclass; reject it along with floats and strings
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"expected integer, got {value!r}")
    return value


def _strict_str(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise TypeError(f"expected non-empty string, got {value!r}")
    return value


class RelayError(Exception):
    """Carries a classified envelope across the API boundary."""

    def __init__(self, envelope: ErrorEnvelope, cause: Optional[BaseException] = None):
        self.envelope = envelope
        self.cause = cause
        super().__init__(envelope.kind.value)

    @property
    def status_code(self) -> int:
        return self.envelope.status_code


# ============================================================
# Upstream failures (pre-classification)
# ============================================================

class UpstreamFailure(Exception):
    """Base for failures observed before a stream was established."""

    status_code: Optional[int]
    body: bytes
    headers: Mapping[str, str]
    content_type: str


class UpstreamAPIError(UpstreamFailure):
    """Provider answered non-200 with a JSON ``error`` object."""

    def __init__(
        self,
        message: str,
        type: str = "",
        param: str = "",
        code: str = "",
        status_code: int = 500,
        body: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
        content_type: str = "application/json",
    ):
        self.message = message
        self.type = type
        self.param = param
        self.code = code
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.content_type = content_type
        super().__init__(message)


class UpstreamTransportError(UpstreamFailure):
    """
    Anything else that prevented a stream: a non-200 without an ``error``
    object, or no HTTP response at all (``status_code`` is None).
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
        content_type: str = "application/json",
    ):
        self.message = message
        self.status_code = status_code
        self.body = body
        self.headers = headers or {}
        self.content_type = content_type
        super().__init__(message)


# ============================================================
# Mid-stream failures
# ============================================================

class StreamError(Exception):
    """A stream that already started could not be completed."""


class StreamParseError(StreamError):
    """An upstream event payload was not valid JSON."""

    def __init__(self, message: str, payload: str = ""):
        self.payload = payload
        super().__init__(message)


class StreamInterruptedError(StreamError):
    """Upstream closed the body before sending a terminal signal."""

    def __init__(self, deltas_delivered: int = 0):
        self.deltas_delivered = deltas_delivered
        super().__init__(
            f"Upstream closed the stream without a finish signal after {deltas_delivered} deltas"
        )


class ConfigError(ValueError):
    """Invalid process-wide configuration."""


@dataclass
class ErrorContext:
    """Extra fields attached to log lines for a classified failure."""
    kind: ErrorKind
    upstream_status: Optional[int] = None
    upstream_code: str = ""
    upstream_type: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_log_fields(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"error_type": self.kind.value}
        if self.upstream_status is not None:
            result["upstream_status"] = self.upstream_status
        if self.upstream_code:
            result["upstream_code"] = self.upstream_code
        if self.upstream_type:
            result["upstream_type"] = self.upstream_type
        result.update(self.details)
        return result
