"""
chatrelay - Chat API

Relay entry points. Both stream the answer as a chunked UTF-8 text body
whose concatenation is the full answer.

- POST /api/chat: failures before the first byte become an ErrorEnvelope
- POST /api/relay/chat: failures before the first byte are passed through
  with the upstream status and body
"""

from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from ...core.errors import ErrorEnvelope, ErrorKind, RelayError, StreamError, UpstreamFailure
from ...observability.logging import get_logger
from ...observability.middleware import set_request_model
from ...streaming.classifier import classify_failure
from ...streaming.relay import Relay, RelayStream

from ..models import ChatRequestBody
from ..dependencies import get_relay


router = APIRouter(prefix="/api", tags=["chat"])

logger = get_logger("chatrelay.api.chat")

STREAM_MEDIA_TYPE = "text/plain; charset=utf-8"


# ============================================================
# Endpoints
# ============================================================

@router.post("/chat")
async def chat(
    request: Request,
    body: ChatRequestBody,
    relay: Relay = Depends(get_relay),
):
    """
    Stream a chat completion.

    Returns the answer as plain text chunks, or a JSON ErrorEnvelope such
    as ``{"errorType": "rate_limit", "retryAfter": 26}`` with the matching
    status when the provider refused the request.
    """
    completion = body.to_completion_request()
    set_request_model(request, completion.model.id)

    try:
        stream = await relay.open(completion)
    except UpstreamFailure as e:
        envelope = _classify(relay, e)
        raise RelayError(envelope, cause=e) from e

    return _streaming_response(relay, stream)


@router.post("/relay/chat")
async def relay_chat(
    request: Request,
    body: ChatRequestBody,
    relay: Relay = Depends(get_relay),
):
    """
    Stream a chat completion for automated callers.

    A provider refusal is returned as-is: upstream status, content type and
    body. Only failures without any upstream response become an envelope.
    """
    completion = body.to_completion_request()
    set_request_model(request, completion.model.id)

    try:
        stream = await relay.open(completion)
    except UpstreamFailure as e:
        envelope = _classify(relay, e)
        if e.status_code is None:
            raise RelayError(envelope, cause=e) from e
        return Response(content=e.body, status_code=e.status_code, media_type=e.content_type)

    return _streaming_response(relay, stream)


# ============================================================
# Helpers
# ============================================================

def _classify(relay: Relay, failure: UpstreamFailure) -> ErrorEnvelope:
    envelope = classify_failure(failure)
    relay.metrics.record_error(envelope.kind.value)
    return envelope


def _streaming_response(relay: Relay, stream: RelayStream) -> StreamingResponse:
    # the upstream response is already open; release it even if the body never starts
    return StreamingResponse(
        _stream_text(relay, stream),
        media_type=STREAM_MEDIA_TYPE,
        background=BackgroundTask(stream.aclose),
    )


async def _stream_text(relay: Relay, stream: RelayStream) -> AsyncIterator[bytes]:
    """
    Re-stream deltas as they arrive.

    A failure after the first byte cannot change the status any more; it
    is logged and re-raised so the connection ends abnormally instead of
    looking like a complete answer.
    """
    try:
        async for delta in stream:
            yield delta.content.encode("utf-8")
    except StreamError as e:
        relay.metrics.record_error(ErrorKind.UNEXPECTED_ERROR.value)
        logger.error(
            "Stream failed after start",
            error=str(e),
            error_class=type(e).__name__,
            deltas=stream.deltas_delivered,
        )
        raise
