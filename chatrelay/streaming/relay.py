"""
chatrelay - Upstream Relay

Turns one CompletionRequest into one streaming call to the provider and
exposes the response as an async iterator of TextDelta.

Failure model:
- Before the first byte of a 200 body: ``open`` raises an UpstreamFailure
  and nothing was streamed. The caller classifies it.
- After the stream started: iteration raises a StreamError. Text already
  yielded stays delivered; the caller has no way to report an envelope.

There are no retries. A relay call makes exactly one upstream request.
"""

import asyncio
import json
import time
from typing import Any, AsyncIterator, Dict, Mapping, Optional

import httpx

from ..core.config import ProviderType, RelayConfig
from ..core.errors import (
    StreamInterruptedError,
    StreamParseError,
    UpstreamAPIError,
    UpstreamFailure,
    UpstreamTransportError,
)
from ..core.models import CompletionRequest, TextDelta
from ..observability.logging import get_logger, trim_for_privacy
from ..observability.metrics import MetricsCollector, get_metrics
from .parser import StreamEventType, UpstreamEventParser


logger = get_logger("chatrelay.relay")


class Relay:
    """
    Provider client for streamed chat completions.

    Usage:
        relay = Relay(RelayConfig.from_env())
        stream = await relay.open(request)
        async for delta in stream:
            print(delta.content, end="")
    """

    def __init__(
        self,
        config: RelayConfig,
        client: Optional[httpx.AsyncClient] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=config.timeout)
        self.metrics = metrics or get_metrics()

    async def close(self):
        if self._owns_client:
            await self.client.aclose()

    # ============================================================
    # Request shaping
    # ============================================================

    @property
    def completions_url(self) -> str:
        return self.config.completions_url

    def build_headers(self, request: CompletionRequest) -> Dict[str, str]:
        api_key = self.config.resolve_api_key(request.api_key)
        headers = {"Content-Type": "application/json"}

        if self.config.api_type == ProviderType.AZURE:
            headers["api-key"] = api_key
        else:
            headers["Authorization"] = f"Bearer {api_key}"
            if self.config.organization:
                headers["OpenAI-Organization"] = self.config.organization

        return headers

    def build_payload(self, request: CompletionRequest) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        # Azure selects the model by deployment, in the URL
        if self.config.api_type == ProviderType.OPENAI:
            payload["model"] = request.model.id

        payload.update({
            "messages": request.upstream_messages(),
            "max_tokens": self.config.max_tokens,
            "temperature": request.temperature,
            "stream": True,
        })
        return payload

    # ============================================================
    # Upstream call
    # ============================================================

    async def open(self, request: CompletionRequest) -> "RelayStream":
        """
        Issue the upstream call and wait for response headers.

        Raises:
            UpstreamAPIError: Non-200 with a provider ``error`` object
            UpstreamTransportError: Any other non-200, or no response at all
        """
        url = self.completions_url
        last = request.messages[-1] if request.messages else None

        if last is not None:
            logger.info(f"Input '{trim_for_privacy(last.content)}'")
        logger.info(
            f"HTTP POST {url}",
            provider=self.config.api_type.value,
            model=request.model.id,
            max_tokens=self.config.max_tokens,
            temperature=request.temperature,
            message_count=len(request.messages),
            last_role=last.role.value if last else None,
            last_length=len(last.content) if last else 0,
        )

        http_request = self.client.build_request(
            "POST",
            url,
            headers=self.build_headers(request),
            json=self.build_payload(request),
        )

        started_at = time.perf_counter()
        try:
            response = await self.client.send(http_request, stream=True)
        except httpx.HTTPError as e:
            self.metrics.record_exchange("failed")
            raise UpstreamTransportError(f"Upstream request failed: {e}") from e

        if response.status_code != 200:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await response.aclose()
            self.metrics.record_exchange("failed")
            raise _failure_from_response(response.status_code, body, response.headers)

        return RelayStream(response, request, started_at, self.metrics)


class RelayStream:
    """
    One established upstream stream.

    Iterate it exactly once. The underlying response is closed when
    iteration ends for any reason.
    """

    def __init__(
        self,
        response: httpx.Response,
        request: CompletionRequest,
        started_at: float,
        metrics: MetricsCollector,
    ):
        self.response = response
        self.request = request
        self.started_at = started_at
        self.metrics = metrics
        self.deltas_delivered = 0
        self.chars_delivered = 0
        self.finish_reason: Optional[str] = None
        self._finished = False

    def __aiter__(self) -> AsyncIterator[TextDelta]:
        return self._iter_deltas()

    async def aclose(self):
        """
        Release the upstream response.

        Safe to call after iteration ended. A stream closed before it
        finished counts as cancelled.
        """
        await self.response.aclose()
        self._finish("cancelled")

    async def _iter_deltas(self) -> AsyncIterator[TextDelta]:
        parser = UpstreamEventParser()
        outcome = "failed"

        try:
            with self.metrics.track_active_stream():
                try:
                    async for chunk in self.response.aiter_bytes():
                        for event in parser.feed(chunk):
                            if event.type == StreamEventType.DELTA:
                                self._on_delta(event.content)
                                yield TextDelta(event.content)
                            elif event.type == StreamEventType.FINISH:
                                self.finish_reason = event.finish_reason
                                outcome = "completed"
                                return
                            else:
                                raise StreamParseError(
                                    event.error or "Malformed event payload",
                                    payload=event.raw,
                                )
                except httpx.HTTPError as e:
                    outcome = "interrupted"
                    raise StreamInterruptedError(self.deltas_delivered) from e

                outcome = "interrupted"
                raise StreamInterruptedError(self.deltas_delivered)

        except (GeneratorExit, asyncio.CancelledError):
            # downstream went away
            outcome = "cancelled"
            raise

        finally:
            await self.response.aclose()
            self._finish(outcome)

    def _finish(self, outcome: str):
        if self._finished:
            return
        self._finished = True
        self.metrics.record_exchange(outcome)
        self._log_summary(outcome)

    def _on_delta(self, content: str):
        if self.deltas_delivered == 0:
            self.metrics.record_time_to_first_token(time.perf_counter() - self.started_at)
        self.deltas_delivered += 1
        self.chars_delivered += len(content)

    def _log_summary(self, outcome: str):
        duration_ms = round((time.perf_counter() - self.started_at) * 1000, 2)
        fields = {
            "model": self.request.model.id,
            "outcome": outcome,
            "deltas": self.deltas_delivered,
            "chars": self.chars_delivered,
            "finish_reason": self.finish_reason,
            "duration_ms": duration_ms,
        }
        if outcome == "completed":
            logger.info("Stream finished", **fields)
        else:
            logger.warning("Stream ended early", **fields)


def _failure_from_response(
    status_code: int,
    body: bytes,
    headers: Mapping[str, str],
) -> UpstreamFailure:
    content_type = headers.get("content-type", "application/json")

    try:
        data = json.loads(body) if body else None
    except ValueError:
        data = None

    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return UpstreamAPIError(
            message=str(error.get("message") or ""),
            type=str(error.get("type") or ""),
            param=str(error.get("param") or ""),
            code=str(error.get("code") or ""),
            status_code=status_code,
            body=body,
            headers=headers,
            content_type=content_type,
        )

    return UpstreamTransportError(
        f"Upstream responded with status {status_code}",
        status_code=status_code,
        body=body,
        headers=headers,
        content_type=content_type,
    )
