"""
chatrelay - Relay Tests

Verifies against a MockTransport upstream:
- Header, URL and body shape for both provider types
- Deltas are re-streamed in order and concatenate to the full answer
- Non-200 responses raise before any delta, with one upstream call
- Premature end of body and malformed payloads end the stream in error
"""

import asyncio

import httpx
import pytest

from chatrelay.core.models import CompletionRequest
from chatrelay.core.errors import (
    StreamInterruptedError,
    StreamParseError,
    UpstreamAPIError,
    UpstreamTransportError,
)

from conftest import (
    delta_chunk,
    finish_chunk,
    make_relay,
    provider_error,
    sse_body,
    sse_event,
    streaming_response,
)


async def collect(stream):
    return [delta.content async for delta in stream]


# ============================================================
# Request construction
# ============================================================

class TestRequestShape:
    """Outbound request per provider type."""

    @pytest.mark.asyncio
    async def test_openai_request(self, openai_config, completion_request):
        relay, upstream = make_relay(openai_config, lambda r: streaming_response([sse_body(["ok"])]))

        await collect(await relay.open(completion_request))

        request = upstream.requests[0]
        assert str(request.url) == "https://api.openai.test/v1/chat/completions"
        assert request.method == "POST"
        assert request.headers["authorization"] == "Bearer sk-caller"
        assert request.headers["openai-organization"] == "org-test"
        assert "api-key" not in request.headers

        payload = upstream.last_json
        assert payload["model"] == "gpt-4"
        assert payload["stream"] is True
        assert payload["max_tokens"] == openai_config.max_tokens
        assert payload["temperature"] == 0.5
        assert payload["messages"][0] == {"role": "system", "content": "Be brief."}
        assert payload["messages"][1:] == [m.to_dict() for m in completion_request.messages]

    @pytest.mark.asyncio
    async def test_azure_request(self, azure_config, completion_request):
        relay, upstream = make_relay(azure_config, lambda r: streaming_response([sse_body(["ok"])]))

        await collect(await relay.open(completion_request))

        request = upstream.requests[0]
        assert str(request.url) == (
            "https://chatty.openai.azure.test/openai/deployments/gpt35/chat/completions"
            "?api-version=2023-05-15"
        )
        assert request.headers["api-key"] == "sk-caller"
        assert "authorization" not in request.headers

        payload = upstream.last_json
        assert "model" not in payload
        assert payload["max_tokens"] == 800
        assert payload["stream"] is True

    def test_server_key_used_without_caller_key(self, openai_config, completion_request):
        relay, _ = make_relay(openai_config, lambda r: streaming_response([]))
        request = CompletionRequest.build(
            model=completion_request.model,
            system_prompt="",
            temperature=1.0,
            messages=completion_request.messages,
        )

        assert relay.build_headers(request)["Authorization"] == "Bearer sk-server-default"


# ============================================================
# Streaming
# ============================================================

class TestStreaming:
    """Live delta stream."""

    @pytest.mark.asyncio
    async def test_deltas_in_order(self, openai_config, completion_request):
        body = sse_body(["Rome", " is", " the", " capital."])
        parts = [body[i:i + 7] for i in range(0, len(body), 7)]
        relay, upstream = make_relay(openai_config, lambda r: streaming_response(parts))

        stream = await relay.open(completion_request)
        texts = await collect(stream)

        assert texts == ["Rome", " is", " the", " capital."]
        assert "".join(texts) == "Rome is the capital."
        assert stream.finish_reason == "stop"
        assert stream.deltas_delivered == 4
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_done_sentinel_ends_stream(self, openai_config, completion_request):
        body = sse_event(delta_chunk("hi")) + b"data: [DONE]\n\n"
        relay, _ = make_relay(openai_config, lambda r: streaming_response([body]))

        assert await collect(await relay.open(completion_request)) == ["hi"]

    @pytest.mark.asyncio
    async def test_records_metrics(self, openai_config, completion_request):
        relay, _ = make_relay(openai_config, lambda r: streaming_response([sse_body(["a", "b"])]))

        await collect(await relay.open(completion_request))

        registry = relay.metrics.registry
        assert registry.get_sample_value("chatrelay_exchanges_total", {"outcome": "completed"}) == 1
        assert registry.get_sample_value("chatrelay_time_to_first_token_seconds_count") == 1
        assert registry.get_sample_value("chatrelay_active_streams") == 0

    @pytest.mark.asyncio
    async def test_premature_end_is_interrupted(self, openai_config, completion_request):
        relay, _ = make_relay(
            openai_config,
            lambda r: streaming_response([sse_body(["partial", " answer"], finish=False)]),
        )
        stream = await relay.open(completion_request)
        received = []

        with pytest.raises(StreamInterruptedError) as exc_info:
            async for delta in stream:
                received.append(delta.content)

        assert received == ["partial", " answer"]
        assert exc_info.value.deltas_delivered == 2
        registry = relay.metrics.registry
        assert registry.get_sample_value("chatrelay_exchanges_total", {"outcome": "interrupted"}) == 1

    @pytest.mark.asyncio
    async def test_malformed_payload_fails_stream(self, openai_config, completion_request):
        body = sse_event(delta_chunk("one")) + b"data: {broken\n\n" + sse_event(delta_chunk("two"))
        relay, _ = make_relay(openai_config, lambda r: streaming_response([body]))
        stream = await relay.open(completion_request)
        received = []

        with pytest.raises(StreamParseError) as exc_info:
            async for delta in stream:
                received.append(delta.content)

        assert received == ["one"]
        assert exc_info.value.payload == "{broken"

    @pytest.mark.asyncio
    async def test_first_delta_before_upstream_finishes(self, openai_config, completion_request):
        gate = asyncio.Event()

        async def held():
            yield sse_event(delta_chunk("first"))
            await gate.wait()
            yield sse_event(delta_chunk("second")) + sse_event(finish_chunk())

        relay, _ = make_relay(
            openai_config,
            lambda r: httpx.Response(200, headers={"content-type": "text/event-stream"}, content=held()),
        )
        deltas = (await relay.open(completion_request)).__aiter__()

        first = await asyncio.wait_for(deltas.__anext__(), timeout=1)

        assert first.content == "first"
        assert not gate.is_set()

        gate.set()
        assert [delta.content async for delta in deltas] == ["second"]


class TestRelease:
    """Upstream response lifetime."""

    @pytest.mark.asyncio
    async def test_close_before_iteration(self, openai_config, completion_request):
        relay, _ = make_relay(openai_config, lambda r: streaming_response([sse_body(["never"])]))
        stream = await relay.open(completion_request)

        await stream.aclose()

        assert stream.response.is_closed
        registry = relay.metrics.registry
        assert registry.get_sample_value("chatrelay_exchanges_total", {"outcome": "cancelled"}) == 1

    @pytest.mark.asyncio
    async def test_close_after_completion_counts_once(self, openai_config, completion_request):
        relay, _ = make_relay(openai_config, lambda r: streaming_response([sse_body(["ok"])]))
        stream = await relay.open(completion_request)

        await collect(stream)
        await stream.aclose()

        registry = relay.metrics.registry
        assert registry.get_sample_value("chatrelay_exchanges_total", {"outcome": "completed"}) == 1
        assert registry.get_sample_value("chatrelay_exchanges_total", {"outcome": "cancelled"}) is None


# ============================================================
# Failures before the stream starts
# ============================================================

class TestOpenFailures:
    """Non-200 and transport failures raise from open()."""

    @pytest.mark.asyncio
    async def test_provider_error_body(self, openai_config, completion_request):
        relay, upstream = make_relay(
            openai_config,
            lambda r: httpx.Response(429, json=provider_error("Rate limit reached"), headers={"retry-after": "12"}),
        )

        with pytest.raises(UpstreamAPIError) as exc_info:
            await relay.open(completion_request)

        error = exc_info.value
        assert error.status_code == 429
        assert error.message == "Rate limit reached"
        assert error.headers["retry-after"] == "12"
        assert b"Rate limit reached" in error.body
        assert len(upstream.requests) == 1

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, openai_config, completion_request):
        relay, _ = make_relay(
            openai_config,
            lambda r: httpx.Response(502, text="Bad Gateway", headers={"content-type": "text/plain"}),
        )

        with pytest.raises(UpstreamTransportError) as exc_info:
            await relay.open(completion_request)

        assert exc_info.value.status_code == 502
        assert exc_info.value.body == b"Bad Gateway"
        assert exc_info.value.content_type == "text/plain"

    @pytest.mark.asyncio
    async def test_transport_failure(self, openai_config, completion_request):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        relay, _ = make_relay(openai_config, refuse)

        with pytest.raises(UpstreamTransportError) as exc_info:
            await relay.open(completion_request)

        assert exc_info.value.status_code is None
        registry = relay.metrics.registry
        assert registry.get_sample_value("chatrelay_exchanges_total", {"outcome": "failed"}) == 1
