"""
chatrelay - Pytest Configuration

Configures:
- Provider configurations
- Upstream fakes built on httpx.MockTransport
- SSE body builders
"""

import json
from typing import Any, AsyncIterator, Callable, Dict, Iterable, List, Optional

import httpx
import pytest
from prometheus_client import CollectorRegistry

from chatrelay.core.config import ProviderType, RelayConfig
from chatrelay.core.catalog import get_model
from chatrelay.core.models import ChatMessage, CompletionRequest, Role
from chatrelay.observability.metrics import MetricsCollector
from chatrelay.streaming.relay import Relay


# ============================================================
# SSE builders
# ============================================================

def sse_event(payload: Any) -> bytes:
    """One server-sent event carrying a JSON (or raw string) payload."""
    data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
    return f"data: {data}\n\n".encode("utf-8")


def delta_chunk(content: str) -> Dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": {"content": content}, "finish_reason": None}],
    }


def finish_chunk(reason: str = "stop") -> Dict[str, Any]:
    return {
        "id": "chatcmpl-test",
        "object": "chat.completion.chunk",
        "choices": [{"index": 0, "delta": {}, "finish_reason": reason}],
    }


def sse_body(texts: Iterable[str], finish: bool = True) -> bytes:
    """A complete provider body: a role preamble, one event per text, then finish."""
    body = sse_event({"choices": [{"index": 0, "delta": {"role": "assistant"}, "finish_reason": None}]})
    for text in texts:
        body += sse_event(delta_chunk(text))
    if finish:
        body += sse_event(finish_chunk())
    return body


async def achunks(parts: Iterable[bytes]) -> AsyncIterator[bytes]:
    """Async byte stream delivering ``parts`` one by one."""
    for part in parts:
        yield part


def streaming_response(parts: List[bytes], status_code: int = 200) -> httpx.Response:
    return httpx.Response(
        status_code,
        headers={"content-type": "text/event-stream"},
        content=achunks(parts),
    )


def provider_error(message: str, code: Optional[str] = None, type: str = "invalid_request_error") -> Dict[str, Any]:
    return {"error": {"message": message, "type": type, "param": None, "code": code}}


# ============================================================
# Upstream fake
# ============================================================

class UpstreamRecorder:
    """MockTransport handler recording every upstream request."""

    def __init__(self, respond: Callable[[httpx.Request], httpx.Response]):
        self.respond = respond
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last_json(self) -> Dict[str, Any]:
        return json.loads(self.requests[-1].content)


def make_relay(
    config: RelayConfig,
    respond: Callable[[httpx.Request], httpx.Response],
) -> "tuple[Relay, UpstreamRecorder]":
    recorder = UpstreamRecorder(respond)
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    relay = Relay(config, client=client, metrics=MetricsCollector(CollectorRegistry()))
    return relay, recorder


# ============================================================
# Fixtures
# ============================================================

@pytest.fixture
def openai_config() -> RelayConfig:
    return RelayConfig(
        api_type=ProviderType.OPENAI,
        api_host="https://api.openai.test",
        organization="org-test",
        default_api_key="sk-server-default",
    )


@pytest.fixture
def azure_config() -> RelayConfig:
    return RelayConfig(
        api_type=ProviderType.AZURE,
        api_host="https://chatty.openai.azure.test/",
        api_version="2023-05-15",
        azure_deployment_id="gpt35",
        default_api_key="azure-server-default",
        max_tokens=800,
    )


@pytest.fixture
def completion_request() -> CompletionRequest:
    return CompletionRequest.build(
        model=get_model("gpt-4"),
        system_prompt="Be brief.",
        temperature=0.5,
        api_key="sk-caller",
        messages=[
            ChatMessage(Role.USER, "What is the capital of France?"),
            ChatMessage(Role.ASSISTANT, "Paris."),
            ChatMessage(Role.USER, "And of Italy?"),
        ],
    )


@pytest.fixture
def chat_body(completion_request) -> Dict[str, Any]:
    """Wire body for the relay entry points."""
    return completion_request.to_dict()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector(CollectorRegistry())
