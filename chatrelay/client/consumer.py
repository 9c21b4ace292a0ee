"""
chatrelay - Stream Consumer

Client side of one exchange: posts a turn to the relay, grows an assistant
placeholder as text arrives and ends in exactly one outcome.

    IDLE -> SENDING -> STREAMING -> COMPLETED
                    \\            \\-> CANCELLED (partial text kept)
                     \\            \\-> FAILED    (placeholder discarded)
                      \\-> FAILED

Every FAILED exchange emits exactly one notification.

Usage:
    async with httpx.AsyncClient(base_url="http://localhost:8000") as http:
        consumer = StreamConsumer(http, notify=print)
        conversation = Conversation(model=get_fallback_model())
        outcome = await consumer.send(conversation, "Hello")
"""

import codecs
import json
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import httpx

from ..core.config import DEFAULT_SYSTEM_PROMPT, DEFAULT_TEMPERATURE
from ..core.errors import ErrorEnvelope, UnexpectedError
from ..core.models import ChatMessage, CompletionRequest, ModelSpec, Role, StreamOutcome
from ..observability.logging import get_logger
from .notifications import render_notification


logger = get_logger("chatrelay.consumer")


class ExchangeState(str, Enum):
    """Consumer states."""
    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATES = (ExchangeState.SENDING, ExchangeState.STREAMING)


class ExchangeInProgressError(RuntimeError):
    """A turn was submitted while another one is still in flight."""


class CancellationToken:
    """
    Cooperative stop flag.

    Checked once per received chunk; reset when the consumer acts on it.
    """

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True

    def reset(self):
        self._cancelled = False


@dataclass
class Conversation:
    """Conversation state the consumer reads from and writes back to."""
    model: ModelSpec
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    temperature: float = DEFAULT_TEMPERATURE
    messages: List[ChatMessage] = field(default_factory=list)
    cancel_token: CancellationToken = field(default_factory=CancellationToken)
    id: str = field(default_factory=lambda: f"conv_{uuid.uuid4().hex[:12]}")

    def build_request(self, api_key: str = "", pending: Optional[ChatMessage] = None) -> CompletionRequest:
        """Request for the current history, plus ``pending`` when given."""
        messages = self.messages if pending is None else [*self.messages, pending]
        return CompletionRequest.build(
            model=self.model,
            system_prompt=self.system_prompt or DEFAULT_SYSTEM_PROMPT,
            temperature=self.temperature,
            messages=messages,
            api_key=api_key,
        )


class StreamConsumer:
    """
    Drives exchanges against the relay entry point.

    Args:
        client: HTTP client pointed at the relay server
        notify: Called with the user-facing text of each failure
        api_key: Caller credential forwarded in the request body
        endpoint: Relay entry point path
        on_update: Called with the conversation whenever it changed
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        notify: Callable[[str], None],
        api_key: str = "",
        endpoint: str = "/api/chat",
        on_update: Optional[Callable[[Conversation], None]] = None,
    ):
        self.client = client
        self.notify = notify
        self.api_key = api_key
        self.endpoint = endpoint
        self.on_update = on_update
        self.state = ExchangeState.IDLE

    @property
    def in_flight(self) -> bool:
        return self.state in ACTIVE_STATES

    async def send(self, conversation: Conversation, content: str) -> StreamOutcome:
        """
        Run one exchange for a new user message.

        Returns:
            The terminal outcome. Completed and Cancelled text is left in the
            conversation as the last assistant message.

        Raises:
            ExchangeInProgressError: Another exchange has not finished yet
            ValueError: The conversation settings do not form a valid request;
                the conversation is left unchanged
        """
        if self.in_flight:
            raise ExchangeInProgressError(f"Conversation {conversation.id} already has a turn in flight")

        message = ChatMessage(Role.USER, content)
        request = conversation.build_request(self.api_key, pending=message)

        # a stop pressed after the previous turn ended does not carry over
        conversation.cancel_token.reset()

        conversation.messages.append(message)
        self.state = ExchangeState.SENDING

        try:
            self._update(conversation)
            async with self.client.stream("POST", self.endpoint, json=request.to_dict()) as response:
                if response.status_code != 200:
                    body = await response.aread()
                    return self._fail(_decode_envelope(body), conversation)

                return await self._read_stream(response, conversation)

        except httpx.HTTPError as e:
            logger.warning("Exchange failed before streaming", error=str(e), conversation_id=conversation.id)
            return self._fail(UnexpectedError(), conversation)

        except Exception as e:
            if not self.in_flight:
                raise
            logger.error(
                "Exchange failed",
                error=str(e),
                error_class=type(e).__name__,
                conversation_id=conversation.id,
            )
            return self._fail(UnexpectedError(), conversation)

        finally:
            if self.in_flight:
                self.state = ExchangeState.FAILED

    async def _read_stream(self, response: httpx.Response, conversation: Conversation) -> StreamOutcome:
        placeholder = ChatMessage(Role.ASSISTANT, "")
        conversation.messages.append(placeholder)
        self.state = ExchangeState.STREAMING

        token = conversation.cancel_token
        decoder = codecs.getincrementaldecoder("utf-8")()

        try:
            self._update(conversation)
            async for chunk in response.aiter_bytes():
                if token.cancelled:
                    token.reset()
                    self.state = ExchangeState.CANCELLED
                    logger.info("Exchange cancelled", conversation_id=conversation.id, chars=len(placeholder.content))
                    return StreamOutcome.cancelled(placeholder.content)

                text = decoder.decode(chunk)
                if text:
                    placeholder.content += text
                    self._update(conversation)

            placeholder.content += decoder.decode(b"", final=True)

        except Exception as e:
            logger.error(
                "Exchange failed while streaming",
                error=str(e),
                error_class=type(e).__name__,
                conversation_id=conversation.id,
            )
            _discard(conversation, placeholder)
            return self._fail(UnexpectedError(), conversation)

        self.state = ExchangeState.COMPLETED
        self._update(conversation)
        return StreamOutcome.completed(placeholder.content)

    def _fail(self, envelope: ErrorEnvelope, conversation: Conversation) -> StreamOutcome:
        self.state = ExchangeState.FAILED
        self.notify(render_notification(envelope))
        self._update(conversation)
        return StreamOutcome.failed(envelope)

    def _update(self, conversation: Conversation):
        if self.on_update is not None:
            self.on_update(conversation)


def _decode_envelope(body: bytes) -> ErrorEnvelope:
    try:
        data = json.loads(body)
    except ValueError:
        return UnexpectedError()
    return ErrorEnvelope.from_dict(data)


def _discard(conversation: Conversation, placeholder: ChatMessage):
    # by identity: an equal message may exist earlier in the conversation
    for index, message in enumerate(conversation.messages):
        if message is placeholder:
            del conversation.messages[index]
            return
