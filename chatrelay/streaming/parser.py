"""
chatrelay - Upstream Event Parser

Incremental parser for the provider's server-sent-event body.

Chunks arrive at whatever granularity the provider and the network choose:
one event may span several chunks and one chunk may carry several events.
The parser keeps the unfinished tail between ``feed`` calls and returns the
events completed by each call.

Event payloads are OpenAI-style chat completion chunks:

    data: {"choices":[{"delta":{"content":"Hel"},"finish_reason":null}]}

    data: {"choices":[{"delta":{},"finish_reason":"stop"}]}

A malformed payload puts the parser in a failed state. A parser instance
serves exactly one response body.
"""

import codecs
import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


DONE_SENTINEL = "[DONE]"

_LINE_END = re.compile(r"\r\n|\r|\n")


class StreamEventType(str, Enum):
    """Types of parsed upstream events."""
    DELTA = "delta"    # text fragment
    FINISH = "finish"  # terminal signal
    ERROR = "error"    # payload could not be decoded


@dataclass(frozen=True)
class UpstreamEvent:
    """One completed upstream event."""
    type: StreamEventType
    content: str = ""
    finish_reason: Optional[str] = None
    error: Optional[str] = None
    raw: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.type in (StreamEventType.FINISH, StreamEventType.ERROR)


class UpstreamEventParser:
    """
    Stateful SSE parser.

    Usage:
        parser = UpstreamEventParser()
        for chunk in body_chunks:
            for event in parser.feed(chunk):
                ...

    After a FINISH or ERROR event the parser ignores any further input.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self._data_lines: List[str] = []
        self._started = False
        self.finished = False
        self.failed = False
        self.events_parsed = 0

    @property
    def closed(self) -> bool:
        return self.finished or self.failed

    @property
    def has_pending_data(self) -> bool:
        """True when bytes of an unfinished event are buffered."""
        return bool(self._buffer or self._data_lines)

    def feed(self, chunk: bytes) -> List[UpstreamEvent]:
        """
        Consume one raw chunk.

        Returns:
            Events completed by this chunk, in arrival order. The last one
            may be terminal; nothing follows it.
        """
        if self.closed:
            return []

        try:
            text = self._decoder.decode(chunk)
        except UnicodeDecodeError as e:
            self.failed = True
            return [UpstreamEvent(type=StreamEventType.ERROR, error=f"Invalid UTF-8 in event stream: {e.reason}")]

        if not self._started and text:
            self._started = True
            if text.startswith("\ufeff"):
                text = text[1:]
        self._buffer += text

        events: List[UpstreamEvent] = []
        while not self.closed:
            match = _LINE_END.search(self._buffer)
            if match is None:
                break
            # a lone trailing CR may be the first half of a CRLF
            if match.group() == "\r" and match.end() == len(self._buffer):
                break

            line = self._buffer[:match.start()]
            self._buffer = self._buffer[match.end():]

            event = self._process_line(line)
            if event is not None:
                events.append(event)

        return events

    # ============================================================
    # SSE framing
    # ============================================================

    def _process_line(self, line: str) -> Optional[UpstreamEvent]:
        if line == "":
            return self._dispatch()

        if line.startswith(":"):
            return None  # comment / keep-alive

        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if name == "data":
            self._data_lines.append(value)
        # event / id / retry fields carry nothing we relay

        return None

    def _dispatch(self) -> Optional[UpstreamEvent]:
        if not self._data_lines:
            return None

        data = "\n".join(self._data_lines)
        self._data_lines = []

        return self._decode_payload(data)

    # ============================================================
    # Payload decoding
    # ============================================================

    def _decode_payload(self, data: str) -> Optional[UpstreamEvent]:
        if data.strip() == DONE_SENTINEL:
            self.finished = True
            return UpstreamEvent(type=StreamEventType.FINISH, finish_reason="done", raw=data)

        try:
            payload = json.loads(data)
        except json.JSONDecodeError as e:
            self.failed = True
            return UpstreamEvent(
                type=StreamEventType.ERROR,
                error=f"Malformed event payload: {e.msg} at position {e.pos}",
                raw=data,
            )

        self.events_parsed += 1
        choice = _first_choice(payload)
        if choice is None:
            return None

        finish_reason = choice.get("finish_reason")
        if finish_reason is not None:
            self.finished = True
            return UpstreamEvent(
                type=StreamEventType.FINISH,
                finish_reason=str(finish_reason),
                raw=data,
            )

        delta = choice.get("delta")
        content = delta.get("content") if isinstance(delta, dict) else None
        if not isinstance(content, str) or content == "":
            return None

        return UpstreamEvent(type=StreamEventType.DELTA, content=content, raw=data)


def _first_choice(payload: Any) -> Optional[Dict[str, Any]]:
    """choices[0] when present; Azure sends an empty list for filter preambles."""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    return choice if isinstance(choice, dict) else None
