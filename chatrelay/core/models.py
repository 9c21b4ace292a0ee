"""
chatrelay - Core Data Models

Value types shared by the relay (server side) and the stream consumer
(client side).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Tuple

if TYPE_CHECKING:
    from .errors import ErrorEnvelope


# ============================================================
# Enums
# ============================================================

class Role(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class OutcomeKind(str, Enum):
    """Terminal states of one exchange."""
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# ============================================================
# Model / Messages
# ============================================================

@dataclass(frozen=True)
class ModelSpec:
    """Upstream model identity plus its context-window ceiling."""
    id: str
    token_limit: int
    name: str = ""

    def __post_init__(self):
        if not self.id:
            raise ValueError("model id must not be empty")
        if self.token_limit <= 0:
            raise ValueError("tokenLimit must be a positive integer")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name or self.id,
            "tokenLimit": self.token_limit,
        }


@dataclass
class ChatMessage:
    """
    One conversation message.

    Mutable on purpose: the in-flight assistant placeholder grows as
    deltas arrive while keeping its identity in the conversation.
    """
    role: Role
    content: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


# ============================================================
# Request
# ============================================================

@dataclass(frozen=True)
class CompletionRequest:
    """
    Everything the relay needs for one user turn.

    Built once per turn. Messages are copied into a tuple so later edits
    to the conversation cannot leak into a submitted request.
    """
    model: ModelSpec
    system_prompt: str
    temperature: float
    api_key: str = ""
    messages: Tuple[ChatMessage, ...] = field(default_factory=tuple)

    def __post_init__(self):
        if not 0.0 <= self.temperature <= 2.0:
            raise ValueError(f"temperature must be within [0, 2], got {self.temperature}")
        frozen = tuple(ChatMessage(m.role, m.content) for m in self.messages)
        object.__setattr__(self, "messages", frozen)

    @classmethod
    def build(
        cls,
        model: ModelSpec,
        system_prompt: str,
        temperature: float,
        messages: Iterable[ChatMessage],
        api_key: str = "",
    ) -> "CompletionRequest":
        return cls(
            model=model,
            system_prompt=system_prompt,
            temperature=temperature,
            api_key=api_key,
            messages=tuple(messages),
        )

    def upstream_messages(self) -> list:
        """Messages as sent upstream, with the synthesized system message first."""
        return [{"role": Role.SYSTEM.value, "content": self.system_prompt}] + [
            m.to_dict() for m in self.messages
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Wire body for the relay entry point."""
        return {
            "model": self.model.to_dict(),
            "systemPrompt": self.system_prompt,
            "temperature": self.temperature,
            "apiKey": self.api_key,
            "messages": [m.to_dict() for m in self.messages],
        }


# ============================================================
# Stream values
# ============================================================

@dataclass(frozen=True)
class TextDelta:
    """One incremental fragment of generated text."""
    content: str


@dataclass(frozen=True)
class StreamOutcome:
    """Terminal value of one exchange."""
    kind: OutcomeKind
    text: str = ""
    error: Optional["ErrorEnvelope"] = None

    @classmethod
    def completed(cls, text: str) -> "StreamOutcome":
        return cls(kind=OutcomeKind.COMPLETED, text=text)

    @classmethod
    def failed(cls, error: "ErrorEnvelope") -> "StreamOutcome":
        return cls(kind=OutcomeKind.FAILED, error=error)

    @classmethod
    def cancelled(cls, text: str) -> "StreamOutcome":
        return cls(kind=OutcomeKind.CANCELLED, text=text)

    @property
    def is_success(self) -> bool:
        """True for outcomes whose text is kept as the assistant message."""
        return self.kind in (OutcomeKind.COMPLETED, OutcomeKind.CANCELLED)
