"""
chatrelay - API Request/Response Models

Pydantic models for the HTTP surface. Field names follow the browser
client's camelCase wire format.
"""

from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.config import DEFAULT_SYSTEM_PROMPT, DEFAULT_TEMPERATURE
from ..core.models import ChatMessage, CompletionRequest, ModelSpec, Role


# ============================================================
# Enums
# ============================================================

class RoleEnum(str, Enum):
    """Message roles."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


# ============================================================
# Request Models
# ============================================================

class ModelInput(BaseModel):
    """Target model as resolved by the catalog."""
    id: str = Field(..., min_length=1)
    name: str = ""
    token_limit: int = Field(..., alias="tokenLimit", gt=0)

    model_config = ConfigDict(populate_by_name=True)


class MessageInput(BaseModel):
    """One conversation message."""
    role: RoleEnum
    content: str = ""


class ChatRequestBody(BaseModel):
    """
    Body of the relay entry points.

    {"model": {...}, "systemPrompt": "...", "temperature": 1,
     "apiKey": "...", "messages": [{"role": "user", "content": "..."}]}
    """
    model: ModelInput
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, alias="systemPrompt")
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0, le=2)
    api_key: str = Field(default="", alias="apiKey")
    messages: List[MessageInput] = Field(..., min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("system_prompt")
    @classmethod
    def default_empty_prompt(cls, v):
        """An empty prompt means the default one."""
        return v or DEFAULT_SYSTEM_PROMPT

    def to_completion_request(self) -> CompletionRequest:
        return CompletionRequest.build(
            model=ModelSpec(
                id=self.model.id,
                name=self.model.name,
                token_limit=self.model.token_limit,
            ),
            system_prompt=self.system_prompt,
            temperature=self.temperature,
            api_key=self.api_key,
            messages=[ChatMessage(Role(m.role.value), m.content) for m in self.messages],
        )


# ============================================================
# Response Models
# ============================================================

class HealthResponse(BaseModel):
    status: str = "healthy"
    provider: str
    api_host: str
