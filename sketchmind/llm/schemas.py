"""Pydantic schemas for requests to and replies from the model transport."""
from typing import Literal

from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]


class ChatTurn(BaseModel):
    """One message in the outgoing conversation."""
    model_config = {"extra": "forbid"}
    role: Role
    content: str


class LLMRequest(BaseModel):
    """Fully built request: system prompt plus ordered messages."""
    model_config = {"extra": "forbid"}
    system_prompt: str = Field(description="Instructions, canvas context and intent directive")
    messages: list[ChatTurn] = Field(default_factory=list, description="History in order, current utterance last")
    max_tokens: int = Field(4096, gt=0)
    temperature: float = Field(0.7, ge=0.0, le=2.0)


class TokenUsage(BaseModel):
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class LLMReply(BaseModel):
    """Opaque text reply. ``error`` is set instead of raising for transport failures."""
    content: str = ""
    usage: TokenUsage | None = None
    error: str | None = None
