"""Data models for chat requests and streamed events."""

from dataclasses import dataclass
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field


class ChatMessage(BaseModel):
    """One turn of the conversation."""

    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    """Validated body of ``POST /chat``."""

    provider: str | None = Field(
        default=None,
        validation_alias=AliasChoices("provider", "tool"),
        description="Registered provider name; None selects the configured default",
    )
    model: str | None = None
    messages: list[ChatMessage] = Field(..., min_length=1)
    system_prompt: str | None = Field(
        default=None,
        validation_alias=AliasChoices("systemPrompt", "system_prompt"),
    )


@dataclass(slots=True)
class StreamEvent:
    """A single event sent to the client over SSE."""

    event_type: Literal["text", "error", "done"]
    text: str | None = None
    error: str | None = None

    @classmethod
    def text_event(cls, text: str) -> "StreamEvent":
        return cls(event_type="text", text=text)

    @classmethod
    def error_event(cls, error: str) -> "StreamEvent":
        return cls(event_type="error", error=error)

    @classmethod
    def done(cls) -> "StreamEvent":
        return cls(event_type="done")
