"""Pydantic models for the conversation transcript and completion settings."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """Message roles understood by the chat-completions API."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ErrorClass(str, Enum):
    """
    Classification of gateway errors. Shown to the user alongside the
    message; no class triggers a retry.
    """
    # Plan/deployment quota used up
    QUOTA_EXHAUSTED = "QUOTA_EXHAUSTED"
    # 429 / backpressure
    TRANSIENT_RATE_LIMIT = "TRANSIENT_RATE_LIMIT"
    # Bad key, wrong resource, missing role assignment
    AUTH_REQUIRED = "AUTH_REQUIRED"
    # DNS, refused connection, timeout
    CONNECTION_ERROR = "CONNECTION_ERROR"
    # Anything else (bad request, malformed response, SDK bug, ...)
    OTHER_ERROR = "OTHER_ERROR"


class Turn(BaseModel):
    """One message in the conversation. Immutable once created."""
    model_config = ConfigDict(frozen=True)

    role: Role
    content: str

    def as_message(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class Transcript(BaseModel):
    """
    Ordered conversation history sent to the gateway on every call.

    Starts with exactly one system turn (the persona primer) and only ever
    grows; turns are never rewritten or dropped.
    """
    turns: list[Turn] = Field(default_factory=list)

    @classmethod
    def start(cls, system_prompt: str) -> "Transcript":
        return cls(turns=[Turn(role=Role.SYSTEM, content=system_prompt)])

    def append(self, role: Role, content: str) -> Turn:
        turn = Turn(role=role, content=content)
        self.turns.append(turn)
        return turn

    def as_messages(self) -> list[dict[str, str]]:
        return [t.as_message() for t in self.turns]

    def __len__(self) -> int:
        return len(self.turns)


class CompletionParams(BaseModel):
    """Fixed sampling parameters sent with every request (non-streaming)."""
    max_tokens: int = 800
    temperature: float = 0.7
    top_p: float = 0.95
    frequency_penalty: float = 0.0
    presence_penalty: float = 0.0
    # None means no explicit stop sequence
    stop: Optional[list[str]] = None


class AzureSettings(BaseModel):
    """Connection settings for an Azure OpenAI deployment."""
    endpoint: str
    deployment: str
    api_key: str = Field(repr=False)
    api_version: str
