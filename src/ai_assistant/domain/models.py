"""Domain models for the chat application."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TITLE_MAX_LENGTH = 50
TITLE_ELLIPSIS = "..."
DEFAULT_TITLE = "New Chat"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def next_timestamp(previous: Optional[datetime]) -> datetime:
    """Clock reading that is strictly later than ``previous``."""
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def derive_title(text: Optional[str]) -> str:
    """Title for a new session built from its first message."""
    if not text or not text.strip():
        return DEFAULT_TITLE
    if len(text) > TITLE_MAX_LENGTH:
        return text[:TITLE_MAX_LENGTH] + TITLE_ELLIPSIS
    return text


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"


class ModelId(str, Enum):
    """Completion models the assistant can route to."""

    GPT_35_TURBO = "gpt-3.5-turbo"
    GPT_4 = "gpt-4"
    GEMINI_PRO = "gemini-pro"


class DomainModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Message(DomainModel):
    """Message model."""

    id: UUID = Field(default_factory=uuid4)
    session_id: UUID
    role: Role
    content: str
    model: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class ChatSession(DomainModel):
    """Chat session model.

    ``last_message`` is only filled by session listings and holds the most
    recent message of the session as a preview.
    """

    id: UUID = Field(default_factory=uuid4)
    title: str = DEFAULT_TITLE
    model: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_message: Optional[Message] = None


class Document(DomainModel):
    """Uploaded document attached to a session."""

    id: UUID = Field(default_factory=uuid4)
    session_id: UUID
    file_name: str
    file_type: str
    file_size: str
    content: str
    uploaded_at: datetime = Field(default_factory=utcnow)


class TurnResult(DomainModel):
    """Outcome of one conversational turn."""

    content: str
    model: str
    session_id: UUID
    timestamp: datetime


class ChatMessage(DomainModel):
    """One entry of the transcript a client submits with a turn."""

    role: Role
    content: str
