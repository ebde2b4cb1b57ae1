"""Request and response bodies of the HTTP API."""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from ..domain.models import ChatMessage, ChatSession, Document, DomainModel, Message


class ChatRequest(DomainModel):
    """Body of a chat turn; presence of model and messages is checked by the service."""

    model: Optional[str] = None
    messages: Optional[List[ChatMessage]] = None
    session_id: Optional[UUID] = None


class SessionList(DomainModel):
    sessions: List[ChatSession]


class MessageList(DomainModel):
    session_id: UUID
    messages: List[Message]


class DeleteResult(DomainModel):
    success: bool
    message: str


class UploadResult(DomainModel):
    document: Document
    session_id: UUID


class StatusReport(DomainModel):
    mode: str
    api_keys: Dict[str, bool]
    mock_completions: bool
    supported_models: List[str]
    timestamp: datetime
    message: str
