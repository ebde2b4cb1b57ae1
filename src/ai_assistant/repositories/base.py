"""Base repository interface."""

from abc import ABC, abstractmethod
from typing import List, Optional, Union
from uuid import UUID

from ..domain.errors import InvalidRequest
from ..domain.models import ChatSession, Document, Message, Role


def coerce_role(role: Union[Role, str]) -> Role:
    """Validate a role tag at the store boundary."""
    try:
        return Role(role)
    except ValueError:
        raise InvalidRequest(f"Unsupported message role: {role!r}") from None


def require_content(content: Optional[str]) -> str:
    if content is None or not content.strip():
        raise InvalidRequest("Message content must not be empty")
    return content


class Repository(ABC):
    """Session store: durable, ordered persistence of sessions and their messages.

    Every operation is atomic. Lookups of an unknown session raise
    ``NotFound``; storage faults raise ``StorageFailure``.
    """

    @abstractmethod
    async def create_session(self, title: str, model: str) -> ChatSession:
        """Create and persist a new session."""
        pass

    @abstractmethod
    async def get_session(self, session_id: UUID) -> ChatSession:
        """Retrieve a session by ID."""
        pass

    @abstractmethod
    async def append_message(
        self,
        session_id: UUID,
        role: Union[Role, str],
        content: str,
        model: Optional[str] = None,
    ) -> Message:
        """Append a message to the end of a session's log and touch its updated_at."""
        pass

    @abstractmethod
    async def list_sessions(self, limit: int = 100, offset: int = 0) -> List[ChatSession]:
        """List sessions, most recently active first, each with its latest message."""
        pass

    @abstractmethod
    async def list_messages(self, session_id: UUID) -> List[Message]:
        """List a session's messages in creation order."""
        pass

    @abstractmethod
    async def delete_session(self, session_id: UUID) -> None:
        """Delete a session together with its messages and documents."""
        pass

    @abstractmethod
    async def add_document(
        self,
        session_id: UUID,
        file_name: str,
        file_type: str,
        file_size: str,
        content: str,
    ) -> Document:
        """Attach a document to a session."""
        pass

    @abstractmethod
    async def list_documents(self, session_id: UUID) -> List[Document]:
        """List a session's documents in upload order."""
        pass

    async def close(self) -> None:
        """Release any resources held by the store."""
