"""In-memory repository implementation."""

import asyncio
from typing import Dict, List, Optional, Union
from uuid import UUID

import structlog

from ..domain.errors import NotFound
from ..domain.models import ChatSession, Document, Message, Role, next_timestamp, utcnow
from .base import Repository, coerce_role, require_content

logger = structlog.get_logger()


class InMemoryRepository(Repository):
    """Process-local repository guarded by a single asyncio lock."""

    def __init__(self) -> None:
        self._sessions: Dict[UUID, ChatSession] = {}
        self._messages: Dict[UUID, List[Message]] = {}
        self._documents: Dict[UUID, List[Document]] = {}
        self._lock = asyncio.Lock()
        logger.info("repository_initialized", backend="memory")

    def _require(self, session_id: UUID) -> ChatSession:
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning("session_not_found", session_id=str(session_id))
            raise NotFound(f"Chat {session_id} not found")
        return session

    async def create_session(self, title: str, model: str) -> ChatSession:
        now = utcnow()
        session = ChatSession(title=title, model=model, created_at=now, updated_at=now)
        async with self._lock:
            self._sessions[session.id] = session
            self._messages[session.id] = []
            self._documents[session.id] = []
        logger.info("session_created", session_id=str(session.id), model=model)
        return session.model_copy()

    async def get_session(self, session_id: UUID) -> ChatSession:
        async with self._lock:
            return self._require(session_id).model_copy()

    async def append_message(
        self,
        session_id: UUID,
        role: Union[Role, str],
        content: str,
        model: Optional[str] = None,
    ) -> Message:
        role = coerce_role(role)
        content = require_content(content)
        async with self._lock:
            session = self._require(session_id)
            message = Message(
                session_id=session_id,
                role=role,
                content=content,
                model=model,
                created_at=next_timestamp(session.updated_at),
            )
            self._messages[session_id].append(message)
            session.updated_at = message.created_at

        logger.info(
            "message_added",
            session_id=str(session_id),
            message_role=role.value,
            content_length=len(content),
        )
        return message.model_copy()

    async def list_sessions(self, limit: int = 100, offset: int = 0) -> List[ChatSession]:
        async with self._lock:
            sessions = sorted(
                self._sessions.values(),
                key=lambda s: (s.updated_at, s.created_at),
                reverse=True,
            )
            page = []
            for session in sessions[offset : offset + limit]:
                messages = self._messages[session.id]
                page.append(
                    session.model_copy(
                        update={"last_message": messages[-1].model_copy() if messages else None}
                    )
                )
            return page

    async def list_messages(self, session_id: UUID) -> List[Message]:
        async with self._lock:
            self._require(session_id)
            return [
                m.model_copy()
                for m in sorted(self._messages[session_id], key=lambda m: m.created_at)
            ]

    async def delete_session(self, session_id: UUID) -> None:
        async with self._lock:
            self._require(session_id)
            del self._sessions[session_id]
            removed_messages = len(self._messages.pop(session_id))
            removed_documents = len(self._documents.pop(session_id))
        logger.info(
            "session_deleted",
            session_id=str(session_id),
            messages=removed_messages,
            documents=removed_documents,
        )

    async def add_document(
        self,
        session_id: UUID,
        file_name: str,
        file_type: str,
        file_size: str,
        content: str,
    ) -> Document:
        async with self._lock:
            self._require(session_id)
            document = Document(
                session_id=session_id,
                file_name=file_name,
                file_type=file_type,
                file_size=file_size,
                content=content,
            )
            self._documents[session_id].append(document)
        logger.info("document_added", session_id=str(session_id), file_name=file_name)
        return document.model_copy()

    async def list_documents(self, session_id: UUID) -> List[Document]:
        async with self._lock:
            self._require(session_id)
            return [d.model_copy() for d in self._documents[session_id]]
