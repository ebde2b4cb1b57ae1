"""SQLAlchemy-backed repository implementation."""

import asyncio
import threading
from typing import Any, Callable, List, Optional, Tuple, TypeVar, Union
from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..domain.errors import NotFound, StorageFailure
from ..domain.models import ChatSession, Document, Message, Role, next_timestamp, utcnow
from .base import Repository, coerce_role, require_content
from .orm import Base, DocumentRecord, MessageRecord, SessionRecord

logger = structlog.get_logger()

T = TypeVar("T")


def _to_message(record: MessageRecord) -> Message:
    return Message(
        id=UUID(record.id),
        session_id=UUID(record.session_id),
        role=Role(record.role),
        content=record.content,
        model=record.model,
        created_at=record.created_at,
    )


def _to_session(record: SessionRecord, last: Optional[MessageRecord] = None) -> ChatSession:
    return ChatSession(
        id=UUID(record.id),
        title=record.title,
        model=record.model,
        created_at=record.created_at,
        updated_at=record.updated_at,
        last_message=_to_message(last) if last is not None else None,
    )


def _to_document(record: DocumentRecord) -> Document:
    return Document(
        id=UUID(record.id),
        session_id=UUID(record.session_id),
        file_name=record.file_name,
        file_type=record.file_type,
        file_size=record.file_size,
        content=record.content,
        uploaded_at=record.uploaded_at,
    )


class SqlRepository(Repository):
    """Repository persisting sessions, messages and documents through the ORM.

    Each operation runs in its own transaction on a worker thread. Writes are
    funnelled through one lock so appends to a session are stamped in order.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine, autoflush=False, expire_on_commit=False
        )
        self._write_lock = threading.Lock()

    def create_tables(self) -> None:
        """Create any missing tables."""
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as e:
            logger.error("storage_init_failed", error=str(e))
            raise StorageFailure(f"Could not initialize the database: {e}") from e
        logger.info("repository_initialized", backend="sql", url=self._engine.url.render_as_string())

    async def _run(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except SQLAlchemyError as e:
            logger.error("storage_error", operation=operation, error=str(e))
            raise StorageFailure(f"Storage error during {operation}: {e.__class__.__name__}") from e

    @staticmethod
    def _require(db: Session, session_id: UUID) -> SessionRecord:
        record = db.get(SessionRecord, str(session_id))
        if record is None:
            logger.warning("session_not_found", session_id=str(session_id))
            raise NotFound(f"Chat {session_id} not found")
        return record

    # Sessions

    async def create_session(self, title: str, model: str) -> ChatSession:
        session = await self._run("create_session", self._create_session, title, model)
        logger.info("session_created", session_id=str(session.id), model=model)
        return session

    def _create_session(self, title: str, model: str) -> ChatSession:
        now = utcnow()
        record = SessionRecord(
            id=str(uuid4()), title=title, model=model, created_at=now, updated_at=now
        )
        with self._write_lock, self._session_factory.begin() as db:
            db.add(record)
        return _to_session(record)

    async def get_session(self, session_id: UUID) -> ChatSession:
        return await self._run("get_session", self._get_session, session_id)

    def _get_session(self, session_id: UUID) -> ChatSession:
        with self._session_factory() as db:
            return _to_session(self._require(db, session_id))

    async def list_sessions(self, limit: int = 100, offset: int = 0) -> List[ChatSession]:
        rows = await self._run("list_sessions", self._list_sessions, limit, offset)
        return [_to_session(session, last) for session, last in rows]

    def _list_sessions(
        self, limit: int, offset: int
    ) -> List[Tuple[SessionRecord, Optional[MessageRecord]]]:
        latest = (
            select(
                MessageRecord.session_id.label("session_id"),
                func.max(MessageRecord.created_at).label("latest_at"),
            )
            .group_by(MessageRecord.session_id)
            .subquery()
        )
        stmt = (
            select(SessionRecord, MessageRecord)
            .outerjoin(latest, latest.c.session_id == SessionRecord.id)
            .outerjoin(
                MessageRecord,
                and_(
                    MessageRecord.session_id == SessionRecord.id,
                    MessageRecord.created_at == latest.c.latest_at,
                ),
            )
            .order_by(SessionRecord.updated_at.desc(), SessionRecord.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        with self._session_factory() as db:
            return [(row[0], row[1]) for row in db.execute(stmt).all()]

    async def delete_session(self, session_id: UUID) -> None:
        messages, documents = await self._run(
            "delete_session", self._delete_session, session_id
        )
        logger.info(
            "session_deleted",
            session_id=str(session_id),
            messages=messages,
            documents=documents,
        )

    def _delete_session(self, session_id: UUID) -> Tuple[int, int]:
        with self._write_lock, self._session_factory.begin() as db:
            record = self._require(db, session_id)
            messages = db.execute(
                delete(MessageRecord).where(MessageRecord.session_id == record.id)
            ).rowcount
            documents = db.execute(
                delete(DocumentRecord).where(DocumentRecord.session_id == record.id)
            ).rowcount
            db.delete(record)
        return messages, documents

    # Messages

    async def append_message(
        self,
        session_id: UUID,
        role: Union[Role, str],
        content: str,
        model: Optional[str] = None,
    ) -> Message:
        role = coerce_role(role)
        content = require_content(content)
        message = await self._run(
            "append_message", self._append_message, session_id, role, content, model
        )
        logger.info(
            "message_added",
            session_id=str(session_id),
            message_role=role.value,
            content_length=len(content),
        )
        return message

    def _append_message(
        self, session_id: UUID, role: Role, content: str, model: Optional[str]
    ) -> Message:
        with self._write_lock, self._session_factory.begin() as db:
            session = self._require(db, session_id)
            record = MessageRecord(
                id=str(uuid4()),
                session_id=session.id,
                role=role.value,
                content=content,
                model=model,
                created_at=next_timestamp(session.updated_at),
            )
            db.add(record)
            session.updated_at = record.created_at
        return _to_message(record)

    async def list_messages(self, session_id: UUID) -> List[Message]:
        return await self._run("list_messages", self._list_messages, session_id)

    def _list_messages(self, session_id: UUID) -> List[Message]:
        with self._session_factory() as db:
            self._require(db, session_id)
            records = db.scalars(
                select(MessageRecord)
                .where(MessageRecord.session_id == str(session_id))
                .order_by(MessageRecord.created_at.asc())
            ).all()
            return [_to_message(record) for record in records]

    # Documents

    async def add_document(
        self,
        session_id: UUID,
        file_name: str,
        file_type: str,
        file_size: str,
        content: str,
    ) -> Document:
        document = await self._run(
            "add_document",
            self._add_document,
            session_id,
            file_name,
            file_type,
            file_size,
            content,
        )
        logger.info("document_added", session_id=str(session_id), file_name=file_name)
        return document

    def _add_document(
        self,
        session_id: UUID,
        file_name: str,
        file_type: str,
        file_size: str,
        content: str,
    ) -> Document:
        with self._write_lock, self._session_factory.begin() as db:
            session = self._require(db, session_id)
            record = DocumentRecord(
                id=str(uuid4()),
                session_id=session.id,
                file_name=file_name,
                file_type=file_type,
                file_size=file_size,
                content=content,
                uploaded_at=utcnow(),
            )
            db.add(record)
        return _to_document(record)

    async def list_documents(self, session_id: UUID) -> List[Document]:
        return await self._run("list_documents", self._list_documents, session_id)

    def _list_documents(self, session_id: UUID) -> List[Document]:
        with self._session_factory() as db:
            self._require(db, session_id)
            records = db.scalars(
                select(DocumentRecord)
                .where(DocumentRecord.session_id == str(session_id))
                .order_by(DocumentRecord.uploaded_at.asc())
            ).all()
            return [_to_document(record) for record in records]

    async def close(self) -> None:
        self._engine.dispose()
        logger.info("repository_closed", backend="sql")
