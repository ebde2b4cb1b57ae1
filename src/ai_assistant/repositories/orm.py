"""SQLAlchemy tables backing the SQL repository."""

import os
from datetime import timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

from ..domain.models import utcnow

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Stores naive UTC and hands back timezone-aware UTC datetimes."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


class SessionRecord(Base):
    __tablename__ = "chat_sessions"
    __table_args__ = (Index("ix_chat_sessions_updated_at", "updated_at"),)

    id = Column(String(36), primary_key=True)
    title = Column(String(255), nullable=False)
    model = Column(String(50), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=utcnow)

    messages = relationship(
        "MessageRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MessageRecord.created_at",
    )
    documents = relationship(
        "DocumentRecord",
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DocumentRecord.uploaded_at",
    )


class MessageRecord(Base):
    __tablename__ = "chat_messages"
    __table_args__ = (Index("ix_chat_messages_session_created", "session_id", "created_at"),)

    id = Column(String(36), primary_key=True)
    session_id = Column(
        String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False
    )
    role = Column(String(16), nullable=False)  # 'user' or 'assistant'
    content = Column(Text, nullable=False)
    model = Column(String(50), nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    session = relationship("SessionRecord", back_populates="messages")


class DocumentRecord(Base):
    __tablename__ = "chat_documents"
    __table_args__ = (Index("ix_chat_documents_session_uploaded", "session_id", "uploaded_at"),)

    id = Column(String(36), primary_key=True)
    session_id = Column(
        String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), nullable=False
    )
    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=False)
    file_size = Column(String(32), nullable=False)
    content = Column(Text, nullable=False)
    uploaded_at = Column(UTCDateTime, nullable=False, default=utcnow)

    session = relationship("SessionRecord", back_populates="documents")


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for ``database_url``; SQLite databases get foreign keys enforced."""
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        return create_engine(url, echo=echo, pool_pre_ping=True)

    if url.database and url.database != ":memory:":
        directory = os.path.dirname(url.database)
        if directory:
            os.makedirs(directory, exist_ok=True)

    engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine
