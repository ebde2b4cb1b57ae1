"""Session service: runs one conversational turn end to end."""

from typing import List, Optional, Sequence
from uuid import UUID

import structlog

from ..domain.errors import ChatError, GenerationFailed, InvalidRequest
from ..domain.models import (
    ChatMessage,
    ChatSession,
    Document,
    Message,
    ModelId,
    Role,
    TurnResult,
    derive_title,
    utcnow,
)
from ..repositories.base import Repository
from .documents import DocumentExtractor, describe_size
from .gateway import CompletionGateway

logger = structlog.get_logger()

DOCUMENT_SESSION_TITLE = "Document Analysis"
DOCUMENT_SESSION_MODEL = ModelId.GPT_35_TURBO.value


class ChatService:
    """The only component that talks to both the store and the gateway."""

    def __init__(
        self,
        repository: Repository,
        gateway: CompletionGateway,
        extractor: Optional[DocumentExtractor] = None,
    ) -> None:
        self.repository = repository
        self.gateway = gateway
        self.extractor = extractor or DocumentExtractor()

    async def handle_turn(
        self,
        model: Optional[str],
        messages: Optional[Sequence[ChatMessage]],
        session_id: Optional[UUID] = None,
    ) -> TurnResult:
        """
        Persist the user's turn, generate the assistant reply and persist it.

        The user message is stored before the gateway is called and is kept
        when generation fails.
        """
        if not model or not messages:
            raise InvalidRequest("Model and messages are required")
        if not self.gateway.supports(model):
            raise InvalidRequest(
                f"Unsupported model: {model}. Supported models: "
                + ", ".join(self.gateway.supported_models)
            )

        last = messages[-1]
        if last.role == Role.USER and not last.content.strip():
            raise InvalidRequest("Last user message is empty")

        if session_id is not None:
            session = await self.repository.get_session(session_id)
        else:
            session = await self.repository.create_session(derive_title(last.content), model)

        try:
            if last.role == Role.USER:
                await self.repository.append_message(session.id, Role.USER, last.content)
            content = await self._generate(session.id, messages, model)
            await self.repository.append_message(session.id, Role.ASSISTANT, content, model=model)
        except ChatError as e:
            e.session_id = session.id
            raise

        logger.info(
            "turn_completed",
            session_id=str(session.id),
            model=model,
            response_length=len(content),
        )
        return TurnResult(content=content, model=model, session_id=session.id, timestamp=utcnow())

    async def _generate(
        self, session_id: UUID, messages: Sequence[ChatMessage], model: str
    ) -> str:
        try:
            return await self.gateway.generate(list(messages), model)
        except ChatError as e:
            logger.error(
                "turn_failed",
                session_id=str(session_id),
                model=model,
                error_kind=e.error,
                error=e.message,
            )
            raise
        except Exception as e:
            logger.error("turn_failed", session_id=str(session_id), model=model, error=str(e))
            raise GenerationFailed(str(e)) from e

    async def list_sessions(self, limit: int = 100, offset: int = 0) -> List[ChatSession]:
        return await self.repository.list_sessions(limit=limit, offset=offset)

    async def list_messages(self, session_id: UUID) -> List[Message]:
        return await self.repository.list_messages(session_id)

    async def delete_session(self, session_id: UUID) -> None:
        await self.repository.delete_session(session_id)

    async def upload_document(
        self,
        file_name: str,
        content_type: Optional[str],
        data: bytes,
        session_id: Optional[UUID] = None,
    ) -> Document:
        """Store an uploaded file, creating a document session when none is given.

        A session created for the upload is removed again if the document
        cannot be stored.
        """
        content = self.extractor.extract(file_name, content_type, data)
        created: Optional[ChatSession] = None
        if session_id is None:
            created = await self.repository.create_session(
                DOCUMENT_SESSION_TITLE, DOCUMENT_SESSION_MODEL
            )
            session_id = created.id
        try:
            return await self.repository.add_document(
                session_id,
                file_name=file_name,
                file_type=content_type or "",
                file_size=describe_size(len(data)),
                content=content,
            )
        except ChatError:
            if created is not None:
                await self._discard_session(created.id)
            raise

    async def _discard_session(self, session_id: UUID) -> None:
        try:
            await self.repository.delete_session(session_id)
        except ChatError as e:
            logger.error("session_cleanup_failed", session_id=str(session_id), error=e.message)
