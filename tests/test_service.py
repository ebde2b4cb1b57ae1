"""Test suite for the session service turn orchestration."""

from uuid import uuid4

import pytest

from ai_assistant.domain.errors import (
    CredentialError,
    GenerationFailed,
    InvalidRequest,
    NotFound,
    StorageFailure,
)
from ai_assistant.domain.models import ChatMessage, Role
from ai_assistant.repositories.memory import InMemoryRepository
from ai_assistant.services.chat import ChatService


def user(content: str) -> ChatMessage:
    return ChatMessage(role=Role.USER, content=content)


def assistant(content: str) -> ChatMessage:
    return ChatMessage(role=Role.ASSISTANT, content=content)


@pytest.fixture
def service(store, gateway) -> ChatService:
    return ChatService(store, gateway)


@pytest.mark.asyncio
async def test_first_turn_creates_session(service, store):
    """Test the hello scenario end to end."""
    result = await service.handle_turn("gpt-3.5-turbo", [user("Hello")])

    assert result.content
    assert result.model == "gpt-3.5-turbo"
    session = await store.get_session(result.session_id)
    assert session.title == "Hello"
    assert session.model == "gpt-3.5-turbo"

    messages = await store.list_messages(result.session_id)
    assert [(m.role, m.content) for m in messages] == [
        (Role.USER, "Hello"),
        (Role.ASSISTANT, result.content),
    ]
    assert messages[1].model == "gpt-3.5-turbo"
    assert session.updated_at == messages[-1].created_at


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "text,title",
    [
        ("a" * 50, "a" * 50),
        ("b" * 51, "b" * 50 + "..."),
        ("Short question", "Short question"),
    ],
)
async def test_title_is_derived_from_first_message(service, store, text, title):
    """Test title truncation at 50 characters."""
    result = await service.handle_turn("gpt-4", [user(text)])
    session = await store.get_session(result.session_id)
    assert session.title == title


@pytest.mark.asyncio
async def test_follow_up_turn_uses_existing_session(service, store, provider):
    """Test that only the newest user message is appended on later turns."""
    first = await service.handle_turn("gpt-4", [user("Hi")])
    transcript = [user("Hi"), assistant(first.content), user("And then?")]
    second = await service.handle_turn("gpt-4", transcript, first.session_id)

    assert second.session_id == first.session_id
    messages = await store.list_messages(first.session_id)
    assert [m.content for m in messages] == ["Hi", first.content, "And then?", second.content]
    assert provider.calls[-1][0] == transcript
    assert len(await store.list_sessions()) == 1


@pytest.mark.asyncio
async def test_trailing_assistant_message_is_not_stored_as_user(service, store):
    """Test that a transcript ending with an assistant entry only stores the reply."""
    first = await service.handle_turn("gpt-4", [user("Hi")])
    await service.handle_turn("gpt-4", [user("Hi"), assistant(first.content)], first.session_id)

    roles = [m.role for m in await store.list_messages(first.session_id)]
    assert roles == [Role.USER, Role.ASSISTANT, Role.ASSISTANT]


@pytest.mark.asyncio
async def test_gateway_failure_keeps_user_message(service, store, provider):
    """Test durability of the user turn when generation fails."""
    provider.error = RuntimeError("provider timed out")

    with pytest.raises(GenerationFailed) as excinfo:
        await service.handle_turn("gemini-pro", [user("Are you there?")])
    assert "provider timed out" in excinfo.value.message

    [session] = await store.list_sessions()
    messages = await store.list_messages(session.id)
    assert [(m.role, m.content) for m in messages] == [(Role.USER, "Are you there?")]
    # only the successful user append touched the session
    assert session.updated_at == messages[0].created_at
    assert excinfo.value.session_id == session.id


@pytest.mark.asyncio
async def test_retry_after_failure_continues_the_same_session(service, store, provider):
    """Test that the session id carried by a failure lets the client retry in place."""
    provider.error = RuntimeError("provider timed out")
    with pytest.raises(GenerationFailed) as excinfo:
        await service.handle_turn("gpt-4", [user("Are you there?")])

    provider.error = None
    result = await service.handle_turn(
        "gpt-4", [user("Are you there?")], excinfo.value.session_id
    )

    assert result.session_id == excinfo.value.session_id
    assert len(await store.list_sessions()) == 1


@pytest.mark.asyncio
async def test_empty_reply_is_a_generation_failure(service, store, provider):
    """Test that an empty completion is reported, not stored."""
    provider.replies = ["   "]

    with pytest.raises(GenerationFailed):
        await service.handle_turn("gpt-4", [user("Say nothing")])

    [session] = await store.list_sessions()
    assert [m.role for m in await store.list_messages(session.id)] == [Role.USER]


@pytest.mark.asyncio
async def test_credential_error_propagates(service, provider):
    """Test that credential problems keep their own error kind."""
    provider.error = CredentialError("GOOGLE_GENERATIVE_AI_API_KEY is not set")
    with pytest.raises(CredentialError):
        await service.handle_turn("gemini-pro", [user("Hi")])


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "model,messages",
    [
        (None, [user("Hi")]),
        ("", [user("Hi")]),
        ("gpt-4", []),
        ("gpt-4", None),
        ("llama-3", [user("Hi")]),
        ("gpt-4", [user("  ")]),
    ],
)
async def test_invalid_turns_never_reach_the_store(service, store, provider, model, messages):
    """Test request validation at the service boundary."""
    with pytest.raises(InvalidRequest):
        await service.handle_turn(model, messages)
    assert await store.list_sessions() == []
    assert provider.calls == []


@pytest.mark.asyncio
async def test_unknown_session_propagates_not_found(service, provider):
    """Test that an unknown session id is not silently replaced."""
    with pytest.raises(NotFound):
        await service.handle_turn("gpt-4", [user("Hi")], uuid4())
    assert provider.calls == []


@pytest.mark.asyncio
async def test_upload_document_creates_document_session(service, store):
    """Test uploads without a session."""
    document = await service.upload_document("notes.txt", "text/plain", b"hello world")

    session = await store.get_session(document.session_id)
    assert session.title == "Document Analysis"
    assert document.content == "hello world"
    assert [d.id for d in await store.list_documents(session.id)] == [document.id]


@pytest.mark.asyncio
async def test_upload_rejects_disallowed_type_without_creating_session(service, store):
    """Test that a rejected upload leaves no trace."""
    with pytest.raises(InvalidRequest):
        await service.upload_document("script.sh", "application/x-sh", b"echo hi")
    assert await store.list_sessions() == []


@pytest.mark.asyncio
async def test_delete_then_list(service, store):
    """Test deleting a session through the service."""
    result = await service.handle_turn("gpt-4", [user("Hi")])
    await service.delete_session(result.session_id)

    assert await service.list_sessions() == []
    with pytest.raises(NotFound):
        await service.list_messages(result.session_id)
    with pytest.raises(NotFound):
        await service.delete_session(result.session_id)


class FailingDocumentRepository(InMemoryRepository):
    async def add_document(self, session_id, file_name, file_type, file_size, content):
        raise StorageFailure("Storage error during add_document: OperationalError")


@pytest.mark.asyncio
async def test_failed_upload_removes_document_session(gateway):
    """Test that a document session is not left behind when storing the file fails."""
    repository = FailingDocumentRepository()
    service = ChatService(repository, gateway)

    with pytest.raises(StorageFailure):
        await service.upload_document("notes.txt", "text/plain", b"hello world")
    assert await repository.list_sessions() == []


@pytest.mark.asyncio
async def test_failed_upload_keeps_existing_session(gateway):
    """Test that an upload failure never deletes a session the client named."""
    repository = FailingDocumentRepository()
    service = ChatService(repository, gateway)
    session = await repository.create_session("Mine", "gpt-4")

    with pytest.raises(StorageFailure):
        await service.upload_document("notes.txt", "text/plain", b"hello", session_id=session.id)
    assert [s.id for s in await repository.list_sessions()] == [session.id]
