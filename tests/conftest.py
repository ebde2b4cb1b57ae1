"""Shared fixtures: a temporary SQLite store, a scripted provider and app overrides."""

from typing import List, Optional, Sequence, Tuple

import pytest

from ai_assistant.api.app import app
from ai_assistant.api.dependencies import get_gateway, get_repository
from ai_assistant.domain.models import ChatMessage, ModelId
from ai_assistant.repositories.memory import InMemoryRepository
from ai_assistant.repositories.orm import build_engine
from ai_assistant.repositories.sql import SqlRepository
from ai_assistant.services.gateway import CompletionGateway, CompletionProvider


class ScriptedProvider(CompletionProvider):
    """Provider serving every model with queued replies, or failing on demand."""

    name = "scripted"
    models = tuple(m.value for m in ModelId)

    def __init__(self) -> None:
        self.replies: List[str] = []
        self.error: Optional[Exception] = None
        self.calls: List[Tuple[List[ChatMessage], str]] = []

    async def generate(self, messages: Sequence[ChatMessage], model: str) -> str:
        self.calls.append((list(messages), model))
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return f"Reply from {model} to: {messages[-1].content}"


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'chat.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def repository(engine) -> SqlRepository:
    repository = SqlRepository(engine)
    repository.create_tables()
    return repository


@pytest.fixture(params=["sql", "memory"])
def store(request, engine):
    """Every repository implementation, for contract tests."""
    if request.param == "memory":
        return InMemoryRepository()
    repository = SqlRepository(engine)
    repository.create_tables()
    return repository


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def gateway(provider) -> CompletionGateway:
    return CompletionGateway([provider])


@pytest.fixture
def api(repository, gateway):
    """The FastAPI app wired to the test store and gateway."""
    app.dependency_overrides[get_repository] = lambda: repository
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield app
    app.dependency_overrides.clear()
