"""Process-wide store and gateway instances, created lazily and shut down explicitly."""

from typing import Optional

import structlog
from fastapi import Depends

from ..config import Settings, get_settings
from ..repositories.base import Repository
from ..repositories.memory import InMemoryRepository
from ..repositories.orm import build_engine
from ..repositories.sql import SqlRepository
from ..services.chat import ChatService
from ..services.gateway import CompletionGateway, build_gateway

logger = structlog.get_logger()

_repository: Optional[Repository] = None
_gateway: Optional[CompletionGateway] = None


def build_repository(settings: Settings) -> Repository:
    """Create the store selected by ``STORE_BACKEND``."""
    backend = settings.STORE_BACKEND.lower()
    if backend == "memory":
        return InMemoryRepository()
    if backend != "sql":
        raise ValueError(f"Unknown STORE_BACKEND: {settings.STORE_BACKEND}")

    repository = SqlRepository(build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO))
    repository.create_tables()
    return repository


def get_repository() -> Repository:
    """Returns the session store instance"""
    global _repository
    if _repository is None:
        _repository = build_repository(get_settings())
    return _repository


def get_gateway() -> CompletionGateway:
    """Returns the completion gateway instance"""
    global _gateway
    if _gateway is None:
        _gateway = build_gateway(get_settings())
    return _gateway


def get_chat_service(
    repository: Repository = Depends(get_repository),
    gateway: CompletionGateway = Depends(get_gateway),
) -> ChatService:
    """Returns a session service bound to the shared store and gateway"""
    return ChatService(repository, gateway)


async def shutdown() -> None:
    """Close the shared gateway and store."""
    global _repository, _gateway
    if _gateway is not None:
        await _gateway.close()
        _gateway = None
    if _repository is not None:
        await _repository.close()
        _repository = None
    logger.info("resources_released")
