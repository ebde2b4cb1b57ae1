"""
FastAPI Application Module

HTTP surface of the AI assistant: chat turns routed to hosted language
models, persisted chat history, document uploads and a configuration
status check.

Key Features:
- One blocking completion round trip per turn, user input persisted first
- Recency-ordered chat listing that degrades to an empty list on storage faults
- Structured error bodies mapped from a single error taxonomy
- Structured logging, Prometheus counters and OpenTelemetry tracing
"""

import time
from contextlib import asynccontextmanager
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, File, Form, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from structlog import get_logger

from ..config import Settings, configure_logging, get_settings
from ..domain.errors import ChatError, InvalidRequest, StorageFailure
from ..domain.models import TurnResult, utcnow
from ..services.chat import ChatService
from ..services.gateway import CompletionGateway
from .dependencies import get_chat_service, get_gateway, get_repository, shutdown
from .schemas import (
    ChatRequest,
    DeleteResult,
    MessageList,
    SessionList,
    StatusReport,
    UploadResult,
)

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
TURNS = Counter("turns_total", "Chat turns by outcome", ["outcome"], registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Errors reported to clients by kind", ["kind"], registry=CUSTOM_REGISTRY)
TURN_SECONDS = Counter("turn_processing_seconds", "Total time spent handling chat turns", registry=CUSTOM_REGISTRY)

configure_logging(get_settings())
logger = get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Creates the store eagerly on startup and releases shared clients on shutdown"""
    get_repository()
    logger.info("application_startup_complete")

    yield

    await shutdown()
    logger.info("application_shutdown_complete")


app = FastAPI(
    title="AI Assistant Chat API",
    description="Chat with hosted language models and keep the conversation history",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up request tracing
FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Counts and logs every request"""
    REQUESTS.inc()
    logger.info("request_started", method=request.method, path=request.url.path)
    try:
        return await call_next(request)
    except Exception as e:
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    """Renders every application error as a structured body"""
    ERRORS.labels(kind=exc.error).inc()
    logger.warning(
        "request_error",
        path=request.url.path,
        error_kind=exc.error,
        status_code=exc.status_code,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Reports malformed requests as 400 invalid_request"""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return await chat_error_handler(request, InvalidRequest(f"Invalid request: {problems}"))


@app.post("/api/chat", response_model=TurnResult)
async def chat(
    body: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> TurnResult:
    """Runs one conversational turn and returns the assistant reply"""
    started = time.perf_counter()
    try:
        result = await service.handle_turn(body.model, body.messages, body.session_id)
    except ChatError as e:
        TURNS.labels(outcome=e.error).inc()
        raise
    finally:
        TURN_SECONDS.inc(time.perf_counter() - started)
    TURNS.labels(outcome="success").inc()
    return result


@app.get("/api/chats", response_model=SessionList)
async def list_chats(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: ChatService = Depends(get_chat_service),
):
    """Lists chats by recency; storage faults degrade to an empty list"""
    try:
        sessions = await service.list_sessions(limit=limit, offset=offset)
    except StorageFailure as e:
        ERRORS.labels(kind=e.error).inc()
        logger.error("list_chats_degraded", error=e.message)
        return JSONResponse(content={"sessions": [], "error": "Failed to fetch chats"})
    return SessionList(sessions=sessions)


@app.get("/api/chats/{chat_id}/messages", response_model=MessageList)
async def list_chat_messages(
    chat_id: UUID,
    service: ChatService = Depends(get_chat_service),
) -> MessageList:
    """Gets the full message log of a chat, oldest first"""
    messages = await service.list_messages(chat_id)
    return MessageList(session_id=chat_id, messages=messages)


@app.delete("/api/chats")
async def delete_chat_without_id():
    """Rejects deletes that do not name a chat"""
    raise InvalidRequest("Chat ID is required")


@app.delete("/api/chats/{chat_id}", response_model=DeleteResult)
async def delete_chat(
    chat_id: UUID,
    service: ChatService = Depends(get_chat_service),
) -> DeleteResult:
    """Deletes a chat together with its messages and documents"""
    await service.delete_session(chat_id)
    return DeleteResult(success=True, message=f"Chat {chat_id} deleted")


@app.post("/api/documents", response_model=UploadResult)
async def upload_document(
    file: Optional[UploadFile] = File(None),
    session_id: Optional[UUID] = Form(None, alias="sessionId"),
    service: ChatService = Depends(get_chat_service),
) -> UploadResult:
    """Stores an uploaded PDF or text file on a chat"""
    if file is None or not file.filename:
        raise InvalidRequest("No file provided")
    data = await file.read()
    document = await service.upload_document(
        file.filename, file.content_type, data, session_id=session_id
    )
    return UploadResult(document=document, session_id=document.session_id)


@app.get("/api/status", response_model=StatusReport)
async def status(
    settings: Settings = Depends(get_settings),
    gateway: CompletionGateway = Depends(get_gateway),
) -> StatusReport:
    """Reports which provider credentials are configured"""
    api_keys = {"openai": settings.has_openai_key, "gemini": settings.has_gemini_key}
    has_any_key = any(api_keys.values())
    return StatusReport(
        mode="production" if has_any_key else "development",
        api_keys=api_keys,
        mock_completions=settings.MOCK_COMPLETIONS,
        supported_models=gateway.supported_models,
        timestamp=utcnow(),
        message=(
            "API keys configured. Real AI services are available."
            if has_any_key
            else "No API keys found. Configure OPENAI_API_KEY or GOOGLE_GENERATIVE_AI_API_KEY."
        ),
    )


@app.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")
