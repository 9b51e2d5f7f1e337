"""
FastAPI Application Module

Local HTTP surface for the chat client. A UI process drives the chat
repository, the global settings and the send pipeline through these
endpoints; the provider credential never leaves this process except on the
outgoing completion request.

Key Features:
- Chat CRUD with a persistent current-chat pointer
- Send, retry and delete of messages with base64 attachments
- Global settings with numeric clamping
- Structured logging, Prometheus metrics and OpenTelemetry tracing
"""

import time
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CollectorRegistry, Counter, generate_latest
from pydantic import BaseModel
from structlog import get_logger

from ..domain.attachments import format_size
from ..domain.errors import (
    ChatNotFoundError,
    MessageNotFoundError,
    NoContentError,
    RetryNotAllowedError,
)
from ..domain.models import CamelModel, Chat, GlobalSettings, Message
from ..repositories.chats import ChatRepository, chat_preview
from ..services.attachments import attachment_from_data_url
from ..services.chat import ChatService, SendResult
from ..services.llm import CompletionClient
from ..services.settings import SettingsManager
from ..storage.factory import create_store

# Registry for isolated metric collection
CUSTOM_REGISTRY = CollectorRegistry()

REQUESTS = Counter("requests_total", "Total HTTP requests", registry=CUSTOM_REGISTRY)
ERRORS = Counter("errors_total", "Total failed HTTP requests", registry=CUSTOM_REGISTRY)
PROCESSING_TIME = Counter("processing_time_seconds", "Total request processing time", registry=CUSTOM_REGISTRY)
COMPLETION_FAILURES = Counter(
    "completion_failures_total",
    "Completions that ended in an error",
    ["reason"],
    registry=CUSTOM_REGISTRY,
)

logger = get_logger()


class ChatSummary(CamelModel):
    """Chat list entry"""
    id: str
    name: str
    preview: str
    current: bool
    updated_at: int


class AttachmentIn(CamelModel):
    """Attachment supplied either as raw base64 data or as a data URL"""
    name: str = ""
    mime_type: Optional[str] = None
    data: Optional[str] = None
    data_url: Optional[str] = None
    size: Optional[int] = None


class MessageCreate(CamelModel):
    """Defines the structure for message creation requests"""
    text: str = ""
    attachments: List[AttachmentIn] = []


class SendResponse(CamelModel):
    user_message: Message
    reply: Message
    ok: bool
    error: Optional[str] = None
    chat_name: str


class ChatRename(BaseModel):
    name: str


class ChatSettingsUpdate(CamelModel):
    name: str = ""
    user_name: str = ""
    ai_name: str = ""
    system_instructions: str = ""


class CurrentChatUpdate(CamelModel):
    chat_id: str


class AttachmentView(CamelModel):
    name: str
    mime_type: str
    size_label: str


# Core service instances
store = create_store()
repository = ChatRepository(store)
settings_manager = SettingsManager(store)
completion_client = CompletionClient()
chat_service = ChatService(repository, settings_manager, completion_client)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Loads chats and settings on startup, flushes them on shutdown"""
    repository.initialize()
    settings_manager.load()
    logger.info("application_startup_complete")

    yield

    await completion_client.aclose()
    repository.dispose()
    logger.info("application_shutdown_complete")


def get_chat_service() -> ChatService:
    """Returns the send pipeline with its repository and settings"""
    return chat_service


app = FastAPI(
    title="Pocket Chat Local API",
    description="Local-first multi-chat client for the Gemini API",
    version="0.1.0",
    lifespan=lifespan
)

# Enable cross-origin requests from the UI process
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Set up request tracing
FastAPIInstrumentor.instrument_app(app)


@app.middleware("http")
async def logging_middleware(request: Request, call_next):
    """Logs and counts every request"""
    REQUESTS.inc()
    started = time.perf_counter()
    logger.info("request_started", path=request.url.path, method=request.method)
    try:
        response = await call_next(request)
    except Exception as e:
        ERRORS.inc()
        logger.error("request_failed", path=request.url.path, error=str(e))
        raise
    if response.status_code >= 400:
        ERRORS.inc()
    PROCESSING_TIME.inc(time.perf_counter() - started)
    return response


def _require_chat(service: ChatService, chat_id: str) -> Chat:
    chat = service.repository.get(chat_id)
    if chat is None:
        logger.warning("chat_not_found", chat_id=chat_id)
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


def _to_attachment_dict(item: AttachmentIn) -> Optional[Dict[str, Any]]:
    if item.data_url:
        attachment = attachment_from_data_url(item.data_url, item.name, item.mime_type, item.size)
        return attachment.model_dump(by_alias=True) if attachment else None
    return item.model_dump(by_alias=True, exclude={"data_url"})


def _send_response(service: ChatService, chat_id: str, result: SendResult) -> SendResponse:
    if result.error is not None:
        COMPLETION_FAILURES.labels(reason=type(result.error).__name__).inc()
    chat = service.repository.get(chat_id)
    return SendResponse(
        user_message=result.user_message,
        reply=result.reply,
        ok=result.ok,
        error=str(result.error) if result.error else None,
        chat_name=chat.name if chat else "",
    )


@app.get("/chats", response_model=List[ChatSummary])
async def list_chats(service: ChatService = Depends(get_chat_service)) -> List[ChatSummary]:
    """Lists chats, most recently created first, with a preview line"""
    current = service.repository.get_current()
    return [
        ChatSummary(
            id=chat.id,
            name=chat.name,
            preview=chat_preview(chat),
            current=current is not None and chat.id == current.id,
            updated_at=chat.updated_at,
        )
        for chat in service.repository.list()
    ]


@app.post("/chats", response_model=Chat)
async def create_chat(service: ChatService = Depends(get_chat_service)) -> Chat:
    """Starts a new chat and makes it current"""
    return service.repository.create()


@app.get("/chats/current", response_model=Chat)
async def get_current_chat(service: ChatService = Depends(get_chat_service)) -> Chat:
    chat = service.repository.get_current()
    if chat is None:
        raise HTTPException(status_code=404, detail="No current chat")
    return chat


@app.put("/chats/current", response_model=Chat)
async def set_current_chat(
    body: CurrentChatUpdate,
    service: ChatService = Depends(get_chat_service)
) -> Chat:
    if not service.repository.set_current(body.chat_id):
        raise HTTPException(status_code=404, detail="Chat not found")
    return service.repository.get_current()


@app.get("/chats/{chat_id}", response_model=Chat)
async def get_chat(chat_id: str, service: ChatService = Depends(get_chat_service)) -> Chat:
    return _require_chat(service, chat_id)


@app.patch("/chats/{chat_id}", response_model=Chat)
async def rename_chat(
    chat_id: str,
    body: ChatRename,
    service: ChatService = Depends(get_chat_service)
) -> Chat:
    """Renames a chat; blank names leave it unchanged"""
    _require_chat(service, chat_id)
    return service.repository.rename(chat_id, body.name)


@app.put("/chats/{chat_id}/settings", response_model=Chat)
async def update_chat_settings(
    chat_id: str,
    body: ChatSettingsUpdate,
    service: ChatService = Depends(get_chat_service)
) -> Chat:
    _require_chat(service, chat_id)
    return service.repository.update_settings(
        chat_id,
        name=body.name,
        user_name=body.user_name,
        ai_name=body.ai_name,
        system_instructions=body.system_instructions,
    )


@app.delete("/chats/{chat_id}", status_code=204)
async def delete_chat(chat_id: str, service: ChatService = Depends(get_chat_service)) -> Response:
    if not service.repository.delete(chat_id):
        raise HTTPException(status_code=404, detail="Chat not found")
    return Response(status_code=204)


@app.get("/chats/{chat_id}/messages/{message_id}/attachments", response_model=List[AttachmentView])
async def list_attachments(
    chat_id: str,
    message_id: str,
    service: ChatService = Depends(get_chat_service)
) -> List[AttachmentView]:
    """Attachment names and human-readable sizes for one message"""
    _require_chat(service, chat_id)
    message = service.repository.find_message(chat_id, message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    return [
        AttachmentView(name=a.name or "Attachment", mime_type=a.mime_type, size_label=format_size(a.size))
        for a in message.attachments or []
    ]


@app.post("/chats/{chat_id}/messages", response_model=SendResponse)
async def send_message(
    chat_id: str,
    body: MessageCreate,
    service: ChatService = Depends(get_chat_service)
) -> SendResponse:
    """
    Stores the user's message and the assistant's reply.
    A failed completion still returns 200 with ok=false and the fallback reply.
    """
    attachments = [a for a in (_to_attachment_dict(item) for item in body.attachments) if a]
    try:
        result = await service.send_message(chat_id, body.text, attachments)
    except ChatNotFoundError:
        raise HTTPException(status_code=404, detail="Chat not found")
    except NoContentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _send_response(service, chat_id, result)


@app.post("/chats/{chat_id}/messages/{message_id}/retry", response_model=SendResponse)
async def retry_message(
    chat_id: str,
    message_id: str,
    service: ChatService = Depends(get_chat_service)
) -> SendResponse:
    try:
        result = await service.retry(chat_id, message_id)
    except ChatNotFoundError:
        raise HTTPException(status_code=404, detail="Chat not found")
    except MessageNotFoundError:
        raise HTTPException(status_code=404, detail="Message not found")
    except (RetryNotAllowedError, NoContentError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _send_response(service, chat_id, result)


@app.delete("/chats/{chat_id}/messages/{message_id}", status_code=204)
async def delete_message(
    chat_id: str,
    message_id: str,
    service: ChatService = Depends(get_chat_service)
) -> Response:
    _require_chat(service, chat_id)
    if not service.repository.delete_message(chat_id, message_id):
        raise HTTPException(status_code=404, detail="Message not found")
    return Response(status_code=204)


@app.get("/settings", response_model=GlobalSettings)
async def get_settings(service: ChatService = Depends(get_chat_service)) -> GlobalSettings:
    return service.settings.current


@app.put("/settings", response_model=GlobalSettings)
async def update_settings(
    partial: Dict[str, Any],
    service: ChatService = Depends(get_chat_service)
) -> GlobalSettings:
    """Applies a partial settings update; numbers are clamped, not rejected"""
    try:
        return service.settings.update(partial)
    except ValueError as e:
        logger.warning("settings_update_rejected", error=str(e))
        raise HTTPException(status_code=422, detail="Invalid settings")


@app.get("/metrics")
async def metrics():
    """Provides Prometheus metrics for system monitoring"""
    return Response(generate_latest(CUSTOM_REGISTRY), media_type="text/plain")
