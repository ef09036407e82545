"""API endpoints for the chat service."""

import json
import os
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response, StreamingResponse

from toolchat import __version__
from toolchat.config import Settings, get_settings
from toolchat.dependencies import get_orchestrator, get_session_store
from toolchat.errors import ConfigurationError, NotFoundError, ToolchatError, ValidationError
from toolchat.models.conversation import ChatRequest, ErrorResponse, HealthResponse, SessionCreatedResponse
from toolchat.models.llm import TextDelta
from toolchat.models.session import ConversationRecord
from toolchat.services.orchestrator import ChatOrchestrator, TurnEvent, TurnFinished
from toolchat.services.sessions import SessionService
from toolchat.services.store import RedisSessionStore, SessionStore
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

SESSION_ID_HEADER = "X-Session-Id"

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    500: {"model": ErrorResponse, "description": "Service or upstream failure"},
}


def format_sse(payload: dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def event_payload(event: TurnEvent) -> dict[str, Any]:
    if isinstance(event, TextDelta):
        return {"type": "text", "content": event.text}
    return {
        "type": "done",
        "finishReason": event.stop_reason,
        "steps": event.steps,
        "truncated": event.truncated,
        "usage": {
            "inputTokens": event.usage.input_tokens,
            "outputTokens": event.usage.output_tokens,
        },
    }


async def stream_events(first: TurnEvent, events: AsyncIterator[TurnEvent], session_id: str) -> AsyncIterator[str]:
    """Serialize turn events as server-sent events, reporting late failures in-band."""
    try:
        yield format_sse(event_payload(first))
        if isinstance(first, TurnFinished):
            return
        async for event in events:
            yield format_sse(event_payload(event))
    except ToolchatError as e:
        logger.error(f"Streaming failed for session {session_id}: {e}")
        yield format_sse({"type": "error", "error": e.error, "message": e.message})
    except Exception as e:
        logger.exception(f"Streaming failed unexpectedly for session {session_id}: {e!r}")
        yield format_sse({"type": "error", "error": "internal_error", "message": "Internal server error"})


def require_store(store: SessionStore | None) -> SessionStore:
    if store is None:
        raise ConfigurationError("Chat sessions storage not available")
    return store


@router.post("/api/chat", tags=["Chat"], responses=ERROR_RESPONSES)
async def chat(
    request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """Run one conversation turn and stream the assistant's answer.

    The session id (generated when the request has none) is returned in the
    X-Session-Id header. Failures before the first token are returned as JSON
    errors; failures after streaming started are reported in-band.
    """
    if not request.messages:
        raise ValidationError("messages must contain at least one message")

    orchestrator.model.validate_message_tokens(request.messages[-1].content)

    session_id = request.session_id or SessionService.new_session_id()
    logger.info(f"Processing chat turn for session {session_id}: {request.messages[-1].content[:50]}...")

    events = orchestrator.stream_turn(session_id, request.messages)
    first = await anext(events)

    return StreamingResponse(
        stream_events(first, events, session_id),
        media_type="text/event-stream",
        headers={SESSION_ID_HEADER: session_id, "Cache-Control": "no-cache"},
    )


@router.post(
    "/api/chat/session",
    response_model=SessionCreatedResponse,
    tags=["Sessions"],
    responses={500: ERROR_RESPONSES[500]},
)
async def create_session(
    store: SessionStore | None = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
) -> SessionCreatedResponse:
    """Create a new chat session."""
    sessions = SessionService(require_store(store), settings.session_ttl_seconds)
    session = await sessions.create_session()
    return SessionCreatedResponse(session_id=session.id)


@router.get(
    "/api/chat/session",
    tags=["Sessions"],
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse, "description": "Session not found or expired"}},
)
async def read_session(
    session_id: str | None = Query(default=None, alias="sessionId"),
    store: SessionStore | None = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
) -> Response:
    """Return the stored session JSON."""
    if not session_id:
        raise ValidationError("Session ID required")

    sessions = SessionService(require_store(store), settings.session_ttl_seconds)
    raw = await sessions.get_session_raw(session_id)
    if raw is None:
        raise NotFoundError("Session not found", details={"sessionId": session_id})

    return Response(content=raw, media_type="application/json")


@router.get(
    "/api/chat/conversation",
    response_model=ConversationRecord,
    tags=["Sessions"],
    responses={**ERROR_RESPONSES, 404: {"model": ErrorResponse, "description": "No transcript stored for the session"}},
)
async def read_conversation(
    session_id: str | None = Query(default=None, alias="sessionId"),
    store: SessionStore | None = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
) -> ConversationRecord:
    """Return the transcript recorded for a session by its last turn."""
    if not session_id:
        raise ValidationError("Session ID required")

    sessions = SessionService(require_store(store), settings.session_ttl_seconds)
    conversation = await sessions.get_conversation(session_id)
    if conversation is None:
        raise NotFoundError("Conversation not found", details={"sessionId": session_id})

    return conversation


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(
    store: SessionStore | None = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """Health check endpoint."""
    status = "healthy"
    if isinstance(store, RedisSessionStore) and not await store.ping():
        status = "degraded"

    return HealthResponse(
        status=status,
        timestamp=datetime.now(UTC),
        version=__version__,
        store=settings.store_backend,
        model_configured=bool(settings.anthropic_api_key or os.getenv("ANTHROPIC_API_KEY")),
    )
