"""Coordinator service: receives per-turn notifications from the chat service.

Runs as its own process (``uvicorn toolchat.coordinator:app``) against the same
session store. Each notification re-stamps the session's lastActivity and
messageCount, independently of the chat service's own write, so the two writes
race with no ordering guarantee.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI

from toolchat import __version__
from toolchat.api.handlers import register_exception_handlers
from toolchat.config import Settings, get_settings
from toolchat.dependencies import get_session_store, shutdown_services
from toolchat.errors import StoreError
from toolchat.models.conversation import CoordinationRequest, CoordinationResponse
from toolchat.models.session import now_ms
from toolchat.services.sessions import SessionService
from toolchat.services.store import SessionStore, session_key
from toolchat.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)

router = APIRouter()


async def touch_session(sessions: SessionService, session_id: str, message_count: int | None) -> bool:
    """Refresh lastActivity/messageCount on an existing session. Best-effort."""
    session = await sessions.get_session(session_id)
    if session is None:
        logger.debug(f"Session {session_id} not found, nothing to coordinate")
        return False

    session.last_activity = now_ms()
    session.message_count = message_count or session.message_count or 0
    try:
        await sessions.store.put(session_key(session_id), session.to_json(), sessions.ttl_seconds)
    except StoreError as e:
        logger.warning(f"Failed to update session {session_id}: {e}")
        return False
    return True


@router.post(
    "/api/chat/coordinate",
    response_model=CoordinationResponse,
    response_model_by_alias=True,
    tags=["Coordination"],
)
async def coordinate(
    request: CoordinationRequest,
    store: SessionStore | None = Depends(get_session_store),
    settings: Settings = Depends(get_settings),
) -> CoordinationResponse:
    """Record session activity reported by the chat service."""
    if request.session_id and store is not None:
        await touch_session(SessionService(store, settings.session_ttl_seconds), request.session_id, request.message_count)

    logger.info(f"Coordinated {request.action} for session {request.session_id}")
    return CoordinationResponse(session_id=request.session_id, timestamp=now_ms(), action=request.action)


@router.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    return {"status": "healthy", "version": __version__}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging(LogConfig(level=get_settings().log_level))
    yield
    await shutdown_services()


app = FastAPI(title="Toolchat Coordinator", version=__version__, lifespan=lifespan)
register_exception_handlers(app)
app.include_router(router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("toolchat.coordinator:app", host="0.0.0.0", port=8001, log_level="info")
