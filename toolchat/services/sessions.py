"""Session bookkeeping on top of the key-value store."""

import uuid

from pydantic import ValidationError as PydanticValidationError

from toolchat.errors import StoreError
from toolchat.models.session import (
    ChatMessage,
    ConversationRecord,
    Session,
    SessionStats,
    ms_to_iso,
    now_ms,
)
from toolchat.services.store import SessionStore, conversation_key, session_key
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


class SessionService:
    """Reads and writes session metadata and conversation transcripts."""

    def __init__(self, store: SessionStore, ttl_seconds: int = 86400):
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def new_session_id() -> str:
        return str(uuid.uuid4())

    async def create_session(self) -> Session:
        """Create and store a fresh session.

        Raises:
            StoreError: If the session could not be written
        """
        timestamp = now_ms()
        session = Session(
            id=self.new_session_id(),
            created_at=timestamp,
            last_activity=timestamp,
            message_count=0,
        )
        await self.store.put(session_key(session.id), session.to_json(), self.ttl_seconds)
        logger.info(f"Created session {session.id}")
        return session

    async def get_session_raw(self, session_id: str) -> str | None:
        """Return the stored session JSON exactly as persisted."""
        return await self.store.get(session_key(session_id))

    async def get_session(self, session_id: str) -> Session | None:
        raw = await self.get_session_raw(session_id)
        if raw is None:
            return None
        try:
            return Session.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(f"Ignoring unreadable session record {session_id}: {e}")
            return None

    async def get_conversation(self, session_id: str) -> ConversationRecord | None:
        raw = await self.store.get(conversation_key(session_id))
        if raw is None:
            return None
        try:
            return ConversationRecord.model_validate_json(raw)
        except PydanticValidationError as e:
            logger.warning(f"Ignoring unreadable conversation record {session_id}: {e}")
            return None

    async def record_turn(self, session_id: str, messages: list[ChatMessage]) -> bool:
        """Overwrite the transcript and refresh session metadata for one turn.

        Both writes are best-effort: failures are logged and reported via the
        return value, never raised. The transcript is replaced wholesale, so two
        concurrent turns for the same session can lose one turn's messages.
        """
        timestamp = now_ms()
        ok = True

        record = ConversationRecord(session_id=session_id, messages=messages, last_updated=timestamp)
        try:
            await self.store.put(conversation_key(session_id), record.to_json(), self.ttl_seconds)
        except StoreError as e:
            logger.warning(f"Failed to save conversation for session {session_id}: {e}")
            ok = False

        existing = await self.get_session(session_id)
        session = Session(
            id=session_id,
            created_at=existing.created_at if existing and existing.created_at else timestamp,
            last_activity=timestamp,
            message_count=len(messages),
        )
        try:
            await self.store.put(session_key(session_id), session.to_json(), self.ttl_seconds)
        except StoreError as e:
            logger.warning(f"Failed to save session metadata for {session_id}: {e}")
            ok = False

        if ok:
            logger.debug(f"Recorded turn for session {session_id} ({len(messages)} messages)")
        return ok

    async def get_stats(self, session_id: str) -> SessionStats:
        """Summarize the session and conversation records for one session."""
        stats = SessionStats(session_id=session_id)

        session = await self.get_session(session_id)
        if session:
            stats.message_count = session.message_count
            stats.last_activity = ms_to_iso(session.last_activity)
            stats.created_at = ms_to_iso(session.created_at)

        conversation = await self.get_conversation(session_id)
        if conversation:
            stats.conversation_length = len(conversation.messages)
            stats.last_updated = ms_to_iso(conversation.last_updated)

        return stats
