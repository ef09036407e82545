"""Session and conversation record models."""

import time
from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_iso(value: int | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class ChatMessage(BaseModel):
    """A role-tagged message as exchanged with the browser."""

    role: Literal["user", "assistant", "tool"]
    content: str


class Session(BaseModel):
    """Session metadata stored under ``session:<id>``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    created_at: int | None = Field(default=None, alias="createdAt")
    last_activity: int = Field(default_factory=now_ms, alias="lastActivity")
    message_count: int = Field(default=0, ge=0, alias="messageCount")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ConversationRecord(BaseModel):
    """Full transcript stored under ``conversation:<id>``."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    messages: list[ChatMessage] = Field(default_factory=list)
    last_updated: int = Field(default_factory=now_ms, alias="lastUpdated")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SessionStats(BaseModel):
    """Summary returned by the getSessionStats tool."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")
    message_count: int = Field(default=0, alias="messageCount")
    last_activity: str | None = Field(default=None, alias="lastActivity")
    created_at: str | None = Field(default=None, alias="createdAt")
    conversation_length: int | None = Field(default=None, alias="conversationLength")
    last_updated: str | None = Field(default=None, alias="lastUpdated")

    def to_json(self) -> str:
        """Serialize for the model; transcript fields appear only when a transcript exists."""
        transcript_fields = {"conversation_length", "last_updated"}
        exclude = {name for name in transcript_fields if getattr(self, name) is None}
        return self.model_dump_json(by_alias=True, exclude=exclude, indent=2)
