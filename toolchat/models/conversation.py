"""Request and response models for the HTTP API."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from toolchat.models.session import ChatMessage


class ChatRequest(BaseModel):
    """Request model for the chat endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[ChatMessage]
    session_id: str | None = Field(default=None, alias="sessionId")


class SessionCreatedResponse(BaseModel):
    """Response model for session creation."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(alias="sessionId")


class ErrorResponse(BaseModel):
    """Body of every non-streaming error response."""

    error: str
    message: str | None = None
    details: Any = None


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
    store: str
    model_configured: bool


class CoordinationRequest(BaseModel):
    """Notification sent by the chat service to the coordinator."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId")
    message_count: int | None = Field(default=None, ge=0, alias="messageCount")
    action: str | None = None


class CoordinationResponse(BaseModel):
    """Workflow record returned by the coordinator."""

    model_config = ConfigDict(populate_by_name=True)

    step: str = "chat_processing"
    session_id: str | None = Field(default=None, alias="sessionId")
    timestamp: int
    action: str | None = None
    status: str = "coordinated"
