"""Request and response models of the HTTP service."""

from datetime import datetime

from pydantic import BaseModel

from maestro.models.llm import LLMMessage, RunStatus


class ConversationRequest(BaseModel):
    """Request model for conversation endpoint."""

    message: str
    session_id: str | None = None


class ConversationResponse(BaseModel):
    """Response model for conversation endpoint.

    ``messages`` holds only the messages added by this request.
    """

    session_id: str
    status: RunStatus
    turns: int
    messages: list[LLMMessage]


class CancelResponse(BaseModel):
    """Response model for the cancel endpoint."""

    session_id: str
    cancelled: bool


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str


class SessionSummary(BaseModel):
    """One entry of the session list."""

    session_id: str
    title: str
    message_count: int
    created_at: datetime
    last_activity: datetime
