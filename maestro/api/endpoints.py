"""API endpoints exposing the conversation engine."""

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException

from maestro import __version__
from maestro.exceptions import ConfigurationError, RunInProgressError, TransportError
from maestro.models.conversation import (
    CancelResponse,
    ConversationRequest,
    ConversationResponse,
    HealthResponse,
    SessionSummary,
)
from maestro.models.session import ChatSessionRecord
from maestro.services.conversation import conversation_service
from maestro.services.session_manager import session_manager
from maestro.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.post("/conversation", response_model=ConversationResponse, tags=["Conversation"])
async def handle_conversation(request: ConversationRequest) -> ConversationResponse:
    """Send a user message and run the tool-use loop to completion or cancellation."""
    if request.session_id:
        session = session_manager.get_session(request.session_id)
        if not session:
            logger.warning(f"Invalid session ID provided: {request.session_id}")
            raise HTTPException(status_code=404, detail=f"Unknown session ID: {request.session_id}")
    else:
        logger.info("Creating new session")
        session = session_manager.get_or_create_session()

    session_id = session.session_id
    start = len(session.messages)

    try:
        result = await conversation_service.process_message(request.message, session)
    except RunInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except (ConfigurationError, ValueError) as e:
        logger.warning(f"Rejected message for session {session_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except TransportError as e:
        logger.error(f"Endpoint failure for session {session_id}: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    logger.info(f"Run for session {session_id} finished with status {result.status.value}")
    return ConversationResponse(
        session_id=session_id,
        status=result.status,
        turns=result.turns,
        messages=result.messages[start:],
    )


@router.post("/conversation/{session_id}/cancel", response_model=CancelResponse, tags=["Conversation"])
async def cancel_conversation(session_id: str) -> CancelResponse:
    """Cancel the in-flight run of a session, if any."""
    return CancelResponse(session_id=session_id, cancelled=conversation_service.cancel(session_id))


@router.post("/sessions", response_model=SessionSummary, status_code=201, tags=["Sessions"])
async def create_session() -> SessionSummary:
    """Create an empty session, so a client knows its ID before the first message."""
    return SessionSummary.model_validate(session_manager.get_or_create_session().as_dict())


@router.get("/sessions", response_model=list[SessionSummary], tags=["Sessions"])
async def list_sessions() -> list[SessionSummary]:
    """List live sessions, most recently active first."""
    return [SessionSummary.model_validate(session.as_dict()) for session in session_manager.list_sessions()]


@router.get("/sessions/{session_id}", response_model=ChatSessionRecord, tags=["Sessions"])
async def get_session(session_id: str) -> ChatSessionRecord:
    """Return the full message history of a session."""
    session = session_manager.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail=f"Unknown session ID: {session_id}")
    return session.to_record()


@router.delete("/sessions/{session_id}", status_code=204, tags=["Sessions"])
async def delete_session(session_id: str) -> None:
    """Forget a session. Its active run, if any, is cancelled first."""
    conversation_service.cancel(session_id)
    if not session_manager.delete_session(session_id):
        raise HTTPException(status_code=404, detail=f"Unknown session ID: {session_id}")


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
