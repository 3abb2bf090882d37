"""In-memory store of chat sessions for the HTTP service."""

from datetime import UTC, datetime, timedelta

from maestro.models.session import SessionState, cuid
from maestro.utils.logging import get_logger

logger = get_logger(__name__)


class InMemorySessionManager:
    """Keeps sessions in memory and forgets them after a period of inactivity.

    Persisting ``ChatSessionRecord``s is the host's job; this store only lives
    as long as the process.
    """

    def __init__(self, session_timeout_minutes: int = 24 * 60):
        self.sessions: dict[str, SessionState] = {}
        self.session_timeout = timedelta(minutes=session_timeout_minutes)

    def get_or_create_session(self, session_id: str | None = None, title: str | None = None) -> SessionState:
        """Return the session with ``session_id``, creating it when unknown.

        Args:
            session_id: Existing session ID; a cuid is generated when omitted
            title: Title for a newly created session
        """
        session = self.get_session(session_id) if session_id else None
        if session is not None:
            return session

        session = SessionState(
            session_id=session_id or cuid(),
            title=title or f"Session {len(self.sessions) + 1}",
        )
        self.sessions[session.session_id] = session
        logger.info(f"Created session {session.session_id}")
        return session

    def get_session(self, session_id: str) -> SessionState | None:
        """Get existing session by ID, or None if unknown or expired."""
        self._expire_idle_sessions()
        session = self.sessions.get(session_id)
        if session is not None:
            session.update_activity()
        return session

    def list_sessions(self) -> list[SessionState]:
        """Live sessions, most recently active first."""
        self._expire_idle_sessions()
        return sorted(self.sessions.values(), key=lambda session: session.last_activity, reverse=True)

    def delete_session(self, session_id: str) -> bool:
        """Delete a session.

        Returns:
            True if session was deleted, False if not found
        """
        return self.sessions.pop(session_id, None) is not None

    def get_session_count(self) -> int:
        self._expire_idle_sessions()
        return len(self.sessions)

    def _expire_idle_sessions(self) -> None:
        cutoff = datetime.now(UTC) - self.session_timeout
        for session_id in [sid for sid, session in self.sessions.items() if session.last_activity < cutoff]:
            logger.debug(f"Session {session_id} expired")
            del self.sessions[session_id]


session_manager = InMemorySessionManager()
