"""Session state and the in-progress assistant message handle."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from cuid2 import cuid_wrapper
from pydantic import BaseModel, Field

from maestro.models.llm import ContentBlock, LLMMessage
from maestro.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

PROVISIONAL_PREFIX = "pending-"


class ChatSessionRecord(BaseModel):
    """Serialized form of a session, as stored by the host."""

    id: str
    title: str
    messages: list[LLMMessage] = Field(default_factory=list)


@dataclass
class SessionState:
    """Conversation state of one chat session.

    The orchestration engine owns ``messages`` while a run is active.
    """

    session_id: str
    title: str = "New session"
    messages: list[LLMMessage] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))

    def as_dict(self) -> dict[str, Any]:
        """Return the session as a dictionary."""
        return {
            "session_id": self.session_id,
            "title": self.title,
            "message_count": len(self.messages),
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
        }

    def update_activity(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = datetime.now(UTC)

    def append_user_text(self, text: str) -> LLMMessage:
        message = LLMMessage(role="user", content=text, id=cuid())
        self.messages.append(message)
        self.update_activity()
        return message

    def to_record(self) -> ChatSessionRecord:
        return ChatSessionRecord(id=self.session_id, title=self.title, messages=list(self.messages))

    @classmethod
    def from_record(cls, record: ChatSessionRecord) -> "SessionState":
        return cls(session_id=record.id, title=record.title, messages=list(record.messages))


class ProvisionalMessageHandle:
    """Assistant message under construction during one turn.

    Blocks are collected under a provisional id; ``finalize`` produces the
    permanent message with a fresh id. The provisional id never leaves the turn.
    """

    def __init__(self):
        self.provisional_id = f"{PROVISIONAL_PREFIX}{cuid()}"
        self._blocks: list[ContentBlock] = []
        self._finalized = False

    def add(self, block: ContentBlock) -> None:
        if self._finalized:
            raise RuntimeError(f"Message {self.provisional_id} is already finalized")
        self._blocks.append(block)

    @property
    def blocks(self) -> list[ContentBlock]:
        return list(self._blocks)

    def finalize(self) -> LLMMessage:
        self._finalized = True
        message = LLMMessage(role="assistant", content=self._blocks, id=cuid())
        logger.debug(f"Finalized assistant message {self.provisional_id} as {message.id}")
        return message
