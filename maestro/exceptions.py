"""Error types raised by the orchestration engine and its collaborators."""

from typing import Any


class MaestroError(Exception):
    """Base class for all Maestro errors."""


class ConfigurationError(MaestroError):
    """Configuration is unusable, e.g. the API key is missing.

    Raised before any network traffic and never retried.
    """


class TransportError(MaestroError):
    """The LLM endpoint call failed (network, non-2xx, malformed envelope).

    Attributes:
        status_code: HTTP status of the failed call, when known
        partial_messages: History as it stood when the failure happened; every
            tool use in it is paired with its result.
    """

    def __init__(self, message: str, status_code: int | None = None, partial_messages: list[Any] | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.partial_messages = partial_messages or []


class MalformedResponse(MaestroError):
    """The endpoint answered, but its content is not a well-formed block array."""


class ToolExecutionError(MaestroError):
    """A single tool dispatch failed or timed out."""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"{tool_name}: {message}")
        self.tool_name = tool_name


class RunInProgressError(MaestroError):
    """A run is already active for the session."""

    def __init__(self, session_id: str):
        super().__init__(f"A run is already in progress for session {session_id}")
        self.session_id = session_id
