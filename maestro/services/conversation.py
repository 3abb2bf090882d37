"""Conversation service: turns user text into orchestration runs."""

from maestro.exceptions import RunInProgressError
from maestro.models.llm import AgentLoopResult
from maestro.models.session import SessionState
from maestro.models.settings import SettingsData
from maestro.services.orchestrator import ContentBlockCallback, OrchestrationEngine, ToolResultCallback
from maestro.tools.executor import HttpToolExecutor
from maestro.utils.logging import get_logger

logger = get_logger(__name__)

MAX_MESSAGE_CHARS = 100_000


class ConversationService:
    """Entry point used by presentation layers to talk to the engine."""

    def __init__(self, engine: OrchestrationEngine | None = None, settings: SettingsData | None = None):
        """Initialize conversation service.

        Args:
            engine: Orchestration engine (defaults to one backed by the HTTP tool executor)
            settings: User settings (defaults to settings read from the environment)
        """
        self.engine = engine or OrchestrationEngine(HttpToolExecutor())
        self.settings = settings or SettingsData.from_env()

        logger.info(f"ConversationService initialized with model {self.settings.model}")

    async def process_message(
        self,
        message: str,
        session: SessionState,
        settings: SettingsData | None = None,
        on_content_block: ContentBlockCallback | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> AgentLoopResult:
        """Append the user's message and run the tool-use loop.

        Args:
            message: User's message
            session: Current session state
            settings: Settings for this message (defaults to the service settings)
            on_content_block: Observer for assistant content blocks
            on_tool_result: Observer for tool outcomes

        Returns:
            Result of the orchestration run

        Raises:
            ValueError: If the message is empty or too long
            ConfigurationError: If the credentials are unusable
            RunInProgressError: If the session is busy
            TransportError: If the endpoint call fails
        """
        self._validate_message(message)
        if self.engine.is_running(session.session_id):
            raise RunInProgressError(session.session_id)

        config = (settings or self.settings).to_run_config()
        config.require_credentials()

        logger.info(f"Processing message for session {session.session_id}: {message[:50]}")
        session.append_user_text(message)

        result = await self.engine.run(session, config, on_content_block, on_tool_result)

        if result.usage.total_tokens:
            logger.info(
                f"Token usage - Input: {result.usage.input_tokens}, "
                f"Output: {result.usage.output_tokens}, "
                f"Cache hits: {result.usage.cache_read_input_tokens}"
            )
        return result

    def cancel(self, session_id: str) -> bool:
        return self.engine.cancel(session_id)

    def _validate_message(self, message: str) -> None:
        if not message.strip():
            raise ValueError("Message must not be empty.")
        if len(message) > MAX_MESSAGE_CHARS:
            raise ValueError(f"Your message is too long. Please keep messages under {MAX_MESSAGE_CHARS} characters.")


conversation_service = ConversationService()
