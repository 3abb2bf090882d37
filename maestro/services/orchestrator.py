"""Orchestration engine: drives the agentic tool-use loop for a chat session."""

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Protocol

from pydantic import ValidationError

from maestro.clients.anthropic import AnthropicClient, AnthropicResponse
from maestro.exceptions import MalformedResponse, RunInProgressError, TransportError
from maestro.models.codec import decode_content_blocks, encode_messages
from maestro.models.llm import (
    AgentLoopResult,
    ComputerToolOptions,
    ContentBlock,
    ImageBlock,
    LLMMessage,
    LLMUsage,
    RunStatus,
    TextBlock,
    ToolExecutionResult,
    ToolResultBlock,
    ToolUseBlock,
    UnrecognizedBlock,
)
from maestro.models.session import ProvisionalMessageHandle, SessionState, cuid
from maestro.models.settings import RunConfig
from maestro.services.context import prepare_request_messages
from maestro.services.prompts import get_system_prompt
from maestro.tools.base import ToolContext, ToolDefinition, ToolExecutor
from maestro.tools.bash import BASH_TIMEOUT_SECONDS
from maestro.tools.registry import CapabilityGroup, ToolsRegistry, get_tools_registry
from maestro.utils.logging import get_logger

logger = get_logger(__name__)

CANCELLED_TEXT = "Request cancelled by user."
CANCELLED_TOOL_ERROR = "Tool call cancelled by user before it started."
MALFORMED_RESPONSE_TEXT = "The response was malformed. Please try again."
EMPTY_OUTPUT_TEXT = "Command completed with no output."
SHELL_RESTART_HINT = "Restart the shell with restart: true, or try a simpler command."
TOKEN_EFFICIENT_TOOLS_BETA = "token-efficient-tools-2025-02-19"
DEFAULT_DISPLAY = (1280, 720)

ContentBlockCallback = Callable[[ContentBlock], Awaitable[None] | None]
ToolResultCallback = Callable[[ToolExecutionResult, str], Awaitable[None] | None]


class MessagesClient(Protocol):
    async def create_message(self, **kwargs: Any) -> AnthropicResponse: ...

    async def close(self) -> None: ...


class LoopState(str, Enum):
    """Where a run currently is in the tool-use loop."""

    IDLE = "idle"
    SENDING = "sending"
    AWAITING_RESPONSE = "awaiting_response"
    EXECUTING_TOOLS = "executing_tools"
    CANCELLED = "cancelled"


class CancellationToken:
    """Cooperative cancellation signal for one run. Cancelling twice is the same as once."""

    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Signal cancellation; True only for the call that actually set it."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    async def wait(self) -> None:
        await self._event.wait()


def _with_system_note(result: ToolExecutionResult, text: str) -> str:
    if result.system_note:
        return f"<system>{result.system_note}</system>\n{text}"
    return text


def make_tool_result_block(result: ToolExecutionResult, tool_use_id: str) -> ToolResultBlock:
    """Translate an executor outcome into the protocol tool result block.

    An error replaces all other content of the block.
    """
    if result.failed:
        return ToolResultBlock(
            tool_use_id=tool_use_id,
            content=_with_system_note(result, result.error),
            is_error=True,
        )

    content: list[TextBlock | ImageBlock] = []
    if result.output:
        content.append(TextBlock(text=_with_system_note(result, result.output)))
    if result.image:
        content.append(ImageBlock.from_base64(result.image))
    if not content:
        content.append(TextBlock(text=_with_system_note(result, EMPTY_OUTPUT_TEXT)))

    return ToolResultBlock(tool_use_id=tool_use_id, content=content, is_error=False)


def _describe_validation_error(error: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(loc) for loc in detail['loc'])}: {detail['msg']}" if detail["loc"] else detail["msg"]
        for detail in error.errors()
    )


class OrchestrationEngine:
    """Runs the send → decode → execute tools → send loop for chat sessions.

    The engine keeps no conversation state of its own. The only thing it
    tracks between calls is the cancellation token of each session's active
    run, which also serializes runs per session.
    """

    def __init__(
        self,
        executor: ToolExecutor,
        registry: ToolsRegistry | None = None,
        client_factory: Callable[[str], MessagesClient] | None = None,
    ):
        """Initialize the engine.

        Args:
            executor: Host-side tool executor
            registry: Tool catalog (defaults to the global registry)
            client_factory: Builds an endpoint client from an API key
        """
        self.executor = executor
        self.registry = registry or get_tools_registry()
        self.client_factory = client_factory or AnthropicClient
        self._active_runs: dict[str, CancellationToken] = {}
        self._states: dict[str, LoopState] = {}

    def state(self, session_id: str) -> LoopState:
        return self._states.get(session_id, LoopState.IDLE)

    def is_running(self, session_id: str) -> bool:
        return session_id in self._active_runs

    def cancel(self, session_id: str) -> bool:
        """Cancel the active run of a session.

        Returns:
            True if an in-flight run was interrupted by this call
        """
        token = self._active_runs.get(session_id)
        if token is None:
            logger.debug(f"No active run to cancel for session {session_id}")
            return False
        interrupted = token.cancel()
        if interrupted:
            logger.info(f"Cancellation requested for session {session_id}")
        return interrupted

    def _transition(self, session_id: str, state: LoopState) -> None:
        logger.debug(f"Session {session_id}: {self.state(session_id).value} -> {state.value}")
        self._states[session_id] = state

    async def run(
        self,
        session: SessionState,
        config: RunConfig,
        on_content_block: ContentBlockCallback | None = None,
        on_tool_result: ToolResultCallback | None = None,
    ) -> AgentLoopResult:
        """Run the tool-use loop until the model stops asking for tools.

        Args:
            session: Session whose history is extended; its ``messages`` are
                replaced with the final history when the run ends
            config: Model, credentials, tool and context settings
            on_content_block: Called with every decoded block, in response order
            on_tool_result: Called with every tool outcome and its tool use id, in call order

        Returns:
            Loop result with status COMPLETED or CANCELLED

        Raises:
            ConfigurationError: If the credentials are unusable
            RunInProgressError: If the session already has an active run
            TransportError: If the endpoint call fails
        """
        session_id = session.session_id
        if session_id in self._active_runs:
            raise RunInProgressError(session_id)

        config.require_credentials()
        client = self.client_factory(config.api_key)

        token = CancellationToken()
        self._active_runs[session_id] = token
        history = list(session.messages)
        usage = LLMUsage()
        turns = 0
        stop_reason: str | None = None

        logger.info(
            f"Starting run for session {session_id} with {len(history)} messages, "
            f"model {config.model}, tools {sorted(config.enabled_tools)}"
        )

        try:
            group = self.registry.get_capability_group(config.tool_version)
            tools = self.registry.tools_for(config.enabled_tools, config.tool_version)
            tool_context, wire_tools = await self._describe_tools(tools, config.tool_version)

            while True:
                turns += 1
                self._transition(session_id, LoopState.SENDING)
                request = self._build_request(history, config, wire_tools, group)

                self._transition(session_id, LoopState.AWAITING_RESPONSE)
                logger.debug(f"Session {session_id} turn {turns}: sending {len(history)} messages")
                response = await self._await_response(client, request, token)
                if response is None:
                    return await self._finish_cancelled(session, history, turns, usage, on_content_block)

                usage.add(response.usage)
                stop_reason = response.stop_reason
                assistant_message = await self._collect_response(response, on_content_block)
                history.append(assistant_message)

                tool_uses = assistant_message.tool_uses
                if not tool_uses:
                    if token.cancelled:
                        return await self._finish_cancelled(session, history, turns, usage, on_content_block)
                    self._transition(session_id, LoopState.IDLE)
                    session.messages = history
                    session.update_activity()
                    logger.info(f"Run for session {session_id} completed in {turns} turns")
                    return AgentLoopResult(
                        status=RunStatus.COMPLETED,
                        messages=history,
                        turns=turns,
                        stop_reason=stop_reason,
                        usage=usage,
                    )

                self._transition(session_id, LoopState.EXECUTING_TOOLS)
                logger.info(f"Model requested {len(tool_uses)} tool calls")
                history.append(await self._execute_tools(tool_uses, config, tool_context, token, on_tool_result))

                if token.cancelled:
                    return await self._finish_cancelled(session, history, turns, usage, on_content_block)

        except TransportError as e:
            logger.error(f"Run for session {session_id} failed after {turns} turns: {e}")
            session.messages = history
            e.partial_messages = list(history)
            raise

        finally:
            self._active_runs.pop(session_id, None)
            self._states.pop(session_id, None)
            await self._close_client(client)

    @staticmethod
    async def _close_client(client: MessagesClient) -> None:
        try:
            await client.close()
        except Exception as e:
            logger.warning(f"Failed to close endpoint client: {e}")

    async def _describe_tools(
        self, tools: list[ToolDefinition], capability_version: str
    ) -> tuple[ToolContext, list[dict[str, Any]]]:
        """Resolve display facts and produce the tool list for the request."""
        context = ToolContext()
        computer_options: ComputerToolOptions | None = None

        if any(tool.name == "computer" for tool in tools):
            try:
                width, height = await self.executor.get_screen_size()
            except Exception as e:
                logger.warning(f"Failed to get screen size from host, using {DEFAULT_DISPLAY}: {e}")
                width, height = DEFAULT_DISPLAY
            context = ToolContext(display_width=width, display_height=height)

            try:
                computer_options = await self.executor.get_computer_tool_capabilities(width, height)
            except Exception as e:
                logger.warning(f"Failed to get computer tool options from host: {e}")
                computer_options = ComputerToolOptions(display_width_px=width, display_height_px=height)

        return context, [tool.to_wire(capability_version, computer_options) for tool in tools]

    def _build_request(
        self,
        history: list[LLMMessage],
        config: RunConfig,
        wire_tools: list[dict[str, Any]],
        group: CapabilityGroup,
    ) -> dict[str, Any]:
        working = prepare_request_messages(history, config.only_n_most_recent_images, config.prompt_caching)

        system_block: dict[str, Any] = {"type": "text", "text": config.system_prompt or get_system_prompt()}
        if config.prompt_caching:
            system_block["cache_control"] = {"type": "ephemeral"}

        betas: list[str] = []
        if group.beta_flag and wire_tools:
            betas.append(group.beta_flag)
        if config.token_efficient_tools_beta:
            betas.append(TOKEN_EFFICIENT_TOOLS_BETA)

        thinking = None
        if config.thinking_enabled and config.thinking_budget:
            thinking = {"type": "enabled", "budget_tokens": config.thinking_budget}

        return {
            "model": config.model,
            "max_tokens": config.max_tokens,
            "system": [system_block],
            "messages": encode_messages(working),
            "tools": wire_tools or None,
            "thinking": thinking,
            "betas": betas or None,
        }

    async def _await_response(
        self, client: MessagesClient, request: dict[str, Any], token: CancellationToken
    ) -> AnthropicResponse | None:
        """Wait for the endpoint, or for cancellation, whichever comes first.

        Returns:
            The response, or None if the run was cancelled
        """
        if token.cancelled:
            return None

        call = asyncio.ensure_future(client.create_message(**request))
        cancelled = asyncio.ensure_future(token.wait())
        try:
            await asyncio.wait({call, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            cancelled.cancel()

        if token.cancelled:
            logger.info("Endpoint call aborted by cancellation")
            call.cancel()
            await asyncio.gather(call, return_exceptions=True)
            return None

        return call.result()

    async def _collect_response(
        self, response: AnthropicResponse, on_content_block: ContentBlockCallback | None
    ) -> LLMMessage:
        """Decode the response and stream its blocks to the observer."""
        try:
            blocks = decode_content_blocks(response.content)
        except MalformedResponse as e:
            logger.warning(f"Malformed response content, substituting fallback text: {e}")
            blocks = []

        if all(isinstance(block, UnrecognizedBlock) for block in blocks):
            blocks.append(TextBlock(text=MALFORMED_RESPONSE_TEXT))

        handle = ProvisionalMessageHandle()
        for block in blocks:
            handle.add(block)
            await self._notify(on_content_block, block)
        return handle.finalize()

    async def _execute_tools(
        self,
        tool_uses: list[ToolUseBlock],
        config: RunConfig,
        context: ToolContext,
        token: CancellationToken,
        on_tool_result: ToolResultCallback | None,
    ) -> LLMMessage:
        """Execute a batch of tool calls in order and package their results."""
        results: list[ToolResultBlock] = []
        for tool_use in tool_uses:
            if token.cancelled:
                logger.info(f"Skipping tool call {tool_use.id}: run cancelled")
                result = ToolExecutionResult(error=CANCELLED_TOOL_ERROR)
            else:
                result = await self._dispatch(tool_use, config, context)

            await self._notify(on_tool_result, result, tool_use.id)
            results.append(make_tool_result_block(result, tool_use.id))

        return LLMMessage(role="user", content=results, id=cuid())

    async def _dispatch(self, tool_use: ToolUseBlock, config: RunConfig, context: ToolContext) -> ToolExecutionResult:
        """Execute one tool call; any failure becomes an error result."""
        tool = self.registry.resolve(tool_use.name)
        if tool is None or tool.name not in config.enabled_tools or config.tool_version not in tool.capability_groups:
            logger.error(f"Unsupported tool requested: {tool_use.name}")
            return ToolExecutionResult(error=f"Unsupported tool: {tool_use.name}")

        try:
            args = tool.prepare_arguments(tool_use.input, context)
        except ValidationError as e:
            logger.warning(f"Invalid input for {tool.name} ({tool_use.id}): {e}")
            return ToolExecutionResult(error=f"Invalid input for {tool.name}: {_describe_validation_error(e)}")

        logger.info(f"Executing tool {tool.name} ({tool_use.id})")
        logger.debug(f"Tool {tool.name} arguments: {args}")
        dispatch_failed = False
        try:
            result = await asyncio.wait_for(self.executor.execute(tool.name, args), timeout=tool.timeout)
        except TimeoutError:
            logger.error(f"Tool {tool.name} timed out after {tool.timeout}s")
            dispatch_failed = True
            result = ToolExecutionResult(
                error=f"{tool.name} did not respond within {tool.timeout:.0f} seconds",
                system_note=SHELL_RESTART_HINT if tool.name == "bash" else None,
            )
        except Exception as e:
            logger.error(f"Tool {tool.name} failed: {e}", exc_info=True)
            dispatch_failed = True
            result = ToolExecutionResult(
                error=f"Error executing {tool.name}: {e}",
                system_note=SHELL_RESTART_HINT if tool.name == "bash" else None,
            )
        else:
            logger.debug(f"Tool {tool.name} finished, error: {result.error is not None}")

        restart_requested = "restart" in (result.system_note or "").lower()
        if tool.name == "bash" and not args.get("restart") and (dispatch_failed or restart_requested):
            await self._restart_shell()

        return result

    async def _restart_shell(self) -> None:
        logger.info("Restarting bash session")
        try:
            await asyncio.wait_for(self.executor.execute("bash", {"restart": True}), timeout=BASH_TIMEOUT_SECONDS)
        except Exception as e:
            logger.error(f"Failed to restart bash session: {e}")

    async def _finish_cancelled(
        self,
        session: SessionState,
        history: list[LLMMessage],
        turns: int,
        usage: LLMUsage,
        on_content_block: ContentBlockCallback | None,
    ) -> AgentLoopResult:
        self._transition(session.session_id, LoopState.CANCELLED)
        notice = TextBlock(text=CANCELLED_TEXT)
        await self._notify(on_content_block, notice)
        history.append(LLMMessage(role="assistant", content=[notice], id=cuid()))
        session.messages = history
        session.update_activity()
        logger.info(f"Run for session {session.session_id} cancelled after {turns} turns")
        return AgentLoopResult(status=RunStatus.CANCELLED, messages=history, turns=turns, usage=usage)

    @staticmethod
    async def _notify(callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            outcome = callback(*args)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"Observer callback failed: {e}", exc_info=True)
