"""Anthropic API client with client-side pacing and error translation."""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any

import httpx
import tiktoken
from anthropic import APIError, APIStatusError, AsyncAnthropic
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from maestro.exceptions import ConfigurationError, TransportError
from maestro.models.llm import LLMUsage
from maestro.utils.logging import get_logger

logger = get_logger(__name__)

# Hard ceiling on max_tokens accepted by the endpoint
MAX_TOKENS_CEILING = 64000


@dataclass
class AnthropicResponse:
    """Response envelope; ``content`` is still in wire form."""

    content: Any
    stop_reason: str | None
    usage: LLMUsage
    model: str | None


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    max_tokens_ceiling: int = MAX_TOKENS_CEILING
    # Retries belong to the caller; the SDK must not retry on its own
    max_retries: int = 0
    connect_timeout: float = 10.0

    requests_per_minute: int = 50
    tokens_per_minute: int = 400_000


class AnthropicRateLimiter:
    """Moving-window limiter for request count and estimated tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 400_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the configured limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=max(1, estimated_tokens)):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit: Any, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


_default_rate_limiter = AnthropicRateLimiter()


class AnthropicClient:
    """Low-level client for the Anthropic messages endpoint."""

    tokenizer: tiktoken.Encoding | None = None
    client: AsyncAnthropic
    config: AnthropicConfig

    def __init__(
        self,
        api_key: str,
        config: AnthropicConfig | None = None,
        rate_limiter: AnthropicRateLimiter | None = None,
    ):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key
            config: Client configuration
            rate_limiter: Limiter shared between clients (defaults to the process-wide one)

        Raises:
            ConfigurationError: If the API key is missing or blank
        """
        if not api_key or not api_key.strip():
            raise ConfigurationError("API key must not be empty. Configure a valid Anthropic API key in settings.")

        self.config = config or AnthropicConfig()
        self.rate_limiter = rate_limiter or _default_rate_limiter
        self.client = AsyncAnthropic(
            api_key=api_key,
            max_retries=self.config.max_retries,
            # No read timeout: long generations are bounded by cancellation instead
            timeout=httpx.Timeout(None, connect=self.config.connect_timeout),
        )

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def close(self) -> None:
        """Release the SDK's connection pool."""
        await self.client.close()

    def clamp_max_tokens(self, max_tokens: int) -> int:
        clamped = min(max_tokens, self.config.max_tokens_ceiling)
        if clamped != max_tokens:
            logger.warning(f"max_tokens {max_tokens} exceeds ceiling, clamped to {clamped}")
        return clamped

    def build_request(
        self,
        *,
        model: str,
        max_tokens: int,
        system: list[dict[str, Any]],
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        thinking: dict[str, Any] | None = None,
        betas: list[str] | None = None,
    ) -> dict[str, Any]:
        """Assemble request parameters, leaving out anything not set."""
        request_params: dict[str, Any] = {
            "model": model,
            "max_tokens": self.clamp_max_tokens(max_tokens),
            "system": system,
            "messages": messages,
        }
        if tools:
            request_params["tools"] = tools
        if thinking:
            request_params["thinking"] = thinking
        if betas:
            request_params["betas"] = betas
        return request_params

    async def create_message(self, **kwargs: Any) -> AnthropicResponse:
        """Send one request to the messages endpoint.

        Accepts the keyword arguments of ``build_request``.

        Raises:
            TransportError: On network failures, non-2xx answers or an unusable envelope
        """
        request_params = self.build_request(**kwargs)

        estimated_tokens = self._estimate_tokens(request_params)
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        logger.debug(
            f"Making Anthropic API call with model: {request_params['model']}, "
            f"{len(request_params['messages'])} messages, {len(request_params.get('tools', []))} tools"
        )
        try:
            response = await self.client.beta.messages.create(**request_params)
        except APIStatusError as e:
            logger.error(f"Anthropic API returned {e.status_code}: {e.message}")
            raise TransportError(f"Anthropic API error {e.status_code}: {e.message}", status_code=e.status_code) from e
        except APIError as e:
            logger.error(f"Anthropic API call failed: {e}")
            raise TransportError(f"Anthropic API call failed: {e}") from e

        try:
            envelope = response.model_dump()
        except Exception as e:
            raise TransportError(f"Unreadable response envelope: {e}") from e

        usage = LLMUsage()
        raw_usage = envelope.get("usage") or {}
        if raw_usage:
            input_tokens = raw_usage.get("input_tokens") or 0
            output_tokens = raw_usage.get("output_tokens") or 0
            usage = LLMUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=input_tokens + output_tokens,
                cache_creation_input_tokens=raw_usage.get("cache_creation_input_tokens") or 0,
                cache_read_input_tokens=raw_usage.get("cache_read_input_tokens") or 0,
            )

        logger.debug(f"Response received - Stop reason: {envelope.get('stop_reason')}")

        return AnthropicResponse(
            content=envelope.get("content"),
            stop_reason=envelope.get("stop_reason"),
            usage=usage,
            model=envelope.get("model"),
        )

    def _estimate_tokens(self, request_params: dict[str, Any]) -> int:
        """Estimate the text token count of a request for rate limiting."""
        text_content = json.dumps(request_params.get("system", ""))
        for message in request_params.get("messages", []):
            for block in message.get("content", []):
                if block.get("type") == "text":
                    text_content += block.get("text", "")
                elif block.get("type") == "tool_result" and isinstance(block.get("content"), str):
                    text_content += block["content"]
                elif block.get("type") == "tool_result":
                    text_content += "".join(part.get("text", "") for part in block["content"])
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4
