"""Tests for the Anthropic client wrapper."""

from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from anthropic import APIConnectionError, APIStatusError

from maestro.clients.anthropic import (
    MAX_TOKENS_CEILING,
    AnthropicClient,
    AnthropicConfig,
    AnthropicRateLimiter,
)
from maestro.exceptions import ConfigurationError, TransportError

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def request_kwargs(**overrides):
    params = {
        "model": "claude-test",
        "max_tokens": 1024,
        "system": [{"type": "text", "text": "You are a test."}],
        "messages": [{"role": "user", "content": [{"type": "text", "text": "hi"}]}],
        "tools": None,
        "thinking": None,
        "betas": None,
    }
    params.update(overrides)
    return params


@pytest.fixture
def rate_limiter():
    limiter = Mock()
    limiter.check_rate_limit = AsyncMock()
    return limiter


@pytest.fixture
def anthropic_client(rate_limiter):
    """Create AnthropicClient with a mocked tokenizer and SDK client."""
    with patch("maestro.clients.anthropic.tiktoken.encoding_for_model", return_value=Mock()):
        client = AnthropicClient(api_key="test-key", rate_limiter=rate_limiter)
    client.tokenizer.encode.return_value = ["token"] * 42
    client.client = Mock()
    client.client.beta.messages.create = AsyncMock()
    return client


def sdk_response(envelope):
    response = Mock()
    response.model_dump.return_value = envelope
    return response


class TestClientConfiguration:
    """Tests for client construction and request building."""

    @pytest.mark.parametrize("api_key", ["", "  "])
    def test_blank_api_key_rejected(self, api_key):
        with pytest.raises(ConfigurationError):
            AnthropicClient(api_key=api_key)

    def test_sdk_retries_disabled(self):
        assert AnthropicConfig().max_retries == 0

    @pytest.mark.asyncio
    async def test_close_releases_sdk_client(self, anthropic_client):
        anthropic_client.client.close = AsyncMock()
        await anthropic_client.close()
        anthropic_client.client.close.assert_awaited_once()

    def test_max_tokens_clamped(self, anthropic_client):
        """Test that max_tokens never exceeds the endpoint ceiling."""
        assert anthropic_client.clamp_max_tokens(100_000) == MAX_TOKENS_CEILING
        assert anthropic_client.clamp_max_tokens(1024) == 1024

    def test_build_request_omits_unset_fields(self, anthropic_client):
        params = anthropic_client.build_request(**request_kwargs(max_tokens=128_000))
        assert set(params) == {"model", "max_tokens", "system", "messages"}
        assert params["max_tokens"] == MAX_TOKENS_CEILING

    def test_build_request_includes_optional_fields(self, anthropic_client):
        params = anthropic_client.build_request(
            **request_kwargs(
                tools=[{"type": "bash_20250124", "name": "bash"}],
                thinking={"type": "enabled", "budget_tokens": 2048},
                betas=["computer-use-2025-01-24"],
            )
        )
        assert params["tools"] == [{"type": "bash_20250124", "name": "bash"}]
        assert params["thinking"] == {"type": "enabled", "budget_tokens": 2048}
        assert params["betas"] == ["computer-use-2025-01-24"]


class TestCreateMessage:
    """Tests for sending requests and translating responses."""

    @pytest.mark.asyncio
    async def test_response_envelope_translated(self, anthropic_client, rate_limiter):
        anthropic_client.client.beta.messages.create.return_value = sdk_response(
            {
                "content": [{"type": "text", "text": "Hello"}],
                "stop_reason": "end_turn",
                "model": "claude-test",
                "usage": {
                    "input_tokens": 12,
                    "output_tokens": 3,
                    "cache_creation_input_tokens": None,
                    "cache_read_input_tokens": 8,
                },
            }
        )

        response = await anthropic_client.create_message(**request_kwargs())

        assert response.content == [{"type": "text", "text": "Hello"}]
        assert response.stop_reason == "end_turn"
        assert response.usage.total_tokens == 15
        assert response.usage.cache_read_input_tokens == 8
        assert response.usage.cache_creation_input_tokens == 0
        rate_limiter.check_rate_limit.assert_awaited_once_with(42)

        sent = anthropic_client.client.beta.messages.create.call_args.kwargs
        assert "tools" not in sent
        assert sent["model"] == "claude-test"

    @pytest.mark.asyncio
    async def test_status_error_becomes_transport_error(self, anthropic_client):
        """Test that non-2xx answers surface with their status code."""
        anthropic_client.client.beta.messages.create.side_effect = APIStatusError(
            "Overloaded", response=httpx.Response(529, request=REQUEST), body=None
        )

        with pytest.raises(TransportError) as exc_info:
            await anthropic_client.create_message(**request_kwargs())

        assert exc_info.value.status_code == 529
        assert "Overloaded" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_error_becomes_transport_error(self, anthropic_client):
        anthropic_client.client.beta.messages.create.side_effect = APIConnectionError(request=REQUEST)

        with pytest.raises(TransportError) as exc_info:
            await anthropic_client.create_message(**request_kwargs())

        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_unreadable_envelope_becomes_transport_error(self, anthropic_client):
        response = Mock()
        response.model_dump.side_effect = ValueError("bad envelope")
        anthropic_client.client.beta.messages.create.return_value = response

        with pytest.raises(TransportError):
            await anthropic_client.create_message(**request_kwargs())


class TestTokenEstimation:
    """Tests for the token estimate used for pacing."""

    def test_fallback_without_tokenizer(self, anthropic_client):
        anthropic_client.tokenizer = None
        assert anthropic_client.estimate_message_tokens("a" * 400) == 100

    def test_tool_results_counted(self, anthropic_client):
        anthropic_client.tokenizer = None
        params = request_kwargs(
            system=[],
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "tool_result", "tool_use_id": "t1", "content": "x" * 40},
                        {"type": "tool_result", "tool_use_id": "t2", "content": [{"type": "text", "text": "y" * 40}]},
                    ],
                }
            ],
        )
        assert anthropic_client._estimate_tokens(params) == 20


class TestRateLimiter:
    """Tests for client-side pacing."""

    @pytest.mark.asyncio
    async def test_waits_when_request_limit_reached(self):
        limiter = AnthropicRateLimiter(requests_per_minute=1, tokens_per_minute=1_000_000)

        with patch("maestro.clients.anthropic.asyncio.sleep", new_callable=AsyncMock) as sleep:
            await limiter.check_rate_limit(10, identifier="test-requests")
            sleep.assert_not_awaited()
            await limiter.check_rate_limit(10, identifier="test-requests")

        sleep.assert_awaited_once()
        assert 0 < sleep.await_args.args[0] <= 60
