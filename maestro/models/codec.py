"""Conversion between internal content blocks and the Anthropic wire format."""

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ValidationError

from maestro.exceptions import MalformedResponse
from maestro.models.llm import (
    ContentBlock,
    ImageBlock,
    LLMMessage,
    RedactedThinkingBlock,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
    UnrecognizedBlock,
)
from maestro.utils.logging import get_logger

logger = get_logger(__name__)

_DECODERS: dict[str, type[BaseModel]] = {
    "text": TextBlock,
    "thinking": ThinkingBlock,
    "redacted_thinking": RedactedThinkingBlock,
    "tool_use": ToolUseBlock,
    "tool_result": ToolResultBlock,
    "image": ImageBlock,
}


def encode_block(block: ContentBlock) -> dict[str, Any] | None:
    """Encode one block for the request payload.

    Returns None for blocks that must not be sent back to the model.
    """
    if isinstance(block, UnrecognizedBlock):
        return None
    if isinstance(block, ThinkingBlock) and not block.signature:
        # Unsigned thinking is rejected by the endpoint
        return None
    return block.model_dump(mode="json", exclude_none=True)


def encode_message(message: LLMMessage) -> dict[str, Any]:
    content = [encoded for block in message.content if (encoded := encode_block(block)) is not None]
    return {"role": message.role, "content": content}


def encode_messages(messages: Sequence[LLMMessage]) -> list[dict[str, Any]]:
    """Encode a history into the endpoint's message list.

    The caller's messages are only read; every returned dict is new.
    """
    return [encode_message(message) for message in messages]


def decode_content_block(raw: Mapping[str, Any]) -> ContentBlock:
    """Decode a single wire block, tagging anything unknown as unrecognized."""
    block_type = raw.get("type")
    model = _DECODERS.get(block_type) if isinstance(block_type, str) else None
    if model is None:
        logger.warning(f"Unknown content block type: {block_type}")
        return UnrecognizedBlock(block_type=block_type if isinstance(block_type, str) else None, data=dict(raw))

    try:
        return model.model_validate(dict(raw))
    except ValidationError as e:
        logger.error(f"Failed to convert content block of type {block_type}: {e}")
        return UnrecognizedBlock(block_type=block_type, data=dict(raw))


def decode_content_blocks(raw_content: Any) -> list[ContentBlock]:
    """Decode the ``content`` array of a response.

    Raises:
        MalformedResponse: If the content is not a list of mappings
    """
    if not isinstance(raw_content, list):
        raise MalformedResponse(f"Response content is not a block array: {type(raw_content).__name__}")

    blocks: list[ContentBlock] = []
    for index, raw in enumerate(raw_content):
        if not isinstance(raw, Mapping):
            raise MalformedResponse(f"Response block {index} is not an object: {type(raw).__name__}")
        blocks.append(decode_content_block(raw))
    return blocks
