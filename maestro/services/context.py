"""Context window management applied to the outgoing copy of a history."""

from collections.abc import Sequence

from maestro.models.llm import CacheControl, ImageBlock, LLMMessage, TextBlock, ToolResultBlock
from maestro.utils.logging import get_logger

logger = get_logger(__name__)

# The endpoint allows four cache breakpoints; the system prompt takes one
MAX_CACHE_BREAKPOINTS = 3


def filter_recent_images(messages: Sequence[LLMMessage], images_to_keep: int | None) -> int:
    """Remove the oldest tool-result images until at most ``images_to_keep`` remain.

    Mutates ``messages`` in place. ``None`` or 0 disables pruning.

    Returns:
        Number of images removed
    """
    if not images_to_keep:
        return 0

    tool_results = [
        block for message in messages for block in message.content if isinstance(block, ToolResultBlock)
    ]
    total_images = sum(block.image_count() for block in tool_results)
    to_remove = max(0, total_images - images_to_keep)
    removed = 0

    for block in tool_results:
        if removed == to_remove:
            break
        if isinstance(block.content, str):
            continue
        kept: list[TextBlock | ImageBlock] = []
        for part in block.content:
            if isinstance(part, ImageBlock) and removed < to_remove:
                removed += 1
                continue
            kept.append(part)
        block.content = kept

    if removed:
        logger.debug(f"Pruned {removed} of {total_images} images, keeping the {images_to_keep} most recent")
    return removed


def apply_cache_breakpoints(messages: Sequence[LLMMessage], max_breakpoints: int = MAX_CACHE_BREAKPOINTS) -> None:
    """Mark the final content part of the most recent user turns for prompt caching.

    Markers anywhere else are stripped, so applying this repeatedly never
    grows the number of breakpoints. Mutates ``messages`` in place.
    """
    remaining = max_breakpoints
    for message in reversed(messages):
        if message.role != "user":
            _strip_cache_markers(message)
            continue
        _strip_cache_markers(message)
        if remaining > 0 and message.content and "cache_control" in type(message.content[-1]).model_fields:
            message.content[-1].cache_control = CacheControl()
            remaining -= 1


def _strip_cache_markers(message: LLMMessage) -> None:
    for block in message.content:
        if getattr(block, "cache_control", None) is not None:
            block.cache_control = None
        if isinstance(block, ToolResultBlock) and not isinstance(block.content, str):
            for part in block.content:
                part.cache_control = None


def prepare_request_messages(
    history: Sequence[LLMMessage], images_to_keep: int | None = None, prompt_caching: bool = True
) -> list[LLMMessage]:
    """Build the working copy of ``history`` that is sent to the endpoint.

    The canonical history is never modified.
    """
    working = [message.model_copy(deep=True) for message in history]
    filter_recent_images(working, images_to_keep)
    if prompt_caching:
        apply_cache_breakpoints(working)
    else:
        for message in working:
            _strip_cache_markers(message)
    return working
