"""Tests for context window management."""

from maestro.models.llm import CacheControl, ImageBlock, LLMMessage, TextBlock, ToolResultBlock, ToolUseBlock
from maestro.services.context import apply_cache_breakpoints, filter_recent_images, prepare_request_messages


def screenshot_exchange(tool_id: str, images: int = 1) -> list[LLMMessage]:
    parts = [TextBlock(text=f"screenshot {tool_id}")]
    parts.extend(ImageBlock.from_base64(f"{tool_id}-{index}") for index in range(images))
    return [
        LLMMessage(role="assistant", content=[ToolUseBlock(id=tool_id, name="computer", input={"action": "screenshot"})]),
        LLMMessage(role="user", content=[ToolResultBlock(tool_use_id=tool_id, content=parts)]),
    ]


def build_history(*exchanges: list[LLMMessage]) -> list[LLMMessage]:
    history = [LLMMessage(role="user", content="take screenshots")]
    for exchange in exchanges:
        history.extend(exchange)
    return history


def remaining_images(messages: list[LLMMessage]) -> list[str]:
    return [
        part.source.data
        for message in messages
        for block in message.tool_results
        if not isinstance(block.content, str)
        for part in block.content
        if isinstance(part, ImageBlock)
    ]


def breakpoint_count(messages: list[LLMMessage]) -> int:
    count = 0
    for message in messages:
        for block in message.content:
            if getattr(block, "cache_control", None) is not None:
                count += 1
            if isinstance(block, ToolResultBlock) and not isinstance(block.content, str):
                count += sum(1 for part in block.content if part.cache_control is not None)
    return count


class TestImageRetention:
    """Tests for pruning old screenshots."""

    def test_oldest_images_removed_first(self):
        """Test that only the most recent images survive."""
        history = build_history(screenshot_exchange("t1"), screenshot_exchange("t2"), screenshot_exchange("t3"))

        removed = filter_recent_images(history, 2)

        assert removed == 1
        assert remaining_images(history) == ["t2-0", "t3-0"]

    def test_text_parts_are_kept(self):
        history = build_history(screenshot_exchange("t1"), screenshot_exchange("t2"))
        filter_recent_images(history, 1)

        first_result = history[2].tool_results[0]
        assert [part.type for part in first_result.content] == ["text"]

    def test_multiple_images_in_one_result(self):
        history = build_history(screenshot_exchange("t1", images=3), screenshot_exchange("t2"))
        removed = filter_recent_images(history, 2)
        assert removed == 2
        assert remaining_images(history) == ["t1-2", "t2-0"]

    def test_under_limit_is_untouched(self):
        history = build_history(screenshot_exchange("t1"))
        assert filter_recent_images(history, 3) == 0
        assert remaining_images(history) == ["t1-0"]

    def test_zero_or_none_disables_pruning(self):
        history = build_history(screenshot_exchange("t1"), screenshot_exchange("t2"))
        assert filter_recent_images(history, 0) == 0
        assert filter_recent_images(history, None) == 0
        assert len(remaining_images(history)) == 2

    def test_error_results_are_skipped(self):
        history = build_history(screenshot_exchange("t1"))
        history.append(LLMMessage(role="assistant", content=[ToolUseBlock(id="t2", name="computer", input={})]))
        history.append(
            LLMMessage(role="user", content=[ToolResultBlock(tool_use_id="t2", content="failed", is_error=True)])
        )
        assert filter_recent_images(history, 1) == 0


class TestCacheBreakpoints:
    """Tests for prompt caching markers."""

    def test_last_three_user_messages_marked(self):
        """Test that breakpoints land on the final part of the latest user turns."""
        history = build_history(
            screenshot_exchange("t1"), screenshot_exchange("t2"), screenshot_exchange("t3"), screenshot_exchange("t4")
        )

        apply_cache_breakpoints(history)

        user_messages = [message for message in history if message.role == "user"]
        marked = [message.content[-1].cache_control is not None for message in user_messages]
        assert marked == [False, False, True, True, True]
        assert breakpoint_count(history) == 3

    def test_reapplying_does_not_accumulate(self):
        history = build_history(screenshot_exchange("t1"), screenshot_exchange("t2"))
        apply_cache_breakpoints(history)
        history.extend(screenshot_exchange("t3"))
        history.extend(screenshot_exchange("t4"))

        apply_cache_breakpoints(history)

        assert breakpoint_count(history) == 3
        assert history[0].content[-1].cache_control is None

    def test_stale_markers_on_assistant_and_parts_removed(self):
        history = [
            LLMMessage(role="user", content=[TextBlock(text="hi", cache_control=CacheControl())]),
            LLMMessage(role="assistant", content=[TextBlock(text="hello", cache_control=CacheControl())]),
            LLMMessage(
                role="user",
                content=[
                    ToolResultBlock(
                        tool_use_id="t1",
                        content=[TextBlock(text="out", cache_control=CacheControl())],
                    )
                ],
            ),
        ]

        apply_cache_breakpoints(history, max_breakpoints=1)

        assert history[0].content[0].cache_control is None
        assert history[1].content[0].cache_control is None
        assert history[2].content[0].content[0].cache_control is None
        assert history[2].content[0].cache_control is not None
        assert breakpoint_count(history) == 1


class TestPrepareRequestMessages:
    """Tests for building the outgoing working copy."""

    def test_history_is_not_modified(self):
        """Test that pruning and caching only touch the copy."""
        history = build_history(screenshot_exchange("t1"), screenshot_exchange("t2"), screenshot_exchange("t3"))
        snapshot = [message.model_copy(deep=True) for message in history]

        working = prepare_request_messages(history, images_to_keep=1, prompt_caching=True)

        assert history == snapshot
        assert remaining_images(working) == ["t3-0"]
        assert breakpoint_count(working) == 3

    def test_caching_disabled_strips_markers(self):
        history = [LLMMessage(role="user", content=[TextBlock(text="hi", cache_control=CacheControl())])]
        working = prepare_request_messages(history, prompt_caching=False)
        assert breakpoint_count(working) == 0
        assert history[0].content[0].cache_control is not None
