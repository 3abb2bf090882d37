"""LLM-related data models and types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, BaseModel, Field, field_validator


class CacheControl(BaseModel):
    """Cache control marker for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str
    cache_control: CacheControl | None = None

    class Config:
        extra = "ignore"  # Ignore citations and other fields from Anthropic


class ImageSource(BaseModel):
    """Base64 payload of an image block."""

    type: Literal["base64"] = "base64"
    media_type: str = "image/png"
    data: str


class ImageBlock(BaseModel):
    """Image content block."""

    type: Literal["image"] = "image"
    source: ImageSource
    cache_control: CacheControl | None = None

    class Config:
        extra = "ignore"

    @classmethod
    def from_base64(cls, data: str, media_type: str = "image/png") -> "ImageBlock":
        return cls(source=ImageSource(data=data, media_type=media_type))


class ThinkingBlock(BaseModel):
    """Extended thinking trace returned by the model."""

    type: Literal["thinking"] = "thinking"
    thinking: str
    signature: str | None = None

    class Config:
        extra = "ignore"


class RedactedThinkingBlock(BaseModel):
    """Thinking the endpoint returns encrypted. Sent back exactly as received."""

    type: Literal["redacted_thinking"] = "redacted_thinking"
    data: str


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any] = Field(default_factory=dict)

    class Config:
        extra = "ignore"


ToolResultPart = Annotated[TextBlock | ImageBlock, Field(discriminator="type")]


class ToolResultBlock(BaseModel):
    """Tool result content block.

    ``content`` is either a plain string or an ordered list of text and image
    parts. Tool blocks never nest inside it.
    """

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str | list[ToolResultPart] = Field(default_factory=list)
    is_error: bool = False
    cache_control: CacheControl | None = None

    class Config:
        extra = "ignore"

    def image_count(self) -> int:
        if isinstance(self.content, str):
            return 0
        return sum(1 for part in self.content if part.type == "image")


class UnrecognizedBlock(BaseModel):
    """Block of a type this client does not understand.

    Kept for display and logging only; it is never sent back to the model.
    """

    type: Literal["unrecognized"] = "unrecognized"
    block_type: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)


ContentBlock = Annotated[
    TextBlock
    | ImageBlock
    | ThinkingBlock
    | RedactedThinkingBlock
    | ToolUseBlock
    | ToolResultBlock
    | UnrecognizedBlock,
    Field(discriminator="type"),
]


class LLMMessage(BaseModel):
    """A message for LLM conversation.

    ``id`` is presentation metadata and is never part of the request payload.
    """

    role: Literal["user", "assistant"]
    content: list[ContentBlock] = Field(default_factory=list)
    id: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _wrap_plain_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [{"type": "text", "text": value}]
        return value

    @property
    def tool_uses(self) -> list[ToolUseBlock]:
        return [block for block in self.content if isinstance(block, ToolUseBlock)]

    @property
    def tool_results(self) -> list[ToolResultBlock]:
        return [block for block in self.content if isinstance(block, ToolResultBlock)]

    @property
    def text(self) -> str:
        return "\n".join(block.text for block in self.content if isinstance(block, TextBlock))


class ToolExecutionResult(BaseModel):
    """Raw outcome of a tool dispatch, as reported by the tool executor.

    The host reports the image as ``base64_image`` and the note as ``system``;
    both spellings are accepted.
    """

    output: str | None = None
    error: str | None = None
    image: str | None = Field(default=None, validation_alias=AliasChoices("image", "base64_image"))
    system_note: str | None = Field(default=None, validation_alias=AliasChoices("system_note", "system"))

    class Config:
        extra = "ignore"
        populate_by_name = True

    @property
    def failed(self) -> bool:
        return bool(self.error)


class ComputerToolOptions(BaseModel):
    """Display description sent with the Anthropic-defined computer tool."""

    display_width_px: int
    display_height_px: int
    display_number: int | None = 1


@dataclass
class LLMUsage:
    """Token/resource usage information from LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def cache_hit_rate(self) -> float:
        """Calculate cache hit rate as percentage."""
        total_input = self.input_tokens + self.cache_read_input_tokens + self.cache_creation_input_tokens
        if total_input == 0:
            return 0.0
        return (self.cache_read_input_tokens / total_input) * 100

    def add(self, other: "LLMUsage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.total_tokens += other.total_tokens
        self.cache_creation_input_tokens += other.cache_creation_input_tokens
        self.cache_read_input_tokens += other.cache_read_input_tokens


class RunStatus(str, Enum):
    """Terminal status of an orchestration run."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class AgentLoopResult:
    """Result from executing an agent loop."""

    status: RunStatus
    messages: list[LLMMessage]
    turns: int
    stop_reason: str | None = None
    usage: LLMUsage = field(default_factory=LLMUsage)

    @property
    def cancelled(self) -> bool:
        return self.status is RunStatus.CANCELLED
