"""Computer control tool: mouse, keyboard and screenshots."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from maestro.tools.base import ToolContext, ToolDefinition

ComputerAction = Literal[
    "key",
    "type",
    "mouse_move",
    "left_click",
    "left_click_drag",
    "right_click",
    "middle_click",
    "double_click",
    "triple_click",
    "screenshot",
    "cursor_position",
    "left_mouse_down",
    "left_mouse_up",
    "scroll",
    "hold_key",
    "wait",
]

# Semantic names the model may use, mapped to host primitives
ACTION_ALIASES: dict[str, str] = {
    "click": "left_click",
    "press": "key",
    "move": "mouse_move",
    "drag": "left_click_drag",
}

MAX_DURATION_SECONDS = 100


class ComputerInput(BaseModel):
    """Input for the computer tool."""

    action: ComputerAction = Field(description="Action to perform on the display")
    coordinate: list[int | float] | None = Field(
        default=None, description="[x, y] pixel position for pointer actions"
    )
    text: str | None = Field(default=None, description="Text to type, or key combination for key/hold_key")
    key: str | None = Field(default=None, description="Modifier key held during clicks or scrolls")
    scroll_direction: Literal["up", "down", "left", "right"] | None = None
    scroll_amount: int | None = Field(default=None, ge=0)
    duration: float | None = Field(default=None, description="Seconds, for hold_key and wait")

    class Config:
        extra = "ignore"

    @model_validator(mode="before")
    @classmethod
    def normalize_semantic_input(cls, data: Any) -> Any:
        """Translate semantic action names and loose argument names."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        action = data.get("action")
        if isinstance(action, str):
            data["action"] = ACTION_ALIASES.get(action, action)
        if "coordinate" not in data and "x" in data and "y" in data:
            data["coordinate"] = [data.pop("x"), data.pop("y")]
        if "direction" in data and "scroll_direction" not in data:
            data["scroll_direction"] = data.pop("direction")
        if "amount" in data and "scroll_amount" not in data:
            data["scroll_amount"] = data.pop("amount")
        return data

    @field_validator("coordinate", mode="before")
    @classmethod
    def validate_coordinate(cls, value: Any) -> Any:
        if value is None:
            return value
        if not isinstance(value, list | tuple) or len(value) != 2:
            raise ValueError(f"{value!r} must be a pair of non-negative numbers")
        for component in value:
            if isinstance(component, bool) or not isinstance(component, int | float) or component < 0:
                raise ValueError(f"{value!r} must be a pair of non-negative numbers")
        return list(value)

    @model_validator(mode="after")
    def check_action_arguments(self) -> "ComputerInput":
        action = self.action
        if action in ("mouse_move", "left_click_drag") and self.coordinate is None:
            raise ValueError(f"coordinate is required for {action}")
        if action == "type" and not self.text:
            raise ValueError("text is required for type")
        if action == "key" and not (self.text or self.key):
            raise ValueError("text is required for key")
        if action == "scroll":
            if self.scroll_direction is None:
                raise ValueError("scroll_direction is required for scroll")
            if self.scroll_amount is None:
                raise ValueError("scroll_amount is required for scroll")
        if action in ("hold_key", "wait"):
            if self.duration is None:
                raise ValueError(f"duration is required for {action}")
            if not 0 <= self.duration <= MAX_DURATION_SECONDS:
                raise ValueError(f"duration={self.duration} must be between 0 and {MAX_DURATION_SECONDS}")
        if action == "hold_key" and not self.text:
            raise ValueError("text is required for hold_key")
        return self

    def to_executor_args(self, context: ToolContext) -> dict[str, Any]:
        args = self.model_dump(exclude_none=True)
        if self.action == "key" and not self.text:
            args["text"] = self.key
        args["display_width"] = context.display_width
        args["display_height"] = context.display_height
        return args


def create_computer_tool() -> ToolDefinition:
    return ToolDefinition(
        name="computer",
        description=(
            "Use a mouse and keyboard to interact with the computer, and take screenshots. "
            "Take a screenshot before clicking to find the right coordinates."
        ),
        input_schema_class=ComputerInput,
        capability_groups=frozenset({"computer_use_20241022", "computer_use_20250124", "custom"}),
        api_types={
            "computer_use_20241022": "computer_20241022",
            "computer_use_20250124": "computer_20250124",
        },
    )
