"""File viewing and editing tool."""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from maestro.tools.base import ToolContext, ToolDefinition

EditCommand = Literal["view", "create", "str_replace", "insert", "undo_edit"]

COMMAND_ALIASES: dict[str, str] = {
    "replace": "str_replace",
    "undo": "undo_edit",
}


class EditInput(BaseModel):
    """Input for the edit tool."""

    command: EditCommand
    path: str = Field(description="Absolute path of the file or directory")
    file_text: str | None = Field(default=None, description="Content of the file to create")
    old_str: str | None = Field(default=None, description="Exact text to replace")
    new_str: str | None = Field(default=None, description="Replacement or inserted text")
    insert_line: int | None = Field(default=None, ge=0, description="Line after which new_str is inserted")
    view_range: list[int] | None = Field(default=None, description="[start, end] lines to view, end -1 for EOF")

    class Config:
        extra = "ignore"

    @field_validator("command", mode="before")
    @classmethod
    def resolve_alias(cls, value: Any) -> Any:
        if isinstance(value, str):
            return COMMAND_ALIASES.get(value, value)
        return value

    @field_validator("view_range")
    @classmethod
    def validate_view_range(cls, value: list[int] | None) -> list[int] | None:
        if value is not None and len(value) != 2:
            raise ValueError("view_range must contain exactly two line numbers")
        return value

    @model_validator(mode="after")
    def check_command_fields(self) -> "EditInput":
        required: dict[str, tuple[str, ...]] = {
            "create": ("file_text",),
            "str_replace": ("old_str",),
            "insert": ("insert_line", "new_str"),
        }
        missing = [name for name in required.get(self.command, ()) if getattr(self, name) is None]
        if missing:
            raise ValueError(f"{', '.join(missing)} required for {self.command}")
        return self

    def to_executor_args(self, context: ToolContext) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def create_edit_tool() -> ToolDefinition:
    return ToolDefinition(
        name="edit",
        description="View, create and edit files. Edits can be undone with undo_edit.",
        input_schema_class=EditInput,
        capability_groups=frozenset({"computer_use_20241022", "computer_use_20250124", "custom"}),
        api_types={
            "computer_use_20241022": "text_editor_20241022",
            "computer_use_20250124": "text_editor_20250124",
        },
        api_name="str_replace_editor",
    )
