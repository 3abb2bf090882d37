"""Base types and definitions for tools."""

from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel

from maestro.models.llm import ComputerToolOptions, ToolExecutionResult


class ToolExecutor(Protocol):
    """Host-side component that performs tool effects.

    Implementations own the shell process, file system and display; the
    engine sees each call as an opaque remote procedure.
    """

    async def execute(self, name: str, args: dict[str, Any]) -> ToolExecutionResult: ...

    async def get_screen_size(self) -> tuple[int, int]: ...

    async def get_computer_tool_capabilities(self, width: int, height: int) -> ComputerToolOptions: ...


@dataclass(frozen=True)
class ToolContext:
    """Host facts needed to turn model input into executor arguments."""

    display_width: int = 1280
    display_height: int = 720


@dataclass(frozen=True)
class ToolDefinition:
    """Definition of a tool offered to the model.

    ``api_types`` maps a capability group to the Anthropic-defined tool type
    used for it; groups absent from the map send the tool as a custom tool.
    """

    name: str
    description: str
    input_schema_class: type[BaseModel]
    capability_groups: frozenset[str]
    api_types: dict[str, str] = field(default_factory=dict)
    api_name: str | None = None
    timeout: float | None = None

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def prepare_arguments(self, raw_input: dict[str, Any], context: ToolContext) -> dict[str, Any]:
        """Validate model input and convert it to the executor's argument shape.

        Raises:
            pydantic.ValidationError: If the input does not fit the schema
        """
        parsed = self.parse_input(raw_input)
        to_executor_args = getattr(parsed, "to_executor_args", None)
        if to_executor_args is not None:
            return to_executor_args(context)
        return parsed.model_dump(exclude_none=True)

    def wire_name(self, capability_group: str) -> str:
        if capability_group in self.api_types and self.api_name:
            return self.api_name
        return self.name

    def to_wire(self, capability_group: str, computer_options: ComputerToolOptions | None = None) -> dict[str, Any]:
        """Describe this tool in the request payload for a capability group."""
        api_type = self.api_types.get(capability_group)
        if api_type is None:
            return {
                "name": self.name,
                "description": self.description,
                "input_schema": self.get_json_schema(),
            }

        definition: dict[str, Any] = {"type": api_type, "name": self.wire_name(capability_group)}
        if computer_options is not None and self.name == "computer":
            definition.update(computer_options.model_dump(exclude_none=True))
        return definition
