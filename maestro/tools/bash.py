"""Shell tool backed by the host's persistent bash session."""

from typing import Any

from pydantic import BaseModel, Field, model_validator

from maestro.tools.base import ToolContext, ToolDefinition

# Client-side limit; the host enforces its own, shorter, per-command timeout
BASH_TIMEOUT_SECONDS = 40.0


class BashInput(BaseModel):
    """Input for the bash tool."""

    command: str | None = Field(default=None, description="Command to run in the persistent shell")
    restart: bool = Field(default=False, description="Restart the shell instead of running a command")

    class Config:
        extra = "ignore"

    @model_validator(mode="after")
    def require_command(self) -> "BashInput":
        if not self.restart and not self.command:
            raise ValueError("command is required unless restart is true")
        return self

    def to_executor_args(self, context: ToolContext) -> dict[str, Any]:
        if self.restart:
            return {"restart": True}
        return {"command": self.command}


def create_bash_tool(timeout: float = BASH_TIMEOUT_SECONDS) -> ToolDefinition:
    return ToolDefinition(
        name="bash",
        description="Run commands in a persistent bash shell. Use restart to reset the shell.",
        input_schema_class=BashInput,
        capability_groups=frozenset({"computer_use_20241022", "computer_use_20250124", "custom"}),
        api_types={
            "computer_use_20241022": "bash_20241022",
            "computer_use_20250124": "bash_20250124",
        },
        timeout=timeout,
    )
