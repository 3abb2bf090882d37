"""User settings and the per-run configuration derived from them."""

import os
from typing import Literal

from pydantic import BaseModel, Field

from maestro.exceptions import ConfigurationError

ToolVersion = Literal["computer_use_20241022", "computer_use_20250124", "custom"]

DEFAULT_MODEL = "claude-3-7-sonnet-20250219"


class RunConfig(BaseModel):
    """Everything one orchestration run needs to know."""

    api_key: str
    model: str = DEFAULT_MODEL
    max_tokens: int = 4096
    system_prompt: str | None = None
    enabled_tools: frozenset[str] = frozenset({"computer", "bash", "edit"})
    tool_version: ToolVersion = "computer_use_20250124"
    only_n_most_recent_images: int | None = 3
    thinking_enabled: bool = False
    thinking_budget: int | None = None
    prompt_caching: bool = True
    token_efficient_tools_beta: bool = False

    def require_credentials(self) -> None:
        """Fail fast when no usable API key is configured.

        Raises:
            ConfigurationError: If the API key is missing or blank
        """
        if not self.api_key or not self.api_key.strip():
            raise ConfigurationError("API key must not be empty. Configure a valid Anthropic API key in settings.")


class SettingsData(BaseModel):
    """Persisted user settings.

    Storage is owned by the host; only the shape lives here.
    """

    api_key: str = ""
    model: str = DEFAULT_MODEL
    max_tokens: int = Field(default=4096, gt=0)
    system_prompt: str | None = None
    enable_computer_tool: bool = True
    enable_bash_tool: bool = True
    enable_edit_tool: bool = True
    tool_version: ToolVersion = "computer_use_20250124"
    only_n_most_recent_images: int | None = Field(default=3, ge=0)
    thinking_enabled: bool = False
    thinking_budget: int = Field(default=2048, ge=0)
    prompt_caching: bool = True
    token_efficient_tools_beta: bool = False
    theme: Literal["light", "dark", "system"] = "system"

    @classmethod
    def from_env(cls) -> "SettingsData":
        """Build settings from environment variables, falling back to defaults."""
        settings = cls(api_key=os.getenv("ANTHROPIC_API_KEY", ""))
        overrides: dict[str, object] = {}
        if model := os.getenv("MAESTRO_MODEL"):
            overrides["model"] = model
        if max_tokens := os.getenv("MAESTRO_MAX_TOKENS"):
            overrides["max_tokens"] = int(max_tokens)
        if tool_version := os.getenv("MAESTRO_TOOL_VERSION"):
            overrides["tool_version"] = tool_version
        if image_limit := os.getenv("MAESTRO_IMAGE_LIMIT"):
            overrides["only_n_most_recent_images"] = int(image_limit)
        if thinking_budget := os.getenv("MAESTRO_THINKING_BUDGET"):
            overrides["thinking_enabled"] = True
            overrides["thinking_budget"] = int(thinking_budget)
        if not overrides:
            return settings
        return cls.model_validate({**settings.model_dump(), **overrides})

    def enabled_tools(self) -> frozenset[str]:
        flags = {
            "computer": self.enable_computer_tool,
            "bash": self.enable_bash_tool,
            "edit": self.enable_edit_tool,
        }
        return frozenset(name for name, enabled in flags.items() if enabled)

    def to_run_config(self) -> RunConfig:
        return RunConfig(
            api_key=self.api_key,
            model=self.model,
            max_tokens=self.max_tokens,
            system_prompt=self.system_prompt,
            enabled_tools=self.enabled_tools(),
            tool_version=self.tool_version,
            only_n_most_recent_images=self.only_n_most_recent_images,
            thinking_enabled=self.thinking_enabled,
            thinking_budget=self.thinking_budget if self.thinking_enabled else None,
            prompt_caching=self.prompt_caching,
            token_efficient_tools_beta=self.token_efficient_tools_beta,
        )
