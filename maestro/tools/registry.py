"""Tools registry: the fixed tool catalog and its capability groups."""

from collections.abc import Iterable
from dataclasses import dataclass

from maestro.tools.base import ToolDefinition
from maestro.tools.bash import create_bash_tool
from maestro.tools.computer import create_computer_tool
from maestro.tools.edit import create_edit_tool


@dataclass(frozen=True)
class CapabilityGroup:
    """A bundle of tools activated together under one tool schema version."""

    version: str
    tools: tuple[str, ...]
    beta_flag: str | None


CAPABILITY_GROUPS: dict[str, CapabilityGroup] = {
    group.version: group
    for group in (
        CapabilityGroup("computer_use_20241022", ("computer", "bash", "edit"), "computer-use-2024-10-22"),
        CapabilityGroup("computer_use_20250124", ("computer", "bash", "edit"), "computer-use-2025-01-24"),
        CapabilityGroup("custom", ("computer", "bash", "edit"), None),
    )
}


class ToolsRegistry:
    """Registry for the tools the model may be offered."""

    def __init__(self, tools: Iterable[ToolDefinition] | None = None):
        self._tools: dict[str, ToolDefinition] = {}
        for tool in tools if tools is not None else self._default_tools():
            self.register_tool(tool)

    @staticmethod
    def _default_tools() -> list[ToolDefinition]:
        return [create_computer_tool(), create_bash_tool(), create_edit_tool()]

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_capability_group(self, version: str) -> CapabilityGroup:
        try:
            return CAPABILITY_GROUPS[version]
        except KeyError:
            raise ValueError(f"Unknown tool version: {version}") from None

    def tools_for(self, enabled: Iterable[str], capability_version: str) -> list[ToolDefinition]:
        """Tools that are both enabled and part of the capability group, in catalog order."""
        group = self.get_capability_group(capability_version)
        enabled_names = set(enabled)
        return [
            tool
            for name, tool in self._tools.items()
            if name in enabled_names and name in group.tools and capability_version in tool.capability_groups
        ]

    def resolve(self, name: str) -> ToolDefinition | None:
        """Look a tool up by its own name or its name on the wire."""
        if name in self._tools:
            return self._tools[name]
        for tool in self._tools.values():
            if tool.api_name == name:
                return tool
        return None

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return self.resolve(name) is not None


_tools_registry: ToolsRegistry | None = None


def get_tools_registry() -> ToolsRegistry:
    """Get or create tools registry instance."""
    global _tools_registry
    if _tools_registry is None:
        _tools_registry = ToolsRegistry()
    return _tools_registry
