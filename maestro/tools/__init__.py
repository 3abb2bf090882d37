"""Tools the model can use to control the host computer."""

from maestro.tools.base import ToolDefinition, ToolExecutor
from maestro.tools.registry import ToolsRegistry, get_tools_registry

__all__ = ["ToolDefinition", "ToolExecutor", "ToolsRegistry", "get_tools_registry"]
