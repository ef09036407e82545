"""Tools the model can call during a chat turn."""

from toolchat.tools.registry import ToolsRegistry, get_tools_registry

__all__ = ["ToolsRegistry", "get_tools_registry"]
