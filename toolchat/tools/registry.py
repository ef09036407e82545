"""Tools registry for managing AI assistant tools."""

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from toolchat.errors import InvalidArgumentsError, ToolError, UnknownToolError
from toolchat.models.llm import LLMToolDefinition
from toolchat.tools.base import ToolContext, ToolDefinition, ToolInvocationResult
from toolchat.tools.calculator import create_calculator_tool
from toolchat.tools.current_datetime import create_current_datetime_tool
from toolchat.tools.session_stats import create_session_stats_tool
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Registry for managing AI assistant tools."""

    def __init__(self, register_defaults: bool = True):
        """Initialize tools registry, optionally with the default tool set."""
        self._tools: dict[str, ToolDefinition] = {}
        if register_defaults:
            self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the calculator, clock and session stats tools."""
        tools = [
            create_calculator_tool(),
            create_current_datetime_tool(),
            create_session_stats_tool(),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_tool_schemas(self) -> list[LLMToolDefinition]:
        """Get the tool definitions sent to the model."""
        return [
            LLMToolDefinition(name=tool.name, description=tool.description, input_schema=tool.get_json_schema())
            for tool in self._tools.values()
        ]

    async def dispatch(self, tool_name: str, args: dict[str, Any] | None, context: ToolContext) -> ToolInvocationResult:
        """Execute a tool by name.

        Never raises: unknown tools, bad arguments and handler failures all come
        back as a result with the error field set.
        """
        tool = self._tools.get(tool_name)
        if tool is None:
            logger.warning(f"Unknown tool requested: {tool_name}")
            return ToolInvocationResult.failed(UnknownToolError(tool_name).as_result_error())

        try:
            params = tool.parse_input(args or {})
            result = await tool.handler(params, context)
        except PydanticValidationError as e:
            error = InvalidArgumentsError(f"{e.error_count()} invalid argument(s) for {tool_name}: {e.errors()[0]['msg']}")
            logger.info(f"Tool {tool_name} rejected arguments {args}: {e}")
            return ToolInvocationResult.failed(error.as_result_error())
        except ToolError as e:
            logger.info(f"Tool {tool_name} returned error: {e.as_result_error()}")
            return ToolInvocationResult.failed(e.as_result_error())
        except Exception as e:
            logger.error(f"Tool {tool_name} failed: {e}", exc_info=True)
            return ToolInvocationResult.failed(f"ToolFailed: {e!s}")

        logger.debug(f"Tool {tool_name} succeeded: {result[:100]}")
        return ToolInvocationResult.ok(result)

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools


_tools_registry: ToolsRegistry | None = None


def get_tools_registry() -> ToolsRegistry:
    """Get or create tools registry instance."""
    global _tools_registry

    if _tools_registry is None:
        _tools_registry = ToolsRegistry()

    return _tools_registry
