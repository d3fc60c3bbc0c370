## collection.py
"""Collection classes for managing multiple tools."""

import json
import logging
from typing import Any, Dict, List, Optional

from loguru import logger as ll

from config import WidgetSettings, get_constant
from .base import BaseTool, ToolResult

logger = logging.getLogger(__name__)

# Keys whose values are file bodies; only their size is audited.
_BODY_KEYS = {"content", "search", "replace"}
_tool_sink_id: Optional[int] = None


def _audit_view(tool_input: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: f"<{len(value)} chars>" if key in _BODY_KEYS and isinstance(value, str) else value
        for key, value in tool_input.items()
    }


class ToolCollection:
    """Collection of tools for the agent to use."""

    def __init__(self, *tools: BaseTool):
        """
        Initialize the tool collection.

        Args:
            *tools: Tools to add to the collection
        """
        global _tool_sink_id
        self.t_log = ll.bind(name="tool")
        if _tool_sink_id is None:
            _tool_sink_id = ll.add(
                str(get_constant("TOOL_LOG_FILE")),
                rotation="500 KB",
                level="DEBUG",
                delay=True,
                filter=lambda record: record["extra"].get("name") == "tool",
                format="{time:YYYY-MM-DD HH:mm} | {level: <8} | {module}.{function}:{line} - {message}",
            )

        self.tools: Dict[str, BaseTool] = {}
        for tool in tools:
            self.tools[tool.name] = tool

    def to_params(self) -> List[Dict[str, Any]]:
        """Convert all tools to a list of parameter dictionaries."""
        return [tool.to_params() for tool in self.tools.values()]

    async def run(self, name: str, tool_input: Dict[str, Any]) -> ToolResult:
        """
        Run a tool with the given name and input.

        Args:
            name: Name of the tool to run
            tool_input: Input parameters for the tool

        Returns:
            ToolResult: Result of the tool execution. Unknown tools and
            unexpected exceptions are reported through ``error``.
        """
        command = str(tool_input.get("command", "unknown"))
        if name not in self.tools:
            return ToolResult(
                error=f"Tool '{name}' not found. Available tools: {', '.join(self.tools.keys())}",
                tool_name=name,
                command=command,
            )

        tool = self.tools[name]
        self.t_log.debug(f"EXACT TOOL INPUT ({name}): \n{json.dumps(_audit_view(tool_input), indent=2)}")
        try:
            result = await tool(**tool_input)
        except Exception as e:
            logger.error(f"Error executing tool '{name}'", exc_info=True)
            return ToolResult(
                error=f"Error executing tool '{name}': {str(e)}",
                tool_name=name,
                command=command,
            )

        if result is None:
            return ToolResult(error="Tool execution returned None", tool_name=name, command=command)
        if result.tool_name is None:
            result = result.replace(tool_name=name)
        if result.command is None:
            result = result.replace(command=command)
        return result


def build_default_tools(settings: Optional[WidgetSettings] = None) -> ToolCollection:
    """Wire the widget tools to the production bindings configured in the environment.

    Raises ``ConfigurationMissing`` when a required endpoint or credential is unset.
    """
    from utils.remote_services import (
        MongoSearchIndex,
        OpenAIEmbeddingProvider,
        WidgetFileStore,
        build_index_writer,
    )

    from .code_checker import CodeCheckerTool
    from .widget_file_manager import WidgetFileManagerTool
    from .widget_search import WidgetSearchTool

    settings = settings or WidgetSettings.from_env()
    store = WidgetFileStore.from_env(settings)
    return ToolCollection(
        WidgetFileManagerTool(store, build_index_writer(settings), settings),
        WidgetSearchTool(MongoSearchIndex.from_env(settings), OpenAIEmbeddingProvider.from_env(settings), settings),
        CodeCheckerTool(store, settings),
    )
