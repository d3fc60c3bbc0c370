from .base import BaseTool, ToolError, ToolResult, WidgetError
from .collection import ToolCollection, build_default_tools

# Concrete tools are imported from their own modules.

__all__ = [
    "BaseTool",
    "ToolError",
    "ToolResult",
    "WidgetError",
    "ToolCollection",
    "build_default_tools",
]
