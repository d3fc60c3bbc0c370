## base.py
from abc import ABCMeta, abstractmethod
from dataclasses import dataclass, fields, replace
from typing import Any, Optional, Dict


@dataclass(kw_only=True, frozen=True)
class ToolResult:
    """
    Result from executing a tool.

    Attributes:
        output: The output of the tool execution
        error: Optional error message if the tool execution failed
        system: Optional system message
        message: Optional message
        tool_name: Name of the tool that was executed
        command: Command that was executed
    """

    output: Optional[str] = None
    error: Optional[str] = None
    system: Optional[str] = None
    message: Optional[str] = None
    tool_name: Optional[str] = None
    command: Optional[str] = None

    def __bool__(self):
        """Returns True if the tool execution was successful."""
        return any(getattr(self, field.name) for field in fields(self))

    def replace(self, **kwargs):
        """Returns a new ToolResult with the given fields replaced."""
        return replace(self, **kwargs)


class ToolError(Exception):
    """Exception raised when a tool fails to execute."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def __str__(self):
        return self.message


# ---------------------------------------------------------------------------
# Widget error taxonomy
# ---------------------------------------------------------------------------


class WidgetError(ToolError):
    """Base class for failures reported by the widget operations.

    ``label`` is the short, stable string placed in the ``error`` field of a
    structured result; ``message`` is the human readable detail.
    """

    label = "Widget operation failed"

    @property
    def error_type(self) -> str:
        return type(self).__name__


class ConfigurationMissing(WidgetError):
    """A required credential or endpoint is not configured."""

    label = "Configuration missing"


class NotFound(WidgetError):
    label = "File not found"


class InvalidPath(WidgetError):
    label = "Invalid file path"


class InvalidPattern(WidgetError):
    label = "Invalid search pattern"


class InvalidRange(WidgetError):
    label = "Invalid line range"


class PatternMismatch(WidgetError):
    """The caller's search snippet does not match the current file content."""

    label = "Search pattern mismatch"


class RemoteOperationFailure(WidgetError):
    """A storage, index or embedding call failed or timed out."""

    label = "Remote operation failed"


class BaseTool(metaclass=ABCMeta):
    """Base class for all tools."""

    name: str = "base_tool"
    description: str = "Base tool implementation"

    def __init__(self, input_schema: Optional[Dict[str, Any]] = None):
        self.input_schema = input_schema or {
            "type": "object",
            "properties": {},
            "required": [],
        }

    @property
    @abstractmethod
    def name(self) -> str:
        """The name of the tool."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """A description of what the tool does."""
        pass

    @abstractmethod
    async def __call__(self, **kwargs) -> Any:
        """Execute the tool with the given arguments."""
        pass

    def to_params(self) -> Dict[str, Any]:
        """Convert the tool to OpenAI function-calling parameters."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }

