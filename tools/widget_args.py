"""Argument records accepted by the widget tools.

Agents send camelCase keys (``filePath``); Python callers may use the field
names. Unknown keys are rejected.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from utils.widget_types import OperationResult

_MODEL_CONFIG = {"extra": "forbid", "populate_by_name": True}


class WidgetArgs(BaseModel):
    model_config = _MODEL_CONFIG

    widget_id: str = Field(alias="widgetId", min_length=1, description="The unique identifier for the widget")


class WriteFileArgs(WidgetArgs):
    file_path: str = Field(alias="filePath", description='Path of the file, e.g. "/components/Card.tsx"')
    content: str = Field(description="The complete file content to write")


class ViewFileArgs(WidgetArgs):
    file_path: str = Field(alias="filePath")
    lines: Optional[str] = Field(
        default=None,
        description='Line ranges to read, e.g. "1-50, 100-150". Defaults to the first 500 lines',
    )


class DeleteFileArgs(WidgetArgs):
    file_path: str = Field(alias="filePath")
    remove_from_index: bool = Field(default=True, alias="removeFromIndex")


class SearchFilesArgs(WidgetArgs):
    query: str = Field(description="Regex pattern to search for")
    include_pattern: str = Field(alias="includePattern", description='Glob of files to include, e.g. "**/*.tsx"')
    exclude_pattern: Optional[str] = Field(default=None, alias="excludePattern")
    case_sensitive: bool = Field(default=False, alias="caseSensitive")
    context_lines: Optional[int] = Field(default=None, alias="contextLines")


class LineReplaceArgs(WidgetArgs):
    file_path: str = Field(alias="filePath")
    search: str = Field(min_length=1, description="Current content of the range; '...' elides a section")
    first_replaced_line: int = Field(alias="firstReplacedLine")
    last_replaced_line: int = Field(alias="lastReplacedLine")
    replace: str = Field(description="New content for the range")


class WidgetSearchArgs(WidgetArgs):
    query: str
    search_type: str = Field(default="semantic", alias="searchType")
    limit: Optional[int] = None


class CheckImportsArgs(WidgetArgs):
    file_paths: Optional[List[str]] = Field(default=None, alias="filePaths")
    ignored_imports: Optional[List[str]] = Field(default=None, alias="ignoredImports")


def invalid_arguments(exc: ValidationError, file_path: Optional[str] = None) -> OperationResult:
    """Structured failure for arguments that did not validate."""
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}" for err in exc.errors()
    )
    return OperationResult(
        False,
        f"Invalid arguments: {problems}",
        file_path,
        error="Invalid arguments",
        error_type="InvalidArguments",
    )
