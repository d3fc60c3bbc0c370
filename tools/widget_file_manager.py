"""
widget_file_manager.py
======================
View, search and edit the files of a remotely stored widget.

Commands
--------
write • view • delete • search_files • line_replace

Every command returns the JSON rendering of a structured result
(``{"success": ..., "message": ..., ...}``); failures carry ``error`` and
``errorType`` instead of raising.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from config import WidgetSettings
from tools.base import (
    BaseTool,
    InvalidPath,
    InvalidPattern,
    InvalidRange,
    NotFound,
    PatternMismatch,
    ToolResult,
)
from tools.widget_args import (
    DeleteFileArgs,
    LineReplaceArgs,
    SearchFilesArgs,
    ViewFileArgs,
    WriteFileArgs,
    invalid_arguments,
)
from utils.file_gateway import FileMutationGateway
from utils.json_utils import dumps_result
from utils.line_ranges import parse_line_ranges, render_numbered_view
from utils.line_replace import apply_line_replace
from utils.regex_search import search_file_contents
from utils.remote_services import NullIndexWriter
from utils.widget_types import OperationResult, normalize_widget_path

logger = logging.getLogger(__name__)

# Failures caused by the caller's input; their own message is reported.
_CALLER_ERRORS = (InvalidPath, InvalidPattern, InvalidRange, NotFound, PatternMismatch)


class Command(str, Enum):
    WRITE = "write"
    VIEW = "view"
    DELETE = "delete"
    SEARCH_FILES = "search_files"
    LINE_REPLACE = "line_replace"

    @classmethod
    def list(cls) -> List[str]:
        return [c.value for c in cls]


def _failure(action: str, path: Optional[str], exc: Exception) -> Dict[str, Any]:
    if isinstance(exc, _CALLER_ERRORS):
        logger.warning(f"{action} rejected: {exc}")
        return OperationResult.failure(exc.message, exc, path).to_dict()
    logger.error(f"Failed to {action}", exc_info=True)
    return OperationResult.failure(f"Failed to {action}", exc, path).to_dict()


class WidgetFileManagerTool(BaseTool):
    """Line-aware file operations over a widget's remote file store."""

    def __init__(self, store, index_writer=None, settings: Optional[WidgetSettings] = None):
        super().__init__(input_schema=None)
        self.store = store
        self.settings = settings or WidgetSettings()
        self.gateway = FileMutationGateway(store, index_writer or NullIndexWriter())

    @property
    def name(self) -> str:
        return "widget_file_manager"

    @property
    def description(self) -> str:
        return (
            "Manage the files of a widget stored remotely. `view` shows numbered lines "
            "(optionally only the given ranges), `write` replaces a whole file, `delete` "
            "removes it, `search_files` runs a regex over files selected by glob and "
            "`line_replace` replaces a line range after checking that `search` still "
            "matches it (use ... to elide long sections)."
        )

    def to_params(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        "command": {"type": "string", "enum": Command.list()},
                        "widgetId": {"type": "string", "description": "The unique identifier for the widget"},
                        "filePath": {
                            "type": "string",
                            "description": 'Path of the file, e.g. "/config.ts" or "/components/Card.tsx"',
                        },
                        "content": {"type": "string", "description": "Full file content (write)"},
                        "lines": {
                            "type": "string",
                            "description": 'Line ranges to view, e.g. "1-50, 100-150" (view; default first 500 lines)',
                        },
                        "removeFromIndex": {
                            "type": "boolean",
                            "description": "Also remove the file from the search index (delete; default true)",
                        },
                        "query": {"type": "string", "description": "Regex to search for (search_files)"},
                        "includePattern": {"type": "string", "description": 'Glob of files to search, e.g. "**/*.tsx"'},
                        "excludePattern": {"type": "string", "description": 'Glob of files to skip, e.g. "**/ui/**"'},
                        "caseSensitive": {"type": "boolean", "description": "Match case (default false)"},
                        "contextLines": {"type": "integer", "description": "Context lines around matches (default 3)"},
                        "search": {
                            "type": "string",
                            "description": "Current text of the range being replaced; ... elides content (line_replace)",
                        },
                        "firstReplacedLine": {"type": "integer", "description": "First line to replace (1-indexed)"},
                        "lastReplacedLine": {"type": "integer", "description": "Last line to replace (1-indexed)"},
                        "replace": {"type": "string", "description": "Replacement text (line_replace)"},
                    },
                    "required": ["command", "widgetId"],
                },
            },
        }

    async def __call__(self, *, command: str, **kwargs) -> ToolResult:
        try:
            cmd = Command(command)
        except ValueError:
            return ToolResult(
                error=f"Unknown command: {command}. Available commands: {', '.join(Command.list())}",
                tool_name=self.name,
                command=str(command),
            )

        handlers = {
            Command.WRITE: self.write_file,
            Command.VIEW: self.view_file,
            Command.DELETE: self.delete_file,
            Command.SEARCH_FILES: self.search_files,
            Command.LINE_REPLACE: self.replace_lines,
        }
        result = await handlers[cmd](**kwargs)
        return ToolResult(
            output=dumps_result(result),
            error=None if result.get("success") else result.get("message"),
            tool_name=self.name,
            command=cmd.value,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def write_file(self, **arguments) -> Dict[str, Any]:
        try:
            args = WriteFileArgs.model_validate(arguments)
        except ValidationError as exc:
            return invalid_arguments(exc, arguments.get("filePath")).to_dict()

        path = args.file_path
        try:
            path = normalize_widget_path(path)
        except InvalidPath as exc:
            return _failure(f"write file {path}", path, exc)
        result = await self.gateway.write(args.widget_id, path, args.content)
        return result.to_dict()

    async def view_file(self, **arguments) -> Dict[str, Any]:
        try:
            args = ViewFileArgs.model_validate(arguments)
        except ValidationError as exc:
            return invalid_arguments(exc, arguments.get("filePath")).to_dict()

        path = args.file_path
        try:
            path = normalize_widget_path(path)
            content = await self._read(args.widget_id, path)
            if args.lines:
                ranges = parse_line_ranges(args.lines)
                view = render_numbered_view(content, ranges, lines_spec=args.lines)
            else:
                view = render_numbered_view(content, default_limit=self.settings.view_default_lines)
        except Exception as exc:
            return _failure(f"view file {path}", path, exc)

        return OperationResult(
            True,
            f"File {path} retrieved successfully",
            path,
            extra={"content": view.text, "totalLines": view.total_lines, "linesShown": view.lines_shown},
        ).to_dict()

    async def delete_file(self, **arguments) -> Dict[str, Any]:
        try:
            args = DeleteFileArgs.model_validate(arguments)
        except ValidationError as exc:
            return invalid_arguments(exc, arguments.get("filePath")).to_dict()

        path = args.file_path
        try:
            path = normalize_widget_path(path)
        except InvalidPath as exc:
            return _failure(f"delete file {path}", path, exc)
        result = await self.gateway.delete(args.widget_id, path, remove_from_index=args.remove_from_index)
        return result.to_dict()

    async def search_files(self, **arguments) -> Dict[str, Any]:
        try:
            args = SearchFilesArgs.model_validate(arguments)
        except ValidationError as exc:
            return invalid_arguments(exc).to_dict()

        context_lines = args.context_lines
        if context_lines is None:
            context_lines = self.settings.search_context_lines
        try:
            files = await self.store.fetch_files(args.widget_id)
            matches = search_file_contents(
                files,
                args.query,
                args.include_pattern,
                args.exclude_pattern,
                context_lines=context_lines,
                case_sensitive=args.case_sensitive,
            )
        except Exception as exc:
            return _failure(f"search files in widget {args.widget_id}", None, exc)

        return OperationResult(
            True,
            f"Search completed. Found {len(matches)} matches",
            extra={
                "matches": [m.to_dict() for m in matches],
                "totalMatches": len(matches),
                "searchPattern": args.query,
            },
        ).to_dict()

    async def replace_lines(self, **arguments) -> Dict[str, Any]:
        try:
            args = LineReplaceArgs.model_validate(arguments)
        except ValidationError as exc:
            return invalid_arguments(exc, arguments.get("filePath")).to_dict()

        path = args.file_path
        first, last = args.first_replaced_line, args.last_replaced_line
        logger.debug(f"Replacing lines {first}-{last} of {path} in widget {args.widget_id}")
        try:
            path = normalize_widget_path(path)
            original = await self._read(args.widget_id, path)
            outcome = apply_line_replace(original, args.search, first, last, args.replace)
        except Exception as exc:
            return _failure(f"replace lines in file {path}", path, exc)

        written = await self.gateway.write(args.widget_id, path, outcome.content)
        if not written.success:
            return written.to_dict()
        return OperationResult(
            True,
            f"Successfully replaced lines {first}-{last} in {path}",
            path,
            extra={"lineDelta": outcome.line_delta},
        ).to_dict()

    async def _read(self, widget_id: str, path: str) -> str:
        files = await self.store.fetch_files(widget_id)
        if path not in files:
            raise NotFound(f"File {path} not found")
        return files[path]
