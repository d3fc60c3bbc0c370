"""Semantic, exact and filename search over a widget's indexed code."""

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from config import WidgetSettings
from tools.base import BaseTool, ToolResult, WidgetError
from tools.widget_args import WidgetSearchArgs, invalid_arguments
from utils.hybrid_search import HybridSearchRouter, format_search_results
from utils.widget_types import MatchType, SearchResult

logger = logging.getLogger(__name__)


class WidgetSearchTool(BaseTool):
    def __init__(self, index, embedder, settings: Optional[WidgetSettings] = None):
        super().__init__(input_schema=None)
        self.settings = settings or WidgetSettings()
        self.router = HybridSearchRouter(index, embedder, self.settings)

    @property
    def name(self) -> str:
        return "search_widget_files"

    @property
    def description(self) -> str:
        return (
            "Search the code of a widget. `semantic` finds code by meaning (scores below "
            f"{self.settings.semantic_min_score} are dropped), `exact` matches a regex against "
            "file contents and `filename` matches a regex against file paths."
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
                        "widgetId": {"type": "string", "description": "The unique identifier for the widget"},
                        "query": {"type": "string", "description": "What to search for"},
                        "searchType": {
                            "type": "string",
                            "enum": MatchType.list(),
                            "description": "Search strategy (default semantic)",
                        },
                        "limit": {
                            "type": "integer",
                            "description": f"Maximum number of results (default {self.settings.search_limit})",
                        },
                    },
                    "required": ["widgetId", "query"],
                },
            },
        }

    async def _run(self, args: WidgetSearchArgs) -> List[SearchResult]:
        results = await self.router.search(args.widget_id, args.query, args.search_type, args.limit)
        logger.debug(f"Found {len(results)} result(s) for {args.query!r} in widget {args.widget_id}")
        return results

    async def search(self, **arguments) -> Dict[str, Any]:
        """Run a search and return ``{success, query, searchType, results, totalResults}``."""
        try:
            args = WidgetSearchArgs.model_validate(arguments)
        except ValidationError as exc:
            return invalid_arguments(exc).to_dict()

        try:
            results = await self._run(args)
        except Exception as exc:
            logger.error(f"Error searching widget {args.widget_id} for {args.query!r}", exc_info=True)
            return {
                "success": False,
                "query": args.query,
                "searchType": args.search_type,
                "results": [],
                "totalResults": 0,
                "error": exc.label if isinstance(exc, WidgetError) else str(exc),
                "errorType": type(exc).__name__,
            }

        return {
            "success": True,
            "query": args.query,
            "searchType": args.search_type,
            "results": [r.to_dict() for r in results],
            "totalResults": len(results),
        }

    async def __call__(self, **kwargs) -> ToolResult:
        kwargs.pop("command", None)
        try:
            args = WidgetSearchArgs.model_validate(kwargs)
        except ValidationError as exc:
            return ToolResult(error=invalid_arguments(exc).message, tool_name=self.name, command="search")

        try:
            results = await self._run(args)
        except Exception as exc:
            logger.error(f"Error searching widget {args.widget_id} for {args.query!r}", exc_info=True)
            return ToolResult(
                error=f"Error searching widget {args.widget_id} for '{args.query}': {exc}",
                tool_name=self.name,
                command=args.search_type,
            )
        return ToolResult(
            output=format_search_results(results, args.query),
            tool_name=self.name,
            command=args.search_type,
        )
