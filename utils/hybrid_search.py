"""Ranked search over a widget's indexed chunks: semantic, exact or filename."""

import logging
from typing import List, Optional

from config import WidgetSettings
from utils.widget_types import MatchType, SearchResult

logger = logging.getLogger(__name__)


class HybridSearchRouter:
    """Dispatch a query to the index by search type and shape the results."""

    def __init__(self, index, embedder, settings: Optional[WidgetSettings] = None):
        self.index = index
        self.embedder = embedder
        self.settings = settings or WidgetSettings()

    async def search(
        self,
        widget_id: str,
        query: str,
        search_type: str = MatchType.SEMANTIC.value,
        limit: Optional[int] = None,
    ) -> List[SearchResult]:
        if not limit or limit < 1:
            limit = self.settings.search_limit
        try:
            mode = MatchType(search_type)
        except ValueError:
            raise ValueError(
                f"Unsupported search type: {search_type} (expected one of {MatchType.list()})"
            ) from None

        logger.debug(f"{mode.value} search in widget {widget_id} for {query!r} (limit {limit})")
        if mode is MatchType.EXACT:
            chunks = await self.index.exact_match(widget_id, query, limit)
        elif mode is MatchType.FILENAME:
            chunks = await self.index.filename_match(widget_id, query, limit)
        else:
            return await self._semantic(widget_id, query, limit)
        return [SearchResult.from_chunk(c, mode) for c in chunks[:limit]]

    async def _semantic(self, widget_id: str, query: str, limit: int) -> List[SearchResult]:
        vector = await self.embedder.embed(query)
        candidates = await self.index.vector_search(widget_id, vector, limit)
        floor = self.settings.semantic_min_score
        kept = [c for c in candidates if c.score is not None and c.score >= floor]
        kept.sort(key=lambda c: c.score, reverse=True)
        if len(kept) < len(candidates):
            logger.debug(f"Dropped {len(candidates) - len(kept)} candidate(s) scoring below {floor}")
        return [SearchResult.from_chunk(c, MatchType.SEMANTIC) for c in kept[:limit]]


def format_search_results(results: List[SearchResult], query: str) -> str:
    """Render results as the markdown report handed back to an agent."""
    if not results:
        return f'## No Results Found\n\nNo files found for query: "{query}"'

    output = f'## Search Results for "{query}"\n\n'
    output += f"Found {len(results)} relevant files:\n\n"
    for index, result in enumerate(results, start=1):
        output += f"### {index}. {result.file_path}\n"
        output += f"**Match Type**: {result.match_type.value}\n"
        if result.score is not None:
            output += f"**Relevance Score**: {result.score:.3f}\n"
        output += f"**Lines**: {result.line_start}-{result.line_end}\n"
        output += f"**Preview**:\n```\n{result.content}\n```\n\n"
    return output
