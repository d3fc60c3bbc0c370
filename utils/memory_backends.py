"""In-process bindings for the remote capabilities, used by tests and local runs."""

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from tools.base import InvalidPattern, RemoteOperationFailure
from utils.widget_types import IndexedChunk

logger = logging.getLogger(__name__)


class InMemoryFileStore:
    """Widget files kept in a dict of dicts, in insertion order."""

    def __init__(self, widgets: Optional[Dict[str, Dict[str, str]]] = None):
        self.widgets: Dict[str, Dict[str, str]] = {
            widget_id: dict(files) for widget_id, files in (widgets or {}).items()
        }
        self.update_calls: List[tuple] = []
        self.fail_with: Optional[Exception] = None

    async def upsert_files(self, widget_id: str, files: Dict[str, str], deleted_paths: List[str]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.update_calls.append((widget_id, dict(files), list(deleted_paths)))
        stored = self.widgets.setdefault(widget_id, {})
        stored.update(files)
        for path in deleted_paths:
            stored.pop(path, None)

    async def fetch_files(self, widget_id: str) -> Dict[str, str]:
        if self.fail_with is not None:
            raise self.fail_with
        return dict(self.widgets.get(widget_id, {}))


@dataclass
class _StoredChunk:
    chunk: IndexedChunk
    vector: Optional[List[float]] = None


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        raise RemoteOperationFailure(f"Vector size mismatch: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemorySearchIndex:
    """Search index over chunks held in memory; doubles as an index writer.

    Files written through ``upsert_files`` are stored as one chunk each with
    granularity ``"file"``. When an embedder is supplied the chunk is embedded
    so that vector search can find it.
    """

    def __init__(self, embedder=None):
        self.embedder = embedder
        self._chunks: Dict[str, List[_StoredChunk]] = {}
        self.fail_with: Optional[Exception] = None

    def add_chunk(self, widget_id: str, chunk: IndexedChunk, vector: Optional[List[float]] = None) -> None:
        self._chunks.setdefault(widget_id, []).append(_StoredChunk(chunk, vector))

    def chunks(self, widget_id: str) -> List[IndexedChunk]:
        return [stored.chunk for stored in self._chunks.get(widget_id, [])]

    def _check(self) -> None:
        if self.fail_with is not None:
            raise self.fail_with

    @staticmethod
    def _regex(pattern: str) -> re.Pattern:
        try:
            return re.compile(pattern, re.IGNORECASE)
        except re.error as exc:
            raise InvalidPattern(f"Invalid regex {pattern!r}: {exc}") from exc

    async def exact_match(self, widget_id: str, pattern: str, limit: int) -> List[IndexedChunk]:
        self._check()
        regex = self._regex(pattern)
        hits = [s.chunk for s in self._chunks.get(widget_id, []) if regex.search(s.chunk.content)]
        return hits[:limit]

    async def filename_match(self, widget_id: str, pattern: str, limit: int) -> List[IndexedChunk]:
        self._check()
        regex = self._regex(pattern)
        hits = [s.chunk for s in self._chunks.get(widget_id, []) if regex.search(s.chunk.file_path)]
        return hits[:limit]

    async def vector_search(self, widget_id: str, vector: List[float], limit: int) -> List[IndexedChunk]:
        self._check()
        scored = []
        for stored in self._chunks.get(widget_id, []):
            if stored.vector is None:
                continue
            score = cosine_similarity(vector, stored.vector)
            c = stored.chunk
            scored.append(
                IndexedChunk(c.file_path, c.content, c.line_start, c.line_end, c.granularity, score)
            )
        scored.sort(key=lambda c: c.score, reverse=True)
        return scored[:limit]

    async def upsert_files(self, widget_id: str, files: Dict[str, str]) -> None:
        self._check()
        stored = self._chunks.setdefault(widget_id, [])
        stored[:] = [s for s in stored if s.chunk.file_path not in files]
        for path, content in files.items():
            vector = await self.embedder.embed(content) if self.embedder else None
            chunk = IndexedChunk(path, content, 1, len(content.split("\n")), "file")
            stored.append(_StoredChunk(chunk, vector))
        logger.debug(f"Indexed {len(files)} file(s) for widget {widget_id}")

    async def delete_files(self, widget_id: str, paths: List[str]) -> None:
        self._check()
        doomed = set(paths)
        stored = self._chunks.get(widget_id, [])
        stored[:] = [s for s in stored if s.chunk.file_path not in doomed]


class StaticEmbeddingProvider:
    """Returns fixed vectors for known texts; ``default`` covers the rest."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, default: Optional[List[float]] = None):
        self.vectors = dict(vectors or {})
        self.default = default
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        if self.default is not None:
            return list(self.default)
        raise RemoteOperationFailure(f"No embedding configured for {text[:40]!r}")
