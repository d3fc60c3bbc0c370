"""Value types shared by the widget viewer, search and replace engines."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from tools.base import InvalidPath, WidgetError

WidgetId = str
FilePath = str


def normalize_widget_path(path: str) -> FilePath:
    """Anchor a widget file path at the root ("/components/Card.tsx").

    Paths without a leading slash are anchored, repeated slashes collapse and
    any ``..`` segment is rejected.
    """
    if path is None or not str(path).strip():
        raise InvalidPath("File path must not be empty")
    raw = str(path).strip().replace("\\", "/")
    if ".." in raw.split("/"):
        raise InvalidPath(f"File path may not contain '..': {path}")
    normalized = posixpath.normpath("/" + raw.lstrip("/"))
    if normalized in ("/", "."):
        raise InvalidPath(f"File path does not name a file: {path}")
    return normalized


@dataclass(frozen=True)
class LineRange:
    """Closed, 1-indexed range of lines."""

    start: int
    end: int

    def __post_init__(self):
        if self.start < 1 or self.end < self.start:
            raise ValueError(f"Invalid line range {self.start}-{self.end}")

    def __str__(self) -> str:
        return f"{self.start}-{self.end}"


class MatchType(str, Enum):
    SEMANTIC = "semantic"
    EXACT = "exact"
    FILENAME = "filename"

    @classmethod
    def list(cls) -> List[str]:
        return [m.value for m in cls]


@dataclass(frozen=True)
class SearchMatch:
    """One regex hit inside a file, with its surrounding lines."""

    file_path: FilePath
    line: int
    column: int
    match_text: str
    before_context: List[str] = field(default_factory=list)
    after_context: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filePath": self.file_path,
            "line": self.line,
            "column": self.column,
            "matchText": self.match_text,
            "beforeContext": list(self.before_context),
            "afterContext": list(self.after_context),
        }


@dataclass(frozen=True)
class IndexedChunk:
    """A stored chunk as returned by a search index."""

    file_path: FilePath
    content: str
    line_start: int = 1
    line_end: int = 1
    granularity: Optional[str] = None
    score: Optional[float] = None


@dataclass(frozen=True)
class SearchResult:
    """Uniform result of the hybrid search, tagged by ``match_type``.

    ``score`` and ``granularity`` belong to semantic results only.
    """

    file_path: FilePath
    content: str
    line_start: int
    line_end: int
    match_type: MatchType
    score: Optional[float] = None
    granularity: Optional[str] = None

    def __post_init__(self):
        if self.match_type is MatchType.SEMANTIC:
            if self.score is None:
                raise ValueError("semantic results require a score")
        elif self.score is not None or self.granularity is not None:
            raise ValueError(f"{self.match_type.value} results carry no score or granularity")

    @classmethod
    def from_chunk(cls, chunk: IndexedChunk, match_type: MatchType) -> "SearchResult":
        semantic = match_type is MatchType.SEMANTIC
        return cls(
            file_path=chunk.file_path,
            content=chunk.content,
            line_start=chunk.line_start,
            line_end=chunk.line_end,
            match_type=match_type,
            score=chunk.score if semantic else None,
            granularity=chunk.granularity if semantic else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "filePath": self.file_path,
            "content": self.content,
            "lineStart": self.line_start,
            "lineEnd": self.line_end,
            "matchType": self.match_type.value,
        }
        if self.score is not None:
            data["score"] = self.score
        if self.granularity is not None:
            data["granularity"] = self.granularity
        return data


@dataclass
class OperationResult:
    """Structured outcome of a widget operation, serialised with camelCase keys."""

    success: bool
    message: str
    file_path: Optional[FilePath] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, message: str, exc: Exception, file_path: Optional[str] = None) -> "OperationResult":
        if isinstance(exc, WidgetError):
            return cls(False, message, file_path, error=exc.label, error_type=exc.error_type,
                       extra={"detail": exc.message})
        return cls(False, message, file_path, error=str(exc) or "Unknown error",
                   error_type=type(exc).__name__)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.file_path is not None:
            data["filePath"] = self.file_path
        data.update(self.extra)
        if self.error is not None:
            data["error"] = self.error
        if self.error_type is not None:
            data["errorType"] = self.error_type
        return data
