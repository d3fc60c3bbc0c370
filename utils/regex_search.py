"""Regex content search across widget files, with context windows."""

import fnmatch
import logging
import re
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from tools.base import InvalidPattern
from utils.widget_types import SearchMatch

logger = logging.getLogger(__name__)


def compile_pattern(query: str, case_sensitive: bool = False) -> re.Pattern:
    flags = 0 if case_sensitive else re.IGNORECASE
    try:
        return re.compile(query, flags)
    except re.error as exc:
        raise InvalidPattern(f"Invalid regex {query!r}: {exc}") from exc


def glob_matches(path: str, pattern: Optional[str]) -> bool:
    """fnmatch a widget path, with and without its leading slash."""
    if not pattern:
        return False
    pattern = pattern.strip()
    bare = path.lstrip("/")
    if fnmatch.fnmatchcase(path, pattern) or fnmatch.fnmatchcase(bare, pattern):
        return True
    # "**/x" should also match "x" at the root
    if pattern.startswith("**/"):
        return fnmatch.fnmatchcase(bare, pattern[3:])
    return False


def select_files(
    files: Dict[str, str],
    include_pattern: Optional[str],
    exclude_pattern: Optional[str] = None,
) -> Iterator[Tuple[str, str]]:
    for path, content in files.items():
        if include_pattern and not glob_matches(path, include_pattern):
            continue
        if exclude_pattern and glob_matches(path, exclude_pattern):
            continue
        yield path, content


def scan_lines(
    file_path: str,
    lines: List[str],
    regex: re.Pattern,
    context_lines: int,
) -> Iterable[SearchMatch]:
    for i, line in enumerate(lines):
        for m in regex.finditer(line):
            yield SearchMatch(
                file_path=file_path,
                line=i + 1,
                column=m.start() + 1,
                match_text=m.group(0),
                before_context=lines[max(0, i - context_lines) : i],
                after_context=lines[i + 1 : i + 1 + context_lines],
            )


def search_file_contents(
    files: Dict[str, str],
    query: str,
    include_pattern: Optional[str],
    exclude_pattern: Optional[str] = None,
    *,
    context_lines: int = 3,
    case_sensitive: bool = False,
) -> List[SearchMatch]:
    """Find every regex match in the selected files.

    Matches are reported per line, left to right, with up to
    ``context_lines`` lines of context on each side.
    """
    regex = compile_pattern(query, case_sensitive)
    context_lines = max(0, int(context_lines or 0))

    matches: List[SearchMatch] = []
    scanned = 0
    for path, content in select_files(files, include_pattern, exclude_pattern):
        scanned += 1
        matches.extend(scan_lines(path, content.split("\n"), regex, context_lines))
    logger.debug(f"Regex {query!r} scanned {scanned} file(s), {len(matches)} match(es)")
    return matches
