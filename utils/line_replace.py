"""
Line-range search-and-replace.

The caller names a line range and repeats the text currently found there as
``search``; a literal ``...`` inside ``search`` stands for elided content. The
edit is applied only when that snippet still matches the range, which guards
against edits computed from a stale view of the file.
"""

import re
from dataclasses import dataclass
from typing import List

from tools.base import InvalidRange, PatternMismatch

ELLIPSIS = "..."
# Non-greedy so an elided section stops at the next literal anchor.
ELLIPSIS_WILDCARD = ".*?"
NEWLINE_PATTERN = r"\r?\n"


def build_search_pattern(search: str) -> re.Pattern:
    """Compile the caller's snippet into a DOTALL regex.

    Literal text is escaped; newlines accept LF or CRLF; each ``...`` becomes
    a wildcard that may span lines.
    """
    segments = []
    for literal in search.split(ELLIPSIS):
        pieces = [re.escape(piece) for piece in literal.replace("\r\n", "\n").split("\n")]
        segments.append(NEWLINE_PATTERN.join(pieces))
    return re.compile(ELLIPSIS_WILDCARD.join(segments), re.DOTALL)


def validate_line_range(first_line: int, last_line: int, total_lines: int) -> None:
    if not (1 <= first_line <= last_line <= total_lines):
        raise InvalidRange(
            f"Invalid line range: {first_line}-{last_line} "
            f"(file has {total_lines} line{'s' if total_lines != 1 else ''})"
        )


@dataclass(frozen=True)
class ReplaceOutcome:
    content: str
    first_line: int
    last_line: int
    inserted_lines: int

    @property
    def line_delta(self) -> int:
        return self.inserted_lines - (self.last_line - self.first_line + 1)


def apply_line_replace(
    original: str,
    search: str,
    first_line: int,
    last_line: int,
    replace: str,
) -> ReplaceOutcome:
    """Return the full new file content after replacing ``first_line..last_line``.

    Raises ``InvalidRange`` for out-of-bounds ranges and ``PatternMismatch``
    when ``search`` does not match the current text of the range.
    """
    lines: List[str] = original.split("\n")
    validate_line_range(first_line, last_line, len(lines))

    if not search:
        raise PatternMismatch("Search pattern is empty; pass the current content of the range")

    target = "\n".join(lines[first_line - 1 : last_line])
    if not build_search_pattern(search).search(target):
        raise PatternMismatch(
            f"Search pattern does not match content at lines {first_line}-{last_line}"
        )

    replacement = replace.split("\n")
    new_lines = lines[: first_line - 1] + replacement + lines[last_line:]
    return ReplaceOutcome(
        content="\n".join(new_lines),
        first_line=first_line,
        last_line=last_line,
        inserted_lines=len(replacement),
    )
