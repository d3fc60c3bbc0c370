"""Line range parsing and numbered file views."""

import re
from dataclasses import dataclass
from typing import List, Optional

from utils.widget_types import LineRange

_RANGE_TOKEN = re.compile(r"^(\d+)\s*-\s*(\d+)$")
_LINE_TOKEN = re.compile(r"^\d+$")

LINE_SEPARATOR = "|"


def parse_line_ranges(lines: str) -> List[LineRange]:
    """Parse ``"1-50, 100-150"`` style strings into ranges, keeping input order.

    Malformed and reversed tokens are dropped silently. A range starting at
    line 0 is clipped to start at line 1.
    """
    ranges: List[LineRange] = []
    if not lines:
        return ranges

    for part in (p.strip() for p in lines.split(",")):
        if not part:
            continue
        m = _RANGE_TOKEN.match(part)
        if m:
            start, end = int(m.group(1)), int(m.group(2))
            if start <= end and end >= 1:
                ranges.append(LineRange(max(start, 1), end))
        elif _LINE_TOKEN.match(part):
            line = int(part)
            if line >= 1:
                ranges.append(LineRange(line, line))
    return ranges


@dataclass(frozen=True)
class ContentView:
    text: str
    total_lines: int
    lines_shown: str


def _numbered(lines: List[str], *, offset: int = 1) -> List[str]:
    return [f"{idx + offset}{LINE_SEPARATOR}{line}" for idx, line in enumerate(lines)]


def render_numbered_view(
    content: str,
    ranges: Optional[List[LineRange]] = None,
    *,
    lines_spec: Optional[str] = None,
    default_limit: int = 500,
) -> ContentView:
    """Render ``content`` as ``"<n>|<line>"`` rows.

    When ``ranges`` is given each range is emitted in order, clipped to the
    file; overlapping ranges repeat lines. Otherwise the first
    ``default_limit`` lines are shown.
    """
    all_lines = content.split("\n")
    total = len(all_lines)

    if ranges is not None:
        rows: List[str] = []
        for r in ranges:
            if r.start > total:
                continue
            end = min(r.end, total)
            rows.extend(_numbered(all_lines[r.start - 1 : end], offset=r.start))
        shown = lines_spec if lines_spec is not None else ", ".join(str(r) for r in ranges)
        return ContentView("\n".join(rows), total, shown)

    count = min(default_limit, total)
    rows = _numbered(all_lines[:count])
    shown = f"1-{total}" if count == total else f"1-{count} (truncated)"
    return ContentView("\n".join(rows), total, shown)
