import pytest

from tools.base import InvalidRange, PatternMismatch
from utils.line_replace import apply_line_replace, build_search_pattern


def test_replace_middle_lines_with_more_lines():
    outcome = apply_line_replace("a\nb\nc\nd", "b\nc", 2, 3, "X\nY\nZ")
    assert outcome.content == "a\nX\nY\nZ\nd"
    assert outcome.line_delta == 1


def test_single_line_replace():
    outcome = apply_line_replace("one\ntwo\nthree", "two", 2, 2, "TWO")
    assert outcome.content == "one\nTWO\nthree"


def test_empty_replacement_leaves_one_empty_line():
    outcome = apply_line_replace("a\nb\nc", "b", 2, 2, "")
    assert outcome.content == "a\n\nc"


def test_mismatch_raises():
    with pytest.raises(PatternMismatch) as excinfo:
        apply_line_replace("a\nb\nc\nd", "q", 2, 3, "X")
    assert "lines 2-3" in str(excinfo.value)


def test_search_only_matches_inside_the_target_range():
    """Text that exists elsewhere in the file does not satisfy the check."""
    with pytest.raises(PatternMismatch):
        apply_line_replace("a\nb\nc\nd", "d", 1, 2, "X")


def test_ellipsis_elides_a_section():
    original = "function f() {\n  const x = 1;\n  const y = 2;\n  return x + y;\n}"
    outcome = apply_line_replace(original, "function f() {\n...\n}", 1, 5, "function f() { return 3; }")
    assert outcome.content == "function f() { return 3; }"


def test_regex_metacharacters_in_search_are_literal():
    original = "const re = /a+b/;\nhandleSubmit(event)"
    outcome = apply_line_replace(original, "handleSubmit(event)", 2, 2, "handleSubmit(e)")
    assert outcome.content == "const re = /a+b/;\nhandleSubmit(e)"
    with pytest.raises(PatternMismatch):
        apply_line_replace(original, "a.b", 1, 1, "x")


def test_crlf_content_matches_lf_search():
    original = "a\r\nb\r\nc"
    outcome = apply_line_replace(original, "a\nb", 1, 2, "z")
    assert outcome.content == "z\nc"


@pytest.mark.parametrize("first, last", [(0, 1), (3, 2), (1, 5), (5, 5)])
def test_out_of_bounds_ranges(first, last):
    with pytest.raises(InvalidRange):
        apply_line_replace("a\nb\nc", "a", first, last, "x")


def test_build_search_pattern_joins_lines_with_optional_cr():
    pattern = build_search_pattern("x\ny")
    assert pattern.search("x\r\ny")
    assert pattern.search("x\ny")
    assert not pattern.search("x y")


def test_empty_search_never_matches():
    """An empty snippet would match any range, so it is refused."""
    with pytest.raises(PatternMismatch):
        apply_line_replace("a\nb\nc\nd", "", 2, 3, "X")
