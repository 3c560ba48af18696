"""Tests for src/tokens.py."""

from src.tokens import TRUNCATION_MARKER, estimate_tokens, truncate_prompt


def _lines(count: int, width: int = 39) -> str:
    """``count`` lines of ``width`` chars plus newline (40 chars = 10 tokens each)."""
    return "".join(f"{i:03d}" + "x" * (width - 3) + "\n" for i in range(count))


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_under_budget_returned_unchanged():
    text = _lines(5)
    assert truncate_prompt(text, max_tokens=1000) is text


def test_exactly_at_budget_unchanged():
    text = _lines(10)  # 400 chars -> 100 tokens
    assert truncate_prompt(text, max_tokens=100) == text


def test_over_budget_fits_and_has_marker():
    text = _lines(100)  # 1000 tokens
    result = truncate_prompt(text, max_tokens=200)
    assert result.startswith(TRUNCATION_MARKER)
    assert estimate_tokens(result) <= 200


def test_keeps_most_recent_content():
    text = _lines(100)
    result = truncate_prompt(text, max_tokens=200)
    assert result.endswith(_lines(100).splitlines(keepends=True)[-1])
    assert "000" not in result


def test_cut_lands_on_line_boundary():
    text = _lines(100)
    result = truncate_prompt(text, max_tokens=200)
    body = result[len(TRUNCATION_MARKER):]
    for line in body.splitlines():
        assert len(line) == 39


def test_truncation_is_idempotent():
    text = _lines(300)
    once = truncate_prompt(text, max_tokens=500)
    assert truncate_prompt(once, max_tokens=500) == once


def test_no_newline_after_offset_leaves_only_marker():
    text = "y" * 4000
    result = truncate_prompt(text, max_tokens=100)
    assert result == TRUNCATION_MARKER


def test_truncation_logs_warning(caplog):
    with caplog.at_level("WARNING", logger="src.tokens"):
        truncate_prompt(_lines(100), max_tokens=200)
    assert "truncated" in caplog.text
