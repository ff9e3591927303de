"""Tests for token estimation and truncation."""

import pytest

from talon_context.tokens import (
    TRUNCATION_MARKER,
    TokenBudget,
    estimate_tokens,
    truncate_to_tokens,
)


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("a") == 1
    assert estimate_tokens("abc") == 1
    assert estimate_tokens("abcd") == 2
    assert estimate_tokens("x" * 300) == 100


def test_truncate_leaves_short_text_alone():
    assert truncate_to_tokens("hello", 10) == "hello"


def test_truncate_appends_marker_when_it_fits():
    out = truncate_to_tokens("x" * 100, 10)
    assert out.endswith(TRUNCATION_MARKER)
    assert out.startswith("x" * 14)
    assert len(out) == 30
    assert estimate_tokens(out) <= 10


def test_truncate_hard_cuts_when_marker_does_not_fit():
    out = truncate_to_tokens("abcdefghij", 1)
    assert out == "abc"
    assert TRUNCATION_MARKER not in out


def test_truncate_non_positive_budget_is_empty():
    assert truncate_to_tokens("anything", 0) == ""
    assert truncate_to_tokens("anything", -3) == ""


@pytest.mark.parametrize("max_tokens", [1, 2, 5, 6, 7, 50])
def test_truncate_fits_and_is_idempotent(max_tokens):
    text = "The quick brown fox jumps over the lazy dog. " * 20
    once = truncate_to_tokens(text, max_tokens)
    assert estimate_tokens(once) <= max_tokens
    assert truncate_to_tokens(once, max_tokens) == once


# ---------------------------------------------------------------------------
# TokenBudget
# ---------------------------------------------------------------------------


def test_budget_tracks_consumption():
    budget = TokenBudget(10)
    budget.consume(4)
    assert budget.consume_text("x" * 9) == 3
    assert budget.consumed == 7
    assert budget.remaining() == 3
    assert budget.is_within_budget()
    assert budget.overflow() == 0


def test_budget_overflow():
    budget = TokenBudget(5)
    budget.consume(8)
    assert not budget.is_within_budget()
    assert budget.overflow() == 3
    assert budget.max_tokens == 5


def test_budget_rejects_non_positive_max():
    with pytest.raises(ValueError, match="positive"):
        TokenBudget(0)
