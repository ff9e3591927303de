"""Token budgeter — character-ratio token estimation and truncation."""

from __future__ import annotations

import math

# ~3 chars/token is conservative for code, JSON and non-English text.
CHARS_PER_TOKEN = 3

TRUNCATION_MARKER = "\n... (truncated)"


def estimate_tokens(text: str) -> int:
    """Estimate token count from text. Heuristic: ceil(chars / 3)."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_to_tokens(text: str, max_tokens: int) -> str:
    """Cut *text* at the tail so that its estimate is at most *max_tokens*.

    A truncation marker is appended when it fits in the budget; otherwise the
    text is hard-cut. The result always fits, so the function is idempotent.
    """
    if max_tokens <= 0:
        return ""
    if estimate_tokens(text) <= max_tokens:
        return text

    max_chars = max_tokens * CHARS_PER_TOKEN
    keep = max_chars - len(TRUNCATION_MARKER)
    if keep <= 0:
        return text[:max_chars]
    return text[:keep] + TRUNCATION_MARKER


class TokenBudget:
    """Tracks token consumption against a configured maximum."""

    def __init__(self, max_tokens: int) -> None:
        if max_tokens <= 0:
            msg = "max_tokens must be positive"
            raise ValueError(msg)
        self._max = max_tokens
        self._consumed = 0

    def consume(self, tokens: int) -> None:
        self._consumed += tokens

    def consume_text(self, text: str) -> int:
        tokens = estimate_tokens(text)
        self._consumed += tokens
        return tokens

    def remaining(self) -> int:
        return self._max - self._consumed

    def is_within_budget(self) -> bool:
        return self._consumed <= self._max

    def overflow(self) -> int:
        return max(0, self._consumed - self._max)

    @property
    def max_tokens(self) -> int:
        return self._max

    @property
    def consumed(self) -> int:
        return self._consumed
