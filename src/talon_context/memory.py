"""Long-term memory store backing the recall layer."""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from collections.abc import Collection
from dataclasses import dataclass, field
from enum import StrEnum

_WORD_RE = re.compile(r"\w+")


class MemoryCategory(StrEnum):
    CORE = "core"
    DAILY = "daily"
    CONVERSATION = "conversation"
    CUSTOM = "custom"


@dataclass
class MemoryEntry:
    """A single remembered fact or note."""

    key: str
    content: str
    category: MemoryCategory
    timestamp: float = field(default_factory=time.time)
    session_id: str | None = None


class MemoryService(ABC):
    """Abstract interface for memory backends."""

    @abstractmethod
    def store(
        self,
        key: str,
        content: str,
        category: MemoryCategory,
        session_id: str | None = None,
    ) -> None:
        """Persist a memory entry."""

    @abstractmethod
    def recall(
        self,
        query: str,
        limit: int = 5,
        categories: Collection[MemoryCategory] | None = None,
    ) -> list[MemoryEntry]:
        """Retrieve entries related to *query*, best match first."""

    @abstractmethod
    def forget(self, key: str) -> bool:
        """Remove a memory entry by key. Returns True if found and removed."""


def _keywords(text: str) -> set[str]:
    return {w for w in _WORD_RE.findall(text.lower()) if len(w) >= 3}


class InMemoryBackend(MemoryService):
    """Dict-based keyword-overlap backend (for testing and development)."""

    def __init__(self) -> None:
        self._entries: dict[str, MemoryEntry] = {}

    def store(
        self,
        key: str,
        content: str,
        category: MemoryCategory,
        session_id: str | None = None,
    ) -> None:
        self._entries[key] = MemoryEntry(
            key=key,
            content=content,
            category=MemoryCategory(category),
            session_id=session_id,
        )

    def recall(
        self,
        query: str,
        limit: int = 5,
        categories: Collection[MemoryCategory] | None = None,
    ) -> list[MemoryEntry]:
        """Rank entries by shared keywords, then by recency."""
        query_words = _keywords(query)
        if not query_words or limit <= 0:
            return []

        scored: list[tuple[int, float, MemoryEntry]] = []
        for entry in self._entries.values():
            if categories is not None and entry.category not in categories:
                continue
            overlap = len(query_words & _keywords(f"{entry.key} {entry.content}"))
            if overlap:
                scored.append((overlap, entry.timestamp, entry))

        scored.sort(key=lambda t: (t[0], t[1]), reverse=True)
        return [entry for _overlap, _ts, entry in scored[:limit]]

    def forget(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def __len__(self) -> int:
        return len(self._entries)
