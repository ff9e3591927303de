"""Recall layer — related historical text for the latest user utterance."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from .config import RecallConfig
from .memory import MemoryCategory, MemoryService
from .telemetry import trace_recall
from .tokens import estimate_tokens, truncate_to_tokens

logger = logging.getLogger(__name__)


class RecallService(ABC):
    """External recall collaborator (hybrid search, keyword index, ...)."""

    @abstractmethod
    async def recall(self, query: str, config: RecallConfig) -> str:
        """Return a block of related text for *query*, or ``""``."""


class MemoryRecall(RecallService):
    """Recall over a :class:`MemoryService`, formatted as a bullet list."""

    def __init__(self, memory: MemoryService) -> None:
        self._memory = memory

    async def recall(self, query: str, config: RecallConfig) -> str:
        categories: set[MemoryCategory] | None = None
        if not config.include_daily:
            categories = {c for c in MemoryCategory if c != MemoryCategory.DAILY}

        entries = self._memory.recall(query, limit=config.max_results, categories=categories)
        if not entries:
            return ""
        lines = [f"- [{e.key}] {e.content.strip()}" for e in entries]
        return truncate_to_tokens("\n".join(lines), config.max_tokens)


class RecallAdapter:
    """Best-effort front for a recall service.

    Recall is advisory: a missing service, a failure or a call running past
    ``timeout_seconds`` yields ``""`` so the caller simply omits the recall
    layer.
    """

    def __init__(self, service: RecallService | None = None) -> None:
        self._service = service

    @property
    def enabled(self) -> bool:
        return self._service is not None

    async def fetch(self, query: str, config: RecallConfig) -> str:
        if self._service is None or not query.strip():
            return ""
        with trace_recall(estimate_tokens(query)):
            try:
                text = await asyncio.wait_for(
                    self._service.recall(query, config),
                    timeout=config.timeout_seconds,
                )
            except TimeoutError:
                logger.warning(
                    "Recall timed out after %ss, omitting recall layer",
                    config.timeout_seconds,
                )
                return ""
            except Exception:  # noqa: BLE001
                logger.warning("Recall failed, omitting recall layer", exc_info=True)
                return ""
        if not isinstance(text, str) or not text.strip():
            return ""
        return truncate_to_tokens(text.strip(), config.max_tokens)
