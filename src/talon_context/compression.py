"""Compression scheduler — condense old history into the memory summary.

Per session the scheduler cycles through::

    fresh -> compression_due -> compressing -> fresh            (commit)
                                            -> compression_due  (failure, retried)

The summarizer is the only blocking call. Nothing is written to the session
until it has returned a non-empty summary, so a failure, a timeout or a
cancellation leaves ``messages`` and ``memory_summary`` untouched.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import BaseModel

from .config import ContextConfig
from .messages import AssistantMessage, ChatRole, Message, ToolMessage
from .provider import ChatMessage, ChatRequest, LLMProvider
from .session import Session
from .telemetry import trace_compression
from .tokens import estimate_tokens, truncate_to_tokens

logger = logging.getLogger(__name__)

COMPRESSION_SYSTEM_PROMPT = (
    "You are a memory compression agent. Return ONLY the updated summary."
)


class SummarizationError(Exception):
    """Raised when the summarization collaborator cannot produce a summary."""

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class CompressionState(StrEnum):
    FRESH = "fresh"
    COMPRESSION_DUE = "compression_due"
    COMPRESSING = "compressing"


_TRANSITIONS: dict[CompressionState, list[CompressionState]] = {
    CompressionState.FRESH: [CompressionState.COMPRESSION_DUE],
    CompressionState.COMPRESSION_DUE: [CompressionState.COMPRESSING],
    CompressionState.COMPRESSING: [CompressionState.FRESH, CompressionState.COMPRESSION_DUE],
}


class CompressionCycle(BaseModel):
    state: CompressionState = CompressionState.FRESH

    def can_transition(self, target: CompressionState) -> bool:
        return target in _TRANSITIONS.get(self.state, [])

    def transition(self, target: CompressionState) -> CompressionCycle:
        if not self.can_transition(target):
            raise ValueError(f"Invalid transition: {self.state} -> {target}")
        return CompressionCycle(state=target)


class OutcomeStatus(StrEnum):
    COMPRESSED = "compressed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CompressionOutcome:
    """Result of one :meth:`CompressionScheduler.compress` call."""

    status: OutcomeStatus
    state: CompressionState
    compressed_count: int = 0
    remaining_count: int = 0
    summary_tokens: int = 0
    error: str | None = None

    @property
    def committed(self) -> bool:
        return self.status == OutcomeStatus.COMPRESSED


# ---------------------------------------------------------------------------
# Summarization collaborator
# ---------------------------------------------------------------------------


def build_compression_prompt(old_summary: str, formatted_messages: str) -> str:
    """Prompt asking the model to merge new messages into the running summary."""
    return f"""You are a memory compression agent. Your job is to update the memory summary.

## Current Memory Summary
{old_summary or "(empty: this is the first compression)"}

## New Messages to Incorporate
{formatted_messages}

## Instructions
Create an updated memory summary that:
1. Preserves all important facts, decisions, and user preferences
2. Merges new information with the existing summary
3. Removes outdated or superseded information
4. Stays under 800 tokens
5. Uses this format:

User Profile:
- Key facts about the user

Current Task:
- What the user is currently working on

Decisions Made:
- Important choices and their rationale

Important Facts:
- Technical details, preferences, constraints

Recent Actions:
- What was just done (last 2-3 actions only)

Return ONLY the updated summary, no explanations."""


class Summarizer(ABC):
    """Summarization collaborator."""

    @abstractmethod
    async def summarize(self, old_summary: str, formatted_messages: str) -> str:
        """Return the new summary text. Raise on failure."""


class ProviderSummarizer(Summarizer):
    """Summarizes through an LLM provider (ideally the cheapest model)."""

    def __init__(
        self,
        provider: LLMProvider,
        model: str,
        max_tokens: int = 1000,
        temperature: float = 0.3,
    ) -> None:
        self._provider = provider
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def summarize(self, old_summary: str, formatted_messages: str) -> str:
        request = ChatRequest(
            model=self._model,
            messages=[
                ChatMessage(role=ChatRole.SYSTEM, content=COMPRESSION_SYSTEM_PROMPT),
                ChatMessage(
                    role=ChatRole.USER,
                    content=build_compression_prompt(old_summary, formatted_messages),
                ),
            ],
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        provider_name = self._provider.name()
        try:
            response = await self._provider.chat(request)
        except Exception as exc:
            raise SummarizationError(
                f"Provider '{provider_name}' failed to summarize: {exc}",
                provider=provider_name,
            ) from exc

        summary = response.content.strip()
        if not summary:
            raise SummarizationError(
                f"Provider '{provider_name}' returned an empty summary",
                provider=provider_name,
            )
        logger.debug(
            "Summary produced by %s/%s (%d tokens)",
            provider_name,
            self._model,
            estimate_tokens(summary),
        )
        return summary


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class CompressionScheduler:
    """Decides when to compress, what to compress, and commits the result."""

    def __init__(self, config: ContextConfig | None = None) -> None:
        self._config = config or ContextConfig()
        self._in_flight: set[str] = set()

    @property
    def threshold(self) -> int:
        return 2 * self._config.keep_recent_messages

    def needs_compression(self, session: Session) -> bool:
        return len(session.messages) > self.threshold

    def state(self, session: Session) -> CompressionState:
        if session.id in self._in_flight:
            return CompressionState.COMPRESSING
        if self.needs_compression(session):
            return CompressionState.COMPRESSION_DUE
        return CompressionState.FRESH

    def select_for_compression(self, session: Session) -> list[Message]:
        """Everything older than the trailing ``keep_recent_messages``."""
        cutoff = len(session.messages) - self._config.keep_recent_messages
        if cutoff <= 0:
            return []
        return list(session.messages[:cutoff])

    def format_for_compression(self, messages: list[Message]) -> str:
        """Compact role-tagged transcript, one aggressively truncated line per message."""
        limit = self._config.compression_snippet_tokens
        lines: list[str] = []
        for msg in messages:
            if isinstance(msg, ToolMessage):
                text = msg.output_text
            elif isinstance(msg, AssistantMessage) and msg.tool_calls and not msg.content:
                text = f"(called {', '.join(tc.tool_name for tc in msg.tool_calls)})"
            else:
                text = msg.content
            lines.append(f"[{msg.role.upper()}]: {truncate_to_tokens(text, limit)}")
        return "\n".join(lines)

    def apply_compression(self, session: Session, new_summary: str) -> bool:
        """Replace old history with *new_summary*.

        Both ``messages`` and ``memory_summary`` change together, or neither
        does (empty summary, nothing older than the trailing window).
        """
        summary = new_summary.strip() if isinstance(new_summary, str) else ""
        keep_from = len(session.messages) - self._config.keep_recent_messages
        if not summary or keep_from <= 0:
            return False

        kept = list(session.messages[keep_from:])
        truncated = truncate_to_tokens(summary, self._config.max_summary_tokens)
        session.messages = kept
        session.memory_summary = truncated

        logger.info(
            "Memory compressed for session %s: %d messages folded, %d remaining, "
            "summary ~%d tokens",
            session.id,
            keep_from,
            len(kept),
            estimate_tokens(truncated),
        )
        return True

    async def compress(self, session: Session, summarizer: Summarizer) -> CompressionOutcome:
        """Run one compression cycle if the session is due."""
        current = self.state(session)
        if current != CompressionState.COMPRESSION_DUE:
            return CompressionOutcome(
                status=OutcomeStatus.SKIPPED,
                state=current,
                remaining_count=len(session.messages),
            )

        selected = self.select_for_compression(session)
        formatted = self.format_for_compression(selected)
        cycle = CompressionCycle(state=current).transition(CompressionState.COMPRESSING)
        timeout = self._config.summarizer_timeout_seconds

        with trace_compression(session.id) as span:
            span.set_attribute("compression.messages", len(selected))
            self._in_flight.add(session.id)
            try:
                summary = await asyncio.wait_for(
                    summarizer.summarize(session.memory_summary, formatted),
                    timeout=timeout,
                )
            except TimeoutError:
                return self._failed(
                    session, cycle, f"summarizer timed out after {timeout}s"
                )
            except Exception as exc:  # noqa: BLE001
                return self._failed(session, cycle, str(exc) or type(exc).__name__)
            finally:
                self._in_flight.discard(session.id)

            if not self.apply_compression(session, summary):
                return self._failed(session, cycle, "summarizer returned an empty summary")

            cycle = cycle.transition(CompressionState.FRESH)
            span.set_attribute("compression.summary_tokens", estimate_tokens(session.memory_summary))

        return CompressionOutcome(
            status=OutcomeStatus.COMPRESSED,
            state=cycle.state,
            compressed_count=len(selected),
            remaining_count=len(session.messages),
            summary_tokens=estimate_tokens(session.memory_summary),
        )

    def _failed(
        self, session: Session, cycle: CompressionCycle, error: str
    ) -> CompressionOutcome:
        cycle = cycle.transition(CompressionState.COMPRESSION_DUE)
        logger.warning(
            "Memory compression failed for session %s, keeping history: %s",
            session.id,
            error,
        )
        return CompressionOutcome(
            status=OutcomeStatus.FAILED,
            state=cycle.state,
            remaining_count=len(session.messages),
            error=error,
        )

    def describe(self, session: Session) -> dict[str, Any]:
        """Snapshot of the session's compression bookkeeping."""
        return {
            "session_id": session.id,
            "state": self.state(session).value,
            "message_count": len(session.messages),
            "threshold": self.threshold,
            "summary_tokens": estimate_tokens(session.memory_summary),
        }
