"""ContextEngine — per-turn orchestration of assembly, compression and storage.

A turn holds the session's lock from load to save::

    async with engine.turn(session_id) as turn:
        messages = await turn.context()
        ...call the model, run tools...
        turn.append(AssistantMessage(content=reply))

On a clean exit the engine compresses the session if it is due and saves it.
If the block raises, nothing is saved.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager

from .assembler import ContextAssembler, ContextBuild
from .compression import CompressionOutcome, CompressionScheduler, Summarizer
from .config import ContextConfig
from .locks import SessionLockTable
from .messages import Message
from .persona import PersonaLoader
from .provider import ChatMessage
from .recall import RecallAdapter, RecallService
from .session import Session
from .store import InMemorySessionStore, SessionNotFoundError, SessionStore

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_FILES: tuple[str, ...] = ("SOUL.md",)


class Turn:
    """One locked unit of work on a session."""

    def __init__(self, session: Session, assembler: ContextAssembler) -> None:
        self.session = session
        self._assembler = assembler
        self.compression: CompressionOutcome | None = None

    async def context(self) -> list[ChatMessage]:
        return await self._assembler.build_context(self.session)

    async def build(self) -> ContextBuild:
        return await self._assembler.build(self.session)

    def append(self, message: Message) -> None:
        self.session.append(message)

    def extend(self, messages: Sequence[Message]) -> None:
        for msg in messages:
            self.session.append(msg)


class ContextEngine:
    """Wires the store, the lock table, the assembler and the scheduler."""

    def __init__(
        self,
        store: SessionStore | None = None,
        config: ContextConfig | None = None,
        summarizer: Summarizer | None = None,
        persona: PersonaLoader | None = None,
        recall: RecallService | None = None,
    ) -> None:
        self.config = config or ContextConfig()
        self.store = store or InMemorySessionStore()
        self.summarizer = summarizer
        self.locks = SessionLockTable()
        self.assembler = ContextAssembler(
            self.config, persona=persona, recall=RecallAdapter(recall)
        )
        self.scheduler = CompressionScheduler(self.config)

    @asynccontextmanager
    async def turn(self, session_id: str, create: bool = True) -> AsyncIterator[Turn]:
        """Lock, load (or create) the session and yield a :class:`Turn`."""
        async with self.locks.hold(session_id):
            session = self._load(session_id, create)
            turn = Turn(session, self.assembler)
            yield turn
            if self.summarizer is not None and self.scheduler.needs_compression(session):
                turn.compression = await self.scheduler.compress(session, self.summarizer)
            self.store.save(session)

    async def compress(self, session_id: str) -> CompressionOutcome:
        """Compress a stored session outside a turn, if it is due."""
        if self.summarizer is None:
            raise ValueError("No summarizer configured")
        async with self.locks.hold(session_id):
            session = self.store.get(session_id)
            outcome = await self.scheduler.compress(session, self.summarizer)
            if outcome.committed:
                self.store.save(session)
            return outcome

    def _load(self, session_id: str, create: bool) -> Session:
        try:
            return self.store.get(session_id)
        except SessionNotFoundError:
            if not create:
                raise
            logger.debug("Creating session %s", session_id)
            return Session(id=session_id)

    async def ensure_workspace_ready(
        self,
        required_files: Sequence[str] = DEFAULT_REQUIRED_FILES,
        timeout: float = 5.0,
        interval: float = 0.1,
    ) -> bool:
        """Wait until *required_files* exist in the workspace.

        Returns False after *timeout* seconds instead of raising; the persona
        loader falls back to defaults for whatever is still missing.
        """
        root = self.config.resolved_workspace
        deadline = time.monotonic() + timeout
        while True:
            missing = [name for name in required_files if not (root / name).exists()]
            if not missing:
                return True
            if time.monotonic() >= deadline:
                logger.warning(
                    "Workspace %s not ready after %.1fs, missing: %s",
                    root,
                    timeout,
                    ", ".join(missing),
                )
                return False
            await asyncio.sleep(interval)
