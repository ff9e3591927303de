"""SessionStore — persistence for sessions between turns."""

from __future__ import annotations

import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path

from .session import Session

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when a store has no session under the requested id."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(session_id)

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class SessionStore(ABC):
    """Abstract session persistence."""

    @abstractmethod
    def get(self, session_id: str) -> Session:
        ...

    @abstractmethod
    def save(self, session: Session) -> None:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        ...

    @abstractmethod
    def list_ids(self) -> list[str]:
        ...

    def exists(self, session_id: str) -> bool:
        return session_id in self.list_ids()


class InMemorySessionStore(SessionStore):
    """Dict-backed store. Hands out and keeps deep copies."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def get(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id].model_copy(deep=True)
        except KeyError:
            raise SessionNotFoundError(session_id) from None

    def save(self, session: Session) -> None:
        self._sessions[session.id] = session.model_copy(deep=True)

    def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def list_ids(self) -> list[str]:
        return list(self._sessions)

    def exists(self, session_id: str) -> bool:
        return session_id in self._sessions


class SqliteSessionStore(SessionStore):
    """SQLite-backed store, one JSON document per session."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = str(db_path)
        self._conn = sqlite3.connect(self._db_path)
        self._conn.execute(
            """CREATE TABLE IF NOT EXISTS sessions (
                id TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                updated_at REAL NOT NULL
            )"""
        )
        self._conn.commit()

    def get(self, session_id: str) -> Session:
        row = self._conn.execute(
            "SELECT data FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        if row is None:
            raise SessionNotFoundError(session_id)
        return Session.model_validate_json(row[0])

    def save(self, session: Session) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO sessions (id, data, updated_at) VALUES (?, ?, ?)",
            (session.id, session.model_dump_json(), time.time()),
        )
        self._conn.commit()
        logger.debug("Saved session %s (%d messages)", session.id, len(session.messages))

    def delete(self, session_id: str) -> bool:
        cursor = self._conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        self._conn.commit()
        return cursor.rowcount > 0

    def list_ids(self) -> list[str]:
        rows = self._conn.execute("SELECT id FROM sessions ORDER BY updated_at").fetchall()
        return [r[0] for r in rows]

    def exists(self, session_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM sessions WHERE id = ?", (session_id,)
        ).fetchone()
        return row is not None

    def close(self) -> None:
        self._conn.close()
