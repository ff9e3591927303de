"""Tests for SessionStore backends."""

import tempfile
from pathlib import Path

import pytest

from talon_context.messages import AssistantMessage, ToolCall, ToolMessage, ToolResult, UserMessage
from talon_context.session import Scratchpad, Session
from talon_context.store import InMemorySessionStore, SessionNotFoundError, SqliteSessionStore


def _session() -> Session:
    session = Session(sender_id="u1", channel="cli", memory_summary="User likes tea.")
    session.append(UserMessage(content="read notes.md"))
    session.append(AssistantMessage(tool_calls=[ToolCall(id="tc1", tool_name="file_read", arguments={"path": "notes.md"})]))
    session.append(ToolMessage(tool_results=[ToolResult(tool_call_id="tc1", output="# Notes")]))
    session.scratchpad = Scratchpad(pending=["summarise"])
    return session


def test_memory_store_roundtrip_and_copies():
    store = InMemorySessionStore()
    session = _session()
    store.save(session)

    loaded = store.get(session.id)
    assert loaded == session
    loaded.messages.clear()
    assert len(store.get(session.id).messages) == 3

    session.memory_summary = "changed after save"
    assert store.get(session.id).memory_summary == "User likes tea."


def test_memory_store_missing_and_delete():
    store = InMemorySessionStore()
    with pytest.raises(SessionNotFoundError):
        store.get("nope")
    with pytest.raises(KeyError):
        store.get("nope")

    session = _session()
    store.save(session)
    assert store.list_ids() == [session.id]
    assert store.exists(session.id)
    assert store.delete(session.id)
    assert not store.delete(session.id)
    assert store.list_ids() == []


def test_sqlite_store_roundtrip():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = SqliteSessionStore(db_path=Path(tmpdir) / "sessions.db")
        session = _session()
        store.save(session)

        loaded = store.get(session.id)
        assert loaded.id == session.id
        assert loaded.memory_summary == "User likes tea."
        assert [type(m) for m in loaded.messages] == [UserMessage, AssistantMessage, ToolMessage]
        assert loaded.messages[1].tool_calls[0].arguments == {"path": "notes.md"}
        assert loaded.scratchpad is not None
        assert loaded.scratchpad.pending == ["summarise"]

        store.close()


def test_sqlite_store_overwrite_delete_and_list():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = SqliteSessionStore(db_path=Path(tmpdir) / "sessions.db")
        session = _session()
        store.save(session)
        session.memory_summary = "updated"
        store.save(session)

        assert store.get(session.id).memory_summary == "updated"
        assert store.list_ids() == [session.id]
        assert store.exists(session.id)

        assert store.delete(session.id)
        assert not store.exists(session.id)
        with pytest.raises(SessionNotFoundError, match=session.id):
            store.get(session.id)

        store.close()


def test_sqlite_store_persists_across_connections():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "sessions.db"
        first = SqliteSessionStore(db_path)
        session = _session()
        first.save(session)
        first.close()

        second = SqliteSessionStore(db_path)
        assert second.get(session.id).sender_id == "u1"
        second.close()
