"""Tests for ContextAssembler layering."""

import asyncio

import pytest

from talon_context.assembler import RECALL_HEADING, SUMMARY_HEADING, ContextAssembler
from talon_context.config import ContextConfig, RecallConfig
from talon_context.messages import (
    AssistantMessage,
    ChatRole,
    ToolCall,
    ToolMessage,
    ToolResult,
    UserMessage,
)
from talon_context.persona import DEFAULT_PERSONA, StaticPersonaLoader, WorkspacePersonaLoader
from talon_context.recall import RecallAdapter, RecallService
from talon_context.session import Scratchpad, Session
from talon_context.tokens import TRUNCATION_MARKER, estimate_tokens


class _FixedRecall(RecallService):
    def __init__(self, text="- [deploy] Deploys happen on Thursdays"):
        self.text = text
        self.queries = []

    async def recall(self, query, config):
        self.queries.append(query)
        return self.text


class _FailingRecall(RecallService):
    async def recall(self, query, config):
        raise RuntimeError("search backend down")


class _SlowRecall(RecallService):
    async def recall(self, query, config):
        await asyncio.sleep(5)
        return "too late"


def _assembler(recall=None, **overrides) -> ContextAssembler:
    return ContextAssembler(
        ContextConfig(**overrides),
        persona=StaticPersonaLoader("You are Talon."),
        recall=RecallAdapter(recall),
    )


def _chat_session(n: int) -> Session:
    session = Session()
    for i in range(n):
        if i % 2 == 0:
            session.append(UserMessage(content=f"question {i}"))
        else:
            session.append(AssistantMessage(content=f"answer {i}"))
    return session


# ---------------------------------------------------------------------------
# Layers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_persona_only_for_empty_session():
    out = await _assembler().build_context(Session())
    assert len(out) == 1
    assert out[0].role == ChatRole.SYSTEM
    assert out[0].content == "You are Talon."


@pytest.mark.asyncio
async def test_layer_order():
    session = _chat_session(3)
    session.memory_summary = "User Profile:\n- likes tea"
    session.scratchpad = Scratchpad(pending=["step 2"])

    out = await _assembler(recall=_FixedRecall()).build_context(session)
    assert [m.role for m in out[:4]] == [ChatRole.SYSTEM] * 4
    assert out[0].content == "You are Talon."
    assert out[1].content.startswith("## Current Task Progress (Scratchpad)")
    assert out[2].content == f"{SUMMARY_HEADING}\nUser Profile:\n- likes tea"
    assert out[3].content.startswith(RECALL_HEADING)
    assert [m.content for m in out[4:]] == ["question 0", "answer 1", "question 2"]


@pytest.mark.asyncio
async def test_empty_scratchpad_is_omitted():
    session = _chat_session(1)
    session.scratchpad = Scratchpad()
    out = await _assembler().build_context(session)
    assert len(out) == 2


@pytest.mark.asyncio
async def test_summary_is_truncated():
    session = _chat_session(1)
    session.memory_summary = "fact " * 2000
    out = await _assembler(max_summary_tokens=50).build_context(session)
    summary = out[1].content.removeprefix(f"{SUMMARY_HEADING}\n")
    assert summary.endswith(TRUNCATION_MARKER)
    assert estimate_tokens(summary) <= 50


@pytest.mark.asyncio
async def test_recall_uses_latest_user_message():
    recall = _FixedRecall()
    await _assembler(recall=recall).build_context(_chat_session(4))
    assert recall.queries == ["question 2"]


@pytest.mark.asyncio
async def test_recall_failure_omits_layer():
    session = _chat_session(2)
    out = await _assembler(recall=_FailingRecall()).build_context(session)
    assert not any(m.content.startswith(RECALL_HEADING) for m in out)
    assert [m.content for m in out[1:]] == ["question 0", "answer 1"]


@pytest.mark.asyncio
async def test_slow_recall_is_cut_off():
    assembler = ContextAssembler(
        ContextConfig(recall=RecallConfig(timeout_seconds=0.05)),
        persona=StaticPersonaLoader("You are Talon."),
        recall=RecallAdapter(_SlowRecall()),
    )
    out = await asyncio.wait_for(assembler.build_context(_chat_session(2)), timeout=2)
    assert not any(m.content.startswith(RECALL_HEADING) for m in out)
    assert len(out) == 3


@pytest.mark.asyncio
async def test_undecodable_persona_file_falls_back(tmp_path):
    (tmp_path / "SOUL.md").write_bytes(b"\xff\xfe persona")
    assembler = ContextAssembler(
        ContextConfig(workspace_root=tmp_path),
        persona=WorkspacePersonaLoader(),
    )
    out = await assembler.build_context(_chat_session(1))
    assert out[0].content.startswith(DEFAULT_PERSONA.to_system_prompt())
    assert out[1].content == "question 0"


@pytest.mark.asyncio
async def test_window_is_last_keep_recent_messages():
    out = await _assembler(keep_recent_messages=4).build_context(_chat_session(12))
    assert [m.content for m in out[1:]] == ["question 8", "answer 9", "question 10", "answer 11"]


# ---------------------------------------------------------------------------
# Tool messages
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_tool_output_is_truncated_and_linked():
    session = Session()
    session.append(UserMessage(content="read the log"))
    session.append(
        AssistantMessage(tool_calls=[ToolCall(id="tc1", tool_name="file_read", arguments={"path": "x.log"})])
    )
    session.append(ToolMessage(tool_results=[ToolResult(tool_call_id="tc1", output="E" * 10_000)]))

    out = await _assembler(max_tool_output_tokens=100).build_context(session)
    assistant, tool = out[-2], out[-1]
    assert assistant.tool_calls[0].id == "tc1"
    assert tool.role == ChatRole.TOOL
    assert tool.tool_call_id == "tc1"
    assert estimate_tokens(tool.content) <= 100
    # Stored history keeps the full output.
    assert len(session.messages[-1].output_text) == 10_000


@pytest.mark.asyncio
async def test_window_starting_with_tool_result_pulls_parent():
    session = _chat_session(6)
    session.append(AssistantMessage(tool_calls=[ToolCall(id="tc1", tool_name="web_search")]))
    session.append(ToolMessage(tool_results=[ToolResult(tool_call_id="tc1", output="results")]))
    session.append(AssistantMessage(content="summary of results"))

    build = await _assembler(keep_recent_messages=2).build(session)
    window = build.messages[1:]
    assert [m.role for m in window] == [ChatRole.ASSISTANT, ChatRole.TOOL, ChatRole.ASSISTANT]
    assert window[0].tool_calls[0].id == "tc1"
    assert build.repair.prepended_parents == [session.messages[6].id]


@pytest.mark.asyncio
async def test_build_does_not_mutate_session():
    session = _chat_session(5)
    session.memory_summary = "x" * 10_000
    snapshot = session.model_dump()
    await _assembler(max_summary_tokens=10).build_context(session)
    assert session.model_dump() == snapshot


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_stats_report_layers():
    session = _chat_session(3)
    session.memory_summary = "abc" * 10
    build = await _assembler(recall=_FixedRecall("r" * 30)).build(session)
    stats = build.stats
    assert stats.system_tokens == estimate_tokens("You are Talon.")
    assert stats.summary_tokens == 10
    assert stats.recall_tokens == 10
    assert stats.window_messages == 3
    assert stats.total_messages == 3
    assert not stats.over_soft_budget


@pytest.mark.asyncio
async def test_soft_budget_is_flagged_not_enforced():
    session = _chat_session(2)
    session.memory_summary = "s" * 600
    build = await _assembler(max_context_tokens=50, max_summary_tokens=800).build(session)
    assert build.stats.over_soft_budget
    assert build.stats.summary_tokens == 200
