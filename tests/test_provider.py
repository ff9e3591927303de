"""Tests for the provider abstraction and wire messages."""

import json

import pytest

from talon_context.messages import ChatRole, ToolCall
from talon_context.provider import ChatMessage, ChatRequest, LLMProvider, StubLLMProvider


def test_provider_is_abstract():
    with pytest.raises(TypeError):
        LLMProvider()  # type: ignore[abstract]


def test_to_wire_plain_message():
    wire = ChatMessage(role=ChatRole.USER, content="hi").to_wire()
    assert wire == {"role": "user", "content": "hi"}


def test_to_wire_tool_calls_encode_arguments():
    msg = ChatMessage(
        role=ChatRole.ASSISTANT,
        content="",
        tool_calls=[ToolCall(id="tc1", tool_name="file_read", arguments={"path": "a.txt"})],
    )
    wire = msg.to_wire()
    call = wire["tool_calls"][0]
    assert call["id"] == "tc1"
    assert call["type"] == "function"
    assert call["function"]["name"] == "file_read"
    assert json.loads(call["function"]["arguments"]) == {"path": "a.txt"}


def test_to_wire_tool_result_carries_call_id():
    wire = ChatMessage(role=ChatRole.TOOL, content="data", tool_call_id="tc1").to_wire()
    assert wire["tool_call_id"] == "tc1"


@pytest.mark.asyncio
async def test_stub_provider_records_requests():
    provider = StubLLMProvider(reply="short summary")
    request = ChatRequest(model="stub", messages=[ChatMessage(role=ChatRole.USER, content="hi there")])
    response = await provider.chat(request)
    assert provider.name() == "stub"
    assert response.content == "short summary"
    assert response.usage is not None
    assert response.usage.prompt_tokens == 2
    assert provider.requests == [request]
