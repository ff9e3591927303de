"""LLM provider abstraction and the wire-format chat message."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from .messages import ChatRole, ToolCall

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class ChatMessage(BaseModel):
    """Single role-tagged message as handed to the model."""

    role: ChatRole
    content: str
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tool_call_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """OpenAI-compatible message dict."""
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.tool_name,
                        "arguments": json.dumps(tc.arguments),
                    },
                }
                for tc in self.tool_calls
            ]
        if self.role == ChatRole.TOOL:
            data["tool_call_id"] = self.tool_call_id
        return data


class ChatRequest(BaseModel):
    """Request payload sent to an LLM provider."""

    model: str
    messages: list[ChatMessage]
    max_tokens: int | None = None
    temperature: float | None = None


class TokenUsage(BaseModel):
    """Token consumption metrics for a single request."""

    prompt_tokens: int
    completion_tokens: int


class ChatResponse(BaseModel):
    """Response returned from an LLM provider."""

    content: str
    usage: TokenUsage | None = None


# ---------------------------------------------------------------------------
# LLMProvider ABC
# ---------------------------------------------------------------------------


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the canonical provider name (e.g. 'openrouter', 'stub')."""

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send a chat completion request."""


# ---------------------------------------------------------------------------
# Stub implementation (for testing / offline development)
# ---------------------------------------------------------------------------


class StubLLMProvider(LLMProvider):
    """Returns canned responses without making real HTTP calls."""

    def __init__(self, reply: str = "This is a stub response for testing purposes.") -> None:
        self._reply = reply
        self.requests: list[ChatRequest] = []

    def name(self) -> str:
        return "stub"

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Return a deterministic canned response and remember the request."""
        self.requests.append(request)
        prompt_tokens = sum(len(m.content.split()) for m in request.messages)
        return ChatResponse(
            content=self._reply,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=len(self._reply.split()),
            ),
        )
