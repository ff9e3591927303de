"""Session message types — one variant per chat role."""

from __future__ import annotations

import time
import uuid
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter


class ChatRole(StrEnum):
    """Role of a message participant."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def _new_message_id() -> str:
    return f"msg_{uuid.uuid4().hex[:12]}"


class ToolCall(BaseModel):
    """A tool invocation declared by an assistant message."""

    id: str
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(BaseModel):
    """Output of one tool invocation, keyed by the call it answers."""

    tool_call_id: str
    output: str = ""
    success: bool = True


class _BaseMessage(BaseModel):
    id: str = Field(default_factory=_new_message_id)
    content: str = ""
    timestamp: float = Field(default_factory=time.time)
    channel: str | None = None


class SystemMessage(_BaseMessage):
    role: Literal["system"] = "system"


class UserMessage(_BaseMessage):
    role: Literal["user"] = "user"


class AssistantMessage(_BaseMessage):
    role: Literal["assistant"] = "assistant"
    tool_calls: list[ToolCall] = Field(default_factory=list)

    @property
    def tool_call_ids(self) -> list[str]:
        return [tc.id for tc in self.tool_calls]

    def declares(self, tool_call_id: str | None) -> bool:
        return tool_call_id is not None and tool_call_id in self.tool_call_ids


class ToolMessage(_BaseMessage):
    role: Literal["tool"] = "tool"
    tool_results: list[ToolResult] = Field(default_factory=list)

    @property
    def tool_call_id(self) -> str | None:
        """Id of the tool call this message answers (first result), if any."""
        if not self.tool_results:
            return None
        return self.tool_results[0].tool_call_id

    @property
    def output_text(self) -> str:
        """Message content, falling back to the joined result outputs."""
        if self.content:
            return self.content
        return "\n".join(r.output for r in self.tool_results if r.output)


Message = Annotated[
    SystemMessage | UserMessage | AssistantMessage | ToolMessage,
    Field(discriminator="role"),
]

_MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)


def parse_message(data: dict[str, Any]) -> Message:
    """Validate a persisted message dict into its role variant."""
    return _MESSAGE_ADAPTER.validate_python(data)
