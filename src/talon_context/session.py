"""Session — one ongoing conversation, owned by the persistence layer."""

from __future__ import annotations

import json
import time
import uuid
from typing import Any

from pydantic import BaseModel, Field

from .messages import Message, UserMessage


class Scratchpad(BaseModel):
    """Short-lived progress record for a multi-step task."""

    visited: list[str] = Field(default_factory=list)
    collected: dict[str, Any] = Field(default_factory=dict)
    pending: list[str] = Field(default_factory=list)
    progress: dict[str, Any] = Field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (self.visited or self.collected or self.pending or self.progress)


class SessionMetadata(BaseModel):
    """Lifecycle bookkeeping for a session."""

    created_at: float = Field(default_factory=time.time)
    last_active_at: float = Field(default_factory=time.time)
    message_count: int = 0
    model: str = ""


class Session(BaseModel):
    """Ordered message history plus the compressed memory summary."""

    id: str = Field(default_factory=lambda: f"sess_{uuid.uuid4().hex[:12]}")
    sender_id: str = ""
    channel: str = ""
    messages: list[Message] = Field(default_factory=list)
    memory_summary: str = ""
    scratchpad: Scratchpad | None = None
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)

    def append(self, message: Message) -> None:
        self.messages.append(message)
        self.metadata.message_count += 1
        self.metadata.last_active_at = time.time()

    def last_user_message(self) -> UserMessage | None:
        for msg in reversed(self.messages):
            if isinstance(msg, UserMessage):
                return msg
        return None


def render_scratchpad(scratchpad: Scratchpad) -> str:
    """Render a scratchpad as a progress note for the model."""
    lines = ["## Current Task Progress (Scratchpad)", ""]
    if scratchpad.visited:
        lines.append(f"**Visited:** {', '.join(scratchpad.visited)}")
    if scratchpad.collected:
        lines.append(f"**Collected:** {json.dumps(scratchpad.collected, indent=2, default=str)}")
    if scratchpad.pending:
        lines.append(f"**Pending:** {', '.join(scratchpad.pending)}")
    if scratchpad.progress:
        lines.append(f"**Progress:** {json.dumps(scratchpad.progress, indent=2, default=str)}")
    lines.append("")
    lines.append(
        "**Remember:** Continue iterating until scratchpad.pending is empty "
        "or the task is complete."
    )
    return "\n".join(lines)
