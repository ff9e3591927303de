"""Context assembler — builds the exact message list sent to the model.

Building is read-only with respect to the session. The recall lookup is the
only await point, bounded by ``RecallConfig.timeout_seconds``.

Layers, in order:

1. persona/system prompt (loaded fresh on every call)
2. scratchpad progress note, when the session has one
3. memory summary, truncated to ``max_summary_tokens``
4. recall block for the latest user utterance
5. the last ``keep_recent_messages`` messages, repaired for tool-call pairing,
   with tool outputs truncated to ``max_tool_output_tokens``

Each ceiling is applied to its own layer only. ``max_context_tokens`` is
reported in :class:`LayerStats` but never used to shrink the layers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from .config import ContextConfig
from .integrity import IntegrityRepairer, RepairReport
from .messages import AssistantMessage, ChatRole, Message, ToolMessage
from .persona import PersonaLoader, WorkspacePersonaLoader
from .provider import ChatMessage
from .recall import RecallAdapter
from .session import Session, render_scratchpad
from .telemetry import trace_context_build
from .tokens import TokenBudget, estimate_tokens, truncate_to_tokens

logger = logging.getLogger(__name__)

SUMMARY_HEADING = "## Memory Summary (compressed history)"
RECALL_HEADING = "## Relevant Memory"


@dataclass
class LayerStats:
    """Estimated tokens per context layer."""

    system_tokens: int = 0
    scratchpad_tokens: int = 0
    summary_tokens: int = 0
    recall_tokens: int = 0
    window_tokens: int = 0
    window_messages: int = 0
    total_messages: int = 0
    max_context_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return (
            self.system_tokens
            + self.scratchpad_tokens
            + self.summary_tokens
            + self.recall_tokens
            + self.window_tokens
        )

    @property
    def over_soft_budget(self) -> bool:
        return self.total_tokens > self.max_context_tokens


@dataclass
class ContextBuild:
    """Assembled messages plus what it took to build them."""

    messages: list[ChatMessage]
    stats: LayerStats
    repair: RepairReport = field(default_factory=RepairReport)


class ContextAssembler:
    """Builds the per-turn message list from a session. Never mutates it."""

    def __init__(
        self,
        config: ContextConfig | None = None,
        persona: PersonaLoader | None = None,
        recall: RecallAdapter | None = None,
        repairer: IntegrityRepairer | None = None,
    ) -> None:
        self._config = config or ContextConfig()
        self._persona = persona or WorkspacePersonaLoader(self._config.available_tools)
        self._recall = recall or RecallAdapter()
        self._repairer = repairer or IntegrityRepairer()

    @property
    def config(self) -> ContextConfig:
        return self._config

    async def build_context(self, session: Session) -> list[ChatMessage]:
        build = await self.build(session)
        return build.messages

    async def build(self, session: Session) -> ContextBuild:
        cfg = self._config
        stats = LayerStats(
            total_messages=len(session.messages),
            max_context_tokens=cfg.max_context_tokens,
        )
        out: list[ChatMessage] = []

        with trace_context_build(session.id) as span:
            # 1. Persona
            system_prompt = self._persona.load_persona_prompt(cfg.workspace_root)
            out.append(ChatMessage(role=ChatRole.SYSTEM, content=system_prompt))
            stats.system_tokens = estimate_tokens(system_prompt)

            # 2. Scratchpad
            if session.scratchpad is not None and not session.scratchpad.is_empty():
                note = render_scratchpad(session.scratchpad)
                out.append(ChatMessage(role=ChatRole.SYSTEM, content=note))
                stats.scratchpad_tokens = estimate_tokens(note)

            # 3. Memory summary
            if session.memory_summary:
                summary = truncate_to_tokens(session.memory_summary, cfg.max_summary_tokens)
                out.append(
                    ChatMessage(role=ChatRole.SYSTEM, content=f"{SUMMARY_HEADING}\n{summary}")
                )
                stats.summary_tokens = estimate_tokens(summary)

            # 4. Recall
            last_user = session.last_user_message()
            if last_user is not None and last_user.content:
                recalled = await self._recall.fetch(last_user.content, cfg.recall)
                if recalled:
                    out.append(
                        ChatMessage(role=ChatRole.SYSTEM, content=f"{RECALL_HEADING}\n{recalled}")
                    )
                    stats.recall_tokens = estimate_tokens(recalled)

            # 5-6. Recent window, repaired against full history
            window = session.messages[-cfg.keep_recent_messages :]
            repaired, report = self._repairer.repair_with_report(window, session.messages)

            # 7. Emit
            for msg in repaired:
                wire = self._to_chat_message(msg)
                out.append(wire)
                stats.window_tokens += estimate_tokens(wire.content)
            stats.window_messages = len(repaired)

            span.set_attribute("context.messages", len(out))
            span.set_attribute("context.tokens", stats.total_tokens)

        budget = TokenBudget(cfg.max_context_tokens)
        budget.consume(stats.total_tokens)
        if not budget.is_within_budget():
            # Soft budget: flagged only, layers are not re-balanced.
            logger.debug(
                "Context for session %s exceeds advisory budget by %d tokens",
                session.id,
                budget.overflow(),
            )

        logger.debug(
            "Context built for session %s: system=%d scratchpad=%d summary=%d "
            "recall=%d window=%d/%d messages, ~%d tokens",
            session.id,
            stats.system_tokens,
            stats.scratchpad_tokens,
            stats.summary_tokens,
            stats.recall_tokens,
            stats.window_messages,
            stats.total_messages,
            stats.total_tokens,
        )
        return ContextBuild(messages=out, stats=stats, repair=report)

    def _to_chat_message(self, msg: Message) -> ChatMessage:
        if isinstance(msg, ToolMessage):
            return ChatMessage(
                role=ChatRole.TOOL,
                content=truncate_to_tokens(msg.output_text, self._config.max_tool_output_tokens),
                tool_call_id=msg.tool_call_id,
            )
        if isinstance(msg, AssistantMessage) and msg.tool_calls:
            return ChatMessage(
                role=ChatRole.ASSISTANT,
                content=msg.content,
                tool_calls=[tc.model_copy(deep=True) for tc in msg.tool_calls],
            )
        return ChatMessage(role=ChatRole(msg.role), content=msg.content)
