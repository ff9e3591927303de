"""Talon context — context assembly and memory compression for a chat agent."""

from __future__ import annotations

__version__ = "0.1.0"

from .assembler import ContextAssembler, ContextBuild, LayerStats
from .compression import (
    CompressionOutcome,
    CompressionScheduler,
    CompressionState,
    OutcomeStatus,
    ProviderSummarizer,
    SummarizationError,
    Summarizer,
    build_compression_prompt,
)
from .config import ContextConfig, RecallConfig
from .engine import ContextEngine, Turn
from .integrity import IntegrityRepairer, RepairReport, repair_window
from .locks import SessionLockTable
from .memory import InMemoryBackend, MemoryCategory, MemoryEntry, MemoryService
from .messages import (
    AssistantMessage,
    ChatRole,
    Message,
    SystemMessage,
    ToolCall,
    ToolMessage,
    ToolResult,
    UserMessage,
    parse_message,
)
from .persona import (
    AgentPersonality,
    PersonaLoader,
    StaticPersonaLoader,
    WorkspacePersonaLoader,
)
from .provider import ChatMessage, ChatRequest, ChatResponse, LLMProvider, StubLLMProvider, TokenUsage
from .recall import MemoryRecall, RecallAdapter, RecallService
from .session import Scratchpad, Session, SessionMetadata, render_scratchpad
from .store import InMemorySessionStore, SessionNotFoundError, SessionStore, SqliteSessionStore
from .telemetry import ContextTracer, TelemetryConfig
from .tokens import TRUNCATION_MARKER, TokenBudget, estimate_tokens, truncate_to_tokens

__all__ = [
    "AgentPersonality",
    "AssistantMessage",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatRole",
    "CompressionOutcome",
    "CompressionScheduler",
    "CompressionState",
    "ContextAssembler",
    "ContextBuild",
    "ContextConfig",
    "ContextEngine",
    "ContextTracer",
    "InMemoryBackend",
    "InMemorySessionStore",
    "IntegrityRepairer",
    "LayerStats",
    "LLMProvider",
    "MemoryCategory",
    "MemoryEntry",
    "MemoryRecall",
    "MemoryService",
    "Message",
    "OutcomeStatus",
    "PersonaLoader",
    "ProviderSummarizer",
    "RecallAdapter",
    "RecallConfig",
    "RecallService",
    "RepairReport",
    "Scratchpad",
    "Session",
    "SessionLockTable",
    "SessionMetadata",
    "SessionNotFoundError",
    "SessionStore",
    "SqliteSessionStore",
    "StaticPersonaLoader",
    "StubLLMProvider",
    "SummarizationError",
    "Summarizer",
    "SystemMessage",
    "TelemetryConfig",
    "TokenBudget",
    "TokenUsage",
    "ToolCall",
    "ToolMessage",
    "ToolResult",
    "TRUNCATION_MARKER",
    "Turn",
    "UserMessage",
    "WorkspacePersonaLoader",
    "__version__",
    "build_compression_prompt",
    "estimate_tokens",
    "parse_message",
    "render_scratchpad",
    "repair_window",
    "truncate_to_tokens",
]
