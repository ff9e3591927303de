#!/usr/bin/env python3
"""01_context_turn.py — Talon context engine demo.

Runs a short tool-using conversation through the ContextEngine and prints
the message list handed to the model on each turn, then the memory summary
once the history has been compressed.

Everything runs offline: the summarizer uses the stub LLM provider.

Prerequisites:
    pip install -e .[dev]

Usage:
    python examples/01_context_turn.py
    TALON_KEEP_RECENT_MESSAGES=2 python examples/01_context_turn.py
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path

from talon_context import (
    AssistantMessage,
    ContextConfig,
    ContextEngine,
    InMemoryBackend,
    MemoryCategory,
    MemoryRecall,
    ProviderSummarizer,
    StubLLMProvider,
    ToolCall,
    ToolMessage,
    ToolResult,
    UserMessage,
)


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    with tempfile.TemporaryDirectory() as workspace:
        # ------------------------------------------------------------------
        # 1. A workspace with a persona file and one long-term memory.
        # ------------------------------------------------------------------
        Path(workspace, "SOUL.md").write_text("You are Talon, a terse travel assistant.")
        memory = InMemoryBackend()
        memory.store("seats", "Sam prefers window seats on long flights", MemoryCategory.CORE)

        config = ContextConfig.from_env(workspace_root=Path(workspace), available_tools=["web_search"])
        engine = ContextEngine(
            config=config,
            summarizer=ProviderSummarizer(
                StubLLMProvider(reply="Current Task:\n- Sam is comparing flights to New York"),
                model="stub",
            ),
            recall=MemoryRecall(memory),
        )
        await engine.ensure_workspace_ready(timeout=1.0)

        # ------------------------------------------------------------------
        # 2. A few turns: user asks, assistant calls a tool, then answers.
        # ------------------------------------------------------------------
        for n in range(4):
            async with engine.turn("demo") as turn:
                turn.append(UserMessage(content=f"Find me flight option {n} to New York"))

                build = await turn.build()
                print(f"--- Turn {n}: {len(build.messages)} messages, ~{build.stats.total_tokens} tokens ---")
                for msg in build.messages:
                    first_line = msg.content.splitlines()[0] if msg.content else ""
                    print(f"  [{msg.role}] {first_line[:70]}")

                call_id = f"call_{n}"
                turn.append(AssistantMessage(tool_calls=[ToolCall(id=call_id, tool_name="web_search")]))
                turn.append(
                    ToolMessage(tool_results=[ToolResult(tool_call_id=call_id, output="LHR-JFK 09:40")])
                )
                turn.append(AssistantMessage(content=f"Option {n}: LHR-JFK at 09:40, window seat."))

            if turn.compression is not None:
                print(f"Compression: {turn.compression.status}")

        # ------------------------------------------------------------------
        # 3. The stored session after compression.
        # ------------------------------------------------------------------
        session = engine.store.get("demo")
        print()
        print(f"Messages kept: {len(session.messages)}")
        print(f"Memory summary:\n{session.memory_summary}")


if __name__ == "__main__":
    asyncio.run(main())
