"""Persona prompt — the first system message of every turn.

The prompt is composed from workspace files and is read from disk on every
call so that edits to the persona take effect on the next turn.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_FIELD_RE = re.compile(r"^-?\s*\*\*([^*]+):\*\*\s*(.*)$")

_TEMPLATE_INDICATORS = (
    "*(pick something you like)*",
    "*(What do they care about?",
    "*(curated long-term memory)*",
    "*(Add anything useful",
)

MEMORY_RULES = """## Memory and Session Rules

Session history is temporary; workspace files are permanent.
- Anything learned in this conversation is forgotten when the session ends.
- To remember something permanently, write it to a workspace file:
  USER.md for the user, IDENTITY.md for yourself, MEMORY.md for facts.
- Do not claim to remember information that is only in session history."""


class AgentPersonality(BaseModel):
    """Built-in persona used when the workspace has no SOUL.md."""

    name: str
    role: str = "personal AI assistant"
    traits: list[str] = Field(default_factory=list)
    system_prompt: str = ""
    constraints: list[str] = Field(default_factory=list)

    def to_system_prompt(self) -> str:
        """Generate a full system prompt from the personality definition."""
        parts: list[str] = []

        if self.system_prompt:
            parts.append(self.system_prompt)
        else:
            parts.append(f"You are {self.name}, a {self.role}.")

        if self.traits:
            parts.append(f"You are {', '.join(self.traits)}.")

        for c in self.constraints:
            parts.append(c)

        return "\n".join(parts)


DEFAULT_PERSONA = AgentPersonality(
    name="Talon",
    traits=["helpful", "direct", "technically capable"],
    constraints=[
        "You prefer concise responses over verbose ones.",
        "You have access to tools for files, shell commands, the web, notes, "
        "tasks and calendars, and can delegate specialised work to subagents.",
    ],
)


def is_template_empty(content: str) -> bool:
    """True when a workspace file still holds its unfilled template."""
    if any(marker in content for marker in _TEMPLATE_INDICATORS):
        return True

    for line in content.splitlines():
        match = _FIELD_RE.match(line.strip())
        if not match:
            continue
        value = match.group(2).strip()
        if not value or "(optional)" in value or value.startswith(("_", "*")):
            continue
        return False
    return True


class PersonaLoader(ABC):
    """Persona collaborator."""

    @abstractmethod
    def load_persona_prompt(self, workspace_root: Path) -> str:
        """Return the persona/tool-awareness prompt for *workspace_root*."""


class StaticPersonaLoader(PersonaLoader):
    """Fixed prompt, for tests and embedded use."""

    def __init__(self, prompt: str | None = None) -> None:
        self._prompt = prompt if prompt is not None else DEFAULT_PERSONA.to_system_prompt()

    def load_persona_prompt(self, workspace_root: Path) -> str:
        return self._prompt


class WorkspacePersonaLoader(PersonaLoader):
    """Composes SOUL.md, IDENTITY.md, USER.md and MEMORY.md from the workspace."""

    def __init__(
        self,
        available_tools: list[str] | None = None,
        persona: AgentPersonality = DEFAULT_PERSONA,
    ) -> None:
        self._tools = list(available_tools or [])
        self._persona = persona

    def load_persona_prompt(self, workspace_root: Path) -> str:
        root = Path(workspace_root).expanduser()
        bootstrap = _read(root / "BOOTSTRAP.md")

        if bootstrap is not None:
            prompt = self._bootstrap_prompt(root, bootstrap)
        else:
            prompt = _read(root / "SOUL.md") or self._persona.to_system_prompt()
            for file_name, heading in (
                ("IDENTITY.md", "Your Identity"),
                ("USER.md", "About the User"),
                ("MEMORY.md", "Long-Term Memory (Permanent)"),
            ):
                content = _read(root / file_name)
                if content and not is_template_empty(content):
                    prompt += f"\n\n## {heading}\n\n{content.strip()}"

        if self._tools:
            prompt += "\n\n## Available Tools\n" + ", ".join(self._tools)
        prompt += "\n\n" + MEMORY_RULES
        return prompt

    def _bootstrap_prompt(self, root: Path, bootstrap: str) -> str:
        prompt = (
            "## SYSTEM BOOT: FIRST RUN\n\n"
            f"{bootstrap.strip()}\n\n"
            "Write what you learn to USER.md and IDENTITY.md with the file_write "
            "tool so that it persists across sessions."
        )
        learned: list[str] = []
        for file_name, heading in (
            ("IDENTITY.md", "Identity (Learned So Far)"),
            ("USER.md", "User Info (Learned So Far)"),
            ("MEMORY.md", "Long-Term Memory (Permanent)"),
        ):
            content = _read(root / file_name)
            if content and not is_template_empty(content):
                learned.append(f"## {heading}\n{content.strip()}")
        if learned:
            prompt += (
                "\n\n## Resuming Bootstrap\n"
                "Pick up where the previous run left off; do not ask again for "
                "what is already known.\n\n" + "\n\n".join(learned)
            )
        return prompt


def _read(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError):
        logger.warning("Could not read workspace file %s", path, exc_info=True)
        return None
