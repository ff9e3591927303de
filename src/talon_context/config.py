"""Context configuration — named per-layer token ceilings."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PositiveFloat, PositiveInt

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class RecallConfig(BaseModel):
    """Limits handed to the recall collaborator."""

    max_results: PositiveInt = 6
    max_tokens: PositiveInt = 500
    include_daily: bool = True
    timeout_seconds: PositiveFloat = 5.0


class ContextConfig(BaseModel):
    """Ceilings used by the assembler and the compression scheduler.

    The ceilings are enforced per layer. ``max_context_tokens`` is an advisory
    total: it is reported in context stats but never used to re-balance layers.
    """

    workspace_root: Path = Path("~/.talon/workspace")
    max_context_tokens: PositiveInt = 6000
    max_summary_tokens: PositiveInt = 800
    keep_recent_messages: PositiveInt = 10
    max_tool_output_tokens: PositiveInt = 500
    compression_snippet_tokens: PositiveInt = 200
    summarizer_timeout_seconds: PositiveFloat = 30.0
    available_tools: list[str] = Field(default_factory=list)
    recall: RecallConfig = Field(default_factory=RecallConfig)

    @property
    def resolved_workspace(self) -> Path:
        return self.workspace_root.expanduser()

    @classmethod
    def from_env(cls, **overrides: Any) -> ContextConfig:
        """Build a config from ``TALON_*`` environment variables.

        Unset variables keep their defaults; explicit *overrides* win over the
        environment.

        Raises:
            ValueError: If a variable holds a value of the wrong type.
        """
        values: dict[str, Any] = {}
        recall: dict[str, Any] = {}

        workspace = os.environ.get("TALON_WORKSPACE", "").strip()
        if workspace:
            values["workspace_root"] = Path(workspace)

        for env_name, key in (
            ("TALON_MAX_CONTEXT_TOKENS", "max_context_tokens"),
            ("TALON_MAX_SUMMARY_TOKENS", "max_summary_tokens"),
            ("TALON_KEEP_RECENT_MESSAGES", "keep_recent_messages"),
            ("TALON_MAX_TOOL_OUTPUT_TOKENS", "max_tool_output_tokens"),
        ):
            raw = os.environ.get(env_name, "").strip()
            if raw:
                values[key] = _parse_int(env_name, raw)

        timeout = os.environ.get("TALON_SUMMARIZER_TIMEOUT", "").strip()
        if timeout:
            values["summarizer_timeout_seconds"] = _parse_float("TALON_SUMMARIZER_TIMEOUT", timeout)

        for env_name, key in (
            ("TALON_RECALL_MAX_RESULTS", "max_results"),
            ("TALON_RECALL_MAX_TOKENS", "max_tokens"),
        ):
            raw = os.environ.get(env_name, "").strip()
            if raw:
                recall[key] = _parse_int(env_name, raw)

        recall_timeout = os.environ.get("TALON_RECALL_TIMEOUT", "").strip()
        if recall_timeout:
            recall["timeout_seconds"] = _parse_float("TALON_RECALL_TIMEOUT", recall_timeout)

        daily = os.environ.get("TALON_RECALL_INCLUDE_DAILY", "").strip().lower()
        if daily:
            if daily in _TRUE_VALUES:
                recall["include_daily"] = True
            elif daily in _FALSE_VALUES:
                recall["include_daily"] = False
            else:
                msg = f"TALON_RECALL_INCLUDE_DAILY must be a boolean, got '{daily}'"
                raise ValueError(msg)

        if recall:
            values["recall"] = RecallConfig(**recall)
        values.update(overrides)
        return cls(**values)


def _parse_int(env_name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        msg = f"{env_name} must be an integer, got '{raw}'"
        raise ValueError(msg) from None


def _parse_float(env_name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        msg = f"{env_name} must be a number, got '{raw}'"
        raise ValueError(msg) from None
