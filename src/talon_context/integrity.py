"""Integrity repair — restore tool-call/tool-result pairing in a message window.

Chat protocols reject a ``tool`` message whose call is not declared by an
earlier ``assistant`` message, and an ``assistant`` message whose declared
calls are not all answered. A window cut from the tail of a long history (or a
history partially compressed away) breaks both rules routinely, so the window
is rebuilt before it is sent:

1. Leading-orphan pass: a window that starts with tool results gets the
   parent assistant message prepended from full history, or loses those
   results when the parent is unrecoverable.
2. Missing-result pass: every assistant message with tool calls is followed
   by all of its results, taken from the window or spliced in from full
   history. When a result no longer exists anywhere the assistant message is
   dropped instead.

Anything left that would still violate the pairing (mid-window orphans,
duplicates, results of a dropped call) is removed. Repairs favour including
more messages over the window size.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from .messages import AssistantMessage, Message, ToolMessage
from .telemetry import trace_integrity_repair

logger = logging.getLogger(__name__)


@dataclass
class RepairReport:
    """What a repair changed, for logging and context stats."""

    prepended_parents: list[str] = field(default_factory=list)
    dropped_orphans: list[str] = field(default_factory=list)
    spliced_results: list[str] = field(default_factory=list)
    removed_assistants: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(
            self.prepended_parents
            or self.dropped_orphans
            or self.spliced_results
            or self.removed_assistants
        )


def _find_parent(tool_call_id: str | None, history: Sequence[Message]) -> AssistantMessage | None:
    if tool_call_id is None:
        return None
    for msg in history:
        if isinstance(msg, AssistantMessage) and msg.declares(tool_call_id):
            return msg
    return None


def _find_result(
    tool_call_id: str,
    sources: Sequence[Sequence[Message]],
    consumed: set[str],
) -> ToolMessage | None:
    for source in sources:
        for msg in source:
            if (
                isinstance(msg, ToolMessage)
                and msg.tool_call_id == tool_call_id
                and msg.id not in consumed
            ):
                return msg
    return None


class IntegrityRepairer:
    """Rebuilds a candidate window so that it satisfies tool-call pairing."""

    def repair(self, window: Sequence[Message], full_history: Sequence[Message]) -> list[Message]:
        repaired, _report = self.repair_with_report(window, full_history)
        return repaired

    def repair_with_report(
        self,
        window: Sequence[Message],
        full_history: Sequence[Message],
    ) -> tuple[list[Message], RepairReport]:
        report = RepairReport()
        with trace_integrity_repair(len(window)) as span:
            candidate = self._strip_leading_orphans(list(window), full_history, report)
            repaired = self._pair_results(candidate, full_history, report)
            span.set_attribute("repair.output_size", len(repaired))
            span.set_attribute("repair.changed", report.changed)

        if report.changed:
            logger.debug(
                "Window repaired: %d -> %d messages (prepended=%d spliced=%d "
                "dropped=%d removed=%d)",
                len(window),
                len(repaired),
                len(report.prepended_parents),
                len(report.spliced_results),
                len(report.dropped_orphans),
                len(report.removed_assistants),
            )
        return repaired, report

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def _strip_leading_orphans(
        self,
        window: list[Message],
        full_history: Sequence[Message],
        report: RepairReport,
    ) -> list[Message]:
        start = 0
        prefix: list[Message] = []
        while start < len(window):
            first = window[start]
            if not isinstance(first, ToolMessage):
                break
            tool_call_id = first.tool_call_id
            parent = _find_parent(tool_call_id, full_history)
            if parent is None:
                logger.warning(
                    "Dropping orphaned tool message %s: no parent for tool call %s",
                    first.id,
                    tool_call_id,
                )
                report.dropped_orphans.append(first.id)
                start += 1
                continue

            if any(m.id == parent.id for m in window[start:]):
                # Parent sits later in the window, so this result precedes its call.
                report.dropped_orphans.append(first.id)
                start += 1
                continue

            prefix.append(parent)
            report.prepended_parents.append(parent.id)
            break
        return prefix + window[start:]

    def _pair_results(
        self,
        window: list[Message],
        full_history: Sequence[Message],
        report: RepairReport,
    ) -> list[Message]:
        repaired: list[Message] = []
        emitted: set[str] = set()
        consumed: set[str] = set()

        for pos, msg in enumerate(window):
            if msg.id in emitted:
                continue

            if isinstance(msg, ToolMessage):
                # Results of kept calls were already emitted after their assistant.
                logger.warning(
                    "Dropping tool message %s: tool call %s not declared earlier in window",
                    msg.id,
                    msg.tool_call_id,
                )
                report.dropped_orphans.append(msg.id)
                continue

            if not isinstance(msg, AssistantMessage) or not msg.tool_calls:
                repaired.append(msg)
                emitted.add(msg.id)
                continue

            later_in_window = window[pos + 1 :]
            results: list[ToolMessage] = []
            claimed: set[str] = set()
            missing: list[str] = []
            for tool_call_id in dict.fromkeys(msg.tool_call_ids):
                result = _find_result(
                    tool_call_id, (later_in_window, full_history), consumed | claimed
                )
                if result is None:
                    missing.append(tool_call_id)
                    continue
                results.append(result)
                claimed.add(result.id)

            if missing:
                logger.warning(
                    "Removing assistant message %s: tool results %s no longer exist",
                    msg.id,
                    missing,
                )
                report.removed_assistants.append(msg.id)
                continue

            repaired.append(msg)
            emitted.add(msg.id)
            window_ids = {m.id for m in later_in_window}
            for result in results:
                repaired.append(result)
                emitted.add(result.id)
                consumed.add(result.id)
                if result.id not in window_ids:
                    report.spliced_results.append(result.id)

        return repaired


_DEFAULT_REPAIRER = IntegrityRepairer()


def repair_window(window: Sequence[Message], full_history: Sequence[Message]) -> list[Message]:
    """Module-level shortcut for :meth:`IntegrityRepairer.repair`."""
    return _DEFAULT_REPAIRER.repair(window, full_history)
