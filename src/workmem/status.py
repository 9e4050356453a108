"""Status blocks describing the agent's own execution.

- Resource state: message, tool-call and compaction counts plus a coarse
  context-pressure level, so the agent can budget what is left
- Sub-agent status: runs in progress and runs completed in the last day,
  with outcome and duration

Both are rebuilt on every turn from data the runtime hands over; nothing
here is persisted.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from workmem.memory.messages import AssistantMessage, Message
from workmem.triggers import SubagentRun

COMPACTION_MESSAGE_WEIGHT = 10
RECENT_COMPLETION_SECONDS = 24 * 3600
MAX_COMPLETED_SHOWN = 5


class ContextPressure(Enum):
    """How full the context window probably is."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_PRESSURE_ICONS = {
    ContextPressure.LOW: "🟢",
    ContextPressure.MEDIUM: "🟡",
    ContextPressure.HIGH: "🟠",
    ContextPressure.CRITICAL: "🔴",
}

_OUTCOME_ICONS = {
    "ok": "✅",
    "error": "❌",
    "timeout": "⏰ timeout",
}


@dataclass
class ResourceSnapshot:
    """Counts behind the resource-state block.

    Attributes:
        message_count: Messages currently in context
        tool_call_count: Tool calls issued by the assistant
        compaction_count: Compactions so far this session
        pressure: Estimated context pressure
        elapsed_minutes: Session runtime (None when the start is unknown)
    """
    message_count: int
    tool_call_count: int
    compaction_count: int
    pressure: ContextPressure
    elapsed_minutes: Optional[int] = None


def estimate_context_pressure(message_count: int, compaction_count: int) -> ContextPressure:
    """Rough pressure level; every compaction counts as ten extra messages."""
    effective = message_count + compaction_count * COMPACTION_MESSAGE_WEIGHT
    if effective < 30:
        return ContextPressure.LOW
    if effective < 60:
        return ContextPressure.MEDIUM
    if effective < 90:
        return ContextPressure.HIGH
    return ContextPressure.CRITICAL


def snapshot_resources(
    messages: list[Message],
    compaction_count: int = 0,
    session_started_at: Optional[float] = None,
    now: Optional[float] = None,
) -> ResourceSnapshot:
    tool_calls = sum(len(m.tool_uses) for m in messages if isinstance(m, AssistantMessage))
    elapsed = None
    if session_started_at:
        if now is None:
            now = time.time()
        elapsed = max(0, int((now - session_started_at) // 60))
    return ResourceSnapshot(
        message_count=len(messages),
        tool_call_count=tool_calls,
        compaction_count=compaction_count,
        pressure=estimate_context_pressure(len(messages), compaction_count),
        elapsed_minutes=elapsed,
    )


def build_resource_state(snapshot: ResourceSnapshot) -> str:
    """Render a one-line resource summary, with guidance when pressure is high."""
    parts = [
        f"{_PRESSURE_ICONS[snapshot.pressure]} Context: {snapshot.pressure.value}",
        f"{snapshot.message_count} msgs",
        f"{snapshot.tool_call_count} tool calls",
    ]
    if snapshot.compaction_count > 0:
        plural = "s" if snapshot.compaction_count > 1 else ""
        parts.append(f"{snapshot.compaction_count} compaction{plural}")
    if snapshot.elapsed_minutes is not None:
        parts.append(f"{snapshot.elapsed_minutes}m elapsed")
    line = " | ".join(parts)

    if snapshot.pressure == ContextPressure.CRITICAL:
        return (
            f"## ⚠️ Resource State\n{line}\n\n"
            "**Context is nearly full.** Finish the current task quickly, avoid large tool "
            "outputs, and consider summarizing your work and suggesting a new session."
        )
    if snapshot.pressure == ContextPressure.HIGH:
        return (
            f"## Resource State\n{line}\n\n"
            "Context is filling up. Be concise with tool calls. Batch remaining work."
        )
    return f"## Resource State\n{line}"


def format_duration(seconds: float) -> str:
    """Format a duration as 42s, 7m, 2h or 2h 5m."""
    seconds = int(max(0, seconds))
    if seconds < 60:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h {rest}m" if rest else f"{hours}h"


def _truncate(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars - 3] + "..."


def build_subagent_status(runs: Iterable[SubagentRun], now: Optional[float] = None) -> Optional[str]:
    """Render running and recently completed sub-agent runs.

    Runs without ``ended_at`` are running. Completed runs are shown when
    they ended within the last 24 hours, most recent first, at most five.

    Returns:
        Markdown block, or None when there is nothing to show
    """
    if now is None:
        now = time.time()

    running = []
    completed = []
    for run in runs:
        if not run.ended_at:
            running.append(run)
        elif now - run.ended_at < RECENT_COMPLETION_SECONDS:
            completed.append(run)

    if not running and not completed:
        return None

    lines = ["## Sub-agent Status", ""]
    if running:
        lines.append("### Running Now")
        for run in running:
            duration = format_duration(now - run.started_at) if run.started_at else "just started"
            label = f" ({run.label})" if run.label else ""
            lines.append(f"- **{_truncate(run.task, 120)}**{label} `{run.run_id}`: running for {duration}")
        lines.append("")

    if completed:
        completed.sort(key=lambda r: r.ended_at or 0, reverse=True)
        lines.append("### Recently Completed")
        for run in completed[:MAX_COMPLETED_SHOWN]:
            icon = _OUTCOME_ICONS.get(run.outcome or "", "❓")
            took = f" (took {format_duration(run.ended_at - run.started_at)})" if run.started_at else ""
            label = f" [{run.label}]" if run.label else ""
            ago = format_duration(now - run.ended_at)
            lines.append(f"- {icon} {_truncate(run.task, 100)}{label}{took}: {ago} ago")
        lines.append("")

    return "\n".join(lines).rstrip()
