"""Working-memory facade wired to the agent lifecycle.

WorkingMemory owns one instance of every store plus the background
supervisor, and exposes the hooks an agent runtime calls:

- on_compaction: inline fact extraction, then background scratch capture
- on_tool_end: background failure recording or scratch capture; returns
  the compressed result for the context window
- on_agent_end: background episode and procedure logging
- build_context: classify the next message and assemble injection blocks

Hooks never raise into the runtime; anything that can fail either runs
under the supervisor or is caught and logged here.
"""

import logging
from typing import Any, Iterable, Optional, Union

from workmem.background import BackgroundSupervisor
from workmem.classify.context import ContextTag, classify_message, resolve_context_exclusions
from workmem.compression import compress_tool_result
from workmem.config import WorkmemSettings
from workmem.extraction.compaction_facts import extract_and_persist_compaction_facts
from workmem.extraction.episodes import log_episode
from workmem.extraction.procedures import log_procedure
from workmem.memory.messages import AssistantMessage, Message, ToolResultMessage, parse_message
from workmem.memory.types import FactExtractionResult
from workmem.status import build_resource_state, build_subagent_status, snapshot_resources
from workmem.storage.corrections import CorrectionStore
from workmem.storage.execution_plan import ExecutionPlanStore
from workmem.storage.scratch_pad import ScratchPad
from workmem.storage.session_state import SessionStateStore
from workmem.storage.task_ledger import TaskLedger
from workmem.storage.tool_failures import ToolFailureStore
from workmem.triggers import ProactiveTriggerEvaluator, SubagentRun

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n"


def as_messages(raw_messages: Iterable[Union[Message, dict[str, Any]]]) -> list[Message]:
    """Accept typed messages or raw dicts and return typed messages."""
    messages: list[Message] = []
    for item in raw_messages:
        if isinstance(item, dict):
            messages.extend(parse_message(item))
        else:
            messages.append(item)
    return messages


def _resolve_tool_names(messages: list[Message]) -> list[tuple[str, ToolResultMessage]]:
    """Pair each tool result with the name of the tool that produced it."""
    names: dict[str, str] = {}
    paired = []
    for message in messages:
        if isinstance(message, AssistantMessage):
            for use in message.tool_uses:
                names[use.id] = use.name
        elif isinstance(message, ToolResultMessage):
            name = message.tool_name or names.get(message.tool_call_id or "")
            if name:
                paired.append((name, message))
    return paired


class WorkingMemory:
    """All stores plus lifecycle orchestration for one process.

    Args:
        settings: Resolved WorkmemSettings
        supervisor: Background supervisor (default: a new one)

    Example:
        >>> memory = WorkingMemory(WorkmemSettings(state_dir=tmp_path))
        >>> memory.on_compaction("session-1", messages)
        >>> context = memory.build_context("main", "session-1", "what's left on the migration?")
    """

    def __init__(
        self,
        settings: WorkmemSettings,
        supervisor: Optional[BackgroundSupervisor] = None,
    ):
        self.settings = settings
        self.state_dir = settings.resolve_state_dir()
        self.workspace_dir = settings.resolve_workspace_dir()
        self.supervisor = supervisor or BackgroundSupervisor()

        self.corrections = CorrectionStore(
            self.state_dir,
            max_entries=settings.correction_max_entries,
            min_overlap=settings.correction_min_overlap,
        )
        self.tool_failures = ToolFailureStore(
            self.state_dir, max_entries=settings.tool_failure_max_entries
        )
        self.tasks = TaskLedger(
            self.state_dir,
            max_total=settings.task_max_total,
            max_active=settings.task_max_active,
        )
        self.scratch = ScratchPad(
            self.state_dir,
            workspace_dir=self.workspace_dir,
            max_entries=settings.scratch_max_entries,
        )
        self.session_state = SessionStateStore(self.state_dir)
        self.plans = ExecutionPlanStore(self.state_dir)
        self.triggers = ProactiveTriggerEvaluator(
            self.state_dir,
            task_ledger=self.tasks,
            tool_failures=self.tool_failures,
            workspace_dir=self.workspace_dir,
            watched_files=settings.watched_files,
            cooldown_hours=settings.trigger_cooldown_hours,
            stale_task_hours=settings.stale_task_hours,
            stuck_subagent_minutes=settings.stuck_subagent_minutes,
            failure_threshold=settings.repeated_failure_threshold,
            max_triggers=settings.max_triggers_per_check,
        )

    # =========================================================================
    # Lifecycle hooks
    # =========================================================================

    def on_compaction(
        self,
        session_key: str,
        messages: Iterable[Union[Message, dict[str, Any]]],
    ) -> FactExtractionResult:
        """Preserve what compaction is about to destroy.

        Fact extraction runs inline; scratch capture is submitted in the
        background. The session's compaction counter is incremented so the
        scratch pad becomes eligible for injection.
        """
        try:
            typed = as_messages(messages)
        except Exception as e:
            logger.warning(f"Could not parse messages for compaction: {e}")
            return FactExtractionResult()

        result = extract_and_persist_compaction_facts(typed, self.workspace_dir, session_key)

        for tool_name, message in _resolve_tool_names(typed):
            if self.scratch.should_capture(tool_name, message.is_error):
                self.supervisor.submit(
                    "scratch_capture",
                    self.scratch.capture,
                    session_key,
                    tool_name,
                    message.text,
                    message.is_error,
                    message.meta,
                )

        try:
            self.scratch.record_compaction(session_key)
        except Exception as e:
            logger.warning(f"Failed to record compaction for {session_key}: {e}")

        return result

    def on_tool_end(
        self,
        owner_key: str,
        session_key: str,
        tool_name: str,
        result_text: str,
        is_error: bool = False,
        meta: Optional[str] = None,
    ) -> str:
        """Record a failed tool call or capture a data-producing result.

        The full text goes to the stores; the return value is the compressed
        text the runtime should place in the context instead.
        """
        if is_error:
            self.supervisor.submit(
                "tool_failure", self.tool_failures.record_tool_failure, owner_key, tool_name, result_text
            )
        elif self.scratch.should_capture(tool_name):
            self.supervisor.submit(
                "scratch_capture", self.scratch.capture, session_key, tool_name, result_text, False, meta
            )
        return compress_tool_result(tool_name, result_text)

    def on_agent_end(
        self,
        owner_key: str,
        session_key: str,
        messages: Iterable[Union[Message, dict[str, Any]]],
        success: bool,
        error: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> None:
        """Log the finished run as an episode and, if it qualifies, a procedure."""
        try:
            typed = as_messages(messages)
        except Exception as e:
            logger.warning(f"Could not parse messages for agent end: {e}")
            return

        self.supervisor.submit(
            "episode",
            log_episode,
            typed,
            success,
            self.workspace_dir,
            error=error,
            duration_ms=duration_ms,
            session_key=session_key,
            agent_id=owner_key,
        )
        self.supervisor.submit("procedure", log_procedure, typed, success, self.workspace_dir)

    def on_user_message(
        self,
        owner_key: str,
        message: str,
        previous_agent_message: Optional[str] = None,
    ) -> None:
        """Detect and store a correction in the background."""
        self.supervisor.submit(
            "correction", self.corrections.record_correction, owner_key, message, previous_agent_message
        )

    def on_session_end(self, session_key: str) -> None:
        """Drop the session's scratch pad after a normal end."""
        self.supervisor.submit("scratch_clear", self.scratch.clear_scratch, session_key)

    # =========================================================================
    # Context assembly
    # =========================================================================

    def _resource_block(
        self,
        session_key: str,
        messages: Iterable[Union[Message, dict[str, Any]]],
        compaction_count: Optional[int],
        session_started_at: Optional[float],
    ) -> str:
        if compaction_count is None:
            compaction_count = self.scratch.compaction_count(session_key)
        snapshot = snapshot_resources(as_messages(messages), compaction_count, session_started_at)
        return build_resource_state(snapshot)

    def build_context(
        self,
        owner_key: str,
        session_key: str,
        message: str,
        compaction_count: Optional[int] = None,
        subagent_runs: Optional[Iterable[Union[SubagentRun, dict[str, Any]]]] = None,
        messages: Optional[Iterable[Union[Message, dict[str, Any]]]] = None,
        session_started_at: Optional[float] = None,
    ) -> Optional[str]:
        """Assemble the injection blocks relevant to the next message.

        Corrections, session state, the execution plan and the scratch pad
        are always considered; task, failure, alert and sub-agent blocks are
        added when the message's tags call for them and pure chat does not
        exclude them. When the current transcript is passed as ``messages``,
        a resource-state block closes the context.

        Returns:
            Concatenated markdown blocks, or None if nothing applies
        """
        classification = classify_message(message)
        excluded = resolve_context_exclusions(classification)
        runs = [
            r if isinstance(r, SubagentRun) else SubagentRun.from_dict(r)
            for r in (subagent_runs or [])
        ]

        builders: list[tuple[str, Any]] = [
            ("CORRECTIONS", lambda: self.corrections.read_corrections_for_injection(owner_key, query=message)),
            ("SESSION_STATE", lambda: self.session_state.read_state_for_injection(owner_key)),
            ("EXECUTION_PLAN", lambda: self.plans.read_plan_for_injection(session_key)),
        ]
        if classification.has(ContextTag.TASKS):
            builders.append(("TASK_LEDGER", lambda: self.tasks.read_tasks_for_injection(owner_key)))
        if classification.has(ContextTag.TOOL_FAILURES) or classification.has(ContextTag.TOOLS):
            builders.append(
                ("TOOL_FAILURES", lambda: self.tool_failures.read_tool_failures_for_injection(owner_key))
            )
        if classification.has(ContextTag.PROACTIVE):
            builders.append(
                ("PROACTIVE_ALERTS", lambda: self.triggers.evaluate(owner_key, runs).injection_text)
            )
        if classification.has(ContextTag.SUBAGENTS):
            builders.append(("SUBAGENT_STATUS", lambda: build_subagent_status(runs)))
        builders.append(
            ("SCRATCH", lambda: self.scratch.read_scratch_for_injection(session_key, compaction_count))
        )
        if messages is not None:
            builders.append((
                "RESOURCE_STATE",
                lambda: self._resource_block(session_key, messages, compaction_count, session_started_at),
            ))

        blocks = []
        for name, build in builders:
            if name in excluded:
                continue
            try:
                block = build()
            except Exception as e:
                logger.warning(f"Injection block {name} failed: {e}")
                continue
            if block:
                blocks.append(block)

        if not blocks:
            return None
        return BLOCK_SEPARATOR.join(blocks)

    async def shutdown(self) -> None:
        """Wait for background work to finish."""
        await self.supervisor.drain()
