"""Proactive trigger evaluator.

Detects conditions the agent should act on without being asked:
- Deadlines: open tasks due within 24 hours or already overdue
- Stale tasks: open tasks not updated for more than 72 hours
- Repeated failures: tool failure patterns seen 3 or more times
- File changes: watched workspace files modified externally
- Stuck sub-agents: sub-agent runs active for more than 30 minutes

Each candidate has a key built from its type and the identity of what it
concerns (task id, failure pattern, file, run id), so a changing count or
elapsed time does not make it a new alert. A key that fired within the
cooldown window is suppressed; survivors are sorted by priority and capped.
Watch state lives in the global ``proactive-triggers.json`` and is
rewritten after every evaluation, so a missed write self-heals on the next
run.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Union

from workmem.memory.types import (
    TaskPriority,
    Trigger,
    TriggerPriority,
    TriggerType,
    utcnow,
)
from workmem.storage.documents import atomic_write_json
from workmem.storage.task_ledger import TaskLedger
from workmem.storage.tool_failures import ToolFailureStore

logger = logging.getLogger(__name__)

STATE_FILE = "proactive-triggers.json"
STATE_VERSION = 1
DEADLINE_WINDOW_HOURS = 24
HIGH_FAILURE_COUNT = 10
MTIME_TOLERANCE_SECONDS = 1.0

_PRIORITY_ICONS = {
    TriggerPriority.HIGH: "🔴",
    TriggerPriority.MEDIUM: "🟡",
    TriggerPriority.LOW: "🟢",
}


@dataclass
class SubagentRun:
    """A sub-agent run reported by the runtime (times in epoch seconds).

    ``outcome`` is the finished run's status: ok, error or timeout.
    """
    run_id: str
    task: str
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    label: Optional[str] = None
    outcome: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SubagentRun":
        outcome = data.get("outcome")
        if isinstance(outcome, dict):
            outcome = outcome.get("status")
        return cls(
            run_id=str(data.get("run_id") or data.get("runId") or ""),
            task=str(data.get("task", "")),
            started_at=data.get("started_at", data.get("startedAt")),
            ended_at=data.get("ended_at", data.get("endedAt")),
            label=data.get("label"),
            outcome=str(outcome) if outcome else None,
        )


@dataclass
class TriggerCheckResult:
    """Outcome of one evaluation.

    Attributes:
        triggers: Alerts that fired this run, highest priority first
        injection_text: Markdown block, or None when nothing fired
    """
    triggers: list[Trigger] = field(default_factory=list)
    injection_text: Optional[str] = None


class ProactiveTriggerEvaluator:
    """Evaluates trigger checks against the stores and the workspace.

    Args:
        state_dir: State root (holds proactive-triggers.json)
        task_ledger: Ledger to scan for stale and due tasks
        tool_failures: Failure store to scan for repeated failures
        workspace_dir: Workspace root holding the watched files
        watched_files: Workspace-relative file names to watch
        cooldown_hours: Minimum interval before the same key fires again
        stale_task_hours: Age at which an open task counts as stale
        stuck_subagent_minutes: Runtime at which a sub-agent counts as stuck
        failure_threshold: Failure count that raises an alert
        max_triggers: Maximum alerts per evaluation
        clock: Callable returning an aware UTC datetime (default: utcnow)
    """

    def __init__(
        self,
        state_dir: Path,
        task_ledger: TaskLedger,
        tool_failures: ToolFailureStore,
        workspace_dir: Path,
        watched_files: Iterable[str] = (),
        cooldown_hours: float = 4.0,
        stale_task_hours: float = 72.0,
        stuck_subagent_minutes: float = 30.0,
        failure_threshold: int = 3,
        max_triggers: int = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.state_path = Path(state_dir) / STATE_FILE
        self.task_ledger = task_ledger
        self.tool_failures = tool_failures
        self.workspace_dir = Path(workspace_dir)
        self.watched_files = list(watched_files)
        self.cooldown = timedelta(hours=cooldown_hours)
        self.stale_after = timedelta(hours=stale_task_hours)
        self.stuck_after = timedelta(minutes=stuck_subagent_minutes)
        self.failure_threshold = failure_threshold
        self.max_triggers = max_triggers
        self._clock = clock

    # =========================================================================
    # Watch state
    # =========================================================================

    def _empty_state(self) -> dict[str, Any]:
        return {"version": STATE_VERSION, "file_checksums": {}, "fired_triggers": {}, "last_run": 0}

    def read_state(self) -> dict[str, Any]:
        try:
            raw = json.loads(self.state_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return self._empty_state()
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Unreadable trigger state {self.state_path} ({e}); starting fresh")
            return self._empty_state()

        if not isinstance(raw, dict) or raw.get("version") != STATE_VERSION:
            logger.warning(f"Unsupported trigger state in {self.state_path}; starting fresh")
            return self._empty_state()
        raw.setdefault("file_checksums", {})
        raw.setdefault("fired_triggers", {})
        return raw

    def write_state(self, state: dict[str, Any]) -> None:
        atomic_write_json(self.state_path, state)

    # =========================================================================
    # Individual checks
    # =========================================================================

    def check_deadlines(self, owner_key: str, now: datetime) -> list[Trigger]:
        triggers = []
        window = timedelta(hours=DEADLINE_WINDOW_HOURS)
        for task in self.task_ledger.list_tasks(owner_key):
            if task.status.is_terminal or task.due_at is None:
                continue
            if task.due_at - now > window:
                continue
            due = task.due_at.strftime("%Y-%m-%d %H:%M UTC")
            overdue = task.due_at <= now
            urgent = overdue or task.priority in (TaskPriority.HIGH, TaskPriority.CRITICAL)
            message = (
                f'Task "{task.title}" is overdue (was due {due}).'
                if overdue
                else f'Task "{task.title}" is due soon ({due}).'
            )
            triggers.append(Trigger(
                type=TriggerType.DEADLINE,
                priority=TriggerPriority.HIGH if urgent else TriggerPriority.MEDIUM,
                message=message,
                detected_at=now,
                subject=task.id,
            ))
        return triggers

    def check_stale_tasks(self, owner_key: str, now: datetime) -> list[Trigger]:
        triggers = []
        for task in self.task_ledger.list_tasks(owner_key):
            if task.status.is_terminal:
                continue
            age = now - task.updated_at
            if age <= self.stale_after:
                continue
            urgent = task.priority in (TaskPriority.HIGH, TaskPriority.CRITICAL)
            triggers.append(Trigger(
                type=TriggerType.STALE_TASK,
                priority=TriggerPriority.HIGH if urgent else TriggerPriority.MEDIUM,
                message=(
                    f'Task "{task.title}" hasn\'t been updated in {age.days} days '
                    f"(status: {task.status.value}). Should this be completed, updated, or cancelled?"
                ),
                detected_at=now,
                subject=task.id,
            ))
        return triggers

    def check_repeated_failures(self, owner_key: str, now: datetime) -> list[Trigger]:
        triggers = []
        for failure in self.tool_failures.list_failures(owner_key):
            if failure.count < self.failure_threshold:
                continue
            triggers.append(Trigger(
                type=TriggerType.REPEATED_FAILURE,
                priority=TriggerPriority.HIGH if failure.count >= HIGH_FAILURE_COUNT else TriggerPriority.MEDIUM,
                message=(
                    f'Tool "{failure.tool_name}" has failed {failure.count} times with '
                    f"{failure.category.value} errors. Consider a permanent fix: {failure.lesson}"
                ),
                detected_at=now,
                subject=f"{failure.tool_name}:{failure.category.value}:{failure.pattern[:80]}",
            ))
        return triggers

    def check_file_changes(self, state: dict[str, Any], now: datetime) -> list[Trigger]:
        """Compare watched files against the last observation and update it."""
        triggers = []
        checksums = state["file_checksums"]
        for name in self.watched_files:
            try:
                stat = (self.workspace_dir / name).stat()
            except FileNotFoundError:
                checksums.pop(name, None)
                continue

            previous = checksums.get(name)
            if previous and (
                stat.st_size != previous["size"]
                or abs(stat.st_mtime - previous["mtime"]) > MTIME_TOLERANCE_SECONDS
            ):
                triggers.append(Trigger(
                    type=TriggerType.FILE_CHANGE,
                    priority=TriggerPriority.LOW,
                    message=f"{name} was modified externally. You may want to re-read it for updated instructions.",
                    detected_at=now,
                    subject=name,
                ))
            checksums[name] = {"size": stat.st_size, "mtime": stat.st_mtime}
        return triggers

    def check_stuck_subagents(self, runs: Iterable[SubagentRun], now: datetime) -> list[Trigger]:
        triggers = []
        now_ts = now.timestamp()
        for run in runs:
            if run.ended_at or not run.started_at:
                continue
            elapsed = now_ts - run.started_at
            if elapsed <= self.stuck_after.total_seconds():
                continue
            triggers.append(Trigger(
                type=TriggerType.STUCK_SUBAGENT,
                priority=TriggerPriority.HIGH,
                message=f'Sub-agent "{run.task[:80]}" has been running for {int(elapsed // 60)} minutes. It may be stuck.',
                detected_at=now,
                subject=run.run_id or run.task[:80],
            ))
        return triggers

    # =========================================================================
    # Evaluation
    # =========================================================================

    def evaluate(
        self,
        owner_key: str,
        subagent_runs: Optional[Iterable[Union[SubagentRun, dict[str, Any]]]] = None,
    ) -> TriggerCheckResult:
        """Run every check and return the alerts that should fire now.

        Never raises: failures are logged and reported as an empty result.

        Args:
            owner_key: Agent id whose stores are scanned
            subagent_runs: Active sub-agent runs from the runtime's registry

        Returns:
            TriggerCheckResult with fired triggers and the injection text
        """
        try:
            now = self._clock()
            state = self.read_state()

            candidates: list[Trigger] = []
            candidates.extend(self.check_deadlines(owner_key, now))
            candidates.extend(self.check_stale_tasks(owner_key, now))
            candidates.extend(self.check_repeated_failures(owner_key, now))
            candidates.extend(self.check_file_changes(state, now))
            if subagent_runs:
                runs = [r if isinstance(r, SubagentRun) else SubagentRun.from_dict(r) for r in subagent_runs]
                candidates.extend(self.check_stuck_subagents(runs, now))

            fired = state["fired_triggers"]
            now_ts = now.timestamp()
            cooldown = self.cooldown.total_seconds()
            fresh = [
                t for t in candidates
                if now_ts - fired.get(t.key, float("-inf")) >= cooldown
            ]
            fresh.sort(key=lambda t: t.priority.rank)
            selected = fresh[:self.max_triggers]

            for trigger in selected:
                fired[trigger.key] = now_ts
            for key in [k for k, ts in fired.items() if now_ts - ts > 2 * cooldown]:
                del fired[key]

            state["last_run"] = now_ts
            self.write_state(state)

            if not selected:
                return TriggerCheckResult()
            logger.info(f"{len(selected)} proactive trigger(s) fired for {owner_key}")
            return TriggerCheckResult(triggers=selected, injection_text=format_triggers(selected))
        except Exception as e:
            logger.warning(f"Proactive trigger evaluation failed: {e}")
            return TriggerCheckResult()


def format_triggers(triggers: list[Trigger]) -> Optional[str]:
    if not triggers:
        return None
    lines = [
        "## Proactive Alerts",
        "These conditions were detected automatically. Act on them if appropriate.",
        "",
    ]
    for trigger in triggers:
        lines.append(f"{_PRIORITY_ICONS[trigger.priority]} **{trigger.type.value}**: {trigger.message}")
    return "\n".join(lines)
