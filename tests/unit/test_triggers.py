"""Unit tests for the proactive trigger evaluator."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from workmem.memory.types import TriggerPriority, TriggerType
from workmem.storage.task_ledger import TaskLedger
from workmem.storage.tool_failures import ToolFailureStore
from workmem.triggers import ProactiveTriggerEvaluator, SubagentRun


class Clock:
    """Settable clock shared by the stores and the evaluator."""

    def __init__(self):
        self.now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def ledger(tmp_path, clock):
    return TaskLedger(tmp_path / "state", clock=clock)


@pytest.fixture
def failures(tmp_path, clock):
    return ToolFailureStore(tmp_path / "state", clock=clock)


@pytest.fixture
def workspace(tmp_path):
    path = tmp_path / "workspace"
    path.mkdir()
    return path


@pytest.fixture
def make_evaluator(tmp_path, ledger, failures, workspace, clock):
    def _make(**kwargs):
        return ProactiveTriggerEvaluator(
            tmp_path / "state", ledger, failures, workspace, clock=clock, **kwargs
        )
    return _make


class TestDeadlines:
    """Tests for deadline alerts."""

    def test_due_soon_is_medium(self, make_evaluator, ledger):
        ledger.create_task("main", "Send invoice", due_at="2025-03-01T18:00:00Z")

        result = make_evaluator().evaluate("main")

        assert len(result.triggers) == 1
        trigger = result.triggers[0]
        assert trigger.type == TriggerType.DEADLINE
        assert trigger.priority == TriggerPriority.MEDIUM
        assert trigger.message == 'Task "Send invoice" is due soon (2025-03-01 18:00 UTC).'

    def test_high_priority_due_soon_is_high(self, make_evaluator, ledger):
        ledger.create_task("main", "Renew TLS cert", priority="high", due_at="2025-03-02T06:00:00Z")

        result = make_evaluator().evaluate("main")

        assert result.triggers[0].priority == TriggerPriority.HIGH

    def test_overdue_is_high(self, make_evaluator, ledger):
        ledger.create_task("main", "Send invoice", due_at="2025-02-28T09:00:00Z")

        result = make_evaluator().evaluate("main")

        assert result.triggers[0].priority == TriggerPriority.HIGH
        assert "is overdue (was due 2025-02-28 09:00 UTC)" in result.triggers[0].message

    def test_far_and_finished_tasks_ignored(self, make_evaluator, ledger):
        ledger.create_task("main", "Quarterly review", due_at="2025-03-10T09:00:00Z")
        done = ledger.create_task("main", "Send invoice", due_at="2025-02-28T09:00:00Z")
        ledger.complete_task("main", done.id)

        assert make_evaluator().evaluate("main").triggers == []


class TestOtherChecks:
    """Tests for stale tasks, failures, file changes and sub-agents."""

    def test_stale_task(self, make_evaluator, ledger, clock):
        ledger.create_task("main", "Write postmortem")
        clock.advance(days=4)

        result = make_evaluator().evaluate("main")

        assert result.triggers[0].type == TriggerType.STALE_TASK
        assert "hasn't been updated in 4 days (status: active)" in result.triggers[0].message

    def test_recent_task_not_stale(self, make_evaluator, ledger, clock):
        ledger.create_task("main", "Write postmortem")
        clock.advance(hours=71)

        assert make_evaluator().evaluate("main").triggers == []

    def test_repeated_failure(self, make_evaluator, failures):
        for _ in range(3):
            failures.record_tool_failure("main", "web_search", "HTTP 429 Too Many Requests")

        result = make_evaluator().evaluate("main")

        trigger = result.triggers[0]
        assert trigger.type == TriggerType.REPEATED_FAILURE
        assert trigger.priority == TriggerPriority.MEDIUM
        assert trigger.message.startswith('Tool "web_search" has failed 3 times with rate_limit errors.')

    def test_below_failure_threshold(self, make_evaluator, failures):
        for _ in range(2):
            failures.record_tool_failure("main", "web_search", "HTTP 429 Too Many Requests")

        assert make_evaluator().evaluate("main").triggers == []

    def test_file_change_needs_prior_observation(self, make_evaluator, workspace):
        agents = workspace / "AGENTS.md"
        agents.write_text("# Rules\n")
        evaluator = make_evaluator(watched_files=["AGENTS.md", "MISSING.md"])

        assert evaluator.evaluate("main").triggers == []

        agents.write_text("# Rules\n\n- Always run the linter\n")
        result = evaluator.evaluate("main")

        assert len(result.triggers) == 1
        assert result.triggers[0].type == TriggerType.FILE_CHANGE
        assert result.triggers[0].priority == TriggerPriority.LOW
        assert result.triggers[0].message.startswith("AGENTS.md was modified externally.")

    def test_stuck_subagent(self, make_evaluator, clock):
        started = clock.now.timestamp() - 45 * 60
        runs = [
            {"runId": "r1", "task": "Crawl the docs site", "startedAt": started},
            {"runId": "r2", "task": "Summarize logs", "startedAt": started, "endedAt": started + 60},
            SubagentRun(run_id="r3", task="Quick lookup", started_at=clock.now.timestamp() - 60),
        ]

        result = make_evaluator().evaluate("main", subagent_runs=runs)

        assert len(result.triggers) == 1
        assert result.triggers[0].message == 'Sub-agent "Crawl the docs site" has been running for 45 minutes. It may be stuck.'


class TestEvaluation:
    """Tests for cooldown, ranking, capping and formatting."""

    def test_cooldown_suppresses_repeat(self, make_evaluator, failures, clock):
        for _ in range(3):
            failures.record_tool_failure("main", "web_search", "HTTP 429 Too Many Requests")
        evaluator = make_evaluator()

        assert len(evaluator.evaluate("main").triggers) == 1
        assert evaluator.evaluate("main").triggers == []

        clock.advance(hours=5)
        assert len(evaluator.evaluate("main").triggers) == 1

    def test_sorted_and_capped(self, make_evaluator, ledger, failures, clock):
        for _ in range(3):
            failures.record_tool_failure("main", "web_search", "HTTP 429 Too Many Requests")
        ledger.create_task("main", "Send invoice", due_at="2025-02-28T09:00:00Z")
        runs = [{"runId": "r1", "task": "Crawl", "startedAt": clock.now.timestamp() - 3600}]

        result = make_evaluator(max_triggers=2).evaluate("main", subagent_runs=runs)

        assert [t.type for t in result.triggers] == [TriggerType.DEADLINE, TriggerType.STUCK_SUBAGENT]

    def test_injection_text(self, make_evaluator, ledger):
        ledger.create_task("main", "Send invoice", due_at="2025-02-28T09:00:00Z")

        result = make_evaluator().evaluate("main")

        assert result.injection_text.startswith("## Proactive Alerts\n")
        assert "🔴 **deadline**: Task \"Send invoice\" is overdue" in result.injection_text

    def test_nothing_fired(self, make_evaluator):
        result = make_evaluator().evaluate("main")
        assert result.triggers == []
        assert result.injection_text is None

    def test_corrupt_state_starts_fresh(self, make_evaluator, tmp_path, ledger):
        state_file = tmp_path / "state" / "proactive-triggers.json"
        state_file.parent.mkdir(parents=True, exist_ok=True)
        state_file.write_text("{broken")
        ledger.create_task("main", "Send invoice", due_at="2025-02-28T09:00:00Z")

        result = make_evaluator().evaluate("main")

        assert len(result.triggers) == 1
        assert '"version": 1' in state_file.read_text()

    def test_growing_failure_count_stays_in_cooldown(self, make_evaluator, failures, clock):
        for _ in range(3):
            failures.record_tool_failure("main", "web_search", "HTTP 429 Too Many Requests")
        evaluator = make_evaluator()
        assert len(evaluator.evaluate("main").triggers) == 1

        clock.advance(minutes=1)
        failures.record_tool_failure("main", "web_search", "HTTP 429 Too Many Requests")

        assert evaluator.evaluate("main").triggers == []

    def test_elapsed_minutes_stay_in_cooldown(self, make_evaluator, clock):
        runs = [{"runId": "r1", "task": "Crawl docs", "startedAt": clock.now.timestamp() - 31 * 60}]
        evaluator = make_evaluator()
        assert "31 minutes" in evaluator.evaluate("main", subagent_runs=runs).triggers[0].message

        clock.advance(minutes=1)

        assert evaluator.evaluate("main", subagent_runs=runs).triggers == []

    def test_distinct_runs_fire_separately(self, make_evaluator, clock):
        started = clock.now.timestamp() - 40 * 60
        runs = [
            {"runId": "r1", "task": "Crawl docs", "startedAt": started},
            {"runId": "r2", "task": "Crawl docs", "startedAt": started},
        ]

        result = make_evaluator().evaluate("main", subagent_runs=runs)

        assert [t.key for t in result.triggers] == ["stuck_subagent:r1", "stuck_subagent:r2"]

    def test_expired_fired_keys_are_collected(self, make_evaluator, tmp_path, clock):
        state_file = tmp_path / "state" / "proactive-triggers.json"
        state_file.parent.mkdir(parents=True, exist_ok=True)
        now_ts = clock.now.timestamp()
        state_file.write_text(json.dumps({
            "version": 1,
            "file_checksums": {},
            "fired_triggers": {
                "deadline:old-task": now_ts - 9 * 3600,
                "deadline:recent-task": now_ts - 5 * 3600,
            },
            "last_run": 0,
        }))

        make_evaluator().evaluate("main")

        fired = json.loads(state_file.read_text())["fired_triggers"]
        assert fired == {"deadline:recent-task": now_ts - 5 * 3600}
