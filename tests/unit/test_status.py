"""Unit tests for the resource-state and sub-agent status blocks."""

import pytest

from workmem.memory.messages import AssistantMessage, TextBlock, ToolResultMessage, ToolUseBlock, UserMessage
from workmem.status import (
    ContextPressure,
    ResourceSnapshot,
    build_resource_state,
    build_subagent_status,
    estimate_context_pressure,
    format_duration,
    snapshot_resources,
)
from workmem.triggers import SubagentRun

NOW = 1_700_000_000.0


def short_session():
    return [
        UserMessage(text="Check the build"),
        AssistantMessage(blocks=[
            TextBlock(text="Running the checks."),
            ToolUseBlock(id="t1", name="exec", input={"command": "make test"}),
            ToolUseBlock(id="t2", name="web_search", input={"query": "flaky test"}),
        ]),
        ToolResultMessage(tool_call_id="t1", text="12 passed"),
    ]


class TestResourceState:
    """Tests for the resource snapshot and its rendering."""

    @pytest.mark.parametrize(
        "messages,compactions,expected",
        [
            (29, 0, ContextPressure.LOW),
            (30, 0, ContextPressure.MEDIUM),
            (10, 5, ContextPressure.HIGH),
            (89, 0, ContextPressure.HIGH),
            (90, 0, ContextPressure.CRITICAL),
        ],
    )
    def test_pressure_levels(self, messages, compactions, expected):
        assert estimate_context_pressure(messages, compactions) == expected

    def test_snapshot_counts(self):
        snapshot = snapshot_resources(short_session(), 0, session_started_at=NOW - 125, now=NOW)

        assert snapshot.message_count == 3
        assert snapshot.tool_call_count == 2
        assert snapshot.elapsed_minutes == 2
        assert snapshot.pressure == ContextPressure.LOW

    def test_render_low(self):
        snapshot = snapshot_resources(short_session(), 0, session_started_at=NOW - 125, now=NOW)

        assert build_resource_state(snapshot) == "## Resource State\n🟢 Context: low | 3 msgs | 2 tool calls | 2m elapsed"

    def test_compactions_and_unknown_start(self):
        one = build_resource_state(snapshot_resources(short_session(), 1))
        two = build_resource_state(snapshot_resources(short_session(), 2))

        assert one.endswith("| 1 compaction")
        assert two.endswith("| 2 compactions")
        assert "elapsed" not in one

    def test_high_and_critical_guidance(self):
        high = ResourceSnapshot(message_count=70, tool_call_count=5, compaction_count=0, pressure=ContextPressure.HIGH)
        critical = ResourceSnapshot(message_count=95, tool_call_count=9, compaction_count=0, pressure=ContextPressure.CRITICAL)

        assert "Context is filling up." in build_resource_state(high)
        assert build_resource_state(critical).startswith("## ⚠️ Resource State\n🔴 Context: critical")
        assert "**Context is nearly full.**" in build_resource_state(critical)


class TestFormatDuration:
    @pytest.mark.parametrize(
        "seconds,expected",
        [(42, "42s"), (420, "7m"), (7200, "2h"), (7500, "2h 5m"), (-5, "0s")],
    )
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected


class TestSubagentStatus:
    """Tests for running and recently completed sub-agent runs."""

    def test_running_and_completed(self):
        runs = [
            SubagentRun(run_id="r1", task="Crawl the docs site", started_at=NOW - 300, label="docs"),
            SubagentRun(run_id="r2", task="Summarize logs", started_at=NOW - 3600, ended_at=NOW - 1800, outcome="ok"),
            SubagentRun(run_id="r3", task="Flaky job", started_at=NOW - 7200, ended_at=NOW - 600, outcome="error"),
            SubagentRun(run_id="r4", task="Old job", started_at=NOW - 200000, ended_at=NOW - 100000, outcome="ok"),
        ]

        block = build_subagent_status(runs, now=NOW)

        assert block == "\n".join([
            "## Sub-agent Status",
            "",
            "### Running Now",
            "- **Crawl the docs site** (docs) `r1`: running for 5m",
            "",
            "### Recently Completed",
            "- ❌ Flaky job (took 1h 50m): 10m ago",
            "- ✅ Summarize logs (took 30m): 30m ago",
        ])

    def test_completed_capped_at_five(self):
        runs = [
            SubagentRun(run_id=f"r{i}", task=f"Job {i}", started_at=NOW - 1000, ended_at=NOW - 100 * i, outcome="ok")
            for i in range(1, 8)
        ]

        block = build_subagent_status(runs, now=NOW)

        assert block.count("✅") == 5
        assert "Job 1 " in block
        assert "Job 6" not in block

    def test_outcome_icons(self):
        runs = [
            SubagentRun(run_id="r1", task="Slow crawl", ended_at=NOW - 60, outcome="timeout"),
            SubagentRun(run_id="r2", task="Mystery", ended_at=NOW - 30),
        ]

        block = build_subagent_status(runs, now=NOW)

        assert "- ⏰ timeout Slow crawl: 1m ago" in block
        assert "- ❓ Mystery: 30s ago" in block

    def test_nothing_to_show(self):
        old = SubagentRun(run_id="r1", task="Old job", started_at=NOW - 200000, ended_at=NOW - 100000)

        assert build_subagent_status([], now=NOW) is None
        assert build_subagent_status([old], now=NOW) is None

    def test_from_dict_reads_outcome_and_label(self):
        run = SubagentRun.from_dict({
            "runId": "r5",
            "task": "Index repo",
            "label": "indexer",
            "outcome": {"status": "timeout"},
        })

        assert run.outcome == "timeout"
        assert run.label == "indexer"
