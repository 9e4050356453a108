"""Integration tests for the workmem MCP server.

These tests verify that the MCP server correctly exposes every store and
pipeline as tools and that the tools work end-to-end against a real
WorkingMemory rooted in a temporary directory.
"""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from workmem.__main__ import (
    call_tool_directly,
    compaction_extract_tool,
    corrections_tool,
    episode_log_tool,
    execution_plan_tool,
    hybrid_merge_tool,
    initialize_components,
    memory_context_tool,
    parse_arguments,
    proactive_check_tool,
    recall_depth_tool,
    scratch_capture_tool,
    session_state_tool,
    task_ledger_tool,
    tool_failure_record_tool,
)
from workmem.config import WorkmemSettings
from workmem.lifecycle import WorkingMemory


@pytest.fixture
def memory(tmp_path):
    """WorkingMemory with isolated state and workspace directories."""
    settings = WorkmemSettings(state_dir=tmp_path / "state", workspace_dir=tmp_path / "workspace")
    return WorkingMemory(settings)


def write_transcript(path: Path) -> Path:
    """A short transcript in the hook JSONL format with three tool calls."""
    entries = [
        {"type": "user", "message": {"role": "user", "content": "Deploy the docs site to staging"}},
        {"type": "assistant", "message": {"role": "assistant", "content": [
            {"type": "tool_use", "id": "c1", "name": "Bash", "input": {"command": "make docs"}},
        ]}},
        {"type": "user", "message": {"role": "user", "content": [
            {"type": "tool_result", "tool_use_id": "c1", "content": "built 42 pages"},
        ]}},
        {"type": "assistant", "message": {"role": "assistant", "content": [
            {"type": "tool_use", "id": "c2", "name": "Bash", "input": {"command": "rsync -a site/ staging:/srv"}},
        ]}},
        {"type": "user", "message": {"role": "user", "content": [
            {"type": "tool_result", "tool_use_id": "c2", "content": "sent 1.2MB"},
        ]}},
        {"type": "assistant", "message": {"role": "assistant", "content": [
            {"type": "tool_use", "id": "c3", "name": "WebFetch", "input": {"url": "https://staging.example.com"}},
        ]}},
        {"type": "user", "message": {"role": "user", "content": [
            {"type": "tool_result", "tool_use_id": "c3", "content": "200 OK"},
        ]}},
        {"type": "assistant", "message": {"role": "assistant", "content": "Deployed the docs site to staging successfully."}},
    ]
    path.write_text("\n".join(json.dumps(e) for e in entries) + "\n")
    return path


class TestWorkmemSettings:
    """Tests for WorkmemSettings configuration."""

    def test_default_settings(self):
        """Test that default settings are applied correctly."""
        settings = WorkmemSettings()

        assert settings.log_level == "INFO"
        assert settings.correction_max_entries == 500
        assert settings.task_max_active == 25
        assert settings.trigger_cooldown_hours == 4.0
        assert settings.recency_weight == 0.15
        assert "AGENTS.md" in settings.watched_files

    def test_env_override(self, monkeypatch, tmp_path):
        """Test that environment variables override defaults."""
        monkeypatch.setenv("WORKMEM_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("WORKMEM_STATE_DIR", str(tmp_path / "custom"))
        monkeypatch.setenv("WORKMEM_STALE_TASK_HOURS", "24")

        settings = WorkmemSettings()

        assert settings.log_level == "DEBUG"
        assert settings.resolve_state_dir() == (tmp_path / "custom").resolve()
        assert settings.stale_task_hours == 24.0

    def test_cli_overrides_settings(self, tmp_path):
        args = parse_arguments([
            "--state-dir", str(tmp_path / "state"),
            "--workspace-dir", str(tmp_path / "ws"),
        ])

        memory = initialize_components(args)

        assert memory.state_dir == (tmp_path / "state").resolve()
        assert memory.workspace_dir == (tmp_path / "ws").resolve()


class TestTaskAndStateTools:
    """Tests for the task ledger, session state and execution plan tools."""

    @pytest.mark.asyncio
    async def test_task_lifecycle(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            created = await task_ledger_tool(action="create", title="Migrate billing DB", priority="high")
            task_id = created["task"]["id"]

            updated = await task_ledger_tool(action="update", task_id=task_id, status="blocked", blocker="DBA review")
            listed = await task_ledger_tool(action="list")
            completed = await task_ledger_tool(action="complete", task_id=task_id)
            deleted = await task_ledger_tool(action="delete", task_id=task_id)

        assert created["success"] is True
        assert updated["task"]["status"] == "blocked"
        assert listed["count"] == 1
        assert completed["task"]["completed_at"] is not None
        assert deleted == {"success": True, "deleted": task_id}

    @pytest.mark.asyncio
    async def test_task_errors_are_typed(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            missing_id = await task_ledger_tool(action="get")
            unknown = await task_ledger_tool(action="get", task_id="deadbeef")
            bad_action = await task_ledger_tool(action="archive", task_id="deadbeef")

        assert missing_id["success"] is False
        assert missing_id["error_type"] == "ValidationError"
        assert unknown["error_type"] == "NotFoundError"
        assert bad_action["error_type"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_not_initialized(self):
        with patch("workmem.__main__.working_memory", None):
            result = await task_ledger_tool(action="list")

        assert result["success"] is False
        assert "not initialized" in result["error"]

    @pytest.mark.asyncio
    async def test_session_state(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            await session_state_tool(action="set", key="branch", value="feature/billing")
            got = await session_state_tool(action="get", key="branch")
            listed = await session_state_tool(action="list")
            too_long = await session_state_tool(action="set", key="notes", value="x" * 501)

        assert got["value"] == "feature/billing"
        assert listed["state"] == {"branch": "feature/billing"}
        assert too_long["error_type"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_execution_plan(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            await execution_plan_tool(action="create", session_key="s1", goal="Ship v2", steps=["Build", "Test"])
            updated = await execution_plan_tool(action="update", session_key="s1", step_id=1, status="done")
            cleared = await execution_plan_tool(action="clear", session_key="s1")
            empty = await execution_plan_tool(action="get", session_key="s1")

        assert [s["status"] for s in updated["plan"]["steps"]] == ["done", "in_progress"]
        assert cleared["cleared"] is True
        assert empty["plan"] is None


class TestLearningTools:
    """Tests for the corrections, failure and scratch tools."""

    @pytest.mark.asyncio
    async def test_corrections_add_search_delete(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            added = await corrections_tool(
                action="add",
                correction_text="Always deploy to staging before production",
                category="procedural",
                confidence=0.9,
            )
            found = await corrections_tool(action="search", query="deploy the billing service to production")
            deleted = await corrections_tool(action="delete", correction_id=added["correction"]["id"])
            listed = await corrections_tool(action="list")

        assert found["count"] == 1
        assert found["corrections"][0]["access_count"] == 1
        assert deleted["success"] is True
        assert listed["count"] == 0

    @pytest.mark.asyncio
    async def test_corrections_detect(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            detected = await corrections_tool(
                action="detect",
                user_message="No, that's wrong, it's actually the staging server",
                previous_agent_message="I deployed to the production server.",
            )
            ignored = await corrections_tool(action="detect", user_message="Thanks, that looks great")

        assert detected["detected"] is True
        assert detected["correction"]["agent_said"] == "I deployed to the production server."
        assert ignored["detected"] is False

    @pytest.mark.asyncio
    async def test_corrections_invalid_category(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            result = await corrections_tool(action="add", correction_text="Use tabs", category="style")

        assert result["error_type"] == "ValidationError"
        assert "Invalid category" in result["error"]

    @pytest.mark.asyncio
    async def test_tool_failure_record(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            first = await tool_failure_record_tool(tool_name="web_search", error_text="HTTP 429 Too Many Requests")
            second = await tool_failure_record_tool(tool_name="web_search", error_text="HTTP 429 Too Many Requests")
            noise = await tool_failure_record_tool(tool_name="exec", error_text="bad")

        assert first["failure"]["category"] == "rate_limit"
        assert second["failure"]["count"] == 2
        assert noise == {"success": True, "recorded": False, "failure": None}

    @pytest.mark.asyncio
    async def test_scratch_capture(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            captured = await scratch_capture_tool(
                session_key="s1", tool_name="web_search", output="Result: " + "billing docs " * 5
            )
            skipped = await scratch_capture_tool(session_key="s1", tool_name="write_file", output="x" * 100)

        assert captured["captured"] is True
        assert skipped["captured"] is False

    @pytest.mark.asyncio
    async def test_scratch_capture_returns_compressed_output(self, memory):
        output = "\n".join(f"compiling module {i:04d} ok" for i in range(200))

        with patch("workmem.__main__.working_memory", memory):
            result = await scratch_capture_tool(session_key="s1", tool_name="exec", output=output)

        assert result["captured"] is True
        assert "(160 lines omitted)" in result["compressed"]
        assert len(result["compressed"]) < len(output)


class TestPipelineTools:
    """Tests for compaction, episode, trigger and context tools."""

    @pytest.mark.asyncio
    async def test_compaction_extract_messages(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            result = await compaction_extract_tool(
                session_key="s1",
                messages=[{"role": "user", "content": "We decided to use PostgreSQL 16 for the billing service"}],
            )

        assert result["success"] is True
        assert result["facts_count"] >= 1
        assert Path(result["file_path"]).exists()
        assert memory.scratch.compaction_count("s1") == 1

    @pytest.mark.asyncio
    async def test_compaction_extract_requires_input(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            result = await compaction_extract_tool(session_key="s1")

        assert result["error_type"] == "ValidationError"

    @pytest.mark.asyncio
    async def test_episode_log_from_transcript(self, memory, tmp_path):
        transcript = write_transcript(tmp_path / "session.jsonl")

        with patch("workmem.__main__.working_memory", memory):
            result = await episode_log_tool(session_key="s1", transcript_path=str(transcript))

        assert result["episode_logged"] is True
        assert result["procedure_logged"] is True
        episode_text = Path(result["episode_file"]).read_text()
        assert "## Request\nDeploy the docs site to staging" in episode_text
        procedure_text = Path(result["procedure_file"]).read_text()
        assert "1. ✅ **Bash: make docs**" in procedure_text
        assert "3. ✅ **WebFetch: https://staging.example.com**" in procedure_text

    @pytest.mark.asyncio
    async def test_proactive_check(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            await task_ledger_tool(action="create", title="Send invoice", due_at="2020-01-01T00:00:00Z")
            result = await proactive_check_tool()

        assert result["triggers"][0]["type"] == "deadline"
        assert result["triggers"][0]["priority"] == "high"
        assert result["injection_text"].startswith("## Proactive Alerts")

    @pytest.mark.asyncio
    async def test_memory_context_injects_matching_correction(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            await corrections_tool(
                action="add",
                correction_text="Always deploy to staging before production",
                category="procedural",
                confidence=0.9,
            )
            result = await memory_context_tool(
                message="deploy the billing service to production", session_key="s1"
            )

        assert result["context"].startswith("## Learned Corrections")
        assert "Always deploy to staging before production" in result["context"]
        assert "tools" in result["tags"]
        assert result["minimal_context"] is False

    @pytest.mark.asyncio
    async def test_memory_context_chat_skips_tasks(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            await task_ledger_tool(action="create", title="Migrate billing DB")
            chat = await memory_context_tool(message="hi", session_key="s1")
            work = await memory_context_tool(message="what's the status of my tasks?", session_key="s1")

        assert chat["context"] is None
        assert chat["tags"] == ["chat"]
        assert chat["minimal_context"] is True
        assert "## Active Tasks (Task Ledger)" in work["context"]

    @pytest.mark.asyncio
    async def test_memory_context_records_correction(self, memory):
        with patch("workmem.__main__.working_memory", memory):
            await memory_context_tool(
                message="No, that's wrong, it's actually the staging server",
                session_key="s1",
                previous_agent_message="I deployed to the production server.",
            )

        assert len(memory.corrections.get_corrections("main")) == 1

    @pytest.mark.asyncio
    async def test_memory_context_resource_state_from_transcript(self, memory, tmp_path):
        transcript = write_transcript(tmp_path / "session.jsonl")

        with patch("workmem.__main__.working_memory", memory):
            result = await memory_context_tool(
                message="hi", session_key="s1", transcript_path=str(transcript)
            )

        assert result["context"].startswith("## Resource State\n🟢 Context: low")
        assert "3 tool calls" in result["context"]


class TestRetrievalTools:
    """Tests for recall depth and hybrid merge."""

    @pytest.mark.asyncio
    async def test_recall_depth(self):
        none = await recall_depth_tool(prompt="hi")
        deep = await recall_depth_tool(prompt="what did we decide about the migration plan last week")

        assert none["depth"] == "none"
        assert none["max_results"] == 0
        assert deep["depth"] == "deep"
        assert deep["max_results"] == 10

    @pytest.mark.asyncio
    async def test_hybrid_merge_without_server(self):
        with patch("workmem.__main__.working_memory", None):
            result = await hybrid_merge_tool(
                vector=[{"id": "a", "path": "a.md", "start_line": 1, "end_line": 5,
                         "snippet": "alpha", "source": "memory", "vector_score": 0.2}],
                keyword=[{"id": "b", "path": "b.md", "start_line": 1, "end_line": 5,
                          "snippet": "beta", "source": "memory", "text_score": 0.9}],
            )

        assert result["count"] == 2
        scores = [r["score"] for r in result["results"]]
        assert scores == sorted(scores, reverse=True)


class TestDirectCall:
    """Tests for call_tool_directly, the hook entry point."""

    @pytest.mark.asyncio
    async def test_successful_call(self, memory):
        with patch("workmem.__main__.working_memory", None):
            result = await call_tool_directly("recall_depth", json.dumps({"prompt": "run the tests"}), memory)

        assert result["depth"] == "shallow"

    @pytest.mark.asyncio
    async def test_invalid_json(self, memory):
        with patch("workmem.__main__.working_memory", None):
            result = await call_tool_directly("recall_depth", "{not json", memory)

        assert result["success"] is False
        assert result["error"].startswith("Invalid JSON arguments")

    @pytest.mark.asyncio
    async def test_non_object_arguments(self, memory):
        with patch("workmem.__main__.working_memory", None):
            result = await call_tool_directly("recall_depth", "[1, 2]", memory)

        assert result["error"] == "Tool arguments must be a JSON object"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, memory):
        with patch("workmem.__main__.working_memory", None):
            result = await call_tool_directly("memory_store", "{}", memory)

        assert result["error"].startswith("Unknown tool: memory_store")

    @pytest.mark.asyncio
    async def test_bad_arguments(self, memory):
        with patch("workmem.__main__.working_memory", None):
            result = await call_tool_directly("task_ledger", json.dumps({"verb": "list"}), memory)

        assert result["error"].startswith("Invalid arguments for task_ledger")
