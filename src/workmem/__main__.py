"""MCP server entry point for the workmem working-memory engine.

This module provides the main entry point for the MCP server with:
- CLI argument parsing for flexible configuration
- Pydantic Settings for environment variable support
- Tool registration for every store, pipeline and classifier
- Direct tool invocation (--call) for Claude Code hooks
- Signal handling for graceful shutdown
- Logging to stderr (CRITICAL for MCP stdio)

Usage:
    python -m workmem [options]

    Options:
        --state-dir PATH        Root directory for store documents
        --workspace-dir PATH    Workspace root for memory/ markdown artifacts
        --log-level LEVEL       Logging level (default: INFO)
        --call TOOL --args JSON Invoke one tool and print its JSON result
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Optional

from mcp.server.fastmcp import FastMCP

from workmem.classify.context import classify_message
from workmem.classify.recall_depth import RECALL_PARAMS, classify_recall_depth
from workmem.compression import compress_tool_result
from workmem.config import WorkmemSettings
from workmem.errors import ValidationError, WorkmemError
from workmem.extraction.episodes import log_episode
from workmem.extraction.procedures import log_procedure
from workmem.lifecycle import WorkingMemory, as_messages
from workmem.memory.messages import Message, load_transcript
from workmem.memory.types import CorrectionCategory
from workmem.storage.hybrid import merge_hybrid_results

# Initialize FastMCP server
mcp = FastMCP("workmem")

# Global components (initialized in main)
working_memory: Optional[WorkingMemory] = None

logger = logging.getLogger(__name__)

NOT_INITIALIZED = {"success": False, "error": "Server not initialized"}


def setup_logging(log_level: str) -> None:
    """Configure logging to stderr (never stdout for MCP servers).

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Note:
        STDIO-based MCP servers must never write to stdout as it corrupts
        JSON-RPC messages. All logging goes to stderr.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,  # Critical: never use stdout in MCP servers
    )

    logger.info(f"Logging initialized at {log_level.upper()} level")


def parse_arguments(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse CLI arguments with configuration defaults.

    Returns:
        Parsed arguments namespace

    Configuration precedence:
        1. CLI arguments (highest priority)
        2. Environment variables (WORKMEM_ prefix)
        3. Defaults (lowest priority)
    """
    settings = WorkmemSettings()

    parser = argparse.ArgumentParser(
        description="workmem MCP server for agent working memory",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    # Direct tool invocation mode (for hooks)
    parser.add_argument(
        "--call",
        type=str,
        metavar="TOOL_NAME",
        help=f"Directly invoke a tool by name ({', '.join(TOOL_NAMES)})",
    )
    parser.add_argument(
        "--args",
        type=str,
        default="{}",
        help="JSON arguments for the tool (used with --call)",
    )

    parser.add_argument(
        "--state-dir",
        type=str,
        default=str(settings.state_dir) if settings.state_dir else None,
        help="Store document root (default: ~/.workmem/state)",
    )
    parser.add_argument(
        "--workspace-dir",
        type=str,
        default=str(settings.workspace_dir) if settings.workspace_dir else None,
        help="Workspace root for memory/ artifacts (default: current directory)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )

    return parser.parse_args(argv)


def initialize_components(args: argparse.Namespace) -> WorkingMemory:
    """Build the WorkingMemory facade from CLI arguments and settings.

    Args:
        args: Parsed CLI arguments

    Returns:
        Configured WorkingMemory instance
    """
    logger.info("Initializing components...")

    overrides: dict[str, Any] = {}
    if args.state_dir:
        overrides["state_dir"] = Path(args.state_dir)
    if args.workspace_dir:
        overrides["workspace_dir"] = Path(args.workspace_dir)
    settings = WorkmemSettings().model_copy(update=overrides)

    memory = WorkingMemory(settings)
    logger.info(
        f"Configuration: state_dir={memory.state_dir}, workspace_dir={memory.workspace_dir}"
    )
    return memory


def _failure(tool_name: str, error: Exception) -> dict[str, Any]:
    """Map an exception to the structured tool error result."""
    if isinstance(error, WorkmemError):
        return {"success": False, "error": str(error), "error_type": type(error).__name__}
    logger.error(f"{tool_name} failed: {error}", exc_info=True)
    return {"success": False, "error": str(error), "error_type": "InternalError"}


def _load_messages(
    messages: Optional[list[dict[str, Any]]],
    transcript_path: Optional[str],
) -> list[Message]:
    if messages:
        return as_messages(messages)
    if transcript_path:
        return load_transcript(Path(transcript_path))
    raise ValidationError("Either messages or transcript_path is required")


# =============================================================================
# MCP Tool Handlers - Task Ledger
# =============================================================================


@mcp.tool(name="task_ledger")
async def task_ledger_tool(
    action: str,
    agent_id: str = "main",
    task_id: Optional[str] = None,
    title: Optional[str] = None,
    priority: Optional[str] = None,
    status: Optional[str] = None,
    context: Optional[str] = None,
    next_action: Optional[str] = None,
    blocker: Optional[str] = None,
    waiting_for: Optional[str] = None,
    tags: Optional[list[str]] = None,
    parent_id: Optional[str] = None,
    due_at: Optional[str] = None,
    tag: Optional[str] = None,
) -> dict[str, Any]:
    """Manage the persistent task ledger.

    Args:
        action: One of create, update, complete, list, get, delete
        agent_id: Ledger owner (default: 'main')
        task_id: Task id (update, complete, get, delete)
        title: Task title (create, update)
        priority: critical, high, normal or low
        status: active, blocked, waiting, done or cancelled (update, list filter)
        context: Background notes
        next_action: The immediate next step
        blocker: What blocks the task
        waiting_for: What the task waits on
        tags: Labels
        parent_id: Advisory parent task id
        due_at: ISO-8601 deadline
        tag: Tag filter (list)

    Returns:
        Result dictionary with success and the affected task(s), or error
    """
    if working_memory is None:
        return NOT_INITIALIZED

    ledger = working_memory.tasks
    try:
        if action == "create":
            task = ledger.create_task(
                agent_id,
                title=title or "",
                priority=priority or "normal",
                context=context or "",
                next_action=next_action,
                tags=tags,
                parent_id=parent_id,
                due_at=due_at,
            )
            return {"success": True, "task": task.to_dict()}

        if action == "list":
            tasks = ledger.list_tasks(agent_id, status=status, tag=tag)
            return {"success": True, "tasks": [t.to_dict() for t in tasks], "count": len(tasks)}

        if not task_id:
            raise ValidationError(f"task_id is required for '{action}'")

        if action == "get":
            return {"success": True, "task": ledger.get_task(agent_id, task_id).to_dict()}
        if action == "complete":
            return {"success": True, "task": ledger.complete_task(agent_id, task_id).to_dict()}
        if action == "delete":
            ledger.delete_task(agent_id, task_id)
            return {"success": True, "deleted": task_id}
        if action == "update":
            candidates = {
                "title": title,
                "priority": priority,
                "status": status,
                "context": context,
                "next_action": next_action,
                "blocker": blocker,
                "waiting_for": waiting_for,
                "tags": tags,
                "parent_id": parent_id,
                "due_at": due_at,
            }
            changes = {k: v for k, v in candidates.items() if v is not None}
            if not changes:
                raise ValidationError("No fields to update")
            return {"success": True, "task": ledger.update_task(agent_id, task_id, **changes).to_dict()}

        raise ValidationError(f"Unknown action: {action}")
    except Exception as e:
        return _failure("task_ledger", e)


# =============================================================================
# MCP Tool Handlers - Session State & Execution Plan
# =============================================================================


@mcp.tool(name="session_state")
async def session_state_tool(
    action: str,
    agent_id: str = "main",
    key: Optional[str] = None,
    value: Optional[str] = None,
) -> dict[str, Any]:
    """Small key/value state that survives compaction.

    Limits: 20 keys, 500 characters per value, 10KB total.

    Args:
        action: One of get, set, delete, list
        agent_id: State owner (default: 'main')
        key: Key name (get, set, delete)
        value: Value to store (set)

    Returns:
        Result dictionary with success and the value(s), or error
    """
    if working_memory is None:
        return NOT_INITIALIZED

    store = working_memory.session_state
    try:
        if action == "list":
            return {"success": True, "state": store.list(agent_id)}
        if not key:
            raise ValidationError(f"key is required for '{action}'")
        if action == "get":
            return {"success": True, "key": key, "value": store.get(agent_id, key)}
        if action == "set":
            entry = store.set(agent_id, key, value)
            return {"success": True, "key": entry["key"], "value": entry["value"]}
        if action == "delete":
            store.delete(agent_id, key)
            return {"success": True, "deleted": key}
        raise ValidationError(f"Unknown action: {action}")
    except Exception as e:
        return _failure("session_state", e)


@mcp.tool(name="execution_plan")
async def execution_plan_tool(
    action: str,
    session_key: str,
    goal: Optional[str] = None,
    steps: Optional[list[str]] = None,
    step_id: Optional[int] = None,
    status: Optional[str] = None,
) -> dict[str, Any]:
    """Declare and track a multi-step plan for the session.

    Args:
        action: One of create, update, get, clear
        session_key: Session the plan belongs to
        goal: Plan goal (create)
        steps: Step descriptions in order (create)
        step_id: Step number (update)
        status: pending, in_progress, done or skipped (update)

    Returns:
        Result dictionary with success and the plan, or error
    """
    if working_memory is None:
        return NOT_INITIALIZED

    plans = working_memory.plans
    try:
        if action == "create":
            plan = plans.create(session_key, goal or "", steps or [])
            return {"success": True, "plan": plan.to_dict()}
        if action == "get":
            plan = plans.get(session_key)
            return {"success": True, "plan": plan.to_dict() if plan else None}
        if action == "update":
            if step_id is None or not status:
                raise ValidationError("step_id and status are required for 'update'")
            plan = plans.update(session_key, step_id, status)
            return {"success": True, "plan": plan.to_dict()}
        if action == "clear":
            return {"success": True, "cleared": plans.clear(session_key)}
        raise ValidationError(f"Unknown action: {action}")
    except Exception as e:
        return _failure("execution_plan", e)


# =============================================================================
# MCP Tool Handlers - Corrections & Tool Failures
# =============================================================================


@mcp.tool(name="corrections")
async def corrections_tool(
    action: str,
    agent_id: str = "main",
    query: Optional[str] = None,
    correction_text: Optional[str] = None,
    rule: Optional[str] = None,
    category: str = "factual",
    confidence: float = 0.5,
    context: str = "",
    agent_said: str = "",
    user_message: Optional[str] = None,
    previous_agent_message: Optional[str] = None,
    correction_id: Optional[str] = None,
    limit: int = 5,
) -> dict[str, Any]:
    """Learned corrections: store, detect, search and manage.

    Args:
        action: One of add, detect, search, list, delete, prune, clear
        agent_id: Store owner (default: 'main')
        query: Search text (search)
        correction_text: The user's correction (add)
        rule: Derived rule (add, optional)
        category: factual, behavioral, preference or procedural (add)
        confidence: 0.0 to 1.0 (add)
        context: What was being discussed (add)
        agent_said: The corrected statement (add)
        user_message: Message to run the detector on (detect)
        previous_agent_message: Preceding assistant message (detect)
        correction_id: Entry id (delete)
        limit: Maximum search results (search)

    Returns:
        Result dictionary with success and entries, or error
    """
    if working_memory is None:
        return NOT_INITIALIZED

    store = working_memory.corrections
    try:
        if action == "add":
            try:
                parsed_category = CorrectionCategory(category)
            except ValueError:
                raise ValidationError(
                    f"Invalid category: {category}. "
                    f"Must be one of: {[c.value for c in CorrectionCategory]}"
                )
            entry = store.add_correction(
                agent_id,
                correction_text=correction_text or "",
                rule=rule,
                category=parsed_category,
                confidence=confidence,
                context=context,
                agent_said=agent_said,
            )
            return {"success": True, "correction": entry.to_dict()}
        if action == "detect":
            if not user_message:
                raise ValidationError("user_message is required for 'detect'")
            entry = store.record_correction(agent_id, user_message, previous_agent_message, context)
            return {
                "success": True,
                "detected": entry is not None,
                "correction": entry.to_dict() if entry else None,
            }
        if action == "search":
            entries = store.search_corrections(agent_id, query or "", limit=limit)
            return {"success": True, "corrections": [e.to_dict() for e in entries], "count": len(entries)}
        if action == "list":
            entries = store.get_corrections(agent_id)
            return {"success": True, "corrections": [e.to_dict() for e in entries], "count": len(entries)}
        if action == "delete":
            if not correction_id:
                raise ValidationError("correction_id is required for 'delete'")
            store.delete_correction(agent_id, correction_id)
            return {"success": True, "deleted": correction_id}
        if action == "prune":
            return {"success": True, "removed": store.prune(agent_id)}
        if action == "clear":
            return {"success": True, "removed": store.clear(agent_id)}
        raise ValidationError(f"Unknown action: {action}")
    except Exception as e:
        return _failure("corrections", e)


@mcp.tool(name="tool_failure_record")
async def tool_failure_record_tool(
    tool_name: str,
    error_text: str,
    agent_id: str = "main",
) -> dict[str, Any]:
    """Classify a tool error and fold it into the failure store.

    Args:
        tool_name: Name of the failing tool
        error_text: Raw error output
        agent_id: Store owner (default: 'main')

    Returns:
        Result dictionary with recorded flag and the failure record
    """
    if working_memory is None:
        return NOT_INITIALIZED

    try:
        record = working_memory.tool_failures.record_tool_failure(agent_id, tool_name, error_text)
        return {
            "success": True,
            "recorded": record is not None,
            "failure": record.to_dict() if record else None,
        }
    except Exception as e:
        return _failure("tool_failure_record", e)


# =============================================================================
# MCP Tool Handlers - Lifecycle Pipelines
# =============================================================================


@mcp.tool(name="scratch_capture")
async def scratch_capture_tool(
    session_key: str,
    tool_name: str,
    output: str,
    is_error: bool = False,
    context: Optional[str] = None,
) -> dict[str, Any]:
    """Capture a data-producing tool result into the session scratch pad.

    Args:
        session_key: Session id
        tool_name: Producing tool (only allow-listed tools are captured)
        output: Tool output text
        is_error: Whether the tool reported an error (errors are never captured)
        context: Short description such as the query or URL

    Returns:
        Result dictionary with captured flag and the compressed output to
        show in place of the full text
    """
    if working_memory is None:
        return NOT_INITIALIZED

    try:
        entry = working_memory.scratch.capture(session_key, tool_name, output, is_error, context)
        return {
            "success": True,
            "captured": entry is not None,
            "compressed": compress_tool_result(tool_name, output),
        }
    except Exception as e:
        return _failure("scratch_capture", e)


@mcp.tool(name="compaction_extract")
async def compaction_extract_tool(
    session_key: str,
    messages: Optional[list[dict[str, Any]]] = None,
    transcript_path: Optional[str] = None,
) -> dict[str, Any]:
    """Extract facts from a transcript that is about to be compacted.

    Args:
        session_key: Session id
        messages: Role-tagged message dicts
        transcript_path: JSONL transcript file (used when messages is empty)

    Returns:
        Result dictionary with facts_count and file_path
    """
    if working_memory is None:
        return NOT_INITIALIZED

    try:
        typed = _load_messages(messages, transcript_path)
        result = working_memory.on_compaction(session_key, typed)
        await working_memory.supervisor.drain()
        return {
            "success": True,
            "facts_count": result.facts_count,
            "file_path": result.file_path,
        }
    except Exception as e:
        return _failure("compaction_extract", e)


@mcp.tool(name="episode_log")
async def episode_log_tool(
    session_key: str,
    agent_id: str = "main",
    messages: Optional[list[dict[str, Any]]] = None,
    transcript_path: Optional[str] = None,
    success: bool = True,
    error: Optional[str] = None,
    duration_ms: Optional[int] = None,
) -> dict[str, Any]:
    """Log a finished run as an episode and, when it qualifies, a procedure.

    Args:
        session_key: Session id
        agent_id: Agent id (default: 'main')
        messages: Role-tagged message dicts
        transcript_path: JSONL transcript file (used when messages is empty)
        success: Whether the run succeeded
        error: Error message if it failed
        duration_ms: Run duration

    Returns:
        Result dictionary with episode_logged and procedure_logged flags
    """
    if working_memory is None:
        return NOT_INITIALIZED

    try:
        typed = _load_messages(messages, transcript_path)
        workspace = working_memory.workspace_dir
        episode = await asyncio.to_thread(
            log_episode,
            typed,
            success,
            workspace,
            error=error,
            duration_ms=duration_ms,
            session_key=session_key,
            agent_id=agent_id,
        )
        procedure = await asyncio.to_thread(log_procedure, typed, success, workspace)
        return {
            "success": True,
            "episode_logged": episode.logged,
            "episode_file": episode.file_path,
            "procedure_logged": procedure.logged,
            "procedure_file": procedure.file_path,
        }
    except Exception as e:
        return _failure("episode_log", e)


@mcp.tool(name="proactive_check")
async def proactive_check_tool(
    agent_id: str = "main",
    subagent_runs: Optional[list[dict[str, Any]]] = None,
) -> dict[str, Any]:
    """Evaluate proactive triggers (deadlines, stale tasks, failures, file changes, stuck sub-agents).

    Args:
        agent_id: Agent id whose stores are scanned (default: 'main')
        subagent_runs: Active runs as dicts with run_id, task, started_at, ended_at

    Returns:
        Result dictionary with fired triggers and injection_text
    """
    if working_memory is None:
        return NOT_INITIALIZED

    try:
        result = working_memory.triggers.evaluate(agent_id, subagent_runs)
        return {
            "success": True,
            "triggers": [
                {
                    "type": t.type.value,
                    "priority": t.priority.value,
                    "message": t.message,
                    "detected_at": t.detected_at.isoformat(),
                }
                for t in result.triggers
            ],
            "injection_text": result.injection_text,
        }
    except Exception as e:
        return _failure("proactive_check", e)


@mcp.tool(name="memory_context")
async def memory_context_tool(
    message: str,
    session_key: str,
    agent_id: str = "main",
    compaction_count: Optional[int] = None,
    subagent_runs: Optional[list[dict[str, Any]]] = None,
    previous_agent_message: Optional[str] = None,
    transcript_path: Optional[str] = None,
    session_started_at: Optional[float] = None,
) -> dict[str, Any]:
    """Assemble the working-memory context for the next turn.

    Also runs correction detection on the message in the background.

    Args:
        message: The incoming user message
        session_key: Session id
        agent_id: Agent id (default: 'main')
        compaction_count: Compactions so far (default: the stored counter)
        subagent_runs: Active sub-agent runs
        previous_agent_message: The last assistant message, for correction detection
        transcript_path: JSONL transcript of the session; adds a resource-state block
        session_started_at: Session start in epoch seconds (resource state only)

    Returns:
        Result dictionary with context markdown (or None) and the message tags
    """
    if working_memory is None:
        return NOT_INITIALIZED

    try:
        working_memory.on_user_message(agent_id, message, previous_agent_message)
        messages = load_transcript(Path(transcript_path)) if transcript_path else None
        context = working_memory.build_context(
            agent_id,
            session_key,
            message,
            compaction_count,
            subagent_runs,
            messages=messages,
            session_started_at=session_started_at,
        )
        classification = classify_message(message)
        await working_memory.supervisor.drain()
        return {
            "success": True,
            "context": context,
            "tags": sorted(t.value for t in classification.tags),
            "minimal_context": classification.minimal_context,
        }
    except Exception as e:
        return _failure("memory_context", e)


# =============================================================================
# MCP Tool Handlers - Retrieval
# =============================================================================


@mcp.tool(name="recall_depth")
async def recall_depth_tool(prompt: str) -> dict[str, Any]:
    """Decide how much memory retrieval a prompt warrants.

    Args:
        prompt: The incoming prompt

    Returns:
        Result dictionary with depth and its retrieval parameters
    """
    try:
        depth = classify_recall_depth(prompt)
        params = RECALL_PARAMS[depth]
        return {
            "success": True,
            "depth": depth.value,
            "max_results": params.max_results,
            "min_score": params.min_score,
            "max_chars": params.max_chars,
        }
    except Exception as e:
        return _failure("recall_depth", e)


@mcp.tool(name="hybrid_merge")
async def hybrid_merge_tool(
    vector: list[dict[str, Any]],
    keyword: list[dict[str, Any]],
    vector_weight: float = 0.7,
    text_weight: float = 0.3,
    recency_weight: Optional[float] = None,
) -> dict[str, Any]:
    """Fuse vector and keyword search hits into one ranked list.

    Args:
        vector: Hits with id, path, start_line, end_line, snippet, source, vector_score, updated_at
            (updated_at is epoch seconds, not milliseconds)
        keyword: Hits with the same fields but text_score instead of vector_score
        vector_weight: Relative weight of vector similarity
        text_weight: Relative weight of keyword relevance
        recency_weight: Relative weight of recency (default: configured recency_weight)

    Returns:
        Result dictionary with merged results sorted by score
    """
    if recency_weight is None:
        recency_weight = (
            working_memory.settings.recency_weight if working_memory is not None else 0.15
        )
    try:
        results = merge_hybrid_results(vector, keyword, vector_weight, text_weight, recency_weight)
        return {"success": True, "results": [asdict(r) for r in results], "count": len(results)}
    except Exception as e:
        return _failure("hybrid_merge", e)


# =============================================================================
# Direct Tool Invocation (for hooks)
# =============================================================================

TOOL_HANDLERS = {
    "task_ledger": task_ledger_tool,
    "session_state": session_state_tool,
    "execution_plan": execution_plan_tool,
    "corrections": corrections_tool,
    "tool_failure_record": tool_failure_record_tool,
    "scratch_capture": scratch_capture_tool,
    "compaction_extract": compaction_extract_tool,
    "episode_log": episode_log_tool,
    "proactive_check": proactive_check_tool,
    "memory_context": memory_context_tool,
    "recall_depth": recall_depth_tool,
    "hybrid_merge": hybrid_merge_tool,
}

TOOL_NAMES = list(TOOL_HANDLERS)


async def call_tool_directly(
    tool_name: str,
    args_json: str,
    memory: WorkingMemory,
) -> dict[str, Any]:
    """Directly invoke a tool without MCP protocol overhead.

    This is used by Claude Code hooks for fast, direct tool invocation.

    Args:
        tool_name: Name of the tool to call (task_ledger, memory_context, etc.)
        args_json: JSON string of arguments for the tool
        memory: Initialized WorkingMemory

    Returns:
        Tool result as dictionary
    """
    global working_memory
    working_memory = memory

    try:
        tool_args = json.loads(args_json)
    except json.JSONDecodeError as e:
        return {"success": False, "error": f"Invalid JSON arguments: {e}"}

    if not isinstance(tool_args, dict):
        return {"success": False, "error": "Tool arguments must be a JSON object"}

    handler = TOOL_HANDLERS.get(tool_name)
    if not handler:
        return {
            "success": False,
            "error": f"Unknown tool: {tool_name}. Available: {TOOL_NAMES}",
        }

    try:
        return await handler(**tool_args)
    except TypeError as e:
        return {"success": False, "error": f"Invalid arguments for {tool_name}: {e}"}
    except Exception as e:
        return {"success": False, "error": f"Tool execution failed: {e}"}


def run_direct_call(args: argparse.Namespace) -> None:
    """Run a direct tool call and print result to stdout.

    Args:
        args: Parsed CLI arguments with --call and --args
    """
    setup_logging("WARNING")  # Quiet logging for direct calls

    async def _run():
        memory = initialize_components(args)
        try:
            result = await call_tool_directly(args.call, args.args, memory)
            print(json.dumps(result, default=str))
        finally:
            await memory.shutdown()

    asyncio.run(_run())


# =============================================================================
# Signal Handling
# =============================================================================


def handle_shutdown(signum: int, frame: Any) -> None:
    """Handle SIGINT/SIGTERM for graceful shutdown.

    Args:
        signum: Signal number
        frame: Current stack frame
    """
    logger.info(f"Received signal {signum}, shutting down gracefully...")
    sys.exit(0)


# =============================================================================
# Main Entry Point
# =============================================================================


def main() -> None:
    """Main entry point for MCP server.

    Workflow:
    1. Parse CLI arguments
    2. If --call provided, run direct tool invocation and exit
    3. Setup logging
    4. Initialize components
    5. Register signal handlers
    6. Run MCP server with stdio transport
    """
    global working_memory

    args = parse_arguments()

    # Direct tool invocation mode (for hooks)
    if args.call:
        run_direct_call(args)
        return

    setup_logging(args.log_level)

    logger.info("Starting workmem MCP Server...")

    try:
        working_memory = initialize_components(args)

        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)

        logger.info("MCP server ready, starting stdio transport...")

        # Blocks until the server shuts down
        mcp.run(transport="stdio")

    except Exception as e:
        logger.error(f"Server failed: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
