"""Workmem - durable working memory for conversational agents.

This package turns a transient, size-limited conversation transcript into
bounded, file-backed artifacts (facts, corrections, procedures, tasks,
failures, scratch results, proactive alerts) and renders them back into
markdown blocks for the next turn's context.

Main components:
- classify: Stateless pattern classifiers (corrections, recall depth, context, tool errors)
- extraction: Compaction facts, episode summaries, procedure mining
- storage: Bounded JSON document stores and the hybrid search result merger
- triggers: Proactive trigger evaluation with cooldown dedup
- lifecycle: WorkingMemory facade wiring everything to agent lifecycle events

Usage:
    # Run as MCP server
    python -m workmem

    # Or invoke a single tool (used by hooks)
    workmem --call task_ledger --args '{"action": "list", "agent_id": "main"}'
"""

__all__ = ["main"]
__version__ = "0.1.0"


def main() -> None:
    """Main entry point for the workmem MCP server."""
    from workmem.__main__ import main as _main
    _main()
