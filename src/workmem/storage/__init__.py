"""Bounded JSON-backed stores and the hybrid result merger."""

from workmem.storage.corrections import CorrectionStore
from workmem.storage.documents import JsonDocumentStore, atomic_write_json, sanitize_owner_key
from workmem.storage.execution_plan import ExecutionPlanStore
from workmem.storage.hybrid import (
    KeywordHit,
    VectorHit,
    bm25_rank_to_score,
    build_fts_query,
    compute_recency_boost,
    merge_hybrid_results,
)
from workmem.storage.scratch_pad import CAPTURE_TOOLS, ScratchPad
from workmem.storage.session_state import SessionStateStore
from workmem.storage.task_ledger import TaskLedger
from workmem.storage.tool_failures import ToolFailureStore

__all__ = [
    "CAPTURE_TOOLS",
    "CorrectionStore",
    "ExecutionPlanStore",
    "JsonDocumentStore",
    "KeywordHit",
    "ScratchPad",
    "SessionStateStore",
    "TaskLedger",
    "ToolFailureStore",
    "VectorHit",
    "atomic_write_json",
    "bm25_rank_to_score",
    "build_fts_query",
    "compute_recency_boost",
    "merge_hybrid_results",
    "sanitize_owner_key",
]
