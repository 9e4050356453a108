"""Stateless pattern classifiers.

All classifiers are pure functions over ordered rule tables: same input,
same output, no I/O.
"""

from workmem.classify.context import (
    ClassificationResult,
    ContextTag,
    classify_message,
    resolve_context_exclusions,
)
from workmem.classify.correction import CorrectionSignal, detect_correction
from workmem.classify.recall_depth import RECALL_PARAMS, RecallDepth, RecallParams, classify_recall_depth
from workmem.classify.tool_errors import ClassifiedError, classify_tool_error, normalize_error_pattern

__all__ = [
    "ClassificationResult",
    "ClassifiedError",
    "ContextTag",
    "CorrectionSignal",
    "RECALL_PARAMS",
    "RecallDepth",
    "RecallParams",
    "classify_message",
    "classify_recall_depth",
    "classify_tool_error",
    "detect_correction",
    "normalize_error_pattern",
    "resolve_context_exclusions",
]
