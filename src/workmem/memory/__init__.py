"""Core record types and the typed transcript model."""

from workmem.memory.messages import (
    AssistantMessage,
    Message,
    TextBlock,
    ToolResultMessage,
    ToolUseBlock,
    UserMessage,
    load_transcript,
    parse_message,
    parse_messages,
)
from workmem.memory.types import (
    CorrectionCategory,
    CorrectionEntry,
    Episode,
    ExecutionPlan,
    ExtractedFact,
    FactCategory,
    FailureCategory,
    HybridResult,
    PlanStep,
    PlanStepStatus,
    Procedure,
    ProcedureStep,
    ScratchEntry,
    Task,
    TaskPriority,
    TaskStatus,
    ToolFailure,
    Trigger,
    TriggerPriority,
    TriggerType,
)

__all__ = [
    "AssistantMessage",
    "CorrectionCategory",
    "CorrectionEntry",
    "Episode",
    "ExecutionPlan",
    "ExtractedFact",
    "FactCategory",
    "FailureCategory",
    "HybridResult",
    "Message",
    "PlanStep",
    "PlanStepStatus",
    "Procedure",
    "ProcedureStep",
    "ScratchEntry",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "TextBlock",
    "ToolFailure",
    "ToolResultMessage",
    "ToolUseBlock",
    "Trigger",
    "TriggerPriority",
    "TriggerType",
    "UserMessage",
    "load_transcript",
    "parse_message",
    "parse_messages",
]
