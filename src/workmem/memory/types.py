"""Core data types for the working-memory system.

This module defines the records persisted by the stores and produced by the
extraction pipelines:
- ExtractedFact: A fact pulled out of a transcript right before compaction
- Episode: What happened during one finished agent run
- Procedure / ProcedureStep: A mined, reusable sequence of tool calls
- CorrectionEntry: A user correction and the rule derived from it
- ToolFailure: A normalized, counted tool error pattern
- Task: An entry in the persistent task ledger
- ScratchEntry: A captured tool output kept across compaction
- PlanStep / ExecutionPlan: A declared multi-step plan
- Trigger: A proactive alert candidate
- HybridResult: One fused search hit (transient, never persisted)

Records that are persisted expose ``to_dict`` / ``from_dict`` so the stores
can round-trip them through JSON documents.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to ISO-8601 (None passes through)."""
    return value.isoformat() if value is not None else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string; naive values are assumed to be UTC."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class FactCategory(Enum):
    """Categories of facts extracted before compaction."""
    DECISION = "decision"
    TASK = "task"
    FACT = "fact"
    CORRECTION = "correction"
    PREFERENCE = "preference"
    URL = "url"
    ERROR_PATTERN = "error_pattern"


class CorrectionCategory(Enum):
    """What kind of mistake a user correction addresses."""
    FACTUAL = "factual"
    BEHAVIORAL = "behavioral"
    PREFERENCE = "preference"
    PROCEDURAL = "procedural"


class FailureCategory(Enum):
    """Classified tool failure kinds."""
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    TIMEOUT = "timeout"
    INVALID_PARAMS = "invalid_params"
    NOT_FOUND = "not_found"
    ENCODING = "encoding"
    OTHER = "other"


class TaskStatus(Enum):
    """Task lifecycle states.

    ACTIVE, BLOCKED and WAITING are non-terminal; DONE and CANCELLED are terminal.
    """
    ACTIVE = "active"
    BLOCKED = "blocked"
    WAITING = "waiting"
    DONE = "done"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.CANCELLED)


class TaskPriority(Enum):
    """Task priorities, most urgent first."""
    CRITICAL = "critical"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.CRITICAL: 0,
    TaskPriority.HIGH: 1,
    TaskPriority.NORMAL: 2,
    TaskPriority.LOW: 3,
}


class TriggerType(Enum):
    """Conditions the proactive evaluator can detect."""
    DEADLINE = "deadline"
    STALE_TASK = "stale_task"
    REPEATED_FAILURE = "repeated_failure"
    STUCK_SUBAGENT = "stuck_subagent"
    FILE_CHANGE = "file_change"


class TriggerPriority(Enum):
    """Alert priorities, highest first."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 0, "medium": 1, "low": 2}[self.value]


class PlanStepStatus(Enum):
    """Execution plan step states."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    SKIPPED = "skipped"


@dataclass
class ExtractedFact:
    """A fact extracted from a transcript before compaction.

    Attributes:
        category: What kind of fact this is (FactCategory enum)
        content: The normalized matched text
        source: Role of the message it came from ('user', 'assistant' or 'tool')
        position: Relative position of the message in the transcript (0.0 to 1.0)
    """
    category: FactCategory
    content: str
    source: str
    position: float


@dataclass
class Episode:
    """Structured record of one completed agent run.

    Attributes:
        request: The user request that triggered the run (truncated)
        tools_used: Distinct tool names invoked, in first-use order
        files_accessed: File paths referenced by tool inputs or text (max 20)
        outcomes: Deduplicated outcome sentences (max 10)
        success: Whether the run succeeded
        error: Error message if the run failed
        duration_ms: Run duration in milliseconds
    """
    request: str
    tools_used: list[str] = field(default_factory=list)
    files_accessed: list[str] = field(default_factory=list)
    outcomes: list[str] = field(default_factory=list)
    success: bool = True
    error: Optional[str] = None
    duration_ms: Optional[int] = None
    session_key: Optional[str] = None
    agent_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class ProcedureStep:
    """One tool call within a mined procedure."""
    order: int
    tool: str
    action: str
    success: bool = True
    key_params: dict[str, str] = field(default_factory=dict)


@dataclass
class Procedure:
    """A reusable ordered sequence of tool calls from a successful run."""
    name: str
    request: str
    steps: list[ProcedureStep] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    success: bool = True
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class CorrectionEntry:
    """A user correction stored for future turns.

    Attributes:
        id: Unique identifier
        timestamp: Creation time (epoch seconds)
        context: What was being discussed when the correction happened
        agent_said: The agent statement that was corrected
        correction_text: The user's correction, verbatim
        rule: The durable rule derived from the correction
        category: Kind of correction (CorrectionCategory enum)
        confidence: Detector confidence from 0.0 to 1.0
        access_count: How many times the entry was served by a search
        last_accessed: When it was last served (epoch seconds)

    Raises:
        ValueError: If confidence is out of range
    """
    id: str
    timestamp: float
    context: str
    agent_said: str
    correction_text: str
    rule: str
    category: CorrectionCategory
    confidence: float
    access_count: int = 0
    last_accessed: Optional[float] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(
                f"Confidence must be between 0.0 and 1.0, got {self.confidence}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "context": self.context,
            "agent_said": self.agent_said,
            "correction_text": self.correction_text,
            "rule": self.rule,
            "category": self.category.value,
            "confidence": self.confidence,
            "access_count": self.access_count,
            "last_accessed": self.last_accessed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CorrectionEntry":
        return cls(
            id=data["id"],
            timestamp=float(data["timestamp"]),
            context=data.get("context", ""),
            agent_said=data.get("agent_said", ""),
            correction_text=data.get("correction_text", ""),
            rule=data.get("rule", ""),
            category=CorrectionCategory(data.get("category", "factual")),
            confidence=float(data.get("confidence", 0.0)),
            access_count=int(data.get("access_count", 0)),
            last_accessed=data.get("last_accessed"),
        )


@dataclass
class ToolFailure:
    """A recurring tool failure pattern.

    Attributes:
        tool_name: The tool that failed
        pattern: Normalized error text (ids, timestamps and URLs replaced by placeholders)
        category: Classified failure kind (FailureCategory enum)
        count: How many times the pattern was recorded
        lesson: Human-readable lesson learned
        first_seen: When the pattern was first recorded
        last_seen: When the pattern was last recorded
    """
    tool_name: str
    pattern: str
    category: FailureCategory
    lesson: str
    count: int = 1
    first_seen: datetime = field(default_factory=utcnow)
    last_seen: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "pattern": self.pattern,
            "category": self.category.value,
            "count": self.count,
            "lesson": self.lesson,
            "first_seen": to_iso(self.first_seen),
            "last_seen": to_iso(self.last_seen),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolFailure":
        return cls(
            tool_name=data["tool_name"],
            pattern=data.get("pattern", ""),
            category=FailureCategory(data.get("category", "other")),
            lesson=data.get("lesson", ""),
            count=int(data.get("count", 1)),
            first_seen=from_iso(data.get("first_seen")) or utcnow(),
            last_seen=from_iso(data.get("last_seen")) or utcnow(),
        )


@dataclass
class Task:
    """A task in the persistent ledger.

    ``parent_id`` is advisory only; the ledger never enforces it.
    """
    id: str
    title: str
    status: TaskStatus = TaskStatus.ACTIVE
    priority: TaskPriority = TaskPriority.NORMAL
    context: str = ""
    next_action: Optional[str] = None
    blocker: Optional[str] = None
    waiting_for: Optional[str] = None
    parent_id: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    due_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "status": self.status.value,
            "priority": self.priority.value,
            "context": self.context,
            "next_action": self.next_action,
            "blocker": self.blocker,
            "waiting_for": self.waiting_for,
            "parent_id": self.parent_id,
            "tags": list(self.tags),
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "completed_at": to_iso(self.completed_at),
            "due_at": to_iso(self.due_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            title=data.get("title", ""),
            status=TaskStatus(data.get("status", "active")),
            priority=TaskPriority(data.get("priority", "normal")),
            context=data.get("context", ""),
            next_action=data.get("next_action"),
            blocker=data.get("blocker"),
            waiting_for=data.get("waiting_for"),
            parent_id=data.get("parent_id"),
            tags=list(data.get("tags") or []),
            created_at=from_iso(data.get("created_at")) or utcnow(),
            updated_at=from_iso(data.get("updated_at")) or utcnow(),
            completed_at=from_iso(data.get("completed_at")),
            due_at=from_iso(data.get("due_at")),
        )


@dataclass
class ScratchEntry:
    """A captured tool output (output is capped at 2000 characters)."""
    tool: str
    context: str
    output: str
    timestamp: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "context": self.context,
            "output": self.output,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ScratchEntry":
        return cls(
            tool=data["tool"],
            context=data.get("context", data["tool"]),
            output=data.get("output", ""),
            timestamp=float(data.get("timestamp", 0.0)),
        )


@dataclass
class PlanStep:
    """One step of an execution plan."""
    id: int
    description: str
    status: PlanStepStatus = PlanStepStatus.PENDING


@dataclass
class ExecutionPlan:
    """A declared multi-step plan that survives compaction."""
    goal: str
    steps: list[PlanStep] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def done_count(self) -> int:
        return sum(1 for s in self.steps if s.status == PlanStepStatus.DONE)

    def to_dict(self) -> dict[str, Any]:
        return {
            "goal": self.goal,
            "steps": [
                {"id": s.id, "description": s.description, "status": s.status.value}
                for s in self.steps
            ],
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionPlan":
        return cls(
            goal=data.get("goal", ""),
            steps=[
                PlanStep(
                    id=int(s["id"]),
                    description=s.get("description", ""),
                    status=PlanStepStatus(s.get("status", "pending")),
                )
                for s in data.get("steps", [])
            ],
            created_at=from_iso(data.get("created_at")) or utcnow(),
            updated_at=from_iso(data.get("updated_at")) or utcnow(),
        )


@dataclass
class Trigger:
    """A proactive alert candidate.

    Attributes:
        type: Detected condition (TriggerType enum)
        priority: Alert priority (TriggerPriority enum)
        message: Human-readable alert text
        detected_at: When the condition was detected
        subject: Stable identity of the alerted item (task id, tool pattern,
            file name or run id), independent of counts in the message
    """
    type: TriggerType
    priority: TriggerPriority
    message: str
    detected_at: datetime = field(default_factory=utcnow)
    subject: Optional[str] = None

    @property
    def key(self) -> str:
        """Cooldown dedup key: type plus the subject, or the message prefix without one."""
        if self.subject:
            return f"{self.type.value}:{self.subject}"
        return f"{self.type.value}:{self.message[:80]}"


@dataclass
class HybridResult:
    """One fused search hit produced by the hybrid merger."""
    id: str
    path: str
    start_line: int
    end_line: int
    score: float
    snippet: str
    source: str
    updated_at: Optional[float] = None


@dataclass
class LogResult:
    """Outcome of a best-effort logging pipeline.

    Attributes:
        logged: Whether anything was persisted
        file_path: Where it was written (if logged)
    """
    logged: bool
    file_path: Optional[str] = None


@dataclass
class FactExtractionResult:
    """Outcome of compaction fact extraction.

    Attributes:
        facts_count: Number of facts persisted (0 on failure or nothing found)
        file_path: The batch file written (None if nothing was written)
    """
    facts_count: int = 0
    file_path: Optional[str] = None
    facts: list[ExtractedFact] = field(default_factory=list)
