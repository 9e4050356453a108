"""Task ledger: persistent, bounded task list per agent.

Capacity rules:
- At most 25 non-terminal tasks (active, blocked, waiting); creating one
  more raises CapacityExceededError
- At most 100 tasks overall; at that limit up to 10 of the oldest-updated
  terminal tasks (done, cancelled) are pruned to admit the new one
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from workmem.errors import CapacityExceededError, NotFoundError, ValidationError
from workmem.memory.types import Task, TaskPriority, TaskStatus, from_iso, utcnow
from workmem.storage.documents import JsonDocumentStore

logger = logging.getLogger(__name__)

MAX_TOTAL = 100
MAX_ACTIVE = 25
PRUNE_BATCH = 10
MAX_TITLE_CHARS = 200
MAX_CONTEXT_CHARS = 2000
RECENT_DONE_DAYS = 7
RECENT_DONE_LIMIT = 5

_UPDATABLE_FIELDS = (
    "title", "status", "priority", "context", "next_action",
    "blocker", "waiting_for", "parent_id", "tags", "due_at",
)


def _coerce_status(value: Any) -> TaskStatus:
    try:
        return value if isinstance(value, TaskStatus) else TaskStatus(value)
    except ValueError as e:
        raise ValidationError(f"Invalid task status: {value!r}") from e


def _coerce_priority(value: Any) -> TaskPriority:
    try:
        return value if isinstance(value, TaskPriority) else TaskPriority(value)
    except ValueError as e:
        raise ValidationError(f"Invalid task priority: {value!r}") from e


def _coerce_datetime(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        return from_iso(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid timestamp: {value!r}") from e


class TaskLedger(JsonDocumentStore):
    """Persistent task list with capacity enforcement.

    Args:
        state_dir: State root directory
        max_total: Total task cap (default: 100)
        max_active: Non-terminal task cap (default: 25)
        clock: Callable returning an aware UTC datetime (default: utcnow)
    """

    subdir = "task-ledger"
    collection = "tasks"

    def __init__(
        self,
        state_dir,
        max_total: int = MAX_TOTAL,
        max_active: int = MAX_ACTIVE,
        clock: Callable[[], datetime] = utcnow,
    ):
        super().__init__(state_dir)
        self.max_total = max_total
        self.max_active = max_active
        self._clock = clock

    def _load(self, doc: dict[str, Any]) -> list[Task]:
        return [Task.from_dict(t) for t in doc["tasks"]]

    def create_task(
        self,
        owner_key: str,
        title: str,
        priority: Any = TaskPriority.NORMAL,
        context: str = "",
        next_action: Optional[str] = None,
        tags: Optional[list[str]] = None,
        parent_id: Optional[str] = None,
        due_at: Any = None,
    ) -> Task:
        """Create a new active task.

        Args:
            owner_key: Agent id
            title: Short task title (truncated to 200 characters)
            priority: TaskPriority or its string value
            context: Free-form background (truncated to 2000 characters)
            next_action: The immediate next step
            tags: Labels for filtering
            parent_id: Advisory parent task id
            due_at: Optional deadline (datetime or ISO string)

        Returns:
            The created Task

        Raises:
            ValidationError: If the title is missing or a field is malformed
            CapacityExceededError: If the non-terminal task cap is reached
        """
        if not title or not title.strip():
            raise ValidationError("Task title is required")

        now = self._clock()
        task = Task(
            id=uuid.uuid4().hex[:8],
            title=title.strip()[:MAX_TITLE_CHARS],
            priority=_coerce_priority(priority),
            context=(context or "")[:MAX_CONTEXT_CHARS],
            next_action=next_action,
            tags=list(tags or []),
            parent_id=parent_id,
            created_at=now,
            updated_at=now,
            due_at=_coerce_datetime(due_at),
        )

        with self.transaction(owner_key) as doc:
            tasks = self._load(doc)

            active = sum(1 for t in tasks if not t.status.is_terminal)
            if active >= self.max_active:
                raise CapacityExceededError(
                    f"Too many open tasks ({active}/{self.max_active}); "
                    "complete or cancel some first"
                )

            if len(tasks) >= self.max_total:
                terminal = sorted(
                    (t for t in tasks if t.status.is_terminal),
                    key=lambda t: t.updated_at,
                )
                pruned = {t.id for t in terminal[:PRUNE_BATCH]}
                if not pruned:
                    raise CapacityExceededError(f"Task ledger is full ({len(tasks)} tasks)")
                tasks = [t for t in tasks if t.id not in pruned]
                logger.info(f"Pruned {len(pruned)} finished tasks for {owner_key}")

            tasks.append(task)
            doc["tasks"] = [t.to_dict() for t in tasks]

        logger.debug(f"Created task {task.id} for {owner_key}")
        return task

    def get_task(self, owner_key: str, task_id: str) -> Task:
        """Fetch one task.

        Raises:
            NotFoundError: If the id is unknown
        """
        for task in self._load(self.read(owner_key)):
            if task.id == task_id:
                return task
        raise NotFoundError(f"Task {task_id} not found")

    def update_task(self, owner_key: str, task_id: str, **changes: Any) -> Task:
        """Apply field changes to a task.

        Transitioning to done or cancelled stamps ``completed_at``; moving back
        to a non-terminal status clears it.

        Raises:
            NotFoundError: If the id is unknown
            ValidationError: If a field name or value is invalid
        """
        unknown = set(changes) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}")

        with self.transaction(owner_key) as doc:
            tasks = self._load(doc)
            task = next((t for t in tasks if t.id == task_id), None)
            if task is None:
                raise NotFoundError(f"Task {task_id} not found")

            now = self._clock()
            for name, value in changes.items():
                if name == "status":
                    status = _coerce_status(value)
                    if status.is_terminal and not task.status.is_terminal:
                        task.completed_at = now
                    elif not status.is_terminal:
                        task.completed_at = None
                    task.status = status
                elif name == "priority":
                    task.priority = _coerce_priority(value)
                elif name == "title":
                    if not value or not str(value).strip():
                        raise ValidationError("Task title cannot be empty")
                    task.title = str(value).strip()[:MAX_TITLE_CHARS]
                elif name == "context":
                    task.context = (value or "")[:MAX_CONTEXT_CHARS]
                elif name == "tags":
                    task.tags = list(value or [])
                elif name == "due_at":
                    task.due_at = _coerce_datetime(value)
                else:
                    setattr(task, name, value)
            task.updated_at = now

            doc["tasks"] = [t.to_dict() for t in tasks]
        return task

    def complete_task(self, owner_key: str, task_id: str) -> Task:
        """Mark a task done."""
        return self.update_task(owner_key, task_id, status=TaskStatus.DONE)

    def delete_task(self, owner_key: str, task_id: str) -> None:
        """Remove a task.

        Raises:
            NotFoundError: If the id is unknown
        """
        with self.transaction(owner_key) as doc:
            remaining = [t for t in doc["tasks"] if t.get("id") != task_id]
            if len(remaining) == len(doc["tasks"]):
                raise NotFoundError(f"Task {task_id} not found")
            doc["tasks"] = remaining

    def list_tasks(
        self,
        owner_key: str,
        status: Any = None,
        tag: Optional[str] = None,
    ) -> list[Task]:
        """Tasks sorted by priority, then most recently updated."""
        tasks = self._load(self.read(owner_key))
        if status is not None:
            wanted = _coerce_status(status)
            tasks = [t for t in tasks if t.status == wanted]
        if tag:
            tasks = [t for t in tasks if tag in t.tags]
        tasks.sort(key=lambda t: t.updated_at, reverse=True)
        tasks.sort(key=lambda t: t.priority.rank)
        return tasks

    def read_tasks_for_injection(self, owner_key: str) -> Optional[str]:
        """Render open tasks plus recently completed ones.

        Returns:
            Markdown block, or None if there are no tasks worth showing
        """
        tasks = self.list_tasks(owner_key)
        open_tasks = [t for t in tasks if not t.status.is_terminal]

        cutoff = self._clock() - timedelta(days=RECENT_DONE_DAYS)
        recent_done = sorted(
            (
                t for t in tasks
                if t.status == TaskStatus.DONE and t.completed_at and t.completed_at >= cutoff
            ),
            key=lambda t: t.completed_at,
            reverse=True,
        )[:RECENT_DONE_LIMIT]

        if not open_tasks and not recent_done:
            return None

        lines = ["## Active Tasks (Task Ledger)", ""]
        for task in open_tasks:
            marker = "" if task.status == TaskStatus.ACTIVE else f" [{task.status.value}]"
            lines.append(f"- **[{task.id}]** {task.title} ({task.priority.value}){marker}")
            if task.next_action:
                lines.append(f"  - Next: {task.next_action}")
            if task.blocker:
                lines.append(f"  - Blocked by: {task.blocker}")
            if task.waiting_for:
                lines.append(f"  - Waiting for: {task.waiting_for}")
            if task.due_at:
                lines.append(f"  - Due: {task.due_at.strftime('%Y-%m-%d %H:%M UTC')}")
            if task.context:
                lines.append(f"  - Context: {task.context[:200]}")

        if recent_done:
            lines.extend(["", "### Recently Completed"])
            for task in recent_done:
                lines.append(f"- ~~{task.title}~~ ({task.completed_at.strftime('%Y-%m-%d')})")

        return "\n".join(lines)
