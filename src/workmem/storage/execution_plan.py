"""Execution plan store: one declared multi-step plan per session."""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from workmem.errors import NotFoundError, ValidationError
from workmem.memory.types import ExecutionPlan, PlanStep, PlanStepStatus, utcnow
from workmem.storage.documents import JsonDocumentStore

logger = logging.getLogger(__name__)

MAX_STEPS = 50
MAX_GOAL_CHARS = 500
MAX_STEP_CHARS = 300

_STATUS_MARKERS = {
    PlanStepStatus.PENDING: "[ ]",
    PlanStepStatus.IN_PROGRESS: "[>]",
    PlanStepStatus.DONE: "[x]",
    PlanStepStatus.SKIPPED: "[-]",
}


class ExecutionPlanStore(JsonDocumentStore):
    """Stores the session's current plan under ``plans[0]``.

    Args:
        state_dir: State root directory
        clock: Callable returning an aware UTC datetime (default: utcnow)
    """

    subdir = "execution-plans"
    collection = "plans"

    def __init__(self, state_dir, clock: Callable[[], datetime] = utcnow):
        super().__init__(state_dir)
        self._clock = clock

    def create(self, session_key: str, goal: str, steps: list[str]) -> ExecutionPlan:
        """Replace the session's plan with a new one.

        The first step starts in progress, the rest pending.

        Raises:
            ValidationError: If goal or steps are missing
        """
        if not goal or not goal.strip():
            raise ValidationError("Plan goal is required")
        descriptions = [str(s).strip() for s in (steps or []) if str(s).strip()]
        if not descriptions:
            raise ValidationError("Plan needs at least one step")
        if len(descriptions) > MAX_STEPS:
            raise ValidationError(f"Plan is limited to {MAX_STEPS} steps")

        now = self._clock()
        plan = ExecutionPlan(
            goal=goal.strip()[:MAX_GOAL_CHARS],
            steps=[
                PlanStep(id=i + 1, description=d[:MAX_STEP_CHARS])
                for i, d in enumerate(descriptions)
            ],
            created_at=now,
            updated_at=now,
        )
        plan.steps[0].status = PlanStepStatus.IN_PROGRESS

        with self.transaction(session_key) as doc:
            doc["plans"] = [plan.to_dict()]
        return plan

    def get(self, session_key: str) -> Optional[ExecutionPlan]:
        plans = self.read(session_key)["plans"]
        return ExecutionPlan.from_dict(plans[0]) if plans else None

    def update(self, session_key: str, step_id: int, status: Any) -> ExecutionPlan:
        """Change one step's status.

        Marking a step done moves the next pending step to in progress when no
        other step is already in progress.

        Raises:
            NotFoundError: If there is no plan or no such step
            ValidationError: If the status is invalid
        """
        try:
            new_status = status if isinstance(status, PlanStepStatus) else PlanStepStatus(status)
        except ValueError as e:
            raise ValidationError(f"Invalid step status: {status!r}") from e

        with self.transaction(session_key) as doc:
            if not doc["plans"]:
                raise NotFoundError("No execution plan for this session")
            plan = ExecutionPlan.from_dict(doc["plans"][0])

            step = next((s for s in plan.steps if s.id == int(step_id)), None)
            if step is None:
                raise NotFoundError(f"Step {step_id} not found")
            step.status = new_status

            if new_status in (PlanStepStatus.DONE, PlanStepStatus.SKIPPED):
                if not any(s.status == PlanStepStatus.IN_PROGRESS for s in plan.steps):
                    upcoming = next(
                        (s for s in plan.steps if s.status == PlanStepStatus.PENDING), None
                    )
                    if upcoming is not None:
                        upcoming.status = PlanStepStatus.IN_PROGRESS

            plan.updated_at = self._clock()
            doc["plans"] = [plan.to_dict()]
        return plan

    def clear(self, session_key: str) -> bool:
        return self.delete_document(session_key)

    def read_plan_for_injection(self, session_key: str) -> Optional[str]:
        plan = self.get(session_key)
        if plan is None or not plan.steps:
            return None
        percent = round(100 * plan.done_count / len(plan.steps))
        lines = [f"## Execution Plan ({percent}% complete)", "", f"**Goal:** {plan.goal}", ""]
        for step in plan.steps:
            lines.append(f"{step.id}. {_STATUS_MARKERS[step.status]} {step.description}")
        return "\n".join(lines)
