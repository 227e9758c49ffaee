"""Execution Result — outcome of running a plan against the live world."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from goap_kernel.models.action import Action
from goap_kernel.models.plan import PlanStatus
from goap_kernel.models.state import StateChange, WorldState


class IssueKind(str, Enum):
    PRECONDITION_VIOLATION = "precondition_violation"
    ACTION_EXECUTION_ERROR = "action_execution_error"
    ACTION_TIMEOUT = "action_timeout"
    INVALID_STATE = "invalid_state"
    PLAN_TIMEOUT = "plan_timeout"
    CANCELLED = "cancelled"


class ExecutionIssue(BaseModel):
    """A problem encountered while executing a plan."""

    kind: IssueKind
    message: str
    action_id: Optional[str] = None
    attempt: int = 0
    fatal: bool = True                      # False for warnings the plan survived


class ExecutionResult(BaseModel):
    """Per-plan aggregate outcome. Partial progress is always reported."""

    plan_id: str
    agent_id: str
    success: bool
    status: PlanStatus
    executed_actions: List[Action] = []
    final_world_state: WorldState
    world_state_changes: List[StateChange] = []
    issues: List[ExecutionIssue] = []
    message: str = ""
    executed_at: datetime = Field(default_factory=datetime.utcnow)
    total_duration_seconds: float = 0.0

    @property
    def errors(self) -> List[str]:
        return [issue.message for issue in self.issues]

    @property
    def executed_action_ids(self) -> List[str]:
        return [a.id for a in self.executed_actions]
