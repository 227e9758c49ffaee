"""Plan — the ordered action sequence produced by the planner."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from goap_kernel.models.action import Action
from goap_kernel.models.goal import Goal


class PlanStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (PlanStatus.COMPLETED, PlanStatus.FAILED, PlanStatus.CANCELLED)


class Plan(BaseModel):
    """An ordered action sequence for one goal. Status is owned by the executor."""

    id: str = Field(default_factory=lambda: f"plan_{uuid4().hex[:12]}")
    goal: Goal
    actions: List[Action]
    estimated_cost: float
    estimated_duration_seconds: float
    created_at: datetime = Field(default_factory=datetime.utcnow)
    status: PlanStatus = PlanStatus.PENDING
    partial: bool = False                   # True when the goal is not reached

    def describe(self) -> str:
        steps = [f"{i+1}. {a.name}" for i, a in enumerate(self.actions)]
        return "; ".join(steps) if steps else "(no actions)"


class PlanNode:
    """Search-tree node. Lives only for the duration of one planning call."""

    __slots__ = (
        "state", "key", "action", "cost", "weighted", "score",
        "depth", "parent", "sequence",
    )

    def __init__(
        self,
        state,
        key: str,
        action: Optional[Action] = None,
        cost: float = 0.0,
        weighted: float = 0.0,
        score: float = 0.0,
        depth: int = 0,
        parent: Optional["PlanNode"] = None,
        sequence: int = 0,
    ):
        self.state = state
        self.key = key                      # Canonical state key
        self.action = action
        self.cost = cost                    # Raw accumulated action cost
        self.weighted = weighted            # Weighted accumulated cost
        self.score = score                  # Frontier ordering key
        self.depth = depth
        self.parent = parent
        self.sequence = sequence

    def path(self) -> List[Action]:
        """Actions from the root to this node."""
        actions = []
        node = self
        while node.parent is not None:
            actions.append(node.action)
            node = node.parent
        actions.reverse()
        return actions


class PlanningFailureKind(str, Enum):
    UNREACHABLE = "unreachable"     # Search space exhausted. Do not retry as-is.
    TIMEOUT = "timeout"             # Budget exhausted. Retry with a larger budget.


class PlanningFailure(BaseModel):
    kind: PlanningFailureKind
    message: str
    budget: Optional[str] = None            # "time" | "depth" for timeouts

    @property
    def retryable(self) -> bool:
        return self.kind == PlanningFailureKind.TIMEOUT


class PlannerResult(BaseModel):
    """Outcome of a single planning call."""

    success: bool
    plan: Optional[Plan] = None             # Set on success, or partial plan
    failure: Optional[PlanningFailure] = None
    message: str = ""
    explored_nodes: int = 0
    planning_time_seconds: float = 0.0
