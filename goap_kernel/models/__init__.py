"""GOAP Kernel data models."""

from goap_kernel.models.action import Action, ActionHandler, ActionResult
from goap_kernel.models.agent import Agent, PriorityRule, default_priority_rules
from goap_kernel.models.conditions import (
    Comparator,
    Condition,
    Effect,
    EffectOperation,
    satisfies_all,
    unsatisfied,
)
from goap_kernel.models.config import ExecutionOptions, PlannerConfig, SchedulerConfig
from goap_kernel.models.execution import ExecutionIssue, ExecutionResult, IssueKind
from goap_kernel.models.goal import Goal, GoalActivation
from goap_kernel.models.plan import (
    Plan,
    PlannerResult,
    PlanningFailure,
    PlanningFailureKind,
    PlanStatus,
)
from goap_kernel.models.state import (
    FactKind,
    FactValue,
    StateChange,
    StateSchema,
    WorldState,
)

__all__ = [
    "Action",
    "ActionHandler",
    "ActionResult",
    "Agent",
    "Comparator",
    "Condition",
    "Effect",
    "EffectOperation",
    "ExecutionIssue",
    "ExecutionOptions",
    "ExecutionResult",
    "FactKind",
    "FactValue",
    "Goal",
    "GoalActivation",
    "IssueKind",
    "Plan",
    "PlannerConfig",
    "PlannerResult",
    "PlanningFailure",
    "PlanningFailureKind",
    "PlanStatus",
    "PriorityRule",
    "SchedulerConfig",
    "StateChange",
    "StateSchema",
    "WorldState",
    "default_priority_rules",
    "satisfies_all",
    "unsatisfied",
]
