"""Planner, executor, and scheduler configuration."""

from typing import Optional

from pydantic import BaseModel, Field


class PlannerConfig(BaseModel):
    """Search budget and score weighting for the planner."""

    max_depth: int = Field(ge=1, default=10)
    timeout_seconds: float = Field(gt=0, default=30.0)
    max_explored_nodes: Optional[int] = Field(ge=1, default=None)
    allow_partial_plans: bool = False
    cost_weight: float = Field(ge=0, default=1.0)
    priority_weight: float = Field(ge=0, default=0.0)
    heuristic_weight: float = Field(ge=0, default=0.0)

    def relaxed(self, multiplier: float) -> "PlannerConfig":
        """Copy with depth, time and node budgets scaled up."""
        return self.model_copy(update={
            "max_depth": max(self.max_depth + 1, int(self.max_depth * multiplier)),
            "timeout_seconds": self.timeout_seconds * multiplier,
            "max_explored_nodes": (
                int(self.max_explored_nodes * multiplier)
                if self.max_explored_nodes
                else None
            ),
        })


class ExecutionOptions(BaseModel):
    """Per-plan execution behaviour."""

    retry_on_failure: bool = True
    max_retries: int = Field(ge=0, default=3)
    continue_on_error: bool = False
    action_timeout_seconds: float = Field(gt=0, default=30.0)
    plan_timeout_seconds: float = Field(gt=0, default=300.0)
    retry_backoff_seconds: float = Field(ge=0, default=1.0)


class SchedulerConfig(BaseModel):
    """Configuration for the priority scheduler loop."""

    heartbeat_interval_seconds: float = Field(gt=0, default=5.0)
    planning_retry_multiplier: float = Field(ge=1, default=2.0)
    max_goal_failures: int = Field(ge=1, default=3)
    planner: PlannerConfig = PlannerConfig()
    execution: ExecutionOptions = ExecutionOptions()
