"""Goal — a desired subset of the world state, with urgency and timing."""

from datetime import datetime
from typing import List, Optional

from croniter import croniter
from pydantic import BaseModel, Field

from goap_kernel.models.conditions import Condition, satisfies_all, unsatisfied
from goap_kernel.models.state import WorldState


class GoalActivation(BaseModel):
    """Temporal window in which a goal is eligible for scheduling."""

    always: bool = True
    schedule: Optional[str] = None          # Cron expression

    def is_active(self, current_time: datetime) -> bool:
        if self.always:
            return True
        if not self.schedule:
            return False
        try:
            return croniter.match(self.schedule, current_time)
        except (ValueError, KeyError):
            # Invalid cron expression: treat as inactive
            return False


class Goal(BaseModel):
    """A declared target state. Satisfied iff every target condition holds."""

    id: str
    name: str
    description: str = ""
    target_state: List[Condition]
    priority: int = Field(ge=1, le=100, default=50)    # Higher = more urgent
    deadline: Optional[datetime] = None
    requested_by: Optional[str] = None
    context: dict = {}
    required_capabilities: List[str] = []
    activation: GoalActivation = GoalActivation()
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def is_satisfied(self, state: WorldState) -> bool:
        return satisfies_all(state, self.target_state)

    def unsatisfied_conditions(self, state: WorldState) -> List[Condition]:
        return unsatisfied(state, self.target_state)

    def is_active(self, current_time: Optional[datetime] = None) -> bool:
        if current_time is None:
            current_time = datetime.utcnow()
        return self.activation.is_active(current_time)
