"""Agent — an actor that executes plans within its capability set."""

from typing import List, Optional, Set

from pydantic import BaseModel

from goap_kernel.models.conditions import Comparator, Condition
from goap_kernel.models.plan import Plan
from goap_kernel.models.state import WorldState


class Agent(BaseModel):
    """
    A plan-executing actor.

    ``world_state`` is an immutable snapshot, never a reference into the
    shared live store. An agent runs at most one plan at a time.
    """

    id: str
    name: str
    role: str = "generic"
    capabilities: Set[str] = set()
    world_state: WorldState = WorldState()
    is_active: bool = True
    base_priority: float = 5.0
    priority: Optional[float] = None        # Dynamic; recomputed by the scheduler
    current_plan: Optional[Plan] = None
    location: Optional[str] = None

    def model_post_init(self, __context) -> None:
        if self.priority is None:
            self.priority = self.base_priority

    @property
    def is_idle(self) -> bool:
        return self.current_plan is None or self.current_plan.status.is_terminal

    def can_execute(self, capability: Optional[str]) -> bool:
        return capability is None or capability in self.capabilities


class PriorityRule(BaseModel):
    """Raises an agent's priority while a live-state condition holds."""

    capability: str
    condition: Condition
    priority: float

    def applies_to(self, agent: Agent, state: WorldState) -> bool:
        return self.capability in agent.capabilities and self.condition.is_satisfied(state)


def default_priority_rules() -> List[PriorityRule]:
    """Live-state signals for the standard warehouse roles."""
    return [
        PriorityRule(
            capability="shipping",
            condition=Condition(
                key="orders_in_queue", comparator=Comparator.GREATER_THAN, value=5,
            ),
            priority=10,
        ),
        PriorityRule(
            capability="maintenance",
            condition=Condition(
                key="equipment_needs_maintenance", comparator=Comparator.NOT_EMPTY,
            ),
            priority=9,
        ),
        PriorityRule(
            capability="quality_control",
            condition=Condition(
                key="items_need_inspection", comparator=Comparator.GREATER_THAN, value=3,
            ),
            priority=8,
        ),
    ]
