"""Action — a plannable step with preconditions, effects, and a cost."""

from typing import Awaitable, Dict, List, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field

from goap_kernel.models.conditions import Condition, Effect, satisfies_all, unsatisfied
from goap_kernel.models.state import FactValue, WorldState


class Action(BaseModel):
    """Immutable action descriptor consumed by the planner and executor."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    preconditions: List[Condition] = []
    effects: List[Effect] = []
    cost: float = Field(ge=0, default=1.0)
    priority: int = 0
    capability: Optional[str] = None            # Required agent capability tag
    parameters: Dict[str, FactValue] = {}       # Passed to the handler verbatim
    estimated_duration_seconds: float = Field(ge=0, default=60.0)

    def is_applicable(self, state: WorldState) -> bool:
        return satisfies_all(state, self.preconditions)

    def failed_preconditions(self, state: WorldState) -> List[str]:
        return [c.describe() for c in unsatisfied(state, self.preconditions)]

    def apply(self, state: WorldState) -> WorldState:
        """Apply every declared effect in order."""
        for effect in self.effects:
            state = effect.apply(state)
        return state


class ActionResult(BaseModel):
    """Outcome reported by an action capability."""

    success: bool
    new_world_state: Optional[WorldState] = None
    message: str = ""
    error: Optional[str] = None
    duration_seconds: float = 0.0


class ActionHandler(Protocol):
    """
    External execution capability for an action.

    May be a plain callable or a coroutine function. The kernel never
    inspects how it is implemented.
    """

    def __call__(
        self,
        world_state: WorldState,
        parameters: Dict[str, FactValue],
    ) -> Union[ActionResult, Awaitable[ActionResult]]: ...
