"""
Action Registry — capability-indexed catalog of plannable actions.

Behavioral Contract:
- Action descriptors are immutable once registered
- Registration order is preserved; the planner expands actions in that order
- Capability views share descriptors and handlers with their parent
- Every change bumps ``version`` so callers can detect catalog updates
"""

import logging
import threading
from typing import Dict, Iterable, List, Optional

from goap_kernel.errors import ActionRegistrationError, InvalidStateError
from goap_kernel.models.action import Action, ActionHandler, ActionResult
from goap_kernel.models.state import FactValue, WorldState

logger = logging.getLogger(__name__)


def simulate_effects(action: Action) -> ActionHandler:
    """Build a handler that applies the action's declared effects."""

    def _handler(world_state: WorldState, parameters: Dict[str, FactValue]) -> ActionResult:
        try:
            new_state = action.apply(world_state)
        except InvalidStateError as e:
            return ActionResult(
                success=False,
                new_world_state=world_state,
                error=str(e),
            )
        return ActionResult(
            success=True,
            new_world_state=new_state,
            message=f"{action.name} applied",
        )

    return _handler


class ActionRegistry:
    """
    Holds action descriptors and their execution capabilities.
    Reads are safe from concurrent planning calls.
    """

    def __init__(self, actions: Optional[Iterable[Action]] = None):
        self._actions: Dict[str, Action] = {}
        self._handlers: Dict[str, ActionHandler] = {}
        self._lock = threading.Lock()
        self._version = 0
        for action in actions or []:
            self.register(action)

    @property
    def version(self) -> int:
        return self._version

    def register(self, action: Action, handler: Optional[ActionHandler] = None) -> None:
        """Register an action and, optionally, its execution capability."""
        if not isinstance(action, Action):
            raise ActionRegistrationError(
                f"Expected Action, got {type(action).__name__}"
            )
        if not action.id:
            raise ActionRegistrationError("Action id must not be empty")
        with self._lock:
            if action.id in self._actions:
                raise ActionRegistrationError(f"Duplicate action id: {action.id}")
            self._actions[action.id] = action
            if handler is not None:
                self._handlers[action.id] = handler
            self._version += 1
        logger.debug("Registered action %s (cost=%s)", action.id, action.cost)

    def register_handler(self, action_id: str, handler: ActionHandler) -> None:
        """Attach or replace the execution capability for a registered action."""
        with self._lock:
            if action_id not in self._actions:
                raise ActionRegistrationError(f"Unknown action id: {action_id}")
            self._handlers[action_id] = handler
            self._version += 1

    def remove(self, action_id: str) -> bool:
        with self._lock:
            if action_id not in self._actions:
                return False
            del self._actions[action_id]
            self._handlers.pop(action_id, None)
            self._version += 1
            return True

    def get(self, action_id: str) -> Optional[Action]:
        return self._actions.get(action_id)

    def get_handler(self, action_id: str) -> Optional[ActionHandler]:
        return self._handlers.get(action_id)

    def actions(self) -> List[Action]:
        """All actions in registration order."""
        return list(self._actions.values())

    def for_capabilities(self, capabilities: Iterable[str]) -> "ActionRegistry":
        """A view restricted to actions an agent with ``capabilities`` may execute."""
        allowed = set(capabilities)
        view = ActionRegistry()
        for action in self._actions.values():
            if action.capability is None or action.capability in allowed:
                view._actions[action.id] = action
                if action.id in self._handlers:
                    view._handlers[action.id] = self._handlers[action.id]
        view._version = self._version
        return view

    def producers_of(self, key: str, entity: Optional[str] = None) -> List[Action]:
        """Actions with at least one effect that writes ``key`` (or ``key[entity]``)."""
        producers = []
        for action in self._actions.values():
            for effect in action.effects:
                if effect.key != key:
                    continue
                if entity is None or effect.entity is None or effect.entity == entity:
                    producers.append(action)
                    break
        return producers

    def __len__(self) -> int:
        return len(self._actions)

    def __contains__(self, action_id: str) -> bool:
        return action_id in self._actions
