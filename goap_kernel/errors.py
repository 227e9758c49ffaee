"""
GOAP Kernel errors.

Planning failures are not exceptions: the planner returns them as typed
results (see ``PlanningFailure``). Execution failures are accumulated on the
``ExecutionResult``. The exceptions below cover guard violations, fatal
pre-planning validation, and resource-level faults.
"""

from typing import List, Optional


class GOAPError(Exception):
    """Base class for all kernel errors."""
    pass


class InvalidStateError(GOAPError):
    """Raised when a WorldState fails structural validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class PreconditionViolation(GOAPError):
    """An action's preconditions no longer hold against the live state."""

    def __init__(self, action_id: str, failed: Optional[List[str]] = None):
        self.action_id = action_id
        self.failed = failed or []
        detail = f": {', '.join(self.failed)}" if self.failed else ""
        super().__init__(f"Action {action_id} preconditions not met{detail}")


class ActionExecutionError(GOAPError):
    """The action capability reported failure, raised, or timed out."""
    pass


class ActionRegistrationError(GOAPError):
    """Raised when an action cannot be added to a registry."""
    pass


class AgentBusyError(GOAPError):
    """Raised when an agent is asked to run a second plan concurrently."""
    pass


class StateStoreUnavailableError(GOAPError):
    """The shared live state store can no longer be used."""
    pass
