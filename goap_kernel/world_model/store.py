"""
World State Store — the single synchronization boundary for live state.

Updated by: Plan executor (one atomic delta per successful action)
Queried by: Priority scheduler, planners (via immutable snapshots)

Behavioral Contract:
- Readers only ever receive immutable WorldState snapshots
- Every mutation is one read-modify-write under the store lock
- Concurrent agents' deltas never interleave a torn read
- After close(), every operation raises StateStoreUnavailableError
"""

import logging
import threading
from typing import Any, Callable, List, Optional

from goap_kernel.errors import StateStoreUnavailableError
from goap_kernel.models.state import StateChange, StateSchema, WorldState

logger = logging.getLogger(__name__)


class WorldStateStore:
    """
    In-memory live world state guarded by a lock.
    Production would front a shared database or message-passing actor.
    """

    def __init__(
        self,
        initial: Optional[WorldState] = None,
        schema: Optional[StateSchema] = None,
        history_limit: int = 1000,
    ):
        self._state = initial or WorldState()
        self.schema = schema
        self._lock = threading.RLock()
        self._history: List[StateChange] = []
        self._history_limit = history_limit
        self._version = 0
        self._closed = False

    def _ensure_open(self) -> None:
        if self._closed:
            raise StateStoreUnavailableError("World state store is closed")

    @property
    def version(self) -> int:
        """Incremented on every committed mutation."""
        return self._version

    def snapshot(self) -> WorldState:
        """Get the current live state. The returned value is immutable."""
        with self._lock:
            self._ensure_open()
            return self._state

    def update(
        self,
        fn: Callable[[WorldState], WorldState],
        source: Optional[str] = None,
    ) -> List[StateChange]:
        """Atomically replace the live state with ``fn(live_state)``."""
        with self._lock:
            self._ensure_open()
            current = self._state
            new_state = fn(current)
            return self._commit(new_state, current.diff(new_state), source)

    def apply_changes(
        self,
        base: WorldState,
        result: WorldState,
        source: Optional[str] = None,
    ) -> List[StateChange]:
        """
        Apply the delta between ``base`` and ``result`` onto the live state.

        ``base`` is the snapshot an action observed; only the facts the action
        changed are written, so concurrent changes to other facts survive.
        """
        delta = base.diff(result)
        if not delta:
            return []
        with self._lock:
            self._ensure_open()
            current = self._state
            new_state = current.apply_changes(delta)
            return self._commit(new_state, current.diff(new_state), source)

    def replace(self, state: WorldState, source: Optional[str] = None) -> List[StateChange]:
        """Overwrite the live state wholesale (sensor resync)."""
        return self.update(lambda _: state, source=source)

    def set_fact(
        self,
        key: str,
        value: Any,
        entity: Optional[str] = None,
        source: Optional[str] = None,
    ) -> List[StateChange]:
        return self.update(lambda s: s.with_fact(key, value, entity), source=source)

    def validate(self, state: Optional[WorldState] = None) -> List[str]:
        """Schema errors for ``state`` (or the live state). Empty without a schema."""
        if state is None:
            state = self.snapshot()
        if self.schema is None:
            return []
        return self.schema.validate_state(state)

    def history(self, limit: int = 50) -> List[StateChange]:
        """Most recent committed changes, oldest first."""
        with self._lock:
            return list(self._history[-limit:])

    def close(self) -> None:
        with self._lock:
            self._closed = True
        logger.info("World state store closed")

    def _commit(
        self,
        new_state: WorldState,
        changes: List[StateChange],
        source: Optional[str],
    ) -> List[StateChange]:
        if not changes:
            return changes
        self._state = new_state
        self._version += 1
        if source:
            changes = [c.model_copy(update={"source": source}) for c in changes]
        self._history.extend(changes)
        if len(self._history) > self._history_limit:
            del self._history[: len(self._history) - self._history_limit]
        logger.debug("Committed %d change(s) from %s", len(changes), source or "unknown")
        return changes
