"""World State — an immutable snapshot of every fact the planner reasons about."""

import json
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
)

from goap_kernel.errors import InvalidStateError


ScalarValue = Union[StrictBool, StrictInt, StrictFloat, StrictStr]

# Closed set of fact value shapes. Anything else fails validation.
FactValue = Union[
    StrictBool,
    StrictInt,
    StrictFloat,
    StrictStr,
    FrozenSet[StrictStr],
    Dict[StrictStr, ScalarValue],
]


class FactKind(str, Enum):
    BOOL = "bool"
    NUMBER = "number"
    TEXT = "text"
    ID_SET = "id_set"
    MAP = "map"


def kind_of(value: Any) -> FactKind:
    """Classify a fact value. bool is checked before number on purpose."""
    if isinstance(value, bool):
        return FactKind.BOOL
    if isinstance(value, (int, float)):
        return FactKind.NUMBER
    if isinstance(value, str):
        return FactKind.TEXT
    if isinstance(value, (frozenset, set)):
        return FactKind.ID_SET
    if isinstance(value, dict):
        return FactKind.MAP
    raise InvalidStateError(f"Unsupported fact value type: {type(value).__name__}")


def size_of(value: Any) -> Optional[int]:
    """Number of members of an id-set or map fact; None for scalars."""
    if isinstance(value, (frozenset, set, dict)):
        return len(value)
    return None


def _canonical(value: Any) -> Any:
    if isinstance(value, (frozenset, set)):
        return sorted(value)
    if isinstance(value, dict):
        return {k: value[k] for k in sorted(value)}
    return value


class StateChange(BaseModel):
    """A single fact-level difference between two world states."""

    key: str
    entity: Optional[str] = None            # Set when one map entry changed
    old_value: Optional[FactValue] = None
    new_value: Optional[FactValue] = None
    removed: bool = False
    source: Optional[str] = None            # Action id that produced the change

    def describe(self) -> str:
        target = f"{self.key}[{self.entity}]" if self.entity else self.key
        if self.removed:
            return f"{target} removed"
        return f"{target}: {self.old_value!r} -> {self.new_value!r}"


class WorldState(BaseModel):
    """
    Mapping of fact keys to tagged values.

    A WorldState is a value: every transition returns a new instance and
    no component edits ``facts`` in place.
    """

    model_config = ConfigDict(frozen=True)

    facts: Dict[str, FactValue] = {}

    def get(self, key: str, entity: Optional[str] = None, default: Any = None) -> Any:
        """
        Read a fact, or one entry of a map fact when ``entity`` is given.
        A whole map fact comes back as a copy.
        """
        if key not in self.facts:
            return default
        value = self.facts[key]
        if entity is None:
            return dict(value) if isinstance(value, dict) else value
        if isinstance(value, dict):
            return value.get(entity, default)
        return default

    def has(self, key: str, entity: Optional[str] = None) -> bool:
        if key not in self.facts:
            return False
        if entity is None:
            return True
        value = self.facts[key]
        return isinstance(value, dict) and entity in value

    def kind(self, key: str) -> Optional[FactKind]:
        if key not in self.facts:
            return None
        return kind_of(self.facts[key])

    def with_fact(self, key: str, value: Any, entity: Optional[str] = None) -> "WorldState":
        """Return a copy with one fact (or one map entry) replaced."""
        facts = dict(self.facts)
        if entity is None:
            facts[key] = value
        else:
            current = facts.get(key)
            nested = dict(current) if isinstance(current, dict) else {}
            nested[entity] = value
            facts[key] = nested
        return WorldState(facts=facts)

    def with_facts(self, updates: Mapping[str, Any]) -> "WorldState":
        facts = dict(self.facts)
        facts.update(updates)
        return WorldState(facts=facts)

    def without_fact(self, key: str, entity: Optional[str] = None) -> "WorldState":
        if not self.has(key, entity):
            return self
        facts = dict(self.facts)
        if entity is None:
            del facts[key]
        else:
            nested = dict(facts[key])
            del nested[entity]
            facts[key] = nested
        return WorldState(facts=facts)

    def canonical_key(self) -> str:
        """Deterministic serialisation used to detect equivalent states."""
        payload = {k: _canonical(self.facts[k]) for k in sorted(self.facts)}
        return json.dumps(payload, sort_keys=True, separators=(",", ":"))

    def diff(self, other: "WorldState") -> List[StateChange]:
        """Changes that turn this state into ``other``."""
        changes: List[StateChange] = []
        for key in sorted(set(self.facts) | set(other.facts)):
            if key not in other.facts:
                changes.append(StateChange(
                    key=key, old_value=self.facts[key], removed=True,
                ))
                continue
            new = other.facts[key]
            if key not in self.facts:
                changes.append(StateChange(key=key, new_value=new))
                continue
            old = self.facts[key]
            if isinstance(old, dict) and isinstance(new, dict):
                for entity in sorted(set(old) | set(new)):
                    if entity not in new:
                        changes.append(StateChange(
                            key=key, entity=entity,
                            old_value=old[entity], removed=True,
                        ))
                    elif entity not in old or not _same(old[entity], new[entity]):
                        changes.append(StateChange(
                            key=key, entity=entity,
                            old_value=old.get(entity), new_value=new[entity],
                        ))
            elif not _same(old, new):
                changes.append(StateChange(key=key, old_value=old, new_value=new))
        return changes

    def apply_changes(self, changes: Iterable[StateChange]) -> "WorldState":
        """Replay a list of changes (typically from ``diff``) onto this state."""
        state = self
        for change in changes:
            if change.removed:
                state = state.without_fact(change.key, change.entity)
            else:
                state = state.with_fact(change.key, change.new_value, change.entity)
        return state

    def to_plain(self) -> Dict[str, Any]:
        """JSON-ready copy of the facts."""
        return {k: _canonical(v) for k, v in self.facts.items()}


def _same(a: Any, b: Any) -> bool:
    # True == 1 in Python; facts of different kinds are never the same
    return type(a) is type(b) and a == b


class StateSchema(BaseModel):
    """Structural expectations for a domain's world state."""

    required: List[str] = []
    kinds: Dict[str, FactKind] = {}

    def validate_state(self, state: WorldState) -> List[str]:
        """Return a list of validation errors (empty when valid)."""
        errors = []
        for key in self.required:
            if key not in state.facts:
                errors.append(f"Missing required state key: {key}")
        for key, expected in self.kinds.items():
            actual = state.kind(key)
            if actual is not None and actual != expected:
                errors.append(
                    f"{key} must be {expected.value}, got {actual.value}"
                )
        return errors

    def check(self, state: WorldState) -> None:
        errors = self.validate_state(state)
        if errors:
            raise InvalidStateError(
                f"Invalid world state: {'; '.join(errors)}", errors=errors
            )
