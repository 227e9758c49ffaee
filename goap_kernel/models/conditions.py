"""Conditions and effects — the constraint and transformation grammar over WorldState."""

from enum import Enum
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from goap_kernel.errors import InvalidStateError
from goap_kernel.models.state import FactValue, WorldState, size_of


class Comparator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    LESS_THAN = "less_than"
    LESS_EQUAL = "less_equal"
    GREATER_THAN = "greater_than"
    GREATER_EQUAL = "greater_equal"
    CONTAINS = "contains"               # Set membership (or map key)
    NOT_CONTAINS = "not_contains"
    IS_EMPTY = "is_empty"
    NOT_EMPTY = "not_empty"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"


_ORDERING = {
    Comparator.LESS_THAN: lambda a, b: a < b,
    Comparator.LESS_EQUAL: lambda a, b: a <= b,
    Comparator.GREATER_THAN: lambda a, b: a > b,
    Comparator.GREATER_EQUAL: lambda a, b: a >= b,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equal(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    return actual == expected


def _ordering_operand(value: Any) -> Optional[float]:
    """Numbers compare by value; id-sets and maps compare by size."""
    if _is_number(value):
        return value
    return size_of(value)


class Condition(BaseModel):
    """
    A single constraint on a WorldState.

    ``entity`` addresses one entry of a map fact, e.g. key="item_location",
    entity="A" reads ``item_location[A]``.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    comparator: Comparator = Comparator.EQUALS
    value: Optional[FactValue] = None
    entity: Optional[str] = None

    @model_validator(mode="after")
    def _check_operand(self) -> "Condition":
        if self.comparator in _ORDERING and not _is_number(self.value):
            raise ValueError(
                f"{self.comparator.value} requires a numeric value, got {self.value!r}"
            )
        if self.comparator in (Comparator.CONTAINS, Comparator.NOT_CONTAINS):
            if not isinstance(self.value, str):
                raise ValueError(f"{self.comparator.value} requires an identifier value")
        return self

    @property
    def target(self) -> str:
        return f"{self.key}[{self.entity}]" if self.entity else self.key

    def is_satisfied(self, state: WorldState) -> bool:
        comparator = self.comparator
        present = state.has(self.key, self.entity)

        if comparator == Comparator.EXISTS:
            return present
        if comparator == Comparator.NOT_EXISTS:
            return not present
        if not present:
            return comparator in (Comparator.NOT_EQUALS, Comparator.NOT_CONTAINS)

        actual = state.get(self.key, self.entity)

        if comparator == Comparator.EQUALS:
            return _equal(actual, self.value)
        if comparator == Comparator.NOT_EQUALS:
            return not _equal(actual, self.value)
        if comparator == Comparator.CONTAINS:
            return isinstance(actual, (frozenset, dict)) and self.value in actual
        if comparator == Comparator.NOT_CONTAINS:
            return isinstance(actual, (frozenset, dict)) and self.value not in actual
        if comparator == Comparator.IS_EMPTY:
            return size_of(actual) == 0
        if comparator == Comparator.NOT_EMPTY:
            size = size_of(actual)
            return size is not None and size > 0

        operand = _ordering_operand(actual)
        if operand is None:
            return False
        return _ORDERING[comparator](operand, self.value)

    def describe(self) -> str:
        if self.comparator in (
            Comparator.EXISTS, Comparator.NOT_EXISTS,
            Comparator.IS_EMPTY, Comparator.NOT_EMPTY,
        ):
            return f"{self.target} {self.comparator.value}"
        return f"{self.target} {self.comparator.value} {self.value!r}"


class EffectOperation(str, Enum):
    SET = "set"
    INCREMENT = "increment"
    DECREMENT = "decrement"
    ADD = "add"                 # Add an identifier to an id-set
    REMOVE = "remove"           # Remove an identifier from an id-set
    TOGGLE = "toggle"
    MERGE = "merge"             # Merge entries into a map fact
    DELETE = "delete"


class Effect(BaseModel):
    """A single WorldState transformation rule."""

    model_config = ConfigDict(frozen=True)

    key: str
    operation: EffectOperation = EffectOperation.SET
    value: Optional[FactValue] = None
    entity: Optional[str] = None

    @model_validator(mode="after")
    def _check_operand(self) -> "Effect":
        op = self.operation
        if op == EffectOperation.SET and self.value is None:
            raise ValueError("set effect requires a value")
        if op in (EffectOperation.INCREMENT, EffectOperation.DECREMENT):
            if self.value is not None and not _is_number(self.value):
                raise ValueError(f"{op.value} effect requires a numeric value")
        if op in (EffectOperation.ADD, EffectOperation.REMOVE):
            if not isinstance(self.value, str) or self.entity is not None:
                raise ValueError(f"{op.value} effect takes an identifier and no entity")
        if op == EffectOperation.MERGE:
            if not isinstance(self.value, dict) or self.entity is not None:
                raise ValueError("merge effect takes a map value and no entity")
        return self

    @property
    def target(self) -> str:
        return f"{self.key}[{self.entity}]" if self.entity else self.key

    def apply(self, state: WorldState) -> WorldState:
        """Return the state produced by this effect. Raises InvalidStateError on kind mismatch."""
        op = self.operation
        key, entity = self.key, self.entity

        if op == EffectOperation.SET:
            return state.with_fact(key, self.value, entity)

        if op == EffectOperation.DELETE:
            return state.without_fact(key, entity)

        current = state.get(key, entity)

        if op in (EffectOperation.INCREMENT, EffectOperation.DECREMENT):
            if current is None:
                current = 0
            if not _is_number(current):
                raise InvalidStateError(f"Cannot {op.value} non-numeric fact {self.target}")
            amount = 1 if self.value is None else self.value
            if op == EffectOperation.DECREMENT:
                amount = -amount
            return state.with_fact(key, current + amount, entity)

        if op == EffectOperation.TOGGLE:
            if current is None:
                current = False
            if not isinstance(current, bool):
                raise InvalidStateError(f"Cannot toggle non-boolean fact {self.target}")
            return state.with_fact(key, not current, entity)

        if op == EffectOperation.ADD:
            if current is None:
                current = frozenset()
            if not isinstance(current, frozenset):
                raise InvalidStateError(f"Cannot add to non-set fact {self.target}")
            return state.with_fact(key, current | {self.value})

        if op == EffectOperation.REMOVE:
            if current is None:
                return state
            if not isinstance(current, frozenset):
                raise InvalidStateError(f"Cannot remove from non-set fact {self.target}")
            return state.with_fact(key, current - {self.value})

        # MERGE
        if current is None:
            current = {}
        if not isinstance(current, dict):
            raise InvalidStateError(f"Cannot merge into non-map fact {self.target}")
        return state.with_fact(key, {**current, **self.value})

    def describe(self) -> str:
        if self.value is None:
            return f"{self.operation.value} {self.target}"
        return f"{self.operation.value} {self.target} {self.value!r}"


def satisfies_all(state: WorldState, conditions: Iterable[Condition]) -> bool:
    return all(c.is_satisfied(state) for c in conditions)


def unsatisfied(state: WorldState, conditions: Iterable[Condition]) -> List[Condition]:
    """Conditions that do not hold against ``state``, in declaration order."""
    return [c for c in conditions if not c.is_satisfied(state)]
