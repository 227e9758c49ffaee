"""Tests for conditions and effects."""

import pytest
from pydantic import ValidationError

from goap_kernel.errors import InvalidStateError
from goap_kernel.models.conditions import (
    Comparator,
    Condition,
    Effect,
    EffectOperation,
    satisfies_all,
    unsatisfied,
)
from goap_kernel.models.state import WorldState


def _make_state() -> WorldState:
    return WorldState(facts={
        "item_location": {"A": "dock"},
        "orders_in_queue": 6,
        "forklift_available": True,
        "items_need_inspection": frozenset({"i1", "i2"}),
        "equipment_needs_maintenance": frozenset(),
    })


class TestCondition:
    def setup_method(self):
        self.state = _make_state()

    def test_equals_map_entry(self):
        cond = Condition(key="item_location", entity="A", value="dock")
        assert cond.is_satisfied(self.state)
        assert not Condition(key="item_location", entity="A", value="shelf1").is_satisfied(self.state)

    def test_bool_never_equals_int(self):
        assert not Condition(key="forklift_available", value=1).is_satisfied(self.state)
        assert Condition(key="forklift_available", value=True).is_satisfied(self.state)

    def test_numeric_ordering(self):
        gt = Condition(key="orders_in_queue", comparator=Comparator.GREATER_THAN, value=5)
        le = Condition(key="orders_in_queue", comparator=Comparator.LESS_EQUAL, value=5)
        assert gt.is_satisfied(self.state)
        assert not le.is_satisfied(self.state)

    def test_ordering_on_set_uses_size(self):
        cond = Condition(
            key="items_need_inspection", comparator=Comparator.GREATER_THAN, value=3,
        )
        assert not cond.is_satisfied(self.state)
        bigger = self.state.with_fact("items_need_inspection", frozenset({"a", "b", "c", "d"}))
        assert cond.is_satisfied(bigger)

    def test_ordering_on_text_is_false(self):
        cond = Condition(
            key="item_location", entity="A", comparator=Comparator.LESS_THAN, value=1,
        )
        assert not cond.is_satisfied(self.state)

    def test_contains(self):
        cond = Condition(key="items_need_inspection", comparator=Comparator.CONTAINS, value="i1")
        assert cond.is_satisfied(self.state)
        cond = Condition(key="items_need_inspection", comparator=Comparator.NOT_CONTAINS, value="i9")
        assert cond.is_satisfied(self.state)

    def test_emptiness(self):
        assert Condition(
            key="equipment_needs_maintenance", comparator=Comparator.IS_EMPTY,
        ).is_satisfied(self.state)
        assert not Condition(
            key="equipment_needs_maintenance", comparator=Comparator.NOT_EMPTY,
        ).is_satisfied(self.state)

    def test_missing_fact(self):
        assert not Condition(key="missing", value=1).is_satisfied(self.state)
        assert Condition(key="missing", comparator=Comparator.NOT_EQUALS, value=1).is_satisfied(self.state)
        assert Condition(key="missing", comparator=Comparator.NOT_EXISTS).is_satisfied(self.state)
        assert not Condition(
            key="missing", comparator=Comparator.GREATER_THAN, value=0,
        ).is_satisfied(self.state)

    def test_exists_map_entry(self):
        assert Condition(key="item_location", entity="A", comparator=Comparator.EXISTS).is_satisfied(self.state)
        assert not Condition(key="item_location", entity="Z", comparator=Comparator.EXISTS).is_satisfied(self.state)

    def test_ordering_requires_number(self):
        with pytest.raises(ValidationError):
            Condition(key="orders_in_queue", comparator=Comparator.GREATER_THAN, value="five")

    def test_contains_requires_identifier(self):
        with pytest.raises(ValidationError):
            Condition(key="items_need_inspection", comparator=Comparator.CONTAINS, value=3)

    def test_describe(self):
        cond = Condition(key="order_status", entity="A", value="shipped")
        assert cond.describe() == "order_status[A] equals 'shipped'"

    def test_helpers(self):
        conds = [
            Condition(key="forklift_available", value=True),
            Condition(key="orders_in_queue", value=0),
        ]
        assert not satisfies_all(self.state, conds)
        assert unsatisfied(self.state, conds) == [conds[1]]
        assert satisfies_all(self.state, [])


class TestEffect:
    def setup_method(self):
        self.state = _make_state()

    def test_set_map_entry(self):
        effect = Effect(key="item_location", entity="A", value="shelf1")
        assert effect.apply(self.state).get("item_location", "A") == "shelf1"

    def test_increment_and_decrement(self):
        inc = Effect(key="orders_in_queue", operation=EffectOperation.INCREMENT, value=2)
        dec = Effect(key="orders_in_queue", operation=EffectOperation.DECREMENT)
        assert inc.apply(self.state).get("orders_in_queue") == 8
        assert dec.apply(self.state).get("orders_in_queue") == 5

    def test_increment_missing_starts_at_zero(self):
        inc = Effect(key="shipped_count", operation=EffectOperation.INCREMENT)
        assert inc.apply(self.state).get("shipped_count") == 1

    def test_increment_non_numeric_raises(self):
        inc = Effect(key="forklift_available", operation=EffectOperation.INCREMENT)
        with pytest.raises(InvalidStateError):
            inc.apply(self.state)

    def test_toggle(self):
        toggle = Effect(key="forklift_available", operation=EffectOperation.TOGGLE)
        assert toggle.apply(self.state).get("forklift_available") is False

    def test_add_and_remove_identifier(self):
        add = Effect(key="equipment_needs_maintenance", operation=EffectOperation.ADD, value="belt_1")
        remove = Effect(key="items_need_inspection", operation=EffectOperation.REMOVE, value="i1")
        assert add.apply(self.state).get("equipment_needs_maintenance") == frozenset({"belt_1"})
        assert remove.apply(self.state).get("items_need_inspection") == frozenset({"i2"})

    def test_merge_map(self):
        merge = Effect(key="item_location", operation=EffectOperation.MERGE, value={"B": "shelf2"})
        assert merge.apply(self.state).get("item_location") == {"A": "dock", "B": "shelf2"}

    def test_delete(self):
        delete = Effect(key="item_location", entity="A", operation=EffectOperation.DELETE)
        assert delete.apply(self.state).get("item_location") == {}

    def test_apply_does_not_mutate_input(self):
        Effect(key="orders_in_queue", value=0).apply(self.state)
        assert self.state.get("orders_in_queue") == 6

    def test_set_requires_value(self):
        with pytest.raises(ValidationError):
            Effect(key="x")
