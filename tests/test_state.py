"""Tests for the WorldState value model."""

import pytest
from pydantic import ValidationError

from goap_kernel.errors import InvalidStateError
from goap_kernel.models.state import FactKind, StateSchema, WorldState, kind_of


def _make_state() -> WorldState:
    return WorldState(facts={
        "item_location": {"A": "dock", "B": "shelf1"},
        "orders_in_queue": 3,
        "forklift_available": True,
        "equipment_needs_maintenance": frozenset({"conveyor_2"}),
    })


class TestWorldState:
    def test_get_map_entry(self):
        state = _make_state()
        assert state.get("item_location", "A") == "dock"
        assert state.get("item_location", "C") is None
        assert state.get("missing", default=0) == 0

    def test_map_read_is_a_copy(self):
        state = _make_state()
        locations = state.get("item_location")
        locations["A"] = "lost"
        locations["Z"] = "dock"

        assert state.get("item_location", "A") == "dock"
        assert not state.has("item_location", "Z")

    def test_has(self):
        state = _make_state()
        assert state.has("orders_in_queue")
        assert state.has("item_location", "B")
        assert not state.has("item_location", "C")
        assert not state.has("orders_in_queue", "A")

    def test_transitions_return_new_instance(self):
        state = _make_state()
        moved = state.with_fact("item_location", "shelf1", entity="A")

        assert moved.get("item_location", "A") == "shelf1"
        assert state.get("item_location", "A") == "dock"
        assert moved.get("item_location", "B") == "shelf1"

    def test_frozen(self):
        state = _make_state()
        with pytest.raises(ValidationError):
            state.facts = {}

    def test_set_input_becomes_frozenset(self):
        state = WorldState(facts={"ids": {"a", "b"}})
        assert state.get("ids") == frozenset({"a", "b"})
        assert state.kind("ids") == FactKind.ID_SET

    def test_unsupported_value_rejected(self):
        with pytest.raises(ValidationError):
            WorldState(facts={"bad": [1, 2, 3]})
        with pytest.raises(ValidationError):
            WorldState(facts={"nested": {"a": {"b": 1}}})

    def test_without_fact(self):
        state = _make_state()
        assert "orders_in_queue" not in state.without_fact("orders_in_queue").facts
        trimmed = state.without_fact("item_location", "A")
        assert trimmed.get("item_location") == {"B": "shelf1"}
        assert state.without_fact("missing") is state

    def test_canonical_key_ignores_order(self):
        a = WorldState(facts={"x": 1, "ids": frozenset({"b", "a"}), "m": {"q": 1, "p": 2}})
        b = WorldState(facts={"m": {"p": 2, "q": 1}, "ids": frozenset({"a", "b"}), "x": 1})
        assert a.canonical_key() == b.canonical_key()

    def test_canonical_key_distinguishes_bool_and_int(self):
        assert WorldState(facts={"x": True}).canonical_key() != \
            WorldState(facts={"x": 1}).canonical_key()


class TestDiff:
    def test_diff_reports_map_entries(self):
        before = _make_state()
        after = before.with_fact("item_location", "shelf1", entity="A")

        changes = before.diff(after)

        assert len(changes) == 1
        assert changes[0].key == "item_location"
        assert changes[0].entity == "A"
        assert changes[0].old_value == "dock"
        assert changes[0].new_value == "shelf1"

    def test_diff_reports_removal(self):
        before = _make_state()
        after = before.without_fact("forklift_available")

        changes = before.diff(after)

        assert [c.key for c in changes] == ["forklift_available"]
        assert changes[0].removed is True

    def test_apply_changes_replays_diff(self):
        before = _make_state()
        after = (
            before.with_fact("orders_in_queue", 7)
            .with_fact("item_location", "truck", entity="B")
            .without_fact("forklift_available")
        )
        assert before.apply_changes(before.diff(after)) == after

    def test_describe(self):
        before = _make_state()
        after = before.with_fact("orders_in_queue", 4)
        assert before.diff(after)[0].describe() == "orders_in_queue: 3 -> 4"


class TestStateSchema:
    def test_missing_required_key(self):
        schema = StateSchema(required=["item_location", "order_status"])
        errors = schema.validate_state(_make_state())
        assert errors == ["Missing required state key: order_status"]

    def test_kind_mismatch(self):
        schema = StateSchema(kinds={"orders_in_queue": FactKind.ID_SET})
        errors = schema.validate_state(_make_state())
        assert len(errors) == 1
        assert "orders_in_queue" in errors[0]

    def test_check_raises(self):
        schema = StateSchema(required=["nope"])
        with pytest.raises(InvalidStateError) as exc:
            schema.check(_make_state())
        assert exc.value.errors == ["Missing required state key: nope"]

    def test_kind_of_bool_before_number(self):
        assert kind_of(True) == FactKind.BOOL
        assert kind_of(2.5) == FactKind.NUMBER
