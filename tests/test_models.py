"""Tests for GOAP Kernel data models."""

from datetime import datetime

import pytest
from pydantic import ValidationError

from goap_kernel.models import (
    Action,
    Agent,
    Condition,
    ExecutionIssue,
    ExecutionResult,
    Goal,
    GoalActivation,
    IssueKind,
    Plan,
    PlannerConfig,
    PlanningFailure,
    PlanningFailureKind,
    PlanStatus,
    SchedulerConfig,
    WorldState,
    default_priority_rules,
)


def _make_goal(**overrides) -> Goal:
    fields = {
        "id": "ship_a",
        "name": "Ship order A",
        "target_state": [Condition(key="order_status", entity="A", value="shipped")],
    }
    fields.update(overrides)
    return Goal(**fields)


class TestGoal:
    def test_defaults(self):
        goal = _make_goal()
        assert goal.priority == 50
        assert goal.deadline is None
        assert goal.is_active()

    def test_priority_bounds(self):
        with pytest.raises(ValidationError):
            _make_goal(priority=0)
        with pytest.raises(ValidationError):
            _make_goal(priority=101)

    def test_satisfaction(self):
        goal = _make_goal()
        assert not goal.is_satisfied(WorldState())
        assert goal.is_satisfied(WorldState(facts={"order_status": {"A": "shipped"}}))

    def test_scheduled_activation(self):
        activation = GoalActivation(always=False, schedule="*/15 * * * *")
        assert activation.is_active(datetime(2026, 3, 1, 9, 30))
        assert not activation.is_active(datetime(2026, 3, 1, 9, 31))

    def test_invalid_schedule_inactive(self):
        activation = GoalActivation(always=False, schedule="not a cron")
        assert activation.is_active(datetime(2026, 3, 1, 9, 30)) is False

    def test_no_schedule_inactive(self):
        assert GoalActivation(always=False).is_active(datetime.utcnow()) is False


class TestAction:
    def test_negative_cost_rejected(self):
        with pytest.raises(ValidationError):
            Action(id="a", name="a", cost=-1)

    def test_failed_preconditions(self):
        action = Action(
            id="ship",
            name="Ship",
            preconditions=[
                Condition(key="ready", value=True),
                Condition(key="truck", value="bay_1"),
            ],
        )
        state = WorldState(facts={"ready": True})
        assert action.failed_preconditions(state) == ["truck equals 'bay_1'"]
        assert not action.is_applicable(state)

    def test_frozen(self):
        action = Action(id="a", name="a")
        with pytest.raises(ValidationError):
            action.cost = 5


class TestPlan:
    def test_id_and_status(self):
        plan = Plan(goal=_make_goal(), actions=[], estimated_cost=0, estimated_duration_seconds=0)
        assert plan.id.startswith("plan_")
        assert plan.status == PlanStatus.PENDING
        assert plan.describe() == "(no actions)"

    def test_terminal_statuses(self):
        assert PlanStatus.COMPLETED.is_terminal
        assert PlanStatus.FAILED.is_terminal
        assert PlanStatus.CANCELLED.is_terminal
        assert not PlanStatus.EXECUTING.is_terminal
        assert not PlanStatus.PAUSED.is_terminal

    def test_failure_retryable(self):
        timeout = PlanningFailure(kind=PlanningFailureKind.TIMEOUT, message="t", budget="time")
        unreachable = PlanningFailure(kind=PlanningFailureKind.UNREACHABLE, message="u")
        assert timeout.retryable
        assert not unreachable.retryable


class TestAgent:
    def test_priority_defaults_to_base(self):
        agent = Agent(id="a1", name="Picker", base_priority=4)
        assert agent.priority == 4
        assert agent.is_idle

    def test_can_execute(self):
        agent = Agent(id="a1", name="Picker", capabilities={"picking"})
        assert agent.can_execute("picking")
        assert agent.can_execute(None)
        assert not agent.can_execute("shipping")

    def test_default_rules_cover_roles(self):
        assert [r.capability for r in default_priority_rules()] == [
            "shipping", "maintenance", "quality_control",
        ]


class TestConfig:
    def test_planner_relaxed(self):
        config = PlannerConfig(max_depth=4, timeout_seconds=2, max_explored_nodes=100)
        relaxed = config.relaxed(2.0)
        assert relaxed.max_depth == 8
        assert relaxed.timeout_seconds == 4
        assert relaxed.max_explored_nodes == 200
        assert config.max_depth == 4

    def test_relaxed_always_grows_depth(self):
        assert PlannerConfig(max_depth=1).relaxed(1.0).max_depth == 2

    def test_scheduler_config_from_dict(self):
        config = SchedulerConfig.model_validate({
            "heartbeat_interval_seconds": 1,
            "planner": {"max_depth": 20},
            "execution": {"max_retries": 0},
        })
        assert config.planner.max_depth == 20
        assert config.execution.max_retries == 0
        assert config.execution.action_timeout_seconds == 30

    def test_invalid_config(self):
        with pytest.raises(ValidationError):
            PlannerConfig(max_depth=0)


class TestExecutionResult:
    def test_errors_are_issue_messages(self):
        result = ExecutionResult(
            plan_id="plan_1",
            agent_id="a1",
            success=False,
            status=PlanStatus.FAILED,
            final_world_state=WorldState(),
            issues=[
                ExecutionIssue(kind=IssueKind.ACTION_TIMEOUT, message="too slow", action_id="x"),
            ],
        )
        assert result.errors == ["too slow"]
        assert result.executed_action_ids == []
        assert "plan_id" in result.model_dump(mode="json")
