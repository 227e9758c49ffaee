"""
Priority Scheduler — the heartbeat of the GOAP kernel.

Each cycle ranks pending goals, matches them to idle capable agents, plans
on the agent's snapshot and executes the resulting plans concurrently.

    ASSIGN → PLAN → EXECUTE → RE-EVALUATE → ASSIGN

Behavioral Contract:
- An agent is never handed a second goal while its plan is non-terminal
- Goals rank by priority, then earliest deadline, then declaration order
- Agents rank by dynamic priority, then id
- A planning timeout is retried once with relaxed budgets
- Unreachable goals are parked per agent until the registry or live state changes
- Goals that keep failing are moved to ``failed_goals``
- StateStoreUnavailableError is fatal and propagates out of the loop
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from goap_kernel.actions.registry import ActionRegistry
from goap_kernel.errors import InvalidStateError
from goap_kernel.execution.executor import PlanExecutor
from goap_kernel.models.agent import Agent, PriorityRule, default_priority_rules
from goap_kernel.models.config import SchedulerConfig
from goap_kernel.models.execution import ExecutionResult
from goap_kernel.models.goal import Goal
from goap_kernel.models.plan import Plan, PlannerResult, PlanningFailureKind, PlanStatus
from goap_kernel.models.state import WorldState
from goap_kernel.planning.planner import GOAPPlanner
from goap_kernel.world_model.store import WorldStateStore

logger = logging.getLogger(__name__)


class CycleOutcome:
    """What happened to one (agent, goal) assignment in a cycle."""

    def __init__(
        self,
        agent_id: str,
        goal_id: str,
        planning: Optional[PlannerResult] = None,
        execution: Optional[ExecutionResult] = None,
        error: Optional[str] = None,
    ):
        self.agent_id = agent_id
        self.goal_id = goal_id
        self.planning = planning
        self.execution = execution
        self.error = error

    @property
    def plan(self) -> Optional[Plan]:
        return self.planning.plan if self.planning else None

    @property
    def success(self) -> bool:
        return self.execution is not None and self.execution.success

    def to_dict(self) -> dict:
        return {
            "agent_id": self.agent_id,
            "goal_id": self.goal_id,
            "plan_id": self.plan.id if self.plan else None,
            "planning_failure": (
                self.planning.failure.kind.value
                if self.planning and self.planning.failure
                else None
            ),
            "execution_status": (
                self.execution.status.value if self.execution else None
            ),
            "success": self.success,
            "error": self.error,
        }


class PriorityScheduler:
    """Assigns goals to agents and drives the plan/execute loop."""

    def __init__(
        self,
        store: WorldStateStore,
        registry: ActionRegistry,
        planner: Optional[GOAPPlanner] = None,
        executor: Optional[PlanExecutor] = None,
        config: Optional[SchedulerConfig] = None,
        rules: Optional[List[PriorityRule]] = None,
    ):
        self.store = store
        self.registry = registry
        self.config = config or SchedulerConfig()
        self.planner = planner or GOAPPlanner(self.config.planner, schema=store.schema)
        self.executor = executor or PlanExecutor(store, registry)
        self.rules = default_priority_rules() if rules is None else rules

        self._agents: Dict[str, Agent] = {}
        self._goals: Dict[str, Goal] = {}
        self._in_flight: Dict[str, str] = {}            # goal id -> agent id
        self._parked: Dict[Tuple[str, str], Tuple[int, int]] = {}  # (goal, agent) -> versions
        self._failure_counts: Dict[str, int] = {}
        self._failed_goals: Dict[str, Goal] = {}
        self._plan_history: List[Plan] = []
        self._running = False
        self._started_at = time.monotonic()

    @property
    def status(self) -> str:
        return "running" if self._running else "stopped"

    @property
    def plan_history(self) -> List[Plan]:
        """Terminal plans, oldest first."""
        return list(self._plan_history)

    @property
    def failed_goals(self) -> List[Goal]:
        return list(self._failed_goals.values())

    def status_summary(self) -> Dict[str, object]:
        """Point-in-time counters for dashboards and health checks."""
        agents = list(self._agents.values())
        return {
            "status": self.status,
            "agents": len(agents),
            "active_agents": sum(1 for a in agents if a.is_active),
            "idle_agents": sum(1 for a in agents if a.is_active and a.is_idle),
            "running_plans": len(self.executor.active_plans()),
            "completed_plans": sum(
                1 for p in self._plan_history if p.status == PlanStatus.COMPLETED
            ),
            "failed_plans": sum(
                1 for p in self._plan_history if p.status == PlanStatus.FAILED
            ),
            "pending_goals": len(self.pending_goals()),
            "failed_goals": len(self._failed_goals),
            "uptime_seconds": time.monotonic() - self._started_at,
            "last_update": datetime.utcnow().isoformat(),
        }

    # --- Agent pool ---

    def register_agent(self, agent: Agent) -> None:
        self._agents[agent.id] = agent
        logger.info("Registered agent %s (%s)", agent.id, ", ".join(sorted(agent.capabilities)))

    def remove_agent(self, agent_id: str) -> Optional[Agent]:
        return self._agents.pop(agent_id, None)

    def get_agents(self) -> List[Agent]:
        return list(self._agents.values())

    # --- Goals ---

    def register_goal(self, goal: Goal) -> None:
        """Register a goal. Re-registering an id replaces it and clears its failures."""
        self._goals[goal.id] = goal
        self._failed_goals.pop(goal.id, None)
        self._failure_counts.pop(goal.id, None)
        self._unpark(goal.id)

    def unregister_goal(self, goal_id: str) -> None:
        self._goals.pop(goal_id, None)
        self._unpark(goal_id)
        self._failure_counts.pop(goal_id, None)

    def pending_goals(self) -> List[Goal]:
        """
        Registered goals not in flight, in declaration order. A goal parked
        for every active agent is left out.
        """
        active = [a.id for a in self._agents.values() if a.is_active]
        pending = []
        for goal in self._goals.values():
            if goal.id in self._in_flight:
                continue
            parked = [self._is_parked(goal.id, agent_id) for agent_id in active]
            if parked and all(parked):
                continue
            pending.append(goal)
        return pending

    def _is_parked(self, goal_id: str, agent_id: str) -> bool:
        """True while the pair is parked and nothing it planned against has changed."""
        parked_at = self._parked.get((goal_id, agent_id))
        if parked_at is None:
            return False
        if parked_at == (self.registry.version, self.store.version):
            return True
        del self._parked[(goal_id, agent_id)]
        return False

    def _unpark(self, goal_id: str) -> None:
        for pair in [p for p in self._parked if p[0] == goal_id]:
            del self._parked[pair]

    # --- Ranking and assignment ---

    def refresh_priorities(self, state: WorldState) -> None:
        """Recompute every agent's dynamic priority from live-state signals."""
        for agent in self._agents.values():
            priority = agent.base_priority
            for rule in self.rules:
                if rule.applies_to(agent, state):
                    priority = max(priority, rule.priority)
            if priority != agent.priority:
                logger.debug("Agent %s priority %s -> %s", agent.id, agent.priority, priority)
            agent.priority = priority

    def rank_goals(
        self, goals: List[Goal], now: Optional[datetime] = None
    ) -> List[Goal]:
        """Active goals: priority desc, deadline asc (none last), declaration order."""
        if now is None:
            now = datetime.utcnow()
        active = [g for g in goals if g.is_active(now)]
        # sorted() is stable, so declaration order breaks remaining ties
        return sorted(
            active,
            key=lambda g: (
                -g.priority,
                g.deadline is None,
                g.deadline or datetime.max,
            ),
        )

    def is_eligible(self, agent: Agent, goal: Goal, state: WorldState) -> bool:
        """
        Cheap capability pre-filter. Each unsatisfied target condition needs at
        least one producing action the agent may execute.
        """
        if not set(goal.required_capabilities) <= agent.capabilities:
            return False
        for condition in goal.unsatisfied_conditions(state):
            producers = self.registry.producers_of(condition.key, condition.entity)
            if not any(agent.can_execute(a.capability) for a in producers):
                return False
        return True

    def assign(
        self,
        agents: List[Agent],
        goals: List[Goal],
        state: WorldState,
        now: Optional[datetime] = None,
    ) -> Dict[str, Goal]:
        """
        Greedy matching: each ranked goal goes to the highest-priority
        eligible idle agent. Returns agent id -> goal.
        """
        candidates = sorted(
            (a for a in agents if a.is_active and a.is_idle),
            key=lambda a: (-(a.priority or 0), a.id),
        )
        assignments: Dict[str, Goal] = {}
        for goal in self.rank_goals(goals, now):
            if goal.is_satisfied(state):
                continue
            for agent in candidates:
                if agent.id in assignments:
                    continue
                if self._is_parked(goal.id, agent.id):
                    continue
                if self.is_eligible(agent, goal, state):
                    assignments[agent.id] = goal
                    logger.info("Assigned goal %s to agent %s", goal.id, agent.id)
                    break
        return assignments

    # --- Cycle ---

    async def run_cycle(self, now: Optional[datetime] = None) -> List[CycleOutcome]:
        """
        Run one scheduling cycle: assign, plan and execute concurrently.
        Returns one outcome per assignment.
        """
        if now is None:
            now = datetime.utcnow()

        state = self.store.snapshot()
        self._retire_satisfied(state)
        self.refresh_priorities(state)

        assignments = self.assign(
            list(self._agents.values()), self.pending_goals(), state, now
        )
        if not assignments:
            return []

        for agent_id, goal in assignments.items():
            self._in_flight[goal.id] = agent_id

        results = await asyncio.gather(
            *(
                self._pursue(self._agents[agent_id], goal)
                for agent_id, goal in assignments.items()
            ),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result

        self._retire_satisfied(self.store.snapshot())
        return list(results)

    async def _pursue(self, agent: Agent, goal: Goal) -> CycleOutcome:
        """Plan and execute one goal on one agent."""
        try:
            snapshot = self.store.snapshot()
            agent.world_state = snapshot
            view = self.registry.for_capabilities(agent.capabilities)
            versions = (self.registry.version, self.store.version)

            try:
                planning = await self._plan(snapshot, goal, view)
            except InvalidStateError as e:
                logger.error("Cannot plan goal %s: %s", goal.id, e)
                return CycleOutcome(agent.id, goal.id, error=str(e))

            plan = planning.plan
            if plan is None or (plan.partial and not plan.actions):
                if planning.failure and planning.failure.kind == PlanningFailureKind.UNREACHABLE:
                    self._parked[(goal.id, agent.id)] = versions
                    logger.info(
                        "Goal %s parked for agent %s: %s", goal.id, agent.id, planning.failure.message
                    )
                self._record_failure(goal)
                return CycleOutcome(agent.id, goal.id, planning=planning)

            execution = await self.executor.execute(plan, agent, self.config.execution)
            self._plan_history.append(plan)
            if execution.success:
                self._failure_counts.pop(goal.id, None)
            else:
                self._record_failure(goal)
            return CycleOutcome(agent.id, goal.id, planning=planning, execution=execution)
        finally:
            self._in_flight.pop(goal.id, None)
            if agent.current_plan is not None and agent.current_plan.status.is_terminal:
                agent.current_plan = None

    async def _plan(
        self, snapshot: WorldState, goal: Goal, view: ActionRegistry
    ) -> PlannerResult:
        config = self.config.planner
        result = await asyncio.to_thread(self.planner.plan, snapshot, goal, view, config)
        if result.failure and result.failure.retryable:
            relaxed = config.relaxed(self.config.planning_retry_multiplier)
            logger.info(
                "Planning for goal %s hit its %s budget; retrying with max_depth=%d",
                goal.id, result.failure.budget, relaxed.max_depth,
            )
            result = await asyncio.to_thread(self.planner.plan, snapshot, goal, view, relaxed)
        return result

    def _record_failure(self, goal: Goal) -> None:
        count = self._failure_counts.get(goal.id, 0) + 1
        self._failure_counts[goal.id] = count
        if count >= self.config.max_goal_failures:
            self._goals.pop(goal.id, None)
            self._unpark(goal.id)
            self._failed_goals[goal.id] = goal
            logger.error("Goal %s failed %d times; giving up", goal.id, count)

    def _retire_satisfied(self, state: WorldState) -> None:
        for goal in list(self._goals.values()):
            if goal.id in self._in_flight:
                continue
            if goal.is_satisfied(state):
                del self._goals[goal.id]
                self._unpark(goal.id)
                self._failure_counts.pop(goal.id, None)
                logger.info("Goal %s satisfied", goal.id)

    async def run_async(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Run the scheduler loop until ``stop_event`` is set."""
        self._running = True
        if stop_event is None:
            stop_event = asyncio.Event()

        try:
            while not stop_event.is_set():
                await self.run_cycle()
                try:
                    await asyncio.wait_for(
                        stop_event.wait(),
                        timeout=self.config.heartbeat_interval_seconds,
                    )
                except asyncio.TimeoutError:
                    continue
        finally:
            self._running = False
