"""
GOAP Planner — forward cost-guided search from a start state to a goal.

Nodes are world states, edges are applicable actions. The frontier is a
binary heap ordered by (score, discovery sequence), so equal-score nodes are
expanded first-in first-out and search is deterministic.

Behavioral Contract:
- Always returns: a plan, a partial plan, or a typed PlanningFailure
- UNREACHABLE means the reachable space was exhausted
- TIMEOUT means a time, node, or depth budget cut the search short
- Never mutates the start state or the registry
- With default weights the returned plan has minimal total action cost
"""

import heapq
import itertools
import logging
import time
from typing import Dict, List, Optional, Tuple

from goap_kernel.actions.registry import ActionRegistry
from goap_kernel.errors import InvalidStateError
from goap_kernel.models.action import Action
from goap_kernel.models.config import PlannerConfig
from goap_kernel.models.goal import Goal
from goap_kernel.models.plan import (
    Plan,
    PlannerResult,
    PlanNode,
    PlanningFailure,
    PlanningFailureKind,
)
from goap_kernel.models.state import StateSchema, WorldState

logger = logging.getLogger(__name__)


class GOAPPlanner:
    """
    Stateless planner. One instance may serve concurrent planning calls:
    every call works on its own frontier and the caller's snapshot.
    """

    def __init__(
        self,
        config: Optional[PlannerConfig] = None,
        schema: Optional[StateSchema] = None,
    ):
        self.config = config or PlannerConfig()
        self.schema = schema

    def plan(
        self,
        start: WorldState,
        goal: Goal,
        registry: ActionRegistry,
        config: Optional[PlannerConfig] = None,
    ) -> PlannerResult:
        """
        Search for an action sequence that takes ``start`` to a state
        satisfying ``goal.target_state``.

        Raises InvalidStateError if a schema is configured and ``start``
        fails validation.
        """
        config = config or self.config
        if self.schema is not None:
            self.schema.check(start)

        started = time.monotonic()

        if goal.is_satisfied(start):
            return PlannerResult(
                success=True,
                plan=self._build_plan(goal, []),
                message="Goal already satisfied",
                planning_time_seconds=round(time.monotonic() - started, 6),
            )

        actions = registry.actions()
        sequence = itertools.count()

        root = PlanNode(
            start,
            key=start.canonical_key(),
            score=self._heuristic(start, goal, config),
            sequence=next(sequence),
        )
        frontier = [(root.score, root.sequence, root)]
        # Per state key: non-dominated (weighted, depth) pairs seen so far
        arrivals: Dict[str, List[Tuple[float, int]]] = {root.key: [(0.0, 0)]}
        expanded: Dict[str, int] = {}           # key -> shallowest expanded depth
        explored = 0
        depth_pruned = False
        closest: Optional[PlanNode] = None
        closest_rank = None

        while frontier:
            if time.monotonic() - started > config.timeout_seconds:
                return self._budget_exceeded(
                    "time",
                    f"Planning exceeded {config.timeout_seconds}s budget",
                    explored, started,
                )
            if config.max_explored_nodes and explored >= config.max_explored_nodes:
                return self._budget_exceeded(
                    "nodes",
                    f"Planning exceeded {config.max_explored_nodes} explored nodes",
                    explored, started,
                )

            _, _, node = heapq.heappop(frontier)
            if expanded.get(node.key, node.depth + 1) <= node.depth:
                continue
            expanded[node.key] = node.depth
            explored += 1

            if goal.is_satisfied(node.state):
                plan = self._build_plan(goal, node.path())
                logger.info(
                    "Plan for goal %s found: %d action(s), cost %.2f, %d node(s) explored",
                    goal.id, len(plan.actions), plan.estimated_cost, explored,
                )
                return PlannerResult(
                    success=True,
                    plan=plan,
                    message=f"Plan found with {len(plan.actions)} actions",
                    explored_nodes=explored,
                    planning_time_seconds=round(time.monotonic() - started, 6),
                )

            if config.allow_partial_plans:
                rank = (
                    len(goal.unsatisfied_conditions(node.state)),
                    node.cost,
                    node.sequence,
                )
                if closest_rank is None or rank < closest_rank:
                    closest, closest_rank = node, rank

            if node.depth >= config.max_depth:
                depth_pruned = True
                continue

            for action in actions:
                if not action.is_applicable(node.state):
                    continue
                try:
                    successor = action.apply(node.state)
                except InvalidStateError as e:
                    logger.debug("Skipping %s: %s", action.id, e)
                    continue

                key = successor.canonical_key()
                depth = node.depth + 1
                if expanded.get(key, depth + 1) <= depth:
                    continue
                weighted = node.weighted + self._step_cost(action, config)
                if not _record(arrivals, key, weighted, depth):
                    continue

                child = PlanNode(
                    successor,
                    key=key,
                    action=action,
                    cost=node.cost + action.cost,
                    weighted=weighted,
                    score=weighted + self._heuristic(successor, goal, config),
                    depth=depth,
                    parent=node,
                    sequence=next(sequence),
                )
                heapq.heappush(frontier, (child.score, child.sequence, child))

        elapsed = round(time.monotonic() - started, 6)

        if config.allow_partial_plans and closest is not None:
            plan = self._build_plan(goal, closest.path(), partial=True)
            logger.info(
                "Goal %s not reached; returning partial plan with %d action(s)",
                goal.id, len(plan.actions),
            )
            return PlannerResult(
                success=False,
                plan=plan,
                message=f"Partial plan found with {len(plan.actions)} actions",
                explored_nodes=explored,
                planning_time_seconds=elapsed,
            )

        if depth_pruned:
            return self._budget_exceeded(
                "depth",
                f"No plan within max depth {config.max_depth}",
                explored, started,
            )

        logger.info("Goal %s unreachable after %d node(s)", goal.id, explored)
        return PlannerResult(
            success=False,
            failure=PlanningFailure(
                kind=PlanningFailureKind.UNREACHABLE,
                message=f"No action sequence reaches goal {goal.id}",
            ),
            message="No plan found within constraints",
            explored_nodes=explored,
            planning_time_seconds=elapsed,
        )

    def _step_cost(self, action: Action, config: PlannerConfig) -> float:
        """Weighted edge cost. Non-negative, so zero-cost cycles cannot loop."""
        priority_penalty = 1.0 / (1 + max(action.priority, 0))
        return config.cost_weight * action.cost + config.priority_weight * priority_penalty

    def _heuristic(self, state: WorldState, goal: Goal, config: PlannerConfig) -> float:
        if not config.heuristic_weight:
            return 0.0
        return config.heuristic_weight * len(goal.unsatisfied_conditions(state))

    def _budget_exceeded(
        self, budget: str, message: str, explored: int, started: float
    ) -> PlannerResult:
        logger.info("Planning stopped: %s", message)
        return PlannerResult(
            success=False,
            failure=PlanningFailure(
                kind=PlanningFailureKind.TIMEOUT,
                message=message,
                budget=budget,
            ),
            message=message,
            explored_nodes=explored,
            planning_time_seconds=round(time.monotonic() - started, 6),
        )

    def _build_plan(self, goal: Goal, actions: List[Action], partial: bool = False) -> Plan:
        return Plan(
            goal=goal,
            actions=actions,
            estimated_cost=sum(a.cost for a in actions),
            estimated_duration_seconds=sum(a.estimated_duration_seconds for a in actions),
            partial=partial,
        )


def _record(
    seen: Dict[str, List[Tuple[float, int]]], key: str, weighted: float, depth: int
) -> bool:
    """
    Record an arrival at ``key``. Returns False when an earlier arrival is
    at least as cheap and at least as shallow; only non-dominated
    (weighted, depth) pairs are kept.
    """
    entries = seen.setdefault(key, [])
    for best_weighted, best_depth in entries:
        if best_weighted <= weighted and best_depth <= depth:
            return False
    entries[:] = [
        (w, d) for w, d in entries if not (weighted <= w and depth <= d)
    ]
    entries.append((weighted, depth))
    return True
