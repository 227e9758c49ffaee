"""
Plan Executor — runs a plan's actions against the live world state.

Receives a plan and the agent that owns it, invokes each action's
capability in order, and commits successful outcomes to the shared
world state store.

Behavioral Contract:
- Preconditions are re-validated against the live state before every attempt
- Each capability call is bounded by a per-action timeout
- Failed attempts are retried with linear backoff, re-checking preconditions
- Each successful action commits one atomic delta to the store
- Results that arrive after cancellation are discarded, never applied
- Failures are accumulated on the ExecutionResult, not raised
- Only a closed/unavailable state store aborts execution with an exception
"""

import asyncio
import inspect
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from goap_kernel.actions.registry import ActionRegistry
from goap_kernel.errors import (
    ActionExecutionError,
    AgentBusyError,
    PreconditionViolation,
    StateStoreUnavailableError,
)
from goap_kernel.models.action import Action, ActionResult
from goap_kernel.models.agent import Agent
from goap_kernel.models.config import ExecutionOptions
from goap_kernel.models.execution import ExecutionIssue, ExecutionResult, IssueKind
from goap_kernel.models.plan import Plan, PlanStatus
from goap_kernel.models.state import StateChange, StateSchema, WorldState
from goap_kernel.world_model.store import WorldStateStore

logger = logging.getLogger(__name__)


class ExecutionHooks:
    """Lifecycle callbacks, invoked synchronously in execution order."""

    def __init__(
        self,
        on_action_start: Optional[Callable[[Action, "ExecutionContext"], None]] = None,
        on_action_complete: Optional[
            Callable[[Action, ActionResult, "ExecutionContext"], None]
        ] = None,
        on_plan_complete: Optional[Callable[[ExecutionResult], None]] = None,
    ):
        self.on_action_start = on_action_start
        self.on_action_complete = on_action_complete
        self.on_plan_complete = on_plan_complete


class ExecutionContext:
    """Mutable bookkeeping for one in-flight plan."""

    def __init__(self, plan: Plan, agent: Agent, options: ExecutionOptions):
        self.plan = plan
        self.agent = agent
        self.options = options
        self.current_action_index = 0
        self.started_at = datetime.utcnow()
        self.cancelled = False
        self._running = asyncio.Event()
        self._running.set()

    @property
    def paused(self) -> bool:
        return not self._running.is_set()

    @property
    def progress(self) -> float:
        total = len(self.plan.actions)
        return (self.current_action_index / total) * 100 if total else 0.0

    async def wait_if_paused(self) -> None:
        await self._running.wait()


class PlanExecutor:
    """
    Executes plans for many agents concurrently; at most one plan per agent.
    Control calls (cancel/pause/resume) must come from the executor's event loop.
    """

    def __init__(
        self,
        store: WorldStateStore,
        registry: ActionRegistry,
        hooks: Optional[ExecutionHooks] = None,
        schema: Optional[StateSchema] = None,
    ):
        self.store = store
        self.registry = registry
        self.hooks = hooks or ExecutionHooks()
        self.schema = schema or store.schema
        self._contexts: Dict[str, ExecutionContext] = {}
        self._agent_plans: Dict[str, str] = {}

    async def execute(
        self,
        plan: Plan,
        agent: Agent,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionResult:
        """
        Execute a pending plan on behalf of ``agent``.

        GUARD: an agent runs one plan at a time; only pending plans start.
        """
        options = options or ExecutionOptions()
        if agent.id in self._agent_plans:
            raise AgentBusyError(
                f"Agent {agent.id} is already executing plan {self._agent_plans[agent.id]}"
            )
        if plan.status != PlanStatus.PENDING:
            raise ActionExecutionError(
                f"Cannot execute plan {plan.id}: status is {plan.status.value}, not pending."
            )

        context = ExecutionContext(plan, agent, options)
        self._contexts[plan.id] = context
        self._agent_plans[agent.id] = plan.id
        plan.status = PlanStatus.EXECUTING
        agent.current_plan = plan

        start_time = time.monotonic()
        executed: List[Action] = []
        issues: List[ExecutionIssue] = []
        changes: List[StateChange] = []

        logger.info(
            "Agent %s starting plan %s for goal %s (%d actions)",
            agent.name, plan.id, plan.goal.name, len(plan.actions),
        )

        try:
            for index, action in enumerate(plan.actions):
                context.current_action_index = index
                await context.wait_if_paused()

                if context.cancelled:
                    issues.append(ExecutionIssue(
                        kind=IssueKind.CANCELLED,
                        message=f"Plan cancelled before action {action.name}",
                        action_id=action.id,
                    ))
                    break

                if time.monotonic() - start_time > options.plan_timeout_seconds:
                    issues.append(ExecutionIssue(
                        kind=IssueKind.PLAN_TIMEOUT,
                        message=(
                            f"Plan execution timeout after "
                            f"{options.plan_timeout_seconds}s"
                        ),
                        action_id=action.id,
                    ))
                    break

                logger.info(
                    "Executing action %d/%d: %s", index + 1, len(plan.actions), action.name
                )
                self._emit("on_action_start", action, context)

                result, base, issue = await self._run_action(action, context)

                if context.cancelled:
                    # In-flight result arrived after cancel(): discard it
                    issues.append(ExecutionIssue(
                        kind=IssueKind.CANCELLED,
                        message=f"Plan cancelled; result of {action.name} discarded",
                        action_id=action.id,
                    ))
                    self._emit("on_action_complete", action, result, context)
                    break

                if result.success:
                    new_state = result.new_world_state or base
                    issues.extend(self._check_result_state(action, new_state))
                    changes.extend(
                        self.store.apply_changes(base, new_state, source=action.id)
                    )
                    executed.append(action)
                    agent.world_state = self.store.snapshot()
                    logger.info("Action completed: %s", result.message or action.name)
                    self._emit("on_action_complete", action, result, context)
                    continue

                issues.append(issue)
                logger.error("Action %s failed: %s", action.name, issue.message)
                self._emit("on_action_complete", action, result, context)
                if not options.continue_on_error:
                    break

            fatal = [i for i in issues if i.fatal]
            if context.cancelled:
                plan.status = PlanStatus.CANCELLED
            elif len(executed) == len(plan.actions) and not fatal:
                plan.status = PlanStatus.COMPLETED
            else:
                plan.status = PlanStatus.FAILED
        except StateStoreUnavailableError:
            plan.status = PlanStatus.FAILED
            logger.error("World state store unavailable; aborting plan %s", plan.id)
            raise
        finally:
            self._contexts.pop(plan.id, None)
            self._agent_plans.pop(agent.id, None)

        success = plan.status == PlanStatus.COMPLETED
        if success:
            message = f"Plan executed successfully. {len(executed)} actions completed."
        else:
            message = (
                f"Plan execution {plan.status.value}. "
                f"{len(executed)}/{len(plan.actions)} actions completed."
            )

        result = ExecutionResult(
            plan_id=plan.id,
            agent_id=agent.id,
            success=success,
            status=plan.status,
            executed_actions=executed,
            final_world_state=self.store.snapshot(),
            world_state_changes=changes,
            issues=issues,
            message=message,
            executed_at=datetime.utcnow(),
            total_duration_seconds=round(time.monotonic() - start_time, 3),
        )
        agent.world_state = result.final_world_state
        logger.info("Plan %s %s: %s", plan.id, plan.status.value, message)
        self._emit("on_plan_complete", result)
        return result

    async def _run_action(
        self, action: Action, context: ExecutionContext
    ) -> Tuple[ActionResult, WorldState, Optional[ExecutionIssue]]:
        """
        Run one action with retries. Returns the final result, the snapshot
        that attempt observed, and the issue describing a failure.
        """
        options = context.options
        attempt = 0
        while True:
            live = self.store.snapshot()
            failed = action.failed_preconditions(live)
            if failed:
                violation = PreconditionViolation(action.id, failed)
                logger.warning("%s", violation)
                return (
                    ActionResult(success=False, new_world_state=live, error=str(violation)),
                    live,
                    ExecutionIssue(
                        kind=IssueKind.PRECONDITION_VIOLATION,
                        message=str(violation),
                        action_id=action.id,
                        attempt=attempt,
                    ),
                )

            result, kind = await self._invoke(action, live, options)
            if result.success:
                return result, live, None

            issue = ExecutionIssue(
                kind=kind,
                message=f"Action {action.name} failed: {result.error}",
                action_id=action.id,
                attempt=attempt,
            )
            if not options.retry_on_failure or attempt >= options.max_retries:
                return result, live, issue
            if context.cancelled:
                return result, live, issue

            attempt += 1
            logger.warning(
                "Retrying action %s (attempt %d of %d)",
                action.name, attempt + 1, options.max_retries + 1,
            )
            await asyncio.sleep(options.retry_backoff_seconds * attempt)
            if context.cancelled:
                return result, live, issue

    async def _invoke(
        self, action: Action, state: WorldState, options: ExecutionOptions
    ) -> Tuple[ActionResult, IssueKind]:
        """Call the action's capability once, bounded by the action timeout."""
        handler = self.registry.get_handler(action.id)
        if handler is None:
            return (
                ActionResult(
                    success=False,
                    new_world_state=state,
                    error=f"No handler registered for action: {action.id}",
                ),
                IssueKind.ACTION_EXECUTION_ERROR,
            )

        start = time.monotonic()
        parameters = dict(action.parameters)
        try:
            if _is_async_callable(handler):
                call = handler(state, parameters)
            else:
                call = _call_in_thread(handler, state, parameters)
            raw = await asyncio.wait_for(call, timeout=options.action_timeout_seconds)
            result = _coerce_result(raw)
        except asyncio.TimeoutError:
            return (
                ActionResult(
                    success=False,
                    new_world_state=state,
                    error=f"Action execution timeout after {options.action_timeout_seconds}s",
                    duration_seconds=round(time.monotonic() - start, 3),
                ),
                IssueKind.ACTION_TIMEOUT,
            )
        except StateStoreUnavailableError:
            raise
        except Exception as e:
            logger.error("Action %s execution error: %s", action.id, e)
            return (
                ActionResult(
                    success=False,
                    new_world_state=state,
                    error=str(e),
                    duration_seconds=round(time.monotonic() - start, 3),
                ),
                IssueKind.ACTION_EXECUTION_ERROR,
            )

        if not result.duration_seconds:
            result = result.model_copy(
                update={"duration_seconds": round(time.monotonic() - start, 3)}
            )
        return result, IssueKind.ACTION_EXECUTION_ERROR

    def _check_result_state(self, action: Action, state: WorldState) -> List[ExecutionIssue]:
        """Post-action validation. Problems are warnings; the plan continues."""
        if self.schema is None:
            return []
        errors = self.schema.validate_state(state)
        if not errors:
            return []
        logger.warning("Action %s produced invalid world state: %s", action.id, errors)
        return [
            ExecutionIssue(
                kind=IssueKind.INVALID_STATE,
                message=f"Action {action.name} produced invalid state: {'; '.join(errors)}",
                action_id=action.id,
                fatal=False,
            )
        ]

    def _emit(self, hook: str, *args) -> None:
        callback = getattr(self.hooks, hook, None)
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("Execution hook %s raised", hook)

    # --- Control ---

    def cancel(self, plan_id: str) -> bool:
        """Stop issuing new actions for a plan. In-flight results are discarded."""
        context = self._contexts.get(plan_id)
        if context is None:
            return False
        context.cancelled = True
        context.plan.status = PlanStatus.CANCELLED
        context._running.set()
        logger.info("Plan %s cancelled", plan_id)
        return True

    def pause(self, plan_id: str) -> bool:
        """Hold the plan before its next action. The current action completes."""
        context = self._contexts.get(plan_id)
        if context is None or context.cancelled:
            return False
        context._running.clear()
        context.plan.status = PlanStatus.PAUSED
        logger.info("Plan %s paused", plan_id)
        return True

    def resume(self, plan_id: str) -> bool:
        context = self._contexts.get(plan_id)
        if context is None or not context.paused:
            return False
        context.plan.status = PlanStatus.EXECUTING
        context._running.set()
        logger.info("Plan %s resumed", plan_id)
        return True

    def status(self, plan_id: str) -> Optional[dict]:
        """Progress snapshot for an in-flight plan."""
        context = self._contexts.get(plan_id)
        if context is None:
            return None
        actions = context.plan.actions
        current = (
            actions[context.current_action_index]
            if context.current_action_index < len(actions)
            else None
        )
        return {
            "plan_id": plan_id,
            "agent_id": context.agent.id,
            "status": context.plan.status.value,
            "current_action": current.id if current else None,
            "progress": context.progress,
            "paused": context.paused,
        }

    def active_plans(self) -> List[str]:
        return list(self._contexts)


def _is_async_callable(handler) -> bool:
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )


async def _call_in_thread(handler, state: WorldState, parameters: dict):
    raw = await asyncio.to_thread(handler, state, parameters)
    if inspect.isawaitable(raw):
        raw = await raw
    return raw


def _coerce_result(raw) -> ActionResult:
    if isinstance(raw, ActionResult):
        return raw
    if isinstance(raw, dict):
        try:
            return ActionResult.model_validate(raw)
        except ValidationError as e:
            raise ActionExecutionError(f"Action returned invalid result: {e}") from e
    raise ActionExecutionError(
        f"Action returned invalid result of type {type(raw).__name__}"
    )
